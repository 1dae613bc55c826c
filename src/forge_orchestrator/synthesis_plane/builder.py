"""
forge-orchestrator — build stage

File: src/forge_orchestrator/synthesis_plane/builder.py
Last updated: 2026-10-19

Purpose
- Turn an execution plan into an artifact set through one tool-enabled model call.

Functional requirements
- Text mode runs the text-response model once with tools off; its text is the result.
- Code modes force ``create_project`` and collect files from tool calls only.
- Free text is never parsed as files.
- A README is generated when the build produced files but no overview document.
- A truncated response is logged as a warning.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from forge_orchestrator.constants import (
    BUILDER_MAX_OUTPUT_TOKENS,
    BUILDER_TEMPERATURE,
    README_FILE,
    TEXT_RESPONSE_MAX_OUTPUT_TOKENS,
    TEXT_RESPONSE_TEMPERATURE,
    TOOL_CREATE_PROJECT,
)
from forge_orchestrator.domain.models import (
    ArtifactSet,
    ExecutionPlan,
    InvocationRequest,
    ProjectMode,
    Task,
    TokenUsage,
)
from forge_orchestrator.synthesis_plane.build_context import BuildContext
from forge_orchestrator.synthesis_plane.invocation import InvocationLayer, InvocationPath
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from forge_orchestrator.synthesis_plane.tools import BUILDER_TOOLS
from forge_orchestrator.utils.concurrency import CancellationToken

_RUN_INSTRUCTIONS: dict[ProjectMode, tuple[str, str]] = {
    ProjectMode.PYTHON: (
        "Run `python main.py` with Python 3.11 or newer.",
        "Built with Python.",
    ),
    ProjectMode.NODE: (
        "Run `node index.js` with a current Node.js release.",
        "Built with Node.js.",
    ),
}
_WEB_RUN_INSTRUCTIONS = (
    "Open `index.html` in any modern browser. No installation required.",
    "Built with HTML, CSS, and JavaScript. All dependencies loaded via CDN.",
)


@dataclass(frozen=True, slots=True)
class BuildResult:
    artifacts: ArtifactSet
    text: str
    usage: TokenUsage
    model: str
    stop_reason: str | None = None
    project_name: str | None = None
    readme_generated: bool = False
    invocation_path: InvocationPath = InvocationPath.SUCCESS
    tool_names: tuple[str, ...] = field(default_factory=tuple)

    @property
    def truncated(self) -> bool:
        return self.stop_reason in {"length", "max_tokens", "max_output_tokens"}


def generate_readme(
    task_summary: str,
    paths: Sequence[str],
    *,
    mode: ProjectMode = ProjectMode.WEBSITE,
) -> str:
    """Fallback overview document listing ``paths``."""

    run_line, tech_line = _RUN_INSTRUCTIONS.get(mode, _WEB_RUN_INSTRUCTIONS)
    file_list = "\n".join(f"- `{path}`" for path in paths)
    return (
        f"# {task_summary}\n\n"
        f"## Overview\n{task_summary}\n\n"
        f"## Files\n{file_list}\n\n"
        f"## How to Run\n{run_line}\n\n"
        f"## Tech\n{tech_line}\n"
    )


class BuildStage:
    """Runs the builder (or text-response) model for one task."""

    def __init__(
        self,
        invocation: InvocationLayer,
        *,
        models: ModelRoutes,
        templates: PromptTemplateEngine | None = None,
        max_output_tokens: int = BUILDER_MAX_OUTPUT_TOKENS,
        logger: Any | None = None,
    ) -> None:
        if max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")
        self._invocation = invocation
        self._models = models
        self._max_output_tokens = max_output_tokens
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        task: Task,
        plan: ExecutionPlan,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BuildResult:
        if plan.mode is ProjectMode.TEXT:
            return await self._run_text(
                task, timeout_seconds=timeout_seconds, cancel_token=cancel_token
            )
        return await self._run_code(
            task, plan, timeout_seconds=timeout_seconds, cancel_token=cancel_token
        )

    async def _run_text(
        self,
        task: Task,
        *,
        timeout_seconds: float | None,
        cancel_token: CancellationToken | None,
    ) -> BuildResult:
        model = self._models.text_response
        request = InvocationRequest(
            prompt=task.raw_text,
            model=model,
            system_prompt=self._templates.text_response_system(),
            max_output_tokens=TEXT_RESPONSE_MAX_OUTPUT_TOKENS,
            temperature=TEXT_RESPONSE_TEMPERATURE,
        )
        outcome = await self._invocation.invoke(
            request, timeout_seconds=timeout_seconds, cancel_token=cancel_token
        )
        response = outcome.response
        self._logger.info(
            "builder_text_response",
            task_id=task.task_id,
            model=model,
            text_length=len(response.text),
        )
        return BuildResult(
            artifacts=ArtifactSet(),
            text=response.text,
            usage=response.usage,
            model=model,
            stop_reason=response.stop_reason,
            invocation_path=outcome.path,
        )

    async def _run_code(
        self,
        task: Task,
        plan: ExecutionPlan,
        *,
        timeout_seconds: float | None,
        cancel_token: CancellationToken | None,
    ) -> BuildResult:
        model = self._models.builder
        request = InvocationRequest(
            prompt=self._templates.builder_user(task, plan),
            model=model,
            system_prompt=self._templates.builder_system(),
            max_output_tokens=self._max_output_tokens,
            temperature=BUILDER_TEMPERATURE,
            tools_enabled=True,
            tool_choice=TOOL_CREATE_PROJECT,
            tools=BUILDER_TOOLS,
        )
        outcome = await self._invocation.invoke(
            request, timeout_seconds=timeout_seconds, cancel_token=cancel_token
        )
        response = outcome.response

        context = BuildContext(task_id=task.task_id)
        added = context.record_tool_calls(response.tool_calls)

        if not response.tool_calls:
            self._logger.warning(
                "builder_no_tool_calls",
                task_id=task.task_id,
                model=model,
                invocation_path=str(outcome.path),
            )
        if response.was_truncated:
            self._logger.warning(
                "builder_output_truncated",
                task_id=task.task_id,
                model=model,
                stop_reason=response.stop_reason,
                max_output_tokens=self._max_output_tokens,
            )
        if added == 0:
            self._logger.warning(
                "builder_no_files",
                task_id=task.task_id,
                stop_reason=response.stop_reason,
            )

        readme_generated = False
        if len(context) > 0 and not context.has_path_case_insensitive(README_FILE):
            context.add_file(
                README_FILE,
                generate_readme(plan.task_summary, context.paths, mode=plan.mode),
            )
            readme_generated = True

        self._logger.info(
            "builder_files_extracted",
            task_id=task.task_id,
            model=model,
            tool_calls=list(context.tool_names),
            file_count=len(context),
            duplicates_skipped=len(context.duplicates),
            invalid_paths_skipped=list(context.rejected),
            readme_generated=readme_generated,
            finalized=context.finalized,
        )
        return BuildResult(
            artifacts=context.snapshot(),
            text=response.text,
            usage=response.usage,
            model=model,
            stop_reason=response.stop_reason,
            project_name=context.project_name,
            readme_generated=readme_generated,
            invocation_path=outcome.path,
            tool_names=tuple(context.tool_names),
        )


__all__ = ["BuildResult", "BuildStage", "generate_readme"]
