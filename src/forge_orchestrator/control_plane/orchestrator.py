"""
forge-orchestrator — pipeline orchestrator

File: src/forge_orchestrator/control_plane/orchestrator.py
Last updated: 2026-10-19

Purpose
- Sequence plan, build, validate, optional repair and packaging for one task and pick the
  terminal path.

What should be included in this file
- ``PipelineOrchestrator.run``: the stage state machine and its escape transitions.
- ``slugify`` and ``build_submission_message`` used for the packaged path.

Functional requirements
- Repair runs at most once and its output is not re-validated.
- Empty builds, packaging failures and provider errors become terminal text results;
  ``run`` returns them instead of raising.
- Every completed stage appends a ``StepTiming`` and fires ``on_step_complete``.
- Token usage is summed across every stage that called a model.

Non-functional requirements
- Per-task state lives in ``_RunState``; nothing is shared between concurrent runs.
"""

from __future__ import annotations

import inspect
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from forge_orchestrator.constants import (
    DEFAULT_PROJECT_NAME,
    EMPTY_BUILD_TEXT,
    INVOCATION_FAILED_TEMPLATE,
    PACKAGING_FAILED_TEXT,
    SLUG_MAX_LENGTH,
)
from forge_orchestrator.domain.models import (
    ArtifactSet,
    PackageResult,
    PipelineOutcome,
    PipelineResult,
    PipelineStep,
    ProjectMode,
    StepEvent,
    StepTiming,
    Task,
    TokenUsage,
)
from forge_orchestrator.integration_plane.packaging import Packager
from forge_orchestrator.observability.logging import correlation_scope
from forge_orchestrator.planning.planner import PlanStage
from forge_orchestrator.synthesis_plane.builder import BuildStage
from forge_orchestrator.synthesis_plane.providers.base import ProviderError
from forge_orchestrator.utils.concurrency import CancellationToken
from forge_orchestrator.verification_plane.repair import RepairLoop
from forge_orchestrator.verification_plane.validator import validate_artifacts

StepCallback = Callable[[PipelineStep, StepEvent], Awaitable[None] | None]

_SLUG_DROP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_DASHES_RE = re.compile(r"-+")

_GET_STARTED: dict[ProjectMode, str] = {
    ProjectMode.PYTHON: (
        "**To get started:** Extract the zip and run `python main.py`. "
        "See README.md for any setup steps."
    ),
    ProjectMode.NODE: (
        "**To get started:** Extract the zip and run `node index.js`. "
        "See README.md for any setup steps."
    ),
}
_WEB_GET_STARTED = (
    "**To get started:** Extract the zip and open `index.html` in any modern browser. "
    "No installation or build step required."
)


def slugify(text: str) -> str:
    slug = _SLUG_DROP_RE.sub("", text.lower())
    slug = _SLUG_SPACE_RE.sub("-", slug)
    slug = _SLUG_DASHES_RE.sub("-", slug)
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def build_submission_message(
    task_summary: str,
    files: Sequence[str],
    issues_addressed: Sequence[str] = (),
    *,
    mode: ProjectMode = ProjectMode.WEBSITE,
) -> str:
    """Markdown summary returned alongside a packaged project."""

    lines = [
        f"## {task_summary}",
        "",
        "I've built your project and packaged it as a zip file. Here's what's included:",
        "",
    ]
    lines.extend(f"- `{path}`" for path in files)
    lines.extend(["", _GET_STARTED.get(mode, _WEB_GET_STARTED)])
    if issues_addressed:
        lines.extend(
            [
                "",
                "**Quality checks:** The project was reviewed and the following issues were "
                "automatically corrected:",
            ]
        )
        lines.extend(f"- {issue}" for issue in issues_addressed)
    return "\n".join(lines)


@dataclass(slots=True)
class _RunState:
    task: Task
    timings: list[StepTiming] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


class PipelineOrchestrator:
    """Runs one task through plan, build, verify and packaging."""

    def __init__(
        self,
        plan_stage: PlanStage,
        build_stage: BuildStage,
        repair_loop: RepairLoop,
        packager: Packager,
        *,
        invocation_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.perf_counter,
        logger: Any | None = None,
    ) -> None:
        if invocation_timeout_seconds is not None and invocation_timeout_seconds <= 0:
            raise ValueError("invocation_timeout_seconds must be > 0")
        self._plan_stage = plan_stage
        self._build_stage = build_stage
        self._repair_loop = repair_loop
        self._packager = packager
        self._timeout = invocation_timeout_seconds
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        task: Task,
        *,
        on_step_complete: StepCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PipelineResult:
        state = _RunState(task=task)
        with correlation_scope(task_id=task.task_id):
            try:
                result = await self._run_stages(state, on_step_complete, cancel_token)
            except ProviderError as exc:
                self._logger.error(
                    "pipeline_invocation_failed",
                    task_id=task.task_id,
                    provider=exc.provider,
                    error_code=exc.code,
                    error=str(exc),
                )
                result = self._result(
                    state,
                    mode=ProjectMode.TEXT,
                    text=INVOCATION_FAILED_TEMPLATE.format(code=exc.code),
                    outcome=PipelineOutcome.INVOCATION_FAILED,
                )
            self._log_timing_summary(result)
        return result

    async def _run_stages(
        self,
        state: _RunState,
        on_step_complete: StepCallback | None,
        cancel_token: CancellationToken | None,
    ) -> PipelineResult:
        task = state.task

        started = self._clock()
        planned = await self._plan_stage.run(
            task, timeout_seconds=self._timeout, cancel_token=cancel_token
        )
        state.usage = state.usage + planned.usage
        plan = planned.plan
        await self._complete_step(
            state, PipelineStep.PLANNER, started, on_step_complete, file_count=len(plan.paths)
        )

        started = self._clock()
        built = await self._build_stage.run(
            task, plan, timeout_seconds=self._timeout, cancel_token=cancel_token
        )
        state.usage = state.usage + built.usage
        await self._complete_step(
            state,
            PipelineStep.BUILDER,
            started,
            on_step_complete,
            file_count=len(built.artifacts),
        )

        if plan.mode is ProjectMode.TEXT:
            return self._result(
                state, mode=ProjectMode.TEXT, text=built.text, outcome=PipelineOutcome.TEXT
            )

        if not built.artifacts:
            self._logger.warning(
                "pipeline_empty_build",
                task_id=task.task_id,
                builder_text_length=len(built.text),
            )
            text = built.text if built.text.strip() else EMPTY_BUILD_TEXT
            return self._result(
                state, mode=ProjectMode.TEXT, text=text, outcome=PipelineOutcome.EMPTY_BUILD
            )

        started = self._clock()
        report = validate_artifacts(built.artifacts, mode=plan.mode)
        artifacts: ArtifactSet = built.artifacts
        issues_addressed: tuple[str, ...] = ()
        if not report.passed:
            self._logger.info(
                "pipeline_validation_issues",
                task_id=task.task_id,
                issues_count=len(report.issues),
            )
            repaired = await self._repair_loop.run(
                task,
                artifacts,
                report,
                timeout_seconds=self._timeout,
                cancel_token=cancel_token,
            )
            state.usage = state.usage + repaired.usage
            artifacts = repaired.artifacts
            issues_addressed = repaired.issues_addressed
        await self._complete_step(
            state,
            PipelineStep.VERIFIER,
            started,
            on_step_complete,
            file_count=len(artifacts),
            issues_count=len(report.issues),
        )

        project_name = slugify(plan.task_summary) or DEFAULT_PROJECT_NAME
        started = self._clock()
        package = await self._package(project_name, artifacts)
        await self._complete_step(
            state, PipelineStep.ZIP, started, on_step_complete, file_count=len(package.files)
        )

        if not package.success:
            return self._result(
                state,
                mode=ProjectMode.TEXT,
                text=PACKAGING_FAILED_TEXT,
                outcome=PipelineOutcome.PACKAGING_FAILED,
                artifacts=artifacts,
                issues_addressed=issues_addressed,
                package=package,
            )

        return self._result(
            state,
            mode=plan.mode,
            text=build_submission_message(
                plan.task_summary, artifacts.paths, issues_addressed, mode=plan.mode
            ),
            outcome=PipelineOutcome.PACKAGED,
            artifacts=artifacts,
            issues_addressed=issues_addressed,
            package=package,
        )

    async def _package(self, name: str, artifacts: ArtifactSet) -> PackageResult:
        try:
            return await self._packager.package(name, artifacts)
        except Exception as exc:
            # Packager exceptions never escape the pipeline.
            self._logger.error("pipeline_packaging_raised", project=name, error=repr(exc))
            return PackageResult(success=False, error=str(exc) or type(exc).__name__)

    async def _complete_step(
        self,
        state: _RunState,
        step: PipelineStep,
        started: float,
        on_step_complete: StepCallback | None,
        *,
        file_count: int | None = None,
        issues_count: int | None = None,
    ) -> None:
        duration_ms = max(0, int(round((self._clock() - started) * 1000)))
        state.timings.append(StepTiming(step=step, duration_ms=duration_ms))
        self._logger.info(
            "pipeline_step_complete",
            task_id=state.task.task_id,
            step=step.value,
            duration_ms=duration_ms,
            file_count=file_count,
            issues_count=issues_count,
        )
        if on_step_complete is None:
            return
        event = StepEvent(
            duration_ms=duration_ms, file_count=file_count, issues_count=issues_count
        )
        try:
            maybe_awaitable = on_step_complete(step, event)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception as exc:
            self._logger.warning(
                "pipeline_step_callback_failed", step=step.value, error=repr(exc)
            )

    def _result(
        self,
        state: _RunState,
        *,
        mode: ProjectMode,
        text: str,
        outcome: PipelineOutcome,
        artifacts: ArtifactSet | None = None,
        issues_addressed: tuple[str, ...] | None = None,
        package: PackageResult | None = None,
    ) -> PipelineResult:
        return PipelineResult(
            mode=mode,
            text_response=text,
            timings=tuple(state.timings),
            total_usage=state.usage,
            outcome=outcome,
            artifacts=artifacts,
            issues_addressed=issues_addressed,
            package=package,
            task_id=state.task.task_id,
        )

    def _log_timing_summary(self, result: PipelineResult) -> None:
        self._logger.info(
            "pipeline_timing_summary",
            task_id=result.task_id,
            outcome=result.outcome.value,
            total_ms=result.total_duration_ms,
            steps={item.step.value: item.duration_ms for item in result.timings},
            total_tokens=result.total_usage.total_tokens,
        )


__all__ = [
    "PipelineOrchestrator",
    "StepCallback",
    "build_submission_message",
    "slugify",
]
