"""
forge-orchestrator — plan stage

File: src/forge_orchestrator/planning/planner.py
Last updated: 2026-10-19

Purpose
- Ask the planner model for a structured execution plan and normalize it.

What should be included in this file
- Plan parsing (fence stripping, lenient field decoding).
- Plan normalization (baseline files per mode, field defaults).
- The deterministic fallback plan.

Functional requirements
- Malformed JSON or an unknown mode yields the fallback plan; the planner is not retried.
- Provider errors propagate to the orchestrator.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

import structlog

from forge_orchestrator.constants import (
    ENTRY_FILE,
    PLANNER_MAX_OUTPUT_TOKENS,
    PLANNER_TEMPERATURE,
    README_FILE,
)
from forge_orchestrator.domain.models import (
    ComplexityTier,
    DataStorage,
    ExecutionPlan,
    Interactivity,
    InvocationRequest,
    PlanFile,
    ProjectMode,
    Runtime,
    Styling,
    Task,
    TechStack,
    TokenUsage,
)
from forge_orchestrator.synthesis_plane.invocation import InvocationLayer
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from forge_orchestrator.utils.concurrency import CancellationToken

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```$")

DEFAULT_TASK_SUMMARY = "Build a web project"
FALLBACK_SUMMARY_LENGTH = 120
STYLESHEET_FILE = "styles/main.css"

_E = TypeVar("_E", bound=StrEnum)


class PlanParseError(ValueError):
    """Planner output could not be turned into an execution plan."""


@dataclass(frozen=True, slots=True)
class PlanStageResult:
    plan: ExecutionPlan
    usage: TokenUsage
    used_fallback: bool
    model: str
    parse_error: str | None = None


def fallback_plan(task: Task) -> ExecutionPlan:
    """Generic browser project used when the planner output is unusable."""

    summary = task.raw_text.strip()[:FALLBACK_SUMMARY_LENGTH].strip() or DEFAULT_TASK_SUMMARY
    return ExecutionPlan(
        mode=ProjectMode.WEBSITE,
        task_summary=summary,
        tech_stack=TechStack(
            styling=Styling.TAILWIND,
            interactivity=Interactivity.VANILLA_JS,
            data_storage=DataStorage.NONE,
            runtime=Runtime.BROWSER,
            charts=False,
            icons=True,
        ),
        file_manifest=(
            PlanFile(ENTRY_FILE, "Main HTML entry point"),
            PlanFile(STYLESHEET_FILE, "Custom CSS and design tokens"),
            PlanFile("scripts/app.js", "Application logic"),
            PlanFile(README_FILE, "Project overview and usage instructions"),
        ),
        design_notes="Use modern, clean design with a blue primary accent.",
        complexity=ComplexityTier.MEDIUM,
    )


def strip_code_fences(text: str) -> str:
    cleaned = _LEADING_FENCE_RE.sub("", text.strip())
    return _TRAILING_FENCE_RE.sub("", cleaned).strip()


def parse_plan(raw: str) -> ExecutionPlan:
    """Parse planner output into a normalized plan; raises ``PlanParseError``."""

    cleaned = strip_code_fences(raw)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"planner output is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, Mapping):
        raise PlanParseError("planner output must be a JSON object")

    try:
        mode = ProjectMode.parse(payload.get("mode"))
    except ValueError as exc:
        raise PlanParseError(str(exc)) from exc

    summary = payload.get("taskSummary")
    task_summary = summary.strip() if isinstance(summary, str) and summary.strip() else ""
    design_notes = payload.get("designNotes")
    complexity = payload.get("complexityEstimate", payload.get("complexity"))

    plan = ExecutionPlan(
        mode=mode,
        task_summary=task_summary or DEFAULT_TASK_SUMMARY,
        tech_stack=_parse_tech_stack(payload.get("techStack"), mode),
        file_manifest=_parse_files(payload.get("files")),
        design_notes=design_notes if isinstance(design_notes, str) else "",
        complexity=_parse_enum(ComplexityTier, complexity, ComplexityTier.MEDIUM),
    )
    return normalize_plan(plan)


def normalize_plan(plan: ExecutionPlan) -> ExecutionPlan:
    """Guarantee the baseline manifest entries for the plan's mode."""

    files = list(plan.file_manifest)
    paths = {item.path for item in files}
    if plan.mode.is_web:
        if ENTRY_FILE not in paths:
            files.insert(0, PlanFile(ENTRY_FILE, "Main HTML entry point"))
        if STYLESHEET_FILE not in paths:
            files.append(PlanFile(STYLESHEET_FILE, "Stylesheet"))
        if README_FILE not in paths:
            files.append(PlanFile(README_FILE, "Project overview"))
    elif plan.mode.is_script:
        if README_FILE not in paths:
            files.append(PlanFile(README_FILE, "Project overview"))
    if len(files) == len(plan.file_manifest):
        return plan
    return ExecutionPlan(
        mode=plan.mode,
        task_summary=plan.task_summary,
        tech_stack=plan.tech_stack,
        file_manifest=tuple(files),
        design_notes=plan.design_notes,
        complexity=plan.complexity,
    )


def _parse_tech_stack(value: object, mode: ProjectMode) -> TechStack:
    default_runtime = {
        ProjectMode.PYTHON: Runtime.PYTHON,
        ProjectMode.NODE: Runtime.NODE,
    }.get(mode, Runtime.BROWSER)
    if not isinstance(value, Mapping):
        return TechStack(runtime=default_runtime)
    return TechStack(
        styling=_parse_enum(Styling, value.get("styling"), Styling.TAILWIND),
        interactivity=_parse_enum(
            Interactivity, value.get("interactivity"), Interactivity.VANILLA_JS
        ),
        data_storage=_parse_enum(
            DataStorage, value.get("dataStorage", value.get("data_storage")), DataStorage.NONE
        ),
        runtime=_parse_enum(Runtime, value.get("runtime"), default_runtime),
        charts=value.get("charts") is True,
        icons=value.get("icons") is True,
    )


def _parse_files(value: object) -> tuple[PlanFile, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return ()
    files: list[PlanFile] = []
    seen: set[str] = set()
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        path = entry.get("path")
        if not isinstance(path, str) or not path.strip():
            continue
        description = entry.get("description")
        try:
            item = PlanFile(path, description if isinstance(description, str) else "")
        except ValueError:
            continue
        if item.path in seen:
            continue
        seen.add(item.path)
        files.append(item)
    return tuple(files)


def _parse_enum(enum_type: type[_E], value: object, default: _E) -> _E:
    if not isinstance(value, str):
        return default
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        return default


class PlanStage:
    """Runs the planner model once and falls back locally on unparseable output."""

    def __init__(
        self,
        invocation: InvocationLayer,
        *,
        models: ModelRoutes,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> None:
        self._invocation = invocation
        self._models = models
        self._templates = templates if templates is not None else PromptTemplateEngine()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        task: Task,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PlanStageResult:
        model = self._models.planner
        request = InvocationRequest(
            prompt=self._templates.planner_user(task),
            model=model,
            system_prompt=self._templates.planner_system(),
            max_output_tokens=PLANNER_MAX_OUTPUT_TOKENS,
            temperature=PLANNER_TEMPERATURE,
        )
        outcome = await self._invocation.invoke(
            request, timeout_seconds=timeout_seconds, cancel_token=cancel_token
        )
        usage = outcome.response.usage

        try:
            plan = parse_plan(outcome.response.text)
        except PlanParseError as exc:
            self._logger.warning(
                "planner_fallback_plan",
                task_id=task.task_id,
                model=model,
                reason=str(exc),
            )
            return PlanStageResult(
                plan=fallback_plan(task),
                usage=usage,
                used_fallback=True,
                model=model,
                parse_error=str(exc),
            )

        self._logger.info(
            "planner_plan_parsed",
            task_id=task.task_id,
            model=model,
            mode=plan.mode.value,
            file_count=len(plan.file_manifest),
            complexity=plan.complexity.value,
        )
        return PlanStageResult(plan=plan, usage=usage, used_fallback=False, model=model)


__all__ = [
    "DEFAULT_TASK_SUMMARY",
    "PlanParseError",
    "PlanStage",
    "PlanStageResult",
    "fallback_plan",
    "normalize_plan",
    "parse_plan",
    "strip_code_fences",
]
