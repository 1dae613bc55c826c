"""
forge-orchestrator — repair loop

File: src/forge_orchestrator/verification_plane/repair.py
Last updated: 2026-10-19

Purpose
- Send validator issues plus the full artifact set to the verifier model once and merge
  the returned patch.

Functional requirements
- Runs only when the validation report has issues.
- A parse failure or provider error keeps the pre-repair set and the original issues.
- A patch applies only when status is ``fixed`` and at least one file came back.
- The merged set is not re-validated.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from forge_orchestrator.constants import VERIFIER_MAX_OUTPUT_TOKENS, VERIFIER_TEMPERATURE
from forge_orchestrator.domain.models import (
    ArtifactSet,
    InvocationRequest,
    PatchEntry,
    RepairPatch,
    Task,
    TokenUsage,
    ValidationReport,
)
from forge_orchestrator.planning.planner import strip_code_fences
from forge_orchestrator.synthesis_plane.invocation import InvocationLayer
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine
from forge_orchestrator.synthesis_plane.providers.base import ProviderError
from forge_orchestrator.utils.concurrency import CancellationToken

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

STATUS_OK = "ok"
STATUS_FIXED = "fixed"


class RepairParseError(ValueError):
    """Verifier output could not be decoded into a repair response."""


@dataclass(frozen=True, slots=True)
class RepairResponse:
    status: str
    issues_found: tuple[str, ...]
    patch: RepairPatch


@dataclass(frozen=True, slots=True)
class RepairResult:
    artifacts: ArtifactSet
    issues_addressed: tuple[str, ...]
    usage: TokenUsage = field(default_factory=TokenUsage)
    llm_ran: bool = False
    applied_paths: tuple[str, ...] = ()


def parse_repair_response(raw: str) -> RepairResponse:
    payload = _decode_object(raw)
    status = STATUS_FIXED if payload.get("status") == STATUS_FIXED else STATUS_OK

    issues = payload.get("issuesFound")
    issues_found = (
        tuple(item.strip() for item in issues if isinstance(item, str) and item.strip())
        if _is_list(issues)
        else ()
    )

    entries: list[PatchEntry] = []
    fixed_files = payload.get("fixedFiles")
    if _is_list(fixed_files):
        for item in fixed_files:
            if not isinstance(item, Mapping):
                continue
            path = item.get("path")
            content = item.get("content")
            if not isinstance(path, str) or not path.strip() or not isinstance(content, str):
                continue
            try:
                entries.append(PatchEntry(path=path, content=content))
            except ValueError:
                continue
    return RepairResponse(
        status=status,
        issues_found=issues_found,
        patch=RepairPatch(entries=tuple(entries)),
    )


def _decode_object(raw: str) -> Mapping[str, object]:
    """Decode a JSON object from model text, recovering it from surrounding noise if needed."""

    candidates = [strip_code_fences(raw)]
    fenced = _FENCED_JSON_RE.search(raw)
    if fenced is not None:
        candidates.append(fenced.group(1))
    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        candidates.append(raw[start : end + 1])

    last_error = "no JSON object found"
    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc.msg
            continue
        if isinstance(payload, Mapping):
            return payload
        last_error = "repair output must be a JSON object"
    raise RepairParseError(f"could not parse repair output: {last_error}")


def _is_list(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


class RepairLoop:
    """Single-pass model repair over a failed validation report."""

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
        artifacts: ArtifactSet,
        report: ValidationReport,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RepairResult:
        if report.passed:
            return RepairResult(artifacts=artifacts, issues_addressed=())

        original_issues = tuple(report.issues)
        model = self._models.verifier
        request = InvocationRequest(
            prompt=self._templates.verifier_user(task, artifacts, original_issues),
            model=model,
            system_prompt=self._templates.verifier_system(),
            max_output_tokens=VERIFIER_MAX_OUTPUT_TOKENS,
            temperature=VERIFIER_TEMPERATURE,
        )

        try:
            outcome = await self._invocation.invoke(
                request, timeout_seconds=timeout_seconds, cancel_token=cancel_token
            )
        except ProviderError as exc:
            self._logger.warning(
                "repair_invocation_failed",
                task_id=task.task_id,
                model=model,
                error_code=exc.code,
                error=str(exc),
            )
            return RepairResult(
                artifacts=artifacts,
                issues_addressed=original_issues,
                llm_ran=True,
            )

        usage = outcome.response.usage
        try:
            response = parse_repair_response(outcome.response.text)
        except RepairParseError as exc:
            self._logger.warning(
                "repair_parse_failed",
                task_id=task.task_id,
                model=model,
                reason=str(exc),
            )
            return RepairResult(
                artifacts=artifacts,
                issues_addressed=original_issues,
                usage=usage,
                llm_ran=True,
            )

        if response.status != STATUS_FIXED or not response.patch.entries:
            self._logger.info(
                "repair_no_changes",
                task_id=task.task_id,
                status=response.status,
                issues_reported=len(response.issues_found),
            )
            return RepairResult(
                artifacts=artifacts,
                issues_addressed=original_issues,
                usage=usage,
                llm_ran=True,
            )

        merged = response.patch.apply(artifacts)
        applied = response.patch.paths
        self._logger.info(
            "repair_patch_applied",
            task_id=task.task_id,
            patched=[path for path in applied if path in artifacts],
            added=[path for path in applied if path not in artifacts],
            issues_reported=len(response.issues_found),
        )
        return RepairResult(
            artifacts=merged,
            issues_addressed=original_issues + response.issues_found,
            usage=usage,
            llm_ran=True,
            applied_paths=applied,
        )


__all__ = [
    "RepairLoop",
    "RepairParseError",
    "RepairResponse",
    "RepairResult",
    "parse_repair_response",
]
