"""
forge-orchestrator — prompt templates

File: src/forge_orchestrator/synthesis_plane/prompt_templates.py
Last updated: 2026-10-19

Purpose
- Load and render stage prompts from ``synthesis_plane/templates/`` with strict placeholders.

What should be included in this file
- Template rendering rules and the variable set each template expects.
- Prompt hashing so a rendered prompt can be correlated in logs.

Functional requirements
- Must render prompts deterministically for the same inputs.
- Partials (``_*.md.j2``) are shared through ``{% include %}``.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound, meta

from forge_orchestrator.domain.models import ArtifactSet, ExecutionPlan, Task

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_TEMPLATE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_TEMPLATE_SUFFIX = ".md.j2"

PLANNER_SYSTEM = "planner_system"
PLANNER_USER = "planner_user"
BUILDER_SYSTEM = "builder_system"
BUILDER_USER = "builder_user"
VERIFIER_SYSTEM = "verifier_system"
VERIFIER_USER = "verifier_user"
TEXT_RESPONSE_SYSTEM = "text_response_system"


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing or unexpected variables."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt text plus a content hash for log correlation."""

    name: str
    prompt: str
    prompt_hash: str


class PromptTemplateEngine:
    """Deterministic stage prompt loader and renderer."""

    def __init__(self, *, template_root: Path | str | None = None) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")

        self._template_root = resolved_root
        self._environment = Environment(
            loader=FileSystemLoader(str(resolved_root)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )

    @property
    def template_root(self) -> Path:
        return self._template_root

    def declared_variables(self, name: str) -> tuple[str, ...]:
        """Variables referenced by the top-level template (partials excluded)."""

        template_name = _template_file_name(name)
        source = self._read_source(template_name)
        return tuple(sorted(meta.find_undeclared_variables(self._environment.parse(source))))

    def render(self, name: str, variables: Mapping[str, object] | None = None) -> RenderedPrompt:
        template_name = _template_file_name(name)
        payload = dict(variables or {})

        declared = set(self.declared_variables(name))
        missing = sorted(declared - set(payload))
        if missing:
            raise PromptTemplateVariableError(
                f"missing required template variables for {name}: " + ", ".join(missing)
            )
        unexpected = sorted(set(payload) - declared)
        if unexpected:
            raise PromptTemplateVariableError(
                f"unexpected variables for {name}: " + ", ".join(unexpected)
            )

        template = self._environment.get_template(template_name)
        rendered = _normalize_newlines(template.render(**payload)).strip()
        return RenderedPrompt(
            name=name,
            prompt=rendered,
            prompt_hash=hashlib.sha256(rendered.encode("utf-8")).hexdigest(),
        )

    def _read_source(self, template_name: str) -> str:
        loader = self._environment.loader
        if loader is None:
            raise PromptTemplateError("template environment has no loader")
        try:
            source, _, _ = loader.get_source(self._environment, template_name)
        except TemplateNotFound as exc:
            raise PromptTemplateNotFoundError(
                f"template not found: {template_name!r} under {self._template_root}"
            ) from exc
        return _normalize_newlines(source)

    # Stage helpers

    def planner_system(self) -> str:
        return self.render(PLANNER_SYSTEM).prompt

    def planner_user(self, task: Task) -> str:
        return self.render(
            PLANNER_USER,
            {"budget": task.budget_hint, "job_prompt": task.raw_text.strip()},
        ).prompt

    def builder_system(self) -> str:
        return self.render(BUILDER_SYSTEM).prompt

    def builder_user(self, task: Task, plan: ExecutionPlan) -> str:
        return self.render(
            BUILDER_USER,
            {
                "job_prompt": task.raw_text.strip(),
                "mode": plan.mode.value,
                "task_summary": plan.task_summary,
                "complexity": plan.complexity.value,
                "tech_stack": plan.tech_stack.to_dict(),
                "design_notes": plan.design_notes,
                "files": [
                    {"path": item.path, "description": item.description}
                    for item in plan.file_manifest
                ],
            },
        ).prompt

    def verifier_system(self) -> str:
        return self.render(VERIFIER_SYSTEM).prompt

    def verifier_user(
        self,
        task: Task,
        artifacts: ArtifactSet,
        issues: Sequence[str],
    ) -> str:
        return self.render(
            VERIFIER_USER,
            {
                "job_prompt": task.raw_text.strip(),
                "issues": list(issues),
                "files": [
                    {"path": path, "content": content} for path, content in artifacts.items()
                ],
            },
        ).prompt

    def text_response_system(self) -> str:
        return self.render(TEXT_RESPONSE_SYSTEM).prompt


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _template_file_name(name: str) -> str:
    if not isinstance(name, str):
        raise TypeError("template name must be a string")
    cleaned = name.strip()
    if cleaned.endswith(_TEMPLATE_SUFFIX):
        cleaned = cleaned[: -len(_TEMPLATE_SUFFIX)]
    if not _TEMPLATE_NAME_RE.fullmatch(cleaned):
        raise ValueError(f"invalid template name: {name!r}")
    return f"{cleaned}{_TEMPLATE_SUFFIX}"


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "BUILDER_SYSTEM",
    "BUILDER_USER",
    "PLANNER_SYSTEM",
    "PLANNER_USER",
    "TEXT_RESPONSE_SYSTEM",
    "VERIFIER_SYSTEM",
    "VERIFIER_USER",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
]
