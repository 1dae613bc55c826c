"""
forge-orchestrator — per-task build context

File: src/forge_orchestrator/synthesis_plane/build_context.py
Last updated: 2026-10-19

Purpose
- Collect the files one build call produces, scoped to a single task.

Functional requirements
- The first occurrence of a path wins within a build.
- Paths that normalize to nothing (``./``, ``././``) are rejected and recorded, never raised.
- A context is created per build call and never shared between tasks.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from forge_orchestrator.constants import TOOL_FINALIZE_PROJECT
from forge_orchestrator.domain.models import (
    ArtifactSet,
    NormalizedToolCall,
    normalize_artifact_path,
)
from forge_orchestrator.synthesis_plane.tools import (
    files_from_tool_call,
    project_name_from_tool_call,
)


@dataclass(slots=True)
class BuildContext:
    """Mutable accumulator for one build; ``snapshot`` freezes it into an ``ArtifactSet``."""

    task_id: str
    _files: dict[str, str] = field(default_factory=dict)
    _duplicates: list[str] = field(default_factory=list)
    _rejected: list[str] = field(default_factory=list)
    project_name: str | None = None
    finalized: bool = False
    tool_names: list[str] = field(default_factory=list)

    def add_file(self, path: str, content: str) -> bool:
        """Record ``path`` unless it was already produced; return whether it was added."""

        try:
            normalized = normalize_artifact_path(path)
        except ValueError:
            self._rejected.append(path)
            return False
        if normalized in self._files:
            self._duplicates.append(normalized)
            return False
        self._files[normalized] = content
        return True

    def record_tool_calls(self, calls: Iterable[NormalizedToolCall]) -> int:
        added = 0
        for call in calls:
            self.tool_names.append(call.name)
            name = project_name_from_tool_call(call)
            if name is not None and self.project_name is None:
                self.project_name = name
            if call.name == TOOL_FINALIZE_PROJECT:
                self.finalized = True
                continue
            for extracted in files_from_tool_call(call):
                if self.add_file(extracted.path, extracted.content):
                    added += 1
        return added

    def has_path_case_insensitive(self, path: str) -> bool:
        wanted = normalize_artifact_path(path).lower()
        return any(candidate.lower() == wanted for candidate in self._files)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._files)

    @property
    def duplicates(self) -> tuple[str, ...]:
        return tuple(self._duplicates)

    @property
    def rejected(self) -> tuple[str, ...]:
        return tuple(self._rejected)

    def __len__(self) -> int:
        return len(self._files)

    def snapshot(self) -> ArtifactSet:
        return ArtifactSet(self._files)


__all__ = ["BuildContext"]
