"""Frozen dataclass domain models shared by every orchestrator plane."""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class ProjectMode(StrEnum):
    WEBSITE = "website"
    WEB_APP = "web-app"
    REACT_APP = "react-app"
    PYTHON = "python"
    NODE = "node"
    TEXT = "text"

    @classmethod
    def parse(cls, value: object) -> ProjectMode:
        """Parse a mode string; the legacy ``code`` value maps to ``website``."""

        if isinstance(value, ProjectMode):
            return value
        if not isinstance(value, str):
            raise ValueError(f"invalid mode: {value!r}")
        normalized = value.strip().lower()
        if normalized == "code":
            return cls.WEBSITE
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"invalid mode: {value!r}") from exc

    @property
    def is_web(self) -> bool:
        return self in WEB_MODES

    @property
    def is_script(self) -> bool:
        return self in SCRIPT_MODES


WEB_MODES: frozenset[ProjectMode] = frozenset(
    {ProjectMode.WEBSITE, ProjectMode.WEB_APP, ProjectMode.REACT_APP}
)
SCRIPT_MODES: frozenset[ProjectMode] = frozenset({ProjectMode.PYTHON, ProjectMode.NODE})


class Styling(StrEnum):
    TAILWIND = "tailwind"
    VANILLA_CSS = "vanilla-css"
    BOTH = "both"


class Interactivity(StrEnum):
    NONE = "none"
    VANILLA_JS = "vanilla-js"
    ALPINE = "alpine"
    REACT = "react"
    VUE = "vue"


class DataStorage(StrEnum):
    NONE = "none"
    LOCALSTORAGE = "localstorage"
    JSON_FILE = "json-file"
    SQLITE = "sqlite"
    FILESYSTEM = "filesystem"


class Runtime(StrEnum):
    BROWSER = "browser"
    PYTHON = "python"
    NODE = "node"


class ComplexityTier(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PipelineStep(StrEnum):
    PLANNER = "planner"
    BUILDER = "builder"
    VERIFIER = "verifier"
    ZIP = "zip"


class PipelineOutcome(StrEnum):
    PACKAGED = "packaged"
    TEXT = "text"
    EMPTY_BUILD = "empty_build"
    PACKAGING_FAILED = "packaging_failed"
    INVOCATION_FAILED = "invocation_failed"


def _validate_non_empty_str(value: str, field_name: str, *, strip: bool = True) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip() if strip else value
    if not normalized.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


def normalize_artifact_path(path: str) -> str:
    """Return ``path`` with forward slashes and no leading ``./`` segments."""

    normalized = _validate_non_empty_str(path, "artifact path").replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if not normalized:
        raise ValueError("artifact path cannot be empty")
    return normalized


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of work: the natural-language request plus an optional budget hint."""

    raw_text: str
    budget_hint: float = 0.0
    task_id: str = field(default_factory=new_task_id)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "raw_text", _validate_non_empty_str(self.raw_text, "Task.raw_text", strip=False)
        )
        if isinstance(self.budget_hint, bool) or not isinstance(self.budget_hint, (int, float)):
            raise TypeError("Task.budget_hint must be a number")
        if self.budget_hint < 0:
            raise ValueError("Task.budget_hint must be >= 0")
        object.__setattr__(self, "budget_hint", float(self.budget_hint))
        object.__setattr__(self, "task_id", _validate_non_empty_str(self.task_id, "Task.task_id"))


@dataclass(frozen=True, slots=True)
class TechStack:
    styling: Styling = Styling.TAILWIND
    interactivity: Interactivity = Interactivity.VANILLA_JS
    data_storage: DataStorage = DataStorage.NONE
    runtime: Runtime = Runtime.BROWSER
    charts: bool = False
    icons: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "styling": self.styling.value,
            "interactivity": self.interactivity.value,
            "dataStorage": self.data_storage.value,
            "runtime": self.runtime.value,
            "charts": self.charts,
            "icons": self.icons,
        }


@dataclass(frozen=True, slots=True)
class PlanFile:
    path: str
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", normalize_artifact_path(self.path))
        if not isinstance(self.description, str):
            raise TypeError("PlanFile.description must be a string")


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Structured plan produced by the plan stage."""

    mode: ProjectMode
    task_summary: str
    tech_stack: TechStack = field(default_factory=TechStack)
    file_manifest: tuple[PlanFile, ...] = ()
    design_notes: str = ""
    complexity: ComplexityTier = ComplexityTier.MEDIUM

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", ProjectMode.parse(self.mode))
        object.__setattr__(
            self,
            "task_summary",
            _validate_non_empty_str(self.task_summary, "ExecutionPlan.task_summary"),
        )
        object.__setattr__(self, "file_manifest", tuple(self.file_manifest))
        object.__setattr__(self, "complexity", ComplexityTier(self.complexity))

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.file_manifest)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "mode": self.mode.value,
            "taskSummary": self.task_summary,
            "techStack": self.tech_stack.to_dict(),
            "files": [
                {"path": item.path, "description": item.description}
                for item in self.file_manifest
            ],
            "designNotes": self.design_notes,
            "complexityEstimate": self.complexity.value,
        }


class ArtifactSet(Mapping[str, str]):
    """Immutable, insertion-ordered mapping of normalized relative path to file text."""

    __slots__ = ("_files",)

    def __init__(self, files: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        items = files.items() if isinstance(files, Mapping) else files
        collected: dict[str, str] = {}
        for path, content in items:
            if not isinstance(content, str):
                raise TypeError(f"content for {path!r} must be a string")
            collected[normalize_artifact_path(path)] = content
        self._files = collected

    def __getitem__(self, path: str) -> str:
        return self._files[normalize_artifact_path(path)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str) or not path.strip():
            return False
        return normalize_artifact_path(path) in self._files

    def __repr__(self) -> str:
        return f"ArtifactSet({list(self._files)!r})"

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._files)

    @property
    def total_size(self) -> int:
        return sum(len(content.encode("utf-8")) for content in self._files.values())

    def with_files(self, files: Mapping[str, str] | Iterable[tuple[str, str]]) -> ArtifactSet:
        """Return a new set with ``files`` written over this one; the last write wins."""

        items = files.items() if isinstance(files, Mapping) else files
        merged = dict(self._files)
        for path, content in items:
            if not isinstance(content, str):
                raise TypeError(f"content for {path!r} must be a string")
            merged[normalize_artifact_path(path)] = content
        return ArtifactSet(merged)

    def find_case_insensitive(self, path: str) -> str | None:
        wanted = normalize_artifact_path(path).lower()
        for candidate in self._files:
            if candidate.lower() == wanted:
                return candidate
        return None


@dataclass(frozen=True, slots=True)
class ValidationReport:
    issues: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "issues", tuple(self.issues))

    @property
    def passed(self) -> bool:
        return not self.issues


@dataclass(frozen=True, slots=True)
class PatchEntry:
    path: str
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", normalize_artifact_path(self.path))
        if not isinstance(self.content, str):
            raise TypeError("PatchEntry.content must be a string")


@dataclass(frozen=True, slots=True)
class RepairPatch:
    """Files returned by a repair pass; applying it overwrites or inserts each entry."""

    entries: tuple[PatchEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(entry.path for entry in self.entries)

    def apply(self, base: ArtifactSet) -> ArtifactSet:
        return base.with_files((entry.path, entry.content) for entry in self.entries)


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Tool contract exposed to providers that support function/tool calling."""

    name: str
    description: str
    json_schema: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _validate_non_empty_str(self.name, "ToolDefinition.name"))
        object.__setattr__(self, "json_schema", dict(self.json_schema))


@dataclass(frozen=True, slots=True)
class InvocationRequest:
    """Provider-agnostic request for a single model call."""

    prompt: str
    model: str
    system_prompt: str = ""
    max_output_tokens: int | None = None
    temperature: float | None = None
    tools_enabled: bool = False
    tool_choice: str | None = None
    tools: tuple[ToolDefinition, ...] = ()

    def __post_init__(self) -> None:
        prompt = _validate_non_empty_str(self.prompt, "InvocationRequest.prompt", strip=False)
        object.__setattr__(self, "prompt", prompt)
        model = _validate_non_empty_str(self.model, "InvocationRequest.model")
        object.__setattr__(self, "model", model)
        if not isinstance(self.system_prompt, str):
            raise TypeError("InvocationRequest.system_prompt must be a string")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError("InvocationRequest.max_output_tokens must be > 0")
        if self.temperature is not None and not (0.0 <= self.temperature <= 2.0):
            raise ValueError("InvocationRequest.temperature must be between 0.0 and 2.0")
        object.__setattr__(self, "tools", tuple(self.tools))
        if self.tools_enabled and not self.tools:
            raise ValueError("InvocationRequest.tools_enabled requires at least one tool")

    def without_tools(self, note: str = "") -> InvocationRequest:
        return InvocationRequest(
            prompt=self.prompt + note,
            model=self.model,
            system_prompt=self.system_prompt,
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
        )


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        if self.prompt_tokens < 0:
            raise ValueError("prompt_tokens must be >= 0")
        if self.completion_tokens < 0:
            raise ValueError("completion_tokens must be >= 0")
        if self.total_tokens < 0:
            raise ValueError("total_tokens must be >= 0")

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class NormalizedToolCall:
    name: str
    args: Mapping[str, JSONValue] = field(default_factory=dict)
    result: object = None
    call_id: str | None = None

    def __post_init__(self) -> None:
        name = _validate_non_empty_str(self.name, "NormalizedToolCall.name")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "args", dict(self.args))


_TRUNCATION_STOP_REASONS = frozenset({"length", "max_tokens", "max_output_tokens"})


@dataclass(frozen=True, slots=True)
class NormalizedResponse:
    """Uniform view of one model call: text, tool invocations, usage and stop reason."""

    text: str = ""
    tool_calls: tuple[NormalizedToolCall, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)
    stop_reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def was_truncated(self) -> bool:
        return self.stop_reason in _TRUNCATION_STOP_REASONS


@dataclass(frozen=True, slots=True)
class StepTiming:
    step: PipelineStep
    duration_ms: int


@dataclass(frozen=True, slots=True)
class StepEvent:
    """Payload handed to ``on_step_complete`` after each pipeline stage."""

    duration_ms: int
    file_count: int | None = None
    issues_count: int | None = None


@dataclass(frozen=True, slots=True)
class PackageResult:
    success: bool
    archive_path: str | None = None
    files: tuple[str, ...] = ()
    total_size: int = 0
    project_dir: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", tuple(self.files))


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Terminal result of one pipeline run; which path ran is recorded in ``outcome``."""

    mode: ProjectMode
    text_response: str
    timings: tuple[StepTiming, ...]
    total_usage: TokenUsage
    outcome: PipelineOutcome
    artifacts: ArtifactSet | None = None
    issues_addressed: tuple[str, ...] | None = None
    package: PackageResult | None = None
    task_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timings", tuple(self.timings))
        if self.issues_addressed is not None:
            object.__setattr__(self, "issues_addressed", tuple(self.issues_addressed))

    @property
    def total_duration_ms(self) -> int:
        return sum(item.duration_ms for item in self.timings)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "task_id": self.task_id,
            "mode": self.mode.value,
            "outcome": self.outcome.value,
            "text_response": self.text_response,
            "timings": [
                {"step": item.step.value, "duration_ms": item.duration_ms} for item in self.timings
            ],
            "total_usage": self.total_usage.to_dict(),
        }
        if self.artifacts is not None:
            payload["files"] = list(self.artifacts.paths)
        if self.issues_addressed is not None:
            payload["issues_addressed"] = list(self.issues_addressed)
        if self.package is not None:
            payload["package"] = {
                "success": self.package.success,
                "archive_path": self.package.archive_path,
                "project_dir": self.package.project_dir,
                "total_size": self.package.total_size,
                "error": self.package.error,
            }
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=2, ensure_ascii=False)


__all__ = [
    "SCRIPT_MODES",
    "WEB_MODES",
    "ArtifactSet",
    "ComplexityTier",
    "DataStorage",
    "ExecutionPlan",
    "Interactivity",
    "InvocationRequest",
    "JSONValue",
    "NormalizedResponse",
    "NormalizedToolCall",
    "PackageResult",
    "PatchEntry",
    "PipelineOutcome",
    "PipelineResult",
    "PipelineStep",
    "PlanFile",
    "ProjectMode",
    "RepairPatch",
    "Runtime",
    "StepEvent",
    "StepTiming",
    "Styling",
    "Task",
    "TechStack",
    "TokenUsage",
    "ToolDefinition",
    "ValidationReport",
    "new_task_id",
    "normalize_artifact_path",
]
