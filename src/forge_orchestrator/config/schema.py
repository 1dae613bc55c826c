"""
forge-orchestrator — configuration schema and validation.

File: src/forge_orchestrator/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- TypedDict descriptions of every section and the built-in defaults.
- Validation rules for types, enums and numeric constraints with structured issues.
- Profile overlay application and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject embedded secret values; keys are referenced by env var name only.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "private", "credential", "auth"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

PROVIDER_NAMES: Final[tuple[str, ...]] = ("anthropic", "openai")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("pipeline", "output_dir"),
    ("observability", "log_dir"),
)


class ProviderSettings(TypedDict):
    api_key_env: str
    model: str
    base_url: NotRequired[str]
    timeout_seconds: NotRequired[float]


class ProvidersConfig(TypedDict):
    default: Literal["anthropic", "openai"]
    openai: ProviderSettings
    anthropic: ProviderSettings


class ModelsConfig(TypedDict):
    planner: str
    builder: str
    verifier: str
    text_response: str


class GenerationConfig(TypedDict):
    builder_max_tokens: int


class RetryConfig(TypedDict):
    max_attempts: int
    base_delay_ms: int
    max_delay_ms: int
    fallback_no_tools: bool


class PipelineConfig(TypedDict):
    invocation_timeout_seconds: float
    output_dir: str


class CapacityConfig(TypedDict):
    max_concurrent_jobs: int
    admission_poll_ms: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    providers: dict[str, Any]
    models: dict[str, Any]
    generation: dict[str, Any]
    retry: dict[str, Any]
    pipeline: dict[str, Any]
    capacity: dict[str, Any]
    observability: dict[str, Any]


class ForgeConfig(TypedDict):
    providers: ProvidersConfig
    models: ModelsConfig
    generation: GenerationConfig
    retry: RetryConfig
    pipeline: PipelineConfig
    capacity: CapacityConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ForgeConfig] = {
    "providers": {
        "default": "anthropic",
        "openai": {"api_key_env": "OPENAI_API_KEY", "model": "gpt-4o"},
        "anthropic": {"api_key_env": "ANTHROPIC_API_KEY", "model": "claude-sonnet-4-20250514"},
    },
    "models": {"planner": "", "builder": "", "verifier": "", "text_response": ""},
    "generation": {"builder_max_tokens": 64_000},
    "retry": {
        "max_attempts": 3,
        "base_delay_ms": 1000,
        "max_delay_ms": 10_000,
        "fallback_no_tools": True,
    },
    "pipeline": {"invocation_timeout_seconds": 300.0, "output_dir": "builds"},
    "capacity": {"max_concurrent_jobs": 3, "admission_poll_ms": 500},
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": "",
        "redact_secrets": True,
    },
    "profiles": {},
}

_SECTION_NAMES: Final[tuple[str, ...]] = (
    "providers",
    "models",
    "generation",
    "retry",
    "pipeline",
    "capacity",
    "observability",
)


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> ForgeConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named ``[profiles.<name>]`` overlay and re-validate."""

    materialized = _deep_copy_mapping(config)
    selected = profile.strip() if isinstance(profile, str) else ""
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    overlay_raw = profiles_raw.get(selected) if isinstance(profiles_raw, Mapping) else None
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )
    return assert_valid_config(merge_config(materialized, overlay_raw))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted copy for logs and ``forge config``."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = set(_SECTION_NAMES)
    if not partial:
        allowed.add("profiles")
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, set(_SECTION_NAMES), path, issues)

    validators: dict[str, Callable[..., dict[str, Any]]] = {
        "providers": _validate_providers,
        "models": _validate_models,
        "generation": _validate_generation,
        "retry": _validate_retry,
        "pipeline": _validate_pipeline,
        "capacity": _validate_capacity,
        "observability": _validate_observability,
    }

    out: dict[str, Any] = {}
    for key, validator in validators.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section_path = _join(path, key)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[key] = validator(section_obj, section_path, issues, partial=partial)

    if not partial:
        out["profiles"] = _validate_profiles(payload.get("profiles", {}), "profiles", issues)
        _validate_retry_cross_fields(out.get("retry"), "retry", issues)
    return out


def _validate_providers(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"default", *PROVIDER_NAMES}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "default" in payload:
        parsed_default = _as_enum(
            payload["default"], _join(path, "default"), issues, allowed_values=PROVIDER_NAMES
        )
        if parsed_default is not None:
            out["default"] = parsed_default

    for provider_name in PROVIDER_NAMES:
        raw = payload.get(provider_name)
        if raw is None:
            continue
        section_path = _join(path, provider_name)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[provider_name] = _validate_provider_settings(
            section, section_path, issues, partial=partial
        )
    return out


def _validate_provider_settings(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"api_key_env", "model", "base_url", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"api_key_env", "model"}, path, issues)

    out: dict[str, Any] = {}
    if "api_key_env" in payload:
        parsed_env = _as_env_name(payload["api_key_env"], _join(path, "api_key_env"), issues)
        if parsed_env is not None:
            out["api_key_env"] = parsed_env
    if "model" in payload:
        parsed_model = _as_str(payload["model"], _join(path, "model"), issues)
        if parsed_model is not None:
            out["model"] = parsed_model
    if "base_url" in payload:
        parsed_url = _as_str(payload["base_url"], _join(path, "base_url"), issues)
        if parsed_url is not None:
            if not parsed_url.startswith(("http://", "https://")):
                issues.add(_join(path, "base_url"), "must be an http(s) URL")
            else:
                out["base_url"] = parsed_url
    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, exclusive_min=0.0
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_models(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"planner", "builder", "verifier", "text_response"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key not in payload:
            continue
        # Empty means "use the default provider's model".
        parsed = _as_text(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_generation(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"builder_max_tokens"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "builder_max_tokens" in payload:
        parsed = _as_int(
            payload["builder_max_tokens"], _join(path, "builder_max_tokens"), issues, minimum=1
        )
        if parsed is not None:
            out["builder_max_tokens"] = parsed
    return out


def _validate_retry(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"max_attempts", "base_delay_ms", "max_delay_ms", "fallback_no_tools"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("max_attempts", "base_delay_ms", "max_delay_ms"):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=0)
            if parsed is not None:
                out[key] = parsed
    if "fallback_no_tools" in payload:
        parsed_flag = _as_bool(
            payload["fallback_no_tools"], _join(path, "fallback_no_tools"), issues
        )
        if parsed_flag is not None:
            out["fallback_no_tools"] = parsed_flag
    return out


def _validate_retry_cross_fields(
    retry: object,
    path: str,
    issues: _IssueCollector,
) -> None:
    if not isinstance(retry, Mapping):
        return
    base = retry.get("base_delay_ms")
    cap = retry.get("max_delay_ms")
    if isinstance(base, int) and isinstance(cap, int) and base > cap:
        issues.add(_join(path, "base_delay_ms"), "must be <= max_delay_ms")


def _validate_pipeline(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"invocation_timeout_seconds", "output_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "invocation_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["invocation_timeout_seconds"],
            _join(path, "invocation_timeout_seconds"),
            issues,
            exclusive_min=0.0,
        )
        if parsed_timeout is not None:
            out["invocation_timeout_seconds"] = parsed_timeout
    if "output_dir" in payload:
        parsed_dir = _as_path_text(payload["output_dir"], _join(path, "output_dir"), issues)
        if parsed_dir is not None:
            out["output_dir"] = parsed_dir
    return out


def _validate_capacity(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"max_concurrent_jobs", "admission_poll_ms"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_dir", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_format" in payload:
        parsed_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if parsed_format is not None:
            out["log_format"] = parsed_format
    if "log_dir" in payload:
        # Empty means stderr only.
        parsed_log_dir = _as_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            if "\x00" in parsed_log_dir:
                issues.add(_join(path, "log_dir"), "must not contain NUL bytes")
            else:
                out["log_dir"] = parsed_log_dir
    if "redact_secrets" in payload:
        parsed_redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if parsed_redact is not None:
            out["redact_secrets"] = parsed_redact
    return out


def _validate_profiles(
    value: object,
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    profiles = _as_object(value, path, issues)
    if profiles is None:
        return {}
    out: dict[str, Any] = {}
    for name in sorted(profiles):
        profile_path = _join(path, name)
        if not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.add(profile_path, "profile names must match [a-z][a-z0-9_-]*")
            continue
        overlay = _as_object(profiles[name], profile_path, issues)
        if overlay is None:
            continue
        out[name] = _validate_root(overlay, profile_path, issues, partial=True)
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_text(value, path, issues)
    if parsed is None:
        return None
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: ANTHROPIC_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    exclusive_min: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if exclusive_min is not None and parsed <= exclusive_min:
        issues.add(path, f"must be > {exclusive_min}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    _merge_into(out, value)
    return out


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            # Flags such as redact_secrets carry no secret material.
            if _looks_sensitive_key(key) and not isinstance(item, bool):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PROVIDER_NAMES",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ForgeConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
