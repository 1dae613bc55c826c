"""
forge-orchestrator — provider base contract and shared utilities

File: src/forge_orchestrator/synthesis_plane/providers/base.py
Last updated: 2026-10-19

Purpose
- Abstract provider interface shared by the vendor adapters.
- Normalized error taxonomy with machine-readable codes.
- Bounded exponential backoff math.
- Model-prefix routing registry and cost estimation.

Functional requirements
- Adapters return raw SDK objects; normalization happens once in ``normalize.py``.
- Vendor SDK transport retries own rate limits and 5xx; those surface here as fatal.

Non-functional requirements
- Adding a provider must not require touching the invocation layer.
"""

from __future__ import annotations

import abc
import json
import random as random_module
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Protocol, TypeAlias, runtime_checkable

from forge_orchestrator.constants import MODEL_COSTS
from forge_orchestrator.domain.models import InvocationRequest, JSONValue, TokenUsage

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]

DEFAULT_MODEL_PREFIXES: dict[str, tuple[str, ...]] = {
    "openai": ("gpt-", "o1-", "o3-", "o4-"),
    "anthropic": ("claude-",),
}


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _validate_optional_str(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    return _validate_non_empty_str(value, field_name)


class ProviderError(RuntimeError):
    """Base normalized provider error with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status
        self.provider_code = _validate_optional_str(provider_code, "provider_code")

        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        if self.provider_code is not None:
            parts.append(f"provider_code={self.provider_code}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class ProviderUnavailableError(ProviderError):
    """SDK missing, credentials absent, or no adapter routes the model."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail, retryable=False)


class ProviderAuthenticationError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="auth",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderInvalidRequestError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="invalid_request",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderContextLengthError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="context_length",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderRateLimitError(ProviderError):
    """Rate limit that outlived the SDK's own transport retries."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderTimeoutError(ProviderError):
    """The caller's deadline or the SDK's request timeout expired."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="timeout", detail=detail, retryable=False)


class ProviderServiceError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="service",
            detail=detail,
            retryable=False,
            http_status=http_status,
            provider_code=provider_code,
        )


class ProviderResponseError(ProviderError):
    """Raised when a provider response cannot be normalized."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        retryable: bool = False,
        code: str = "response_invalid",
    ) -> None:
        super().__init__(provider=provider, code=code, detail=detail, retryable=retryable)


class ToolArgumentsError(ProviderResponseError):
    """Malformed tool-call arguments; transient model output, so retryable."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(
            detail, provider=provider, retryable=True, code="invalid_tool_arguments"
        )


@runtime_checkable
class ProviderProtocol(Protocol):
    """Protocol implemented by concrete provider adapters."""

    provider_name: str

    async def send(self, request: InvocationRequest) -> object:
        """Send one request and return the raw provider response."""


class BaseProvider(abc.ABC):
    """Provider-agnostic abstract adapter API."""

    provider_name: str = "provider"

    @abc.abstractmethod
    async def send(self, request: InvocationRequest) -> object:
        """Send one request and return the raw provider response."""


ProviderFactory: TypeAlias = Callable[[], ProviderProtocol]


class ProviderRegistry:
    """Registry of provider adapter factories routed by model-id prefix."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        self._prefixes: dict[str, tuple[str, ...]] = {}
        self._instances: dict[str, ProviderProtocol] = {}

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        *,
        prefixes: tuple[str, ...] | None = None,
        overwrite: bool = False,
    ) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        if normalized in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._factories[normalized] = factory
        resolved_prefixes = (
            prefixes if prefixes is not None else DEFAULT_MODEL_PREFIXES.get(normalized, ())
        )
        self._prefixes[normalized] = tuple(prefix.lower() for prefix in resolved_prefixes)
        self._instances.pop(normalized, None)

    def is_registered(self, name: str) -> bool:
        return _validate_non_empty_str(name, "name").lower() in self._factories

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def get(self, name: str) -> ProviderProtocol:
        normalized = _validate_non_empty_str(name, "name").lower()
        cached = self._instances.get(normalized)
        if cached is not None:
            return cached
        factory = self._factories.get(normalized)
        if factory is None:
            raise ProviderUnavailableError(
                provider=normalized,
                detail="provider is not registered",
            )
        adapter = factory()
        if not isinstance(adapter, ProviderProtocol):
            raise TypeError(f"provider factory returned invalid adapter for {normalized}")
        self._instances[normalized] = adapter
        return adapter

    def provider_for_model(self, model: str) -> str:
        """Return the registered provider name whose prefixes match ``model``."""

        model_id = _validate_non_empty_str(model, "model").lower()
        for name in sorted(self._prefixes):
            for prefix in self._prefixes[name]:
                if model_id.startswith(prefix) or model_id == prefix.rstrip("-"):
                    return name
        raise ProviderInvalidRequestError(
            provider="router",
            detail=f"no provider routes model {model!r}",
        )

    def for_model(self, model: str) -> tuple[str, ProviderProtocol]:
        name = self.provider_for_model(model)
        return name, self.get(name)


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Bounded exponential backoff policy."""

    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")


def compute_backoff_delay(
    *,
    retry_number: int,
    config: BackoffConfig,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return the delay before retry N (1-based): capped exponential plus symmetric jitter."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    base_delay = config.initial_delay_seconds * (config.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, config.max_delay_seconds)

    if config.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")

    jitter = bounded_delay * config.jitter_ratio * 2.0 * (random_value - 0.5)
    return max(0.0, bounded_delay + jitter)


def parse_tool_arguments(
    arguments: object,
    *,
    provider: str,
    tool_name: str,
) -> dict[str, JSONValue]:
    """Normalize a tool-argument payload to a JSON object.

    JSON strings are parsed; an unparseable string raises ``ToolArgumentsError``.
    Anything that is not an object afterwards becomes ``{}``.
    """

    if arguments is None:
        return {}
    if isinstance(arguments, Mapping):
        return {str(key): value for key, value in arguments.items()}
    if isinstance(arguments, str):
        candidate = arguments.strip()
        if not candidate:
            return {}
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(
                f"Invalid arguments for tool {tool_name}: JSON parsing failed ({exc.msg})",
                provider=provider,
            ) from exc
        if not isinstance(parsed, dict):
            return {}
        return parsed
    return {}


def normalize_model_id(model: str) -> str:
    """Anthropic ids use ``-6`` where users often type ``.6`` (``claude-sonnet-4.6``)."""

    model_id = model.strip()
    if model_id.startswith("claude-") and ".6" in model_id:
        return model_id.replace(".6", "-6", 1)
    return model_id


def estimate_cost(model: str, usage: TokenUsage) -> float:
    """Return estimated USD cost for ``usage`` using the per-1M-token price table."""

    costs = MODEL_COSTS.get(model)
    if costs is None:
        for vendor in ("anthropic", "openai"):
            costs = MODEL_COSTS.get(f"{vendor}/{model}")
            if costs is not None:
                break
    if costs is None:
        costs = MODEL_COSTS["default"]
    input_cost = (usage.prompt_tokens / 1_000_000) * costs["input"]
    output_cost = (usage.completion_tokens / 1_000_000) * costs["output"]
    return input_cost + output_cost


def map_sdk_exception(exc: Exception, *, provider: str) -> ProviderError:
    """Map a vendor SDK exception onto the normalized taxonomy by status code and class name."""

    if isinstance(exc, ProviderError):
        return exc

    status_code = _read_status_code(exc)
    class_name = exc.__class__.__name__.lower()
    detail = _exception_detail(exc)
    detail_lower = detail.lower()

    if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
        return ProviderAuthenticationError(detail, provider=provider, http_status=status_code)

    if status_code == 429 or "ratelimit" in class_name:
        return ProviderRateLimitError(detail, provider=provider, http_status=status_code)

    if isinstance(exc, TimeoutError) or "timeout" in class_name:
        return ProviderTimeoutError(detail, provider=provider)

    if (
        status_code in {400, 413, 422} and "context" in detail_lower and "length" in detail_lower
    ) or "contextlength" in class_name:
        return ProviderContextLengthError(detail, provider=provider, http_status=status_code)

    if status_code in {400, 404, 409, 422}:
        return ProviderInvalidRequestError(detail, provider=provider, http_status=status_code)

    if "badrequest" in class_name or "invalidrequest" in class_name:
        return ProviderInvalidRequestError(detail, provider=provider)

    return ProviderServiceError(detail, provider=provider, http_status=status_code)


def _exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def _read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int):
            return nested
    return None


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


__all__ = [
    "DEFAULT_MODEL_PREFIXES",
    "BackoffConfig",
    "BaseProvider",
    "ProviderAuthenticationError",
    "ProviderContextLengthError",
    "ProviderError",
    "ProviderFactory",
    "ProviderInvalidRequestError",
    "ProviderProtocol",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RandomFn",
    "SleepFn",
    "ToolArgumentsError",
    "compute_backoff_delay",
    "estimate_cost",
    "map_sdk_exception",
    "normalize_model_id",
    "parse_tool_arguments",
]
