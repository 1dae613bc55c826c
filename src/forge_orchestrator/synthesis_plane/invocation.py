"""
forge-orchestrator — invocation layer

File: src/forge_orchestrator/synthesis_plane/invocation.py
Last updated: 2026-10-19

Purpose
- Wrap a single model call behind a uniform contract:
  request -> {text, tool invocations, usage, stop reason}.

Functional requirements
- Retry transient output-parsing failures with bounded exponential backoff and jitter.
- Fatal errors (auth, invalid request, context length, deadline) propagate immediately.
- After exhausting retries on a request with tools, optionally invoke once more with tools
  disabled and a note appended to the prompt.
- Each attempt runs under the caller's deadline and cancellation token; a token cancelled
  between attempts raises ``asyncio.CancelledError`` before the next call.
- Every terminal path is logged as ``invocation_outcome``.
"""

from __future__ import annotations

import asyncio
import random as random_module
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from forge_orchestrator.constants import NO_TOOLS_FALLBACK_NOTE
from forge_orchestrator.domain.models import InvocationRequest, NormalizedResponse
from forge_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    ProviderError,
    ProviderProtocol,
    ProviderRegistry,
    ProviderResponseError,
    ProviderTimeoutError,
    RandomFn,
    SleepFn,
    compute_backoff_delay,
)
from forge_orchestrator.synthesis_plane.providers.normalize import normalize_response
from forge_orchestrator.utils.concurrency import CancellationToken, run_with_timeout

_RETRYABLE_CLASS_MARKERS = ("InvalidToolArgumentsError", "JSONParseError")
_RETRYABLE_MESSAGE_MARKERS = ("JSON parsing failed", "Invalid arguments for tool")


class InvocationPath(StrEnum):
    SUCCESS = "success"
    FALLBACK_SUCCESS = "fallback_success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry budget for one invocation; ``max_attempts`` counts retries after the first call."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.25
    fallback_no_tools: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        # Delegates range checks to BackoffConfig.
        self.backoff()

    def backoff(self) -> BackoffConfig:
        return BackoffConfig(
            max_retries=self.max_attempts,
            initial_delay_seconds=self.base_delay_seconds,
            multiplier=2.0,
            max_delay_seconds=self.max_delay_seconds,
            jitter_ratio=self.jitter_ratio,
        )


@dataclass(frozen=True, slots=True)
class InvocationOutcome:
    response: NormalizedResponse
    path: InvocationPath
    attempts: int
    retries: tuple[float, ...] = ()
    provider: str = "provider"


class InvocationExhaustedError(ProviderError):
    """Retries (and the no-tools fallback, when enabled) ran out on a retryable error."""

    path = InvocationPath.EXHAUSTED

    def __init__(self, last_error: BaseException, attempts: int, *, provider: str) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            provider=provider,
            code="retries_exhausted",
            detail=f"{attempts} attempt(s) failed; last error: {last_error}",
            retryable=False,
        )


def is_retryable_error(error: BaseException | None) -> bool:
    """Return ``True`` for transient model-output failures, checking the cause chain."""

    seen: set[int] = set()
    current = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, InvocationExhaustedError):
            return False
        if isinstance(current, ProviderResponseError) and current.retryable:
            return True
        class_name = type(current).__name__
        if any(marker in class_name for marker in _RETRYABLE_CLASS_MARKERS):
            return True
        message = str(current)
        if any(marker in message for marker in _RETRYABLE_MESSAGE_MARKERS):
            return True
        current = current.__cause__
    return False


class InvocationLayer:
    """Routes a request to its provider and applies the retry and fallback policy."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
        logger: Any | None = None,
    ) -> None:
        self._registry = registry
        self._policy = policy if policy is not None else RetryPolicy()
        self._sleep = sleep
        self._random_fn = random_fn
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def invoke(
        self,
        request: InvocationRequest,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> InvocationOutcome:
        provider_name, provider = self._registry.for_model(request.model)
        backoff = self._policy.backoff()
        delays: list[float] = []
        attempts = 0
        last_error: BaseException | None = None

        for retry_number in range(self._policy.max_attempts + 1):
            if retry_number > 0:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                delay = compute_backoff_delay(
                    retry_number=retry_number,
                    config=backoff,
                    random_fn=self._random_fn,
                )
                delays.append(delay)
                await self._sleep(delay)
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

            attempts += 1
            try:
                response = await self._attempt(
                    provider,
                    provider_name,
                    request,
                    timeout_seconds=timeout_seconds,
                    cancel_token=cancel_token,
                )
            except Exception as exc:
                if not is_retryable_error(exc):
                    self._log_outcome(
                        "fatal",
                        request=request,
                        provider=provider_name,
                        attempts=attempts,
                        delays=delays,
                        error=exc,
                    )
                    raise
                last_error = exc
                self._logger.warning(
                    "invocation_retryable_error",
                    provider=provider_name,
                    model=request.model,
                    attempt=attempts,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue

            self._log_outcome(
                InvocationPath.SUCCESS,
                request=request,
                provider=provider_name,
                attempts=attempts,
                delays=delays,
            )
            return InvocationOutcome(
                response=response,
                path=InvocationPath.SUCCESS,
                attempts=attempts,
                retries=tuple(delays),
                provider=provider_name,
            )

        assert last_error is not None
        if request.tools_enabled and self._policy.fallback_no_tools:
            fallback_request = request.without_tools(NO_TOOLS_FALLBACK_NOTE)
            attempts += 1
            try:
                response = await self._attempt(
                    provider,
                    provider_name,
                    fallback_request,
                    timeout_seconds=timeout_seconds,
                    cancel_token=cancel_token,
                )
            except Exception as fallback_exc:
                self._logger.warning(
                    "invocation_fallback_failed",
                    provider=provider_name,
                    model=request.model,
                    error_type=type(fallback_exc).__name__,
                    error=str(fallback_exc),
                )
            else:
                self._log_outcome(
                    InvocationPath.FALLBACK_SUCCESS,
                    request=request,
                    provider=provider_name,
                    attempts=attempts,
                    delays=delays,
                )
                return InvocationOutcome(
                    response=response,
                    path=InvocationPath.FALLBACK_SUCCESS,
                    attempts=attempts,
                    retries=tuple(delays),
                    provider=provider_name,
                )

        self._log_outcome(
            InvocationPath.EXHAUSTED,
            request=request,
            provider=provider_name,
            attempts=attempts,
            delays=delays,
            error=last_error,
        )
        raise InvocationExhaustedError(
            last_error, attempts, provider=provider_name
        ) from last_error

    async def _attempt(
        self,
        provider: ProviderProtocol,
        provider_name: str,
        request: InvocationRequest,
        *,
        timeout_seconds: float | None,
        cancel_token: CancellationToken | None,
    ) -> NormalizedResponse:
        try:
            raw = await run_with_timeout(provider.send(request), timeout_seconds, cancel_token)
        except TimeoutError as exc:
            raise ProviderTimeoutError(
                f"invocation deadline of {timeout_seconds}s expired",
                provider=provider_name,
            ) from exc
        return normalize_response(raw, provider=provider_name)

    def _log_outcome(
        self,
        path: str,
        *,
        request: InvocationRequest,
        provider: str,
        attempts: int,
        delays: list[float],
        error: BaseException | None = None,
    ) -> None:
        fields: dict[str, object] = {
            "path": str(path),
            "provider": provider,
            "model": request.model,
            "tools_enabled": request.tools_enabled,
            "attempts": attempts,
            "retry_delays_seconds": [round(delay, 3) for delay in delays],
        }
        if error is not None:
            fields["error_type"] = type(error).__name__
            fields["error_code"] = getattr(error, "code", None)
        if error is None:
            self._logger.info("invocation_outcome", **fields)
        else:
            self._logger.warning("invocation_outcome", **fields)


__all__ = [
    "InvocationExhaustedError",
    "InvocationLayer",
    "InvocationOutcome",
    "InvocationPath",
    "RetryPolicy",
    "is_retryable_error",
]
