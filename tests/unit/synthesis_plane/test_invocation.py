"""
Unit tests for the invocation layer.

Coverage:
- Success, retry-then-success and fatal propagation.
- Backoff delays handed to the injected sleep (1-based retry numbering).
- No-tools fallback after exhaustion, and the exhausted error when it is disabled or fails.
- Deadline expiry maps to a non-retryable timeout.
- Cancellation during backoff raises ``CancelledError`` and sends nothing further.
"""

from __future__ import annotations

import asyncio

import pytest

from forge_orchestrator.constants import NO_TOOLS_FALLBACK_NOTE
from forge_orchestrator.domain.models import InvocationRequest
from forge_orchestrator.synthesis_plane.invocation import (
    InvocationExhaustedError,
    InvocationLayer,
    InvocationPath,
    RetryPolicy,
    is_retryable_error,
)
from forge_orchestrator.synthesis_plane.providers.base import (
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderTimeoutError,
    ToolArgumentsError,
)
from forge_orchestrator.synthesis_plane.tools import BUILDER_TOOLS
from forge_orchestrator.utils.concurrency import CancellationToken

MODEL = "claude-sonnet-4-20250514"


def _request(*, tools: bool = False) -> InvocationRequest:
    if tools:
        return InvocationRequest(
            prompt="build it",
            model=MODEL,
            tools_enabled=True,
            tool_choice="create_project",
            tools=BUILDER_TOOLS,
        )
    return InvocationRequest(prompt="say hi", model=MODEL)


def _policy(**overrides: object) -> RetryPolicy:
    values: dict[str, object] = {
        "max_attempts": 3,
        "base_delay_seconds": 1.0,
        "max_delay_seconds": 10.0,
        "jitter_ratio": 0.0,
        "fallback_no_tools": True,
    }
    values.update(overrides)
    return RetryPolicy(**values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep(
    scripted_invocation, payloads, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(payloads.text("hello"))

    outcome = await layer.invoke(_request())

    assert outcome.path is InvocationPath.SUCCESS
    assert outcome.attempts == 1
    assert outcome.response.text == "hello"
    assert outcome.response.usage.total_tokens == 15
    assert outcome.provider == "anthropic"
    assert sleep_recorder.calls == []
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_retryable_parse_error_then_success(
    scripted_invocation, payloads, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(
        payloads.malformed_tool_call(),
        payloads.text("second time lucky"),
        policy=_policy(),
    )

    outcome = await layer.invoke(_request(tools=True))

    assert outcome.path is InvocationPath.SUCCESS
    assert outcome.attempts == 2
    assert outcome.retries == (1.0,)
    assert sleep_recorder.calls == [1.0]
    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_two_parse_failures_then_success_never_reaches_fallback(
    scripted_invocation, payloads, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(
        payloads.malformed_tool_call(),
        payloads.malformed_tool_call(),
        payloads.files({"index.html": "<html></html>"}),
        policy=_policy(),
    )

    outcome = await layer.invoke(_request(tools=True))

    assert outcome.path is InvocationPath.SUCCESS
    assert outcome.attempts == 3
    assert sleep_recorder.calls == [1.0, 2.0]
    assert all(0 < delay <= 10.0 for delay in sleep_recorder.calls)
    assert [call.name for call in outcome.response.tool_calls] == ["create_project"]
    assert len(provider.requests) == 3
    assert all(request.tools_enabled for request in provider.requests)
    assert not any(NO_TOOLS_FALLBACK_NOTE in request.prompt for request in provider.requests)


@pytest.mark.asyncio
async def test_cancellation_during_backoff_raises_before_next_call(payloads) -> None:
    token = CancellationToken()
    sent: list[InvocationRequest] = []
    slept: list[float] = []

    class _MalformedProvider:
        provider_name = "anthropic"

        async def send(self, request: InvocationRequest) -> object:
            sent.append(request)
            return payloads.malformed_tool_call()

    async def cancelling_sleep(seconds: float) -> None:
        slept.append(seconds)
        token.cancel()

    registry = ProviderRegistry()
    registry.register("anthropic", _MalformedProvider)
    layer = InvocationLayer(registry, policy=_policy(), sleep=cancelling_sleep)

    with pytest.raises(asyncio.CancelledError):
        await layer.invoke(_request(tools=True), cancel_token=token)

    assert slept == [1.0]
    assert len(sent) == 1
    assert sent[0].tools_enabled is True


@pytest.mark.asyncio
async def test_fatal_error_propagates_without_retry(
    scripted_invocation, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(
        ProviderAuthenticationError("bad key", provider="anthropic", http_status=401),
        policy=_policy(),
    )

    with pytest.raises(ProviderAuthenticationError):
        await layer.invoke(_request(tools=True))

    assert len(provider.requests) == 1
    assert sleep_recorder.calls == []


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried_by_the_layer(scripted_invocation) -> None:
    layer, provider = scripted_invocation(
        ProviderRateLimitError("slow down", provider="anthropic"),
        policy=_policy(),
    )

    with pytest.raises(ProviderRateLimitError):
        await layer.invoke(_request())
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_exhaustion_with_tools_falls_back_to_text_only(
    scripted_invocation, payloads, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(
        *(payloads.malformed_tool_call() for _ in range(4)),
        payloads.text("plain answer"),
        policy=_policy(),
    )

    outcome = await layer.invoke(_request(tools=True))

    assert outcome.path is InvocationPath.FALLBACK_SUCCESS
    assert outcome.attempts == 5
    assert outcome.response.text == "plain answer"
    assert sleep_recorder.calls == [1.0, 2.0, 4.0]

    fallback_request = provider.requests[-1]
    assert fallback_request.tools_enabled is False
    assert fallback_request.tools == ()
    assert fallback_request.prompt.endswith(NO_TOOLS_FALLBACK_NOTE)


@pytest.mark.asyncio
async def test_exhaustion_without_fallback_raises_exhausted(
    scripted_invocation, payloads
) -> None:
    layer, provider = scripted_invocation(
        *(payloads.malformed_tool_call() for _ in range(3)),
        policy=_policy(max_attempts=2, fallback_no_tools=False),
    )

    with pytest.raises(InvocationExhaustedError) as excinfo:
        await layer.invoke(_request(tools=True))

    assert excinfo.value.code == "retries_exhausted"
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, ToolArgumentsError)
    assert len(provider.requests) == 3


@pytest.mark.asyncio
async def test_request_without_tools_never_uses_fallback(scripted_invocation) -> None:
    layer, provider = scripted_invocation(
        ToolArgumentsError("Invalid arguments for tool x", provider="anthropic"),
        ToolArgumentsError("Invalid arguments for tool x", provider="anthropic"),
        policy=_policy(max_attempts=1),
    )

    with pytest.raises(InvocationExhaustedError):
        await layer.invoke(_request())
    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_failed_fallback_still_raises_exhausted(scripted_invocation, payloads) -> None:
    layer, provider = scripted_invocation(
        payloads.malformed_tool_call(),
        payloads.malformed_tool_call(),
        ProviderAuthenticationError("revoked", provider="anthropic"),
        policy=_policy(max_attempts=1),
    )

    with pytest.raises(InvocationExhaustedError):
        await layer.invoke(_request(tools=True))
    assert len(provider.requests) == 3


@pytest.mark.asyncio
async def test_backoff_is_capped_at_max_delay(
    scripted_invocation, payloads, sleep_recorder
) -> None:
    layer, _ = scripted_invocation(
        *(payloads.malformed_tool_call() for _ in range(5)),
        payloads.text("done"),
        policy=_policy(max_attempts=5, base_delay_seconds=2.0, max_delay_seconds=5.0),
    )

    await layer.invoke(_request())

    assert sleep_recorder.calls == [2.0, 4.0, 5.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_deadline_expiry_is_a_fatal_timeout(sleep_recorder) -> None:
    class _SlowProvider:
        provider_name = "anthropic"

        def __init__(self) -> None:
            self.calls = 0

        async def send(self, request: InvocationRequest) -> object:
            self.calls += 1
            await asyncio.sleep(5)
            return {"text": "late"}

    slow = _SlowProvider()
    registry = ProviderRegistry()
    registry.register("anthropic", lambda: slow)
    layer = InvocationLayer(registry, policy=_policy(), sleep=sleep_recorder)

    with pytest.raises(ProviderTimeoutError):
        await layer.invoke(_request(), timeout_seconds=0.01)
    assert slow.calls == 1
    assert sleep_recorder.calls == []


def test_retryable_classification_follows_cause_chain() -> None:
    class JSONParseError(Exception):
        pass

    assert is_retryable_error(JSONParseError("bad"))
    assert is_retryable_error(RuntimeError("JSON parsing failed for tool output"))

    wrapped = RuntimeError("outer")
    wrapped.__cause__ = ToolArgumentsError("Invalid arguments for tool x")
    assert is_retryable_error(wrapped)

    assert not is_retryable_error(ProviderAuthenticationError("nope"))
    assert not is_retryable_error(None)
    exhausted = InvocationExhaustedError(ToolArgumentsError("x"), 3, provider="anthropic")
    assert not is_retryable_error(exhausted)


def test_retry_policy_rejects_inverted_delays() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(base_delay_seconds=5.0, max_delay_seconds=1.0)
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=-1)


def test_unrouted_model_is_rejected_before_any_call() -> None:
    registry = ProviderRegistry()
    registry.register("anthropic", lambda: _NeverCalled())
    layer = InvocationLayer(registry)

    with pytest.raises(ProviderInvalidRequestError, match="no provider routes model"):
        asyncio.run(layer.invoke(InvocationRequest(prompt="x", model="mistral-large")))


class _NeverCalled:
    provider_name = "anthropic"

    async def send(self, request: InvocationRequest) -> object:
        raise AssertionError("must not be called")
