"""Concurrency helper tests: deadlines, cooperative cancellation and coroutine hygiene.

Coverage:
- ``run_with_timeout`` success, timeout, cancellation and invalid deadlines.
- Unscheduled coroutines are closed instead of leaking "never awaited" warnings.
- ``cancellable_sleep`` completes or stops early on cancellation.
"""

from __future__ import annotations

import asyncio
import gc
import sys
import warnings
from contextlib import contextmanager
from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest

from forge_orchestrator.utils.concurrency import (
    CancellationToken,
    cancellable_sleep,
    run_with_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextmanager
def _capture_unraisable() -> Iterator[list[SimpleNamespace]]:
    captured: list[SimpleNamespace] = []
    original = sys.unraisablehook

    def hook(unraisable: object) -> None:
        captured.append(
            SimpleNamespace(
                exc_type=getattr(unraisable, "exc_type", None),
                err_msg=getattr(unraisable, "err_msg", None),
            )
        )

    sys.unraisablehook = hook
    try:
        yield captured
    finally:
        sys.unraisablehook = original


async def _value(result: str = "ok", delay: float = 0.0) -> str:
    await asyncio.sleep(delay)
    return result


@pytest.mark.asyncio
async def test_returns_value_with_and_without_deadline() -> None:
    assert await run_with_timeout(_value("a"), None) == "a"
    assert await run_with_timeout(_value("b"), 1.0) == "b"
    assert await run_with_timeout(_value("c"), 1.0, CancellationToken()) == "c"
    assert await run_with_timeout(_value("d"), None, CancellationToken()) == "d"


@pytest.mark.asyncio
async def test_timeout_raises_builtin_timeout_error() -> None:
    with pytest.raises(TimeoutError, match="timed out after 0.01 seconds"):
        await run_with_timeout(_value(delay=1.0), 0.01)

    with pytest.raises(TimeoutError):
        await run_with_timeout(_value(delay=1.0), 0.01, CancellationToken())


@pytest.mark.asyncio
async def test_cancellation_mid_flight_cancels_inner_task() -> None:
    token = CancellationToken()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def long_running() -> str:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "never"

    async def cancel_soon() -> None:
        await started.wait()
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(long_running(), 5.0, token)
    await canceller

    assert cancelled.is_set()
    assert token.is_cancelled


@pytest.mark.asyncio
async def test_precancelled_token_does_not_leak_coroutine() -> None:
    token = CancellationToken()
    token.cancel()

    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        coro = _value()
        with pytest.raises(asyncio.CancelledError):
            await run_with_timeout(coro, 1.0, token)
        del coro
        gc.collect()

    assert leaked == []


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [0, -1.5])
async def test_non_positive_timeout_is_rejected_and_coroutine_closed(timeout: float) -> None:
    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(ValueError, match="timeout_seconds must be > 0"):
            await run_with_timeout(_value(), timeout)
        gc.collect()

    assert leaked == []


@pytest.mark.asyncio
async def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_cancellable_sleep_completes_or_stops_early() -> None:
    assert await cancellable_sleep(0.001, None) is True
    assert await cancellable_sleep(0.001, CancellationToken()) is True

    precancelled = CancellationToken()
    precancelled.cancel()
    assert await cancellable_sleep(10, precancelled) is False

    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)
    assert await cancellable_sleep(10, token) is False
