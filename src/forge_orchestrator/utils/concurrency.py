"""Async concurrency primitives used by the invocation layer and the job runner."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float | None,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``coroutine`` under an optional deadline and cooperative cancellation.

    ``timeout_seconds=None`` means no deadline; the token is still honoured.
    Raises ``TimeoutError`` on expiry and ``asyncio.CancelledError`` on cancellation.
    """
    if timeout_seconds is not None and timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    if cancel_token is not None and cancel_token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError("operation cancelled")

    if cancel_token is None:
        if timeout_seconds is None:
            return await coroutine
        try:
            return await asyncio.wait_for(_await_value(coroutine), timeout=timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"operation timed out after {timeout_seconds} seconds") from exc

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(cancel_token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

        if cancel_wait_task in done:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def cancellable_sleep(delay_seconds: float, cancel_token: CancellationToken | None) -> bool:
    """Sleep for ``delay_seconds``; return ``False`` early if the token is cancelled."""

    if cancel_token is None:
        await asyncio.sleep(delay_seconds)
        return True
    if cancel_token.is_cancelled:
        return False
    try:
        await asyncio.wait_for(cancel_token.wait(), timeout=delay_seconds)
    except asyncio.TimeoutError:
        return True
    return False


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects that were never scheduled so CPython does not
    # warn "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "cancellable_sleep",
    "run_with_timeout",
]
