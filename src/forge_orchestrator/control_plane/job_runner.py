"""
forge-orchestrator — job runner

File: src/forge_orchestrator/control_plane/job_runner.py
Last updated: 2026-10-19

Purpose
- Drive many tasks through the pipeline concurrently, admitting each one through the
  capacity gate.

Functional requirements
- A task starts only after ``CapacityGate.try_enter`` admits it; refused tasks poll with
  capped exponential backoff.
- The slot is released in ``finally`` whatever the pipeline does.
- Outcomes come back in input order.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from forge_orchestrator.control_plane.capacity_gate import CapacityGate
from forge_orchestrator.control_plane.orchestrator import PipelineOrchestrator
from forge_orchestrator.domain.models import PipelineResult, Task
from forge_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    compute_backoff_delay,
)
from forge_orchestrator.utils.concurrency import CancellationToken

SleepFn = Callable[[float], Awaitable[None]]

_MAX_POLL_EXPONENT = 16

DEFAULT_ADMISSION_POLL = BackoffConfig(
    max_retries=0,
    initial_delay_seconds=0.5,
    max_delay_seconds=4.0,
    jitter_ratio=0.25,
)


def admission_poll_from_ms(poll_ms: int) -> BackoffConfig:
    if poll_ms <= 0:
        raise ValueError("admission poll interval must be > 0 ms")
    initial = poll_ms / 1000.0
    return BackoffConfig(
        max_retries=0,
        initial_delay_seconds=initial,
        max_delay_seconds=initial * 8,
        jitter_ratio=0.25,
    )


@dataclass(frozen=True, slots=True)
class JobOutcome:
    task_id: str
    result: PipelineResult | None = None
    error: str | None = None
    admission_waits: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None


class JobRunner:
    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        gate: CapacityGate,
        *,
        poll: BackoffConfig = DEFAULT_ADMISSION_POLL,
        sleep: SleepFn = asyncio.sleep,
        random_fn: Callable[[], float] = random.random,
        logger: Any | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._gate = gate
        self._poll = poll
        self._sleep = sleep
        self._random_fn = random_fn
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run_all(
        self,
        tasks: Sequence[Task],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[JobOutcome]:
        self._logger.info(
            "job_runner_started", task_count=len(tasks), ceiling=self._gate.ceiling
        )
        outcomes = await asyncio.gather(
            *(self._run_one(task, cancel_token) for task in tasks)
        )
        self._logger.info(
            "job_runner_finished",
            task_count=len(tasks),
            failed=sum(1 for outcome in outcomes if not outcome.ok),
        )
        return list(outcomes)

    async def _run_one(self, task: Task, cancel_token: CancellationToken | None) -> JobOutcome:
        waits = await self._admit(task.task_id, cancel_token)
        try:
            result = await self._orchestrator.run(task, cancel_token=cancel_token)
        except Exception as exc:
            self._logger.exception("job_failed", task_id=task.task_id, error=repr(exc))
            return JobOutcome(task_id=task.task_id, error=repr(exc), admission_waits=waits)
        finally:
            self._gate.exit(task.task_id)
        return JobOutcome(task_id=task.task_id, result=result, admission_waits=waits)

    async def _admit(self, task_id: str, cancel_token: CancellationToken | None) -> int:
        waits = 0
        while not self._gate.try_enter(task_id):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            waits += 1
            delay = compute_backoff_delay(
                retry_number=min(waits, _MAX_POLL_EXPONENT),
                config=self._poll,
                random_fn=self._random_fn,
            )
            self._logger.debug(
                "job_admission_waiting",
                task_id=task_id,
                waits=waits,
                delay_seconds=round(delay, 3),
                active=self._gate.size(),
            )
            await self._sleep(delay)
        if waits:
            self._logger.info("job_admitted", task_id=task_id, waits=waits)
        return waits


__all__ = [
    "DEFAULT_ADMISSION_POLL",
    "JobOutcome",
    "JobRunner",
    "admission_poll_from_ms",
]
