"""
forge-orchestrator — capacity gate

File: src/forge_orchestrator/control_plane/capacity_gate.py
Last updated: 2026-10-19

Purpose
- Per-task admission control under a fixed concurrency ceiling.

Functional requirements
- ``try_enter`` never blocks; it admits or refuses immediately.
- ``exit`` is idempotent.
- An id that is already active is refused; it never holds two slots.

Non-functional requirements
- Atomic under threads and under asyncio (a single ``threading.Lock`` guards the set).
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class CapacityExceededError(RuntimeError):
    """Raised by ``CapacityGate.slot`` when admission is refused."""

    def __init__(self, slot_id: str, ceiling: int) -> None:
        self.slot_id = slot_id
        self.ceiling = ceiling
        super().__init__(f"capacity ceiling {ceiling} reached; refused {slot_id!r}")


class CapacityGate:
    def __init__(self, ceiling: int) -> None:
        if isinstance(ceiling, bool) or not isinstance(ceiling, int):
            raise TypeError("ceiling must be an integer")
        if ceiling < 1:
            raise ValueError("ceiling must be >= 1")
        self._ceiling = ceiling
        self._active: set[str] = set()
        self._lock = threading.Lock()

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def try_enter(self, slot_id: str) -> bool:
        with self._lock:
            if slot_id in self._active or len(self._active) >= self._ceiling:
                return False
            self._active.add(slot_id)
            return True

    def exit(self, slot_id: str) -> None:
        with self._lock:
            self._active.discard(slot_id)

    def has(self, slot_id: str) -> bool:
        with self._lock:
            return slot_id in self._active

    def at_capacity(self) -> bool:
        with self._lock:
            return len(self._active) >= self._ceiling

    def size(self) -> int:
        with self._lock:
            return len(self._active)

    def active(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._active)

    @contextmanager
    def slot(self, slot_id: str) -> Iterator[str]:
        """Hold a slot for the duration of the block; always released on exit."""

        if not self.try_enter(slot_id):
            raise CapacityExceededError(slot_id, self._ceiling)
        try:
            yield slot_id
        finally:
            self.exit(slot_id)


__all__ = ["CapacityExceededError", "CapacityGate"]
