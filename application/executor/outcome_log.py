# application/executor/outcome_log.py
from __future__ import annotations

from threading import Event, Lock
from typing import List

from domain.outcome import ExecutionOutcome


class OutcomeLog:
    """Append-only, thread-safe outcome sequence for one run."""

    def __init__(self) -> None:
        self._items: List[ExecutionOutcome] = []
        self._lock = Lock()
        self._next_sequence = 0

    def reserve_sequence(self) -> int:
        with self._lock:
            seq = self._next_sequence
            self._next_sequence += 1
            return seq

    def append(self, outcome: ExecutionOutcome) -> int:
        with self._lock:
            self._items.append(outcome)
            return len(self._items)

    def snapshot(self) -> List[ExecutionOutcome]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class StopSignal:
    """External stop request, observed by the engine at every suspension point."""

    def __init__(self) -> None:
        self._event = Event()

    def stop(self) -> None:
        self._event.set()

    @property
    def stopped(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout_sec: float) -> bool:
        """Sleep up to ``timeout_sec``; returns True if stopped meanwhile."""
        return self._event.wait(timeout_sec)
