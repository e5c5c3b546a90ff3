# infrastructure/run/in_memory_run_log_store.py
from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional

from application.ports.run_log_store import RunLogStorePort
from domain.run_record import RunLogEntry


class InMemoryRunLogStore(RunLogStorePort):
    """Per-run log buffers. Each run keeps at most ``max_entries`` (oldest dropped)."""

    def __init__(self, max_entries: int = 5000) -> None:
        self._logs: Dict[str, List[RunLogEntry]] = {}
        self._max_entries = max_entries
        self._lock = Lock()

    def append(self, run_id: str, entry: RunLogEntry) -> None:
        with self._lock:
            entries = self._logs.setdefault(run_id, [])
            entries.append(entry)
            if len(entries) > self._max_entries:
                del entries[: len(entries) - self._max_entries]

    def list(self, run_id: str, event: Optional[str] = None) -> List[RunLogEntry]:
        with self._lock:
            entries = list(self._logs.get(run_id, []))
        if event is None:
            return entries
        return [e for e in entries if e.event == event]
