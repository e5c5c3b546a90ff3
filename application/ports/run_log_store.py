# application/ports/run_log_store.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from domain.run_record import RunLogEntry


class RunLogStorePort(ABC):
    @abstractmethod
    def append(self, run_id: str, entry: RunLogEntry) -> None:
        ...

    @abstractmethod
    def list(self, run_id: str, event: Optional[str] = None) -> List[RunLogEntry]:
        """Entries in append order, optionally only those with a given event name."""
        ...
