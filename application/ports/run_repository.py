# application/ports/run_repository.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from domain.run_record import RunRecord, RunStatus


class RunRepositoryPort(ABC):
    @abstractmethod
    def create(self, record: RunRecord) -> None:
        ...

    @abstractmethod
    def get(self, run_id: str) -> Optional[RunRecord]:
        ...

    @abstractmethod
    def list(self, status: Optional[RunStatus] = None) -> List[RunRecord]:
        ...

    @abstractmethod
    def transition_status(
        self,
        run_id: str,
        expected: RunStatus,
        new_status: RunStatus,
        result: Optional[dict] = None,
        error: Optional[str] = None,
        error_detail: Optional[dict] = None,
    ) -> RunRecord:
        """Compare-and-set on status; RunStateError when the current status differs."""
        ...
