from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.FAILED)


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    plan_name: str
    status: RunStatus
    created_at: datetime
    updated_at: datetime
    result: Optional[Dict[str, Any]]
    error: Optional[str]
    error_detail: Optional[Dict[str, Any]]

    def with_status(
        self,
        status: RunStatus,
        updated_at: datetime,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        error_detail: Optional[Dict[str, Any]] = None,
    ) -> "RunRecord":
        return RunRecord(
            run_id=self.run_id,
            plan_name=self.plan_name,
            status=status,
            created_at=self.created_at,
            updated_at=updated_at,
            result=result if result is not None else self.result,
            error=error if error is not None else self.error,
            error_detail=error_detail if error_detail is not None else self.error_detail,
        )


@dataclass(frozen=True)
class RunLogEntry:
    timestamp: datetime
    event: str
    fields: Dict[str, Any]
