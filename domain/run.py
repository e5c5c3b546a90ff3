# domain/run.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from domain.outcome import ExecutionOutcome
from domain.report import Report


class EngineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FATAL = "fatal"

    @property
    def terminal(self) -> bool:
        return self in (EngineState.COMPLETED, EngineState.CANCELLED, EngineState.FATAL)


@dataclass(frozen=True)
class RunResult:
    run_id: str
    state: EngineState
    outcomes: List[ExecutionOutcome]
    report: Report
    exhausted_early: bool = False
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.state == EngineState.COMPLETED
