# application/ports/run_scheduler.py
from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Callable, Optional


class RunSchedulerPort(ABC):
    @abstractmethod
    def submit(self, run_id: str, task: Callable[[], None]) -> Future:
        ...

    @abstractmethod
    def wait(self, run_id: str, timeout_sec: float) -> bool:
        """True when the run's task finished within the timeout."""
        ...

    @abstractmethod
    def get_future(self, run_id: str) -> Optional[Future]:
        ...

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        ...
