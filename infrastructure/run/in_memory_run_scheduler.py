# infrastructure/run/in_memory_run_scheduler.py
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Lock
from typing import Callable, Dict, Optional

from application.ports.run_scheduler import RunSchedulerPort


class InMemoryRunScheduler(RunSchedulerPort):
    """
    Runs each submitted test run on a worker thread. A run's own concurrent
    dispatch uses a separate pool inside the engine, so ``max_workers`` only
    bounds how many runs progress at the same time.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="run-scheduler")
        self._lock = Lock()
        self._futures: Dict[str, Future] = {}

    def submit(self, run_id: str, task: Callable[[], None]) -> Future:
        with self._lock:
            future = self._executor.submit(task)
            self._futures[run_id] = future
            return future

    def wait(self, run_id: str, timeout_sec: float) -> bool:
        future = self.get_future(run_id)
        if future is None:
            return False
        try:
            future.result(timeout=timeout_sec)
        except FutureTimeoutError:
            return False
        except Exception:
            # タスク自身の例外はタスク側でログ・記録済み
            return True
        return True

    def get_future(self, run_id: str) -> Optional[Future]:
        with self._lock:
            return self._futures.get(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
