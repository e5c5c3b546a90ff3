# infrastructure/logging/composite_logger.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from application.ports.logger import LoggerPort, NullLogger


@dataclass(frozen=True)
class CompositeLogger(LoggerPort):
    """Fans every event out to each sink, in order."""
    loggers: Tuple[LoggerPort, ...]

    @classmethod
    def of(cls, *loggers: LoggerPort) -> "CompositeLogger":
        # ネストした composite は平坦化、NullLogger は捨てる
        flat = []
        for logger in loggers:
            if isinstance(logger, CompositeLogger):
                flat.extend(logger.loggers)
            elif not isinstance(logger, NullLogger):
                flat.append(logger)
        return cls(tuple(flat))

    def bind(self, **fields: Any) -> "CompositeLogger":
        return CompositeLogger(tuple(logger.bind(**fields) for logger in self.loggers))

    def debug(self, event: str, **fields: Any) -> None:
        self._emit("debug", event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit("info", event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit("warning", event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit("error", event, fields)

    def _emit(self, level: str, event: str, fields: Dict[str, Any]) -> None:
        for logger in self.loggers:
            getattr(logger, level)(event, **fields)
