# application/services/run_error_builder.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from domain.exceptions import CursorExpiredError, DataSourceConnectionError, ParseError, ValidationError
from domain.run import EngineState, RunResult


@dataclass(frozen=True)
class RunErrorDetail:
    code: str
    message: str
    state: Optional[str]
    outcomes_recorded: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_CODES = (
    (DataSourceConnectionError, "datasource_unreachable"),
    (CursorExpiredError, "cursor_expired"),
    (ParseError, "parse_error"),
    (ValidationError, "validation_error"),
)


class RunErrorBuilder:
    def build_from_result(self, result: RunResult) -> Optional[RunErrorDetail]:
        """None for runs that need no error detail (completed or cancelled)."""
        if result.state != EngineState.FATAL:
            return None
        message = result.error or "Run aborted by a data source failure"
        code = "cursor_expired" if message.startswith(CursorExpiredError.__name__) else "datasource_error"
        if message.startswith(DataSourceConnectionError.__name__):
            code = "datasource_unreachable"
        return RunErrorDetail(
            code=code,
            message=message,
            state=result.state.value,
            outcomes_recorded=len(result.outcomes),
        )

    def build_from_exception(self, exc: BaseException, outcomes_recorded: int = 0) -> RunErrorDetail:
        code = "exception"
        for exc_type, mapped in _CODES:
            if isinstance(exc, exc_type):
                code = mapped
                break
        return RunErrorDetail(
            code=code,
            message=str(exc) or type(exc).__name__,
            state=None,
            outcomes_recorded=outcomes_recorded,
        )
