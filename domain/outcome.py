# domain/outcome.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from domain.template import BoundRequest


@dataclass(frozen=True)
class TraceInfo:
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    correlation_id: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not any(self.to_dict().values())

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "session_id": self.session_id,
            "request_id": self.request_id,
            "correlation_id": self.correlation_id,
        }


@dataclass(frozen=True)
class ExecutionOutcome:
    sequence: int
    status_code: Optional[int]
    latency_ms: float
    timestamp: datetime
    error: Optional[str] = None
    trace: TraceInfo = field(default_factory=TraceInfo)
    request: Optional[BoundRequest] = None
    response_excerpt: str = ""

    @property
    def succeeded(self) -> bool:
        if self.error is not None or self.status_code is None:
            return False
        return 200 <= self.status_code < 399

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "status_code": self.status_code,
            "latency_ms": self.latency_ms,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
            "trace": {k: v for k, v in self.trace.to_dict().items() if v},
            "request": self.request.to_dict() if self.request else None,
            "response_excerpt": self.response_excerpt,
        }
