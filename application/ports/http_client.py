# application/ports/http_client.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from domain.template import BoundRequest


class TransportError(Exception):
    """Connection refused, DNS failure, timeout... no HTTP status was received."""

    def __init__(self, message: str, elapsed_ms: Optional[float] = None):
        super().__init__(message)
        self.elapsed_ms = elapsed_ms


@dataclass(frozen=True)
class HttpResponse:
    status: int
    url: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    encoding: Optional[str] = None


class HttpClientPort(ABC):
    @abstractmethod
    def execute(self, request: BoundRequest, timeout_sec: float) -> HttpResponse:
        """Raises TransportError when no response could be obtained."""
        ...

    def close(self) -> None:
        pass
