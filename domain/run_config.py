# domain/run_config.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from domain.exceptions import ValidationError


class ConcurrencyMode(str, Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclass(frozen=True)
class TestRunConfig:
    total_requests: int
    concurrency_mode: ConcurrencyMode = ConcurrencyMode.SEQUENTIAL
    batch_size: int = 10
    delay_ms: int = 0
    timeout_sec: float = 30.0
    trace_sample_size: int = 10

    # pytest がテストクラスとして収集しないように
    __test__ = False

    def __post_init__(self) -> None:
        if not isinstance(self.concurrency_mode, ConcurrencyMode):
            try:
                object.__setattr__(self, "concurrency_mode", ConcurrencyMode(self.concurrency_mode))
            except ValueError:
                raise ValidationError(f"Unknown concurrency mode: {self.concurrency_mode}")
        if self.total_requests is None or self.total_requests < 1:
            raise ValidationError("total_requests must be >= 1")
        if self.batch_size is None or self.batch_size < 1:
            raise ValidationError("batch_size must be >= 1")
        if self.delay_ms < 0:
            raise ValidationError("delay_ms must be >= 0")
        if self.timeout_sec <= 0:
            raise ValidationError("timeout_sec must be > 0")
        if self.trace_sample_size < 0:
            raise ValidationError("trace_sample_size must be >= 0")

    @property
    def concurrent(self) -> bool:
        return self.concurrency_mode == ConcurrencyMode.CONCURRENT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestRunConfig":
        unknown = set(data) - _CONFIG_FIELDS
        if unknown:
            raise ValidationError(f"Unknown run options: {', '.join(sorted(unknown))}")
        kwargs: Dict[str, Any] = {}
        for name, cast in (("total_requests", int), ("batch_size", int), ("delay_ms", int),
                           ("timeout_sec", float), ("trace_sample_size", int)):
            if data.get(name) is not None:
                try:
                    kwargs[name] = cast(data[name])
                except (TypeError, ValueError):
                    raise ValidationError(f"{name} must be a number: {data[name]!r}")
        if "total_requests" not in kwargs:
            raise ValidationError("total_requests is required")
        if data.get("concurrency_mode") is not None:
            kwargs["concurrency_mode"] = data["concurrency_mode"]
        return cls(**kwargs)


_CONFIG_FIELDS = {"total_requests", "concurrency_mode", "batch_size", "delay_ms", "timeout_sec", "trace_sample_size"}
