# domain/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from domain.outcome import ExecutionOutcome


@dataclass(frozen=True)
class LatencyStats:
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "p50": self.p50,
            "p95": self.p95,
            "p99": self.p99,
        }


@dataclass(frozen=True)
class Report:
    total: int
    succeeded: int
    failed: int
    status_code_histogram: Dict[int, int] = field(default_factory=dict)
    status_groups: Dict[str, int] = field(default_factory=dict)
    latency: LatencyStats = field(default_factory=LatencyStats)
    throughput_rps: float = 0.0
    trace_sample: List[ExecutionOutcome] = field(default_factory=list)

    @property
    def error_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.failed / self.total * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "error_rate": round(self.error_rate, 2),
            "status_code_histogram": {str(k): v for k, v in self.status_code_histogram.items()},
            "status_groups": dict(self.status_groups),
            "latency": self.latency.to_dict(),
            "throughput_rps": self.throughput_rps,
            "trace_sample": [
                {
                    "sequence": o.sequence,
                    "status_code": o.status_code,
                    "trace": {k: v for k, v in o.trace.to_dict().items() if v},
                }
                for o in self.trace_sample
            ],
        }
