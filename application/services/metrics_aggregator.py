# application/services/metrics_aggregator.py
from __future__ import annotations

import math
from collections import Counter
from datetime import timedelta
from typing import Dict, Iterable, List

from domain.outcome import ExecutionOutcome
from domain.report import LatencyStats, Report

NO_STATUS = 0  # transport error: no status code received

STATUS_GROUPS = ("2xx", "3xx", "4xx", "5xx", "network")


def status_group(status_code) -> str:
    if not status_code:
        return "network"
    if 200 <= status_code < 300:
        return "2xx"
    if 300 <= status_code < 400:
        return "3xx"
    if 400 <= status_code < 500:
        return "4xx"
    if 500 <= status_code < 600:
        return "5xx"
    return "network"


def percentile(sorted_values: List[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return 0.0
    rank = math.ceil(pct / 100 * len(sorted_values))
    return sorted_values[max(rank, 1) - 1]


def latency_stats(latencies: Iterable[float]) -> LatencyStats:
    values = sorted(latencies)
    if not values:
        return LatencyStats()
    return LatencyStats(
        min=values[0],
        max=values[-1],
        mean=sum(values) / len(values),
        p50=percentile(values, 50),
        p95=percentile(values, 95),
        p99=percentile(values, 99),
    )


def throughput(outcomes: List[ExecutionOutcome]) -> float:
    if not outcomes:
        return 0.0
    start = min(o.timestamp for o in outcomes)
    end = max(o.timestamp + timedelta(milliseconds=o.latency_ms) for o in outcomes)
    span = (end - start).total_seconds()
    if span <= 0:
        return 0.0
    return len(outcomes) / span


def aggregate(outcomes: Iterable[ExecutionOutcome], trace_sample_size: int = 10) -> Report:
    """
    Reduce outcomes to summary statistics. Pure: the same sequence always
    gives the same report, so it can be recomputed for live progress.
    """
    items = list(outcomes)
    succeeded = sum(1 for o in items if o.succeeded)

    histogram: Dict[int, int] = dict(
        sorted(Counter(o.status_code if o.status_code is not None else NO_STATUS for o in items).items())
    )
    groups = Counter(status_group(o.status_code) for o in items)

    trace_sample = [o for o in items if not o.trace.empty][:trace_sample_size]

    return Report(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        status_code_histogram=histogram,
        status_groups={g: groups.get(g, 0) for g in STATUS_GROUPS},
        latency=latency_stats(o.latency_ms for o in items),
        throughput_rps=round(throughput(items), 3),
        trace_sample=trace_sample,
    )
