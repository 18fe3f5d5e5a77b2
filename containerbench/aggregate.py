from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from .stats import ResourceSample

if TYPE_CHECKING:
    from .executor import RunResult


@dataclass(frozen=True)
class LatencySummary:
    count: int
    mean: float
    minimum: float
    maximum: float
    p50: float
    p95: float
    p99: float


@dataclass(frozen=True)
class PhaseStats:
    cpu_avg: float
    mem_percent_avg: float
    mem_percent_max: float
    mem_usage_at_max: str


@dataclass(frozen=True)
class PhaseSummary:
    idle: PhaseStats | None
    load: PhaseStats | None
    post: PhaseStats | None


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending list; ``nan`` when empty."""
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"Percentile must be within [0, 1], got {p}")
    k = len(sorted_values)
    if k == 0:
        return math.nan
    idx = math.ceil(p * k) - 1
    idx = max(0, min(idx, k - 1))
    return sorted_values[idx]


def summarize_latencies(latencies: Sequence[float]) -> LatencySummary | None:
    if not latencies:
        return None
    ordered = sorted(latencies)
    return LatencySummary(
        count=len(ordered),
        mean=sum(ordered) / len(ordered),
        minimum=ordered[0],
        maximum=ordered[-1],
        p50=percentile(ordered, 0.50),
        p95=percentile(ordered, 0.95),
        p99=percentile(ordered, 0.99),
    )


def phase_stats(samples: Sequence[ResourceSample]) -> PhaseStats | None:
    """Mean CPU/memory and peak memory of one phase; None when it has no samples."""
    if not samples:
        return None

    cpu_sum = 0.0
    mem_sum = 0.0
    peak = samples[0]
    for sample in samples:
        cpu_sum += sample.cpu_percent
        mem_sum += sample.mem_percent
        if sample.mem_percent > peak.mem_percent:
            peak = sample

    return PhaseStats(
        cpu_avg=cpu_sum / len(samples),
        mem_percent_avg=mem_sum / len(samples),
        mem_percent_max=peak.mem_percent,
        mem_usage_at_max=peak.mem_usage_limit,
    )


def phase_summary(result: "RunResult") -> PhaseSummary:
    return PhaseSummary(
        idle=phase_stats(result.idle_samples),
        load=phase_stats(result.load_samples),
        post=phase_stats(result.post_samples),
    )
