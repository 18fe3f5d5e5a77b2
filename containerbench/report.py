from __future__ import annotations

import math
import sys
from typing import Sequence, TextIO

from .aggregate import percentile, phase_summary, summarize_latencies
from .executor import RunResult
from .runner import RunFailure


def format_flags(flags: str | None) -> str:
    if flags is None:
        return "(native)"
    if not flags.strip():
        return "(none)"
    return flags


def print_summary(
    results: Sequence[RunResult],
    failures: Sequence[RunFailure] = (),
    out: TextIO | None = None,
) -> None:
    out = out or sys.stdout
    print("=== Benchmark Summary ===", file=out)
    if not results:
        print("No results.", file=out)
    else:
        by_scenario: dict[str, list[RunResult]] = {}
        for result in results:
            by_scenario.setdefault(result.scenario.value, []).append(result)
        for scenario, group in by_scenario.items():
            print(file=out)
            print(f"=== Scenario: {scenario} ===", file=out)
            _print_scenario_summary(group, out)
            _print_per_run(group, out)

    if failures:
        print(file=out)
        print(f"Failed configs: {len(failures)}", file=out)
        for failure in failures:
            kept = f" (container kept: {failure.container_id})" if failure.container_id else ""
            print(f" - {failure.config_name}: {failure.error.cause}{kept}", file=out)


def _print_scenario_summary(group: Sequence[RunResult], out: TextIO) -> None:
    readiness = [r.readiness.elapsed_ms for r in group]
    firsts = [r.first_request_s for r in group]
    combined = sorted(latency for r in group for latency in r.latencies_s)

    print(f"Runs: {len(group)}", file=out)
    print(
        f"Readiness (ms)   min/avg/max: {min(readiness):.0f} / "
        f"{sum(readiness) / len(readiness):.1f} / {max(readiness):.0f}",
        file=out,
    )
    print(
        f"First (s)        min/avg/max: {min(firsts):.3f} / "
        f"{sum(firsts) / len(firsts):.3f} / {max(firsts):.3f}",
        file=out,
    )
    if combined:
        print(
            f"Latency (s)      p50/p95/p99: {percentile(combined, 0.50):.3f} / "
            f"{percentile(combined, 0.95):.3f} / {percentile(combined, 0.99):.3f}  (n={len(combined)})",
            file=out,
        )


def _p95(result: RunResult) -> float:
    summary = summarize_latencies(result.latencies_s)
    return summary.p95 if summary else -math.inf


def _print_per_run(group: Sequence[RunResult], out: TextIO) -> None:
    print(file=out)
    print("Per run (median/p95/mean + docker mem + flags):", file=out)
    for result in sorted(group, key=_p95, reverse=True):
        latency = summarize_latencies(result.latencies_s)
        kind = "NATIVE" if result.is_native else "JVM"
        if latency:
            timing = f"median={latency.p50:.3f}s p95={latency.p95:.3f}s mean={latency.mean:.3f}s"
        else:
            timing = "median=n/a p95=n/a mean=n/a"
        print(
            f" - {result.config_name:<20} ({kind}) readiness={result.readiness.elapsed_ms}ms "
            f"first={result.first_request_s:.3f}s  {timing}  req={len(result.latencies_s)}  "
            f"check={result.readiness.mechanism.value}",
            file=out,
        )

        phases = phase_summary(result)
        if phases.load:
            print(
                f"   docker LOAD: cpu avg={phases.load.cpu_avg:.2f}%  mem avg={phases.load.mem_percent_avg:.2f}%  "
                f"mem max={phases.load.mem_percent_max:.2f}%  memUsage(max)={phases.load.mem_usage_at_max}",
                file=out,
            )
        if phases.idle:
            print(
                f"   docker IDLE: mem avg={phases.idle.mem_percent_avg:.2f}%  mem max={phases.idle.mem_percent_max:.2f}%",
                file=out,
            )
        if phases.post:
            print(
                f"   docker POST: mem avg={phases.post.mem_percent_avg:.2f}%  mem max={phases.post.mem_percent_max:.2f}%",
                file=out,
            )
        print(f"   flags: {format_flags(result.effective_flags)}", file=out)
        print(f"   workload: {result.workload_path}", file=out)
