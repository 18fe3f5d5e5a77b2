from __future__ import annotations

import dataclasses
import json
import logging
import math
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from .aggregate import summarize_latencies
from .executor import RunResult

LOGGER = logging.getLogger("containerbench.exporters")

RESULT_COLUMNS = [
    "scenario",
    "workload_n",
    "workload_path",
    "config_name",
    "image",
    "effective_flags",
    "readiness_check",
    "readiness_ms",
    "first_request_s",
    "latency_count",
    "latency_mean_s",
    "latency_p50_s",
    "latency_p95_s",
    "latency_p99_s",
]

SAMPLE_COLUMNS = [
    "config_name",
    "phase",
    "index",
    "cpu_percent",
    "mem_usage",
    "mem_limit",
    "mem_percent",
    "net_in",
    "net_out",
    "block_in",
    "block_out",
    "pids",
]


def results_dataframe(results: Sequence[RunResult]) -> pd.DataFrame:
    rows = []
    for result in results:
        summary = summarize_latencies(result.latencies_s)
        rows.append(
            {
                "scenario": result.scenario.value,
                "workload_n": result.workload_n,
                "workload_path": result.workload_path,
                "config_name": result.config_name,
                "image": result.image,
                # None stays an empty cell: "not applicable" for native variants
                "effective_flags": result.effective_flags,
                "readiness_check": result.readiness.mechanism.value,
                "readiness_ms": result.readiness.elapsed_ms,
                "first_request_s": result.first_request_s,
                "latency_count": len(result.latencies_s),
                "latency_mean_s": summary.mean if summary else math.nan,
                "latency_p50_s": summary.p50 if summary else math.nan,
                "latency_p95_s": summary.p95 if summary else math.nan,
                "latency_p99_s": summary.p99 if summary else math.nan,
            }
        )
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def samples_dataframe(results: Sequence[RunResult]) -> pd.DataFrame:
    rows = []
    for result in results:
        phases = (
            ("idle", result.idle_samples),
            ("load", result.load_samples),
            ("post", result.post_samples),
        )
        for phase, samples in phases:
            for idx, sample in enumerate(samples):
                row = {"config_name": result.config_name, "phase": phase, "index": idx}
                row.update(dataclasses.asdict(sample))
                rows.append(row)
    return pd.DataFrame(rows, columns=SAMPLE_COLUMNS)


def write_csv(results: Sequence[RunResult], path: Path) -> Path:
    df = results_dataframe(results)
    df.to_csv(path, index=False)
    LOGGER.info("Wrote %d result row(s) to %s", len(df), path)
    return path


def write_samples_csv(results: Sequence[RunResult], path: Path) -> Path:
    df = samples_dataframe(results)
    df.to_csv(path, index=False)
    LOGGER.info("Wrote %d resource sample(s) to %s", len(df), path)
    return path


def result_to_dict(result: RunResult) -> dict[str, Any]:
    return {
        "scenario": result.scenario.value,
        "workloadN": result.workload_n,
        "workloadPath": result.workload_path,
        "configName": result.config_name,
        "image": result.image,
        "effectiveFlags": result.effective_flags,
        "readinessCheck": result.readiness.mechanism.value,
        "readinessMs": result.readiness.elapsed_ms,
        "firstRequestSeconds": result.first_request_s,
        "latenciesSeconds": list(result.latencies_s),
        "startupLog": result.startup_log,
        "samples": {
            "idle": [dataclasses.asdict(s) for s in result.idle_samples],
            "load": [dataclasses.asdict(s) for s in result.load_samples],
            "post": [dataclasses.asdict(s) for s in result.post_samples],
        },
    }


def write_json(results: Sequence[RunResult], path: Path) -> Path:
    payload = {"results": [result_to_dict(result) for result in results]}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    LOGGER.info("Wrote %d result(s) to %s", len(results), path)
    return path
