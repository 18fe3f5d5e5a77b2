from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .aggregate import phase_summary, summarize_latencies
from .executor import RunResult

LOGGER = logging.getLogger("containerbench.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

PHASE_COLORS = {
    "idle": "#6A994E",  # Green
    "load": "#F18F01",  # Orange
    "post": "#2E86AB",  # Blue
}
PHASE_ORDER = ["idle", "load", "post"]


def render_charts(results: Sequence[RunResult], output_dir: Path) -> list[Path]:
    """Render the latency and memory charts for one run set; returns written paths."""
    if not results:
        LOGGER.warning("No results available for charts")
        return []
    paths = [
        _render_latency_boxplot(results, output_dir / "latency_boxplot.png"),
        _render_memory_by_phase(results, output_dir / "memory_by_phase.png"),
    ]
    return [path for path in paths if path is not None]


def latency_frame(results: Sequence[RunResult]) -> pd.DataFrame:
    rows = [
        {"config_name": r.config_name, "latency_ms": latency * 1000.0}
        for r in results
        for latency in r.latencies_s
    ]
    return pd.DataFrame(rows, columns=["config_name", "latency_ms"])


def p95_markers(results: Sequence[RunResult]) -> dict[str, float]:
    """Nearest-rank p95 in milliseconds per config, the same value the summary reports."""
    markers = {}
    for r in results:
        summary = summarize_latencies(r.latencies_s)
        if summary is not None:
            markers[r.config_name] = summary.p95 * 1000.0
    return markers


def memory_frame(results: Sequence[RunResult]) -> pd.DataFrame:
    rows = []
    for r in results:
        phases = phase_summary(r)
        for phase, stats in (("idle", phases.idle), ("load", phases.load), ("post", phases.post)):
            if stats is None:
                continue
            rows.append(
                {
                    "config_name": r.config_name,
                    "phase": phase,
                    "mem_percent_avg": stats.mem_percent_avg,
                    "mem_percent_max": stats.mem_percent_max,
                }
            )
    return pd.DataFrame(rows, columns=["config_name", "phase", "mem_percent_avg", "mem_percent_max"])


def _render_latency_boxplot(results: Sequence[RunResult], chart_path: Path) -> Path | None:
    df = latency_frame(results)
    if df.empty:
        LOGGER.warning("No latency data available for latency chart")
        return None

    order = [r.config_name for r in results]
    fig, ax = plt.subplots(figsize=(max(8, 2 * len(order)), 6))
    sns.boxplot(data=df, x="config_name", y="latency_ms", order=order, ax=ax, linewidth=1.5, width=0.6)

    # Mark p95 per config on top of the boxes
    p95 = p95_markers(results)
    ax.scatter(
        np.arange(len(order)),
        [p95.get(name, np.nan) for name in order],
        marker="D",
        color="#C73E1D",
        zorder=3,
        label="p95",
    )

    ax.set_xlabel("Configuration", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Latency (ms)", fontweight="semibold", labelpad=10)
    ax.set_ylim(bottom=0)
    ax.set_title(f"Request Latency by Configuration ({results[0].workload_path})", fontweight="bold", pad=15)
    ax.legend(loc="upper right", frameon=True)
    ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5, axis="y")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_memory_by_phase(results: Sequence[RunResult], chart_path: Path) -> Path | None:
    df = memory_frame(results)
    if df.empty:
        LOGGER.warning("No resource samples available for memory chart")
        return None

    fig, ax = plt.subplots(figsize=(max(8, 2 * len(results)), 6))
    sns.barplot(
        data=df,
        x="config_name",
        y="mem_percent_max",
        hue="phase",
        order=[r.config_name for r in results],
        hue_order=[phase for phase in PHASE_ORDER if phase in set(df["phase"])],
        palette=PHASE_COLORS,
        ax=ax,
    )
    ax.set_xlabel("Configuration", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Peak memory (% of limit)", fontweight="semibold", labelpad=10)
    ax.set_ylim(0, 100)
    ax.set_title("Peak Container Memory by Phase", fontweight="bold", pad=15)
    ax.legend(title="Phase", loc="upper right", frameon=True)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path
