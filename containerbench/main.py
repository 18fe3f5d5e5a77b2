from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

import requests

from .config import BenchmarkPlan, RunSettings, Scenario, WorkloadSpec, load_plan
from .docker_control import create_runtime
from .errors import RunFailedError
from .executor import RunExecutor
from .exporters import write_csv, write_json, write_samples_csv
from .report import format_flags, print_summary
from .runner import FailurePolicy, RunSetController

LOGGER = logging.getLogger("containerbench")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Container runtime configuration benchmark")
    parser.add_argument(
        "--scenario",
        default=os.environ.get("BENCH_SCENARIO"),
        help="Workload scenario: json (payload-heavy) or alloc (allocation-heavy)",
    )
    parser.add_argument(
        "--n",
        type=int,
        default=os.environ.get("BENCH_WORKLOAD_N"),
        help="Workload size n (defaults per scenario)",
    )
    parser.add_argument(
        "--plan-path",
        default=os.environ.get("BENCH_PLAN_PATH"),
        help="Optional JSON file describing the configurations to benchmark",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCH_OUTPUT_DIR", "bench-results"),
        help="Directory to store benchmark artefacts (CSV, JSON and charts)",
    )
    parser.add_argument(
        "--runtime",
        choices=["cli", "sdk"],
        default=os.environ.get("BENCH_RUNTIME", "cli"),
        help="Drive containers through the docker CLI or the Docker Engine API",
    )
    parser.add_argument(
        "--docker-binary",
        default=os.environ.get("BENCH_DOCKER_BINARY", "docker"),
        help="Container CLI binary used by the cli runtime",
    )
    parser.add_argument("--host", default=os.environ.get("BENCH_HOST", "localhost"))
    parser.add_argument("--host-port", type=int, default=os.environ.get("BENCH_HOST_PORT", "8080"))
    parser.add_argument("--container-port", type=int, default=os.environ.get("BENCH_CONTAINER_PORT", "8080"))
    parser.add_argument("--cpus", default=os.environ.get("BENCH_CPUS", "1"))
    parser.add_argument("--memory", default=os.environ.get("BENCH_MEMORY", "768m"))
    parser.add_argument(
        "--readiness-timeout",
        type=float,
        default=os.environ.get("BENCH_READINESS_TIMEOUT", "120"),
        help="Seconds to wait for a container to become ready",
    )
    parser.add_argument("--warmup", type=int, default=os.environ.get("BENCH_WARMUP_REQUESTS", "20"))
    parser.add_argument("--requests", type=int, default=os.environ.get("BENCH_MEASURE_REQUESTS", "100"))
    parser.add_argument(
        "--on-failure",
        choices=[policy.value for policy in FailurePolicy],
        default=os.environ.get("BENCH_ON_FAILURE", FailurePolicy.CONTINUE.value),
        help="Continue with the remaining configurations or abort after a failed one",
    )
    parser.add_argument(
        "--remove-failed",
        action="store_true",
        help="Remove containers of failed runs instead of keeping them for inspection",
    )
    parser.add_argument("--no-charts", action="store_true", help="Skip rendering charts")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned configurations without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCH_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def resolve_scenario(raw: str | None, stdin: TextIO | None = None, out: TextIO | None = None) -> Scenario:
    if raw:
        return Scenario.parse(raw)
    stdin = stdin or sys.stdin
    if not stdin.isatty():
        return Scenario.PAYLOAD_HEAVY_JSON
    return prompt_scenario(stdin, out or sys.stdout)


def prompt_scenario(stdin: TextIO, out: TextIO) -> Scenario:
    print(file=out)
    print("Choose workload scenario:", file=out)
    print(f"  1) /json  (payload-heavy, default n={Scenario.PAYLOAD_HEAVY_JSON.default_n})", file=out)
    print(f"  2) /alloc (alloc-heavy,  default n={Scenario.ALLOC_HEAVY.default_n})", file=out)
    print("Enter 1 or 2 (default: 1): ", end="", file=out, flush=True)

    line = stdin.readline().strip()
    if line in ("", "1"):
        return Scenario.PAYLOAD_HEAVY_JSON
    if line == "2":
        return Scenario.ALLOC_HEAVY
    print("Invalid input, using default: /json", file=out)
    return Scenario.PAYLOAD_HEAVY_JSON


def build_settings(args: argparse.Namespace) -> RunSettings:
    return RunSettings(
        host=args.host,
        host_port=args.host_port,
        container_port=args.container_port,
        cpus=args.cpus,
        memory=args.memory,
        readiness_timeout_s=args.readiness_timeout,
        warmup_requests=args.warmup,
        measure_requests=args.requests,
        keep_failed_containers=not args.remove_failed,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        plan = load_plan(args.plan_path)
        scenario = resolve_scenario(args.scenario)
        workload = WorkloadSpec.for_scenario(scenario, args.n)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 2

    settings = build_settings(args)
    LOGGER.info("Workload: %s (%s)", workload.path, scenario.name)
    LOGGER.info("Runtime: %s, limits cpus=%s memory=%s", args.runtime, settings.cpus, settings.memory)

    if args.dry_run:
        _print_plan(plan, workload, settings)
        return 0

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Benchmark output directory: %s", output_dir)

    runtime = create_runtime(args.runtime, binary=args.docker_binary)
    controller = RunSetController(
        plan.configs,
        workload,
        executor_factory=lambda: RunExecutor(runtime, settings, session=requests.Session()),
        failure_policy=FailurePolicy(args.on_failure),
    )
    try:
        results = controller.run_all()
    except RunFailedError as exc:
        LOGGER.error("Run set aborted: %s", exc)
        results = controller.results

    print_summary(results, controller.failures)

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")
    write_json(results, output_dir / f"results-{stamp}.json")
    write_csv(results, output_dir / f"results-{stamp}.csv")
    write_samples_csv(results, output_dir / f"samples-{stamp}.csv")
    if not args.no_charts:
        from .charts import render_charts

        render_charts(results, output_dir)

    return 1 if controller.failures else 0


def _print_plan(plan: BenchmarkPlan, workload: WorkloadSpec, settings: RunSettings) -> None:
    print(f"Workload: {workload.path}")
    print(
        f"Per run: warmup={settings.warmup_requests} requests={settings.measure_requests} "
        f"readiness-timeout={settings.readiness_timeout_s:.0f}s port={settings.host_port}"
    )
    for config in plan:
        print(f"  - {config.name}: image={config.image}, flags={format_flags(config.effective_flags())}")


if __name__ == "__main__":
    sys.exit(main())
