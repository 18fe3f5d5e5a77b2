"""
Single benchmark run for exactly one configuration.

The executor owns its container from ``docker run`` to ``docker rm``:

* start the container with uniform CPU/memory limits (flags only for
  flag-based variants)
* capture a short startup log snippet (best effort)
* wait for readiness, falling back to the workload path itself
* sample idle resources, then sample in the background across the first
  request, warmup and measurement series
* sample the post-load phase and tear the container down

A failed run keeps its container for inspection (configurable) and surfaces
the failure as ``RunFailedError``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import requests

from .config import RunConfig, RunSettings, Scenario, WorkloadSpec
from .docker_control import ContainerRuntime, ContainerSpec
from .errors import BenchmarkError, RunFailedError
from .load import WorkloadClient
from .readiness import ReadinessOutcome, ReadinessProber
from .sampler import BackgroundSampler, ResourceSampler, collect_with_deadline
from .stats import ResourceSample

LOGGER = logging.getLogger("containerbench.executor")


class RunPhase(str, enum.Enum):
    PENDING = "pending"
    STARTING = "starting"
    LOG_SNAPSHOT = "log_snapshot"
    AWAITING_READY = "awaiting_ready"
    IDLE_SAMPLING = "idle_sampling"
    LOAD_SAMPLING = "load_sampling"
    FIRST_REQUEST = "first_request"
    WARMUP = "warmup"
    MEASURE = "measure"
    JOIN_SAMPLER = "join_sampler"
    POST_SAMPLING = "post_sampling"
    TEARDOWN = "teardown"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    """One output row: everything measured for one configuration."""

    config_name: str
    image: str
    effective_flags: str | None
    readiness: ReadinessOutcome
    first_request_s: float
    latencies_s: tuple[float, ...]
    idle_samples: tuple[ResourceSample, ...]
    load_samples: tuple[ResourceSample, ...]
    post_samples: tuple[ResourceSample, ...]
    scenario: Scenario
    workload_n: int
    workload_path: str
    startup_log: str | None = None

    @property
    def is_native(self) -> bool:
        return self.effective_flags is None


class RunExecutor:
    def __init__(
        self,
        runtime: ContainerRuntime,
        settings: RunSettings | None = None,
        session: requests.Session | None = None,
        prober: ReadinessProber | None = None,
    ) -> None:
        self._runtime = runtime
        self._settings = settings or RunSettings()
        self._session = session or requests.Session()
        self._prober = prober or ReadinessProber(
            session=self._session,
            readiness_path=self._settings.readiness_path,
            health_path=self._settings.health_path,
            poll_interval_s=self._settings.poll_interval_s,
            probe_timeout_s=self._settings.probe_timeout_s,
        )
        self.phase = RunPhase.PENDING
        self.phases: list[RunPhase] = []
        self.container_id: str | None = None
        self._background: BackgroundSampler | None = None

    def execute(self, config: RunConfig, workload: WorkloadSpec) -> RunResult:
        self.phase = RunPhase.PENDING
        self.phases = []
        self.container_id = None
        self._background = None

        try:
            result = self._run_phases(config, workload)
        except KeyboardInterrupt:
            LOGGER.warning("Interrupted during %s; removing container", self.phase.value)
            self._cancel_background()
            self._teardown()
            raise
        except Exception as exc:
            raise self._fail(config, exc) from exc

        self._enter(RunPhase.TEARDOWN)
        self._teardown()
        self._enter(RunPhase.DONE)
        return result

    def _run_phases(self, config: RunConfig, workload: WorkloadSpec) -> RunResult:
        settings = self._settings
        path = workload.path
        effective_flags = config.effective_flags()

        self._enter(RunPhase.STARTING)
        self.container_id = self._runtime.run(
            self._container_spec(config, effective_flags), settings.start_timeout_s
        )
        LOGGER.info("Started container %s for %s (%s)", _short(self.container_id), config.name, config.image)

        startup_log = None
        if not config.is_native:
            self._enter(RunPhase.LOG_SNAPSHOT)
            startup_log = capture_diagnostics(
                self._runtime,
                self.container_id,
                settings.log_tail_lines,
                settings.log_snippet_chars,
                settings.command_timeout_s,
            )

        # The workload path is the last readiness fallback.
        self._enter(RunPhase.AWAITING_READY)
        readiness = self._prober.wait_until_ready(settings.base_url, settings.readiness_timeout_s, path)

        sampler = ResourceSampler(self._runtime, self.container_id, settings.command_timeout_s)
        self._enter(RunPhase.IDLE_SAMPLING)
        idle_samples = sampler.burst(settings.idle_samples, settings.sample_interval_s)

        self._enter(RunPhase.LOAD_SAMPLING)
        self._background = sampler.start_background(settings.load_samples, settings.sample_interval_s)

        client = WorkloadClient(settings.base_url, self._session, settings.request_timeout_s)
        self._enter(RunPhase.FIRST_REQUEST)
        first_request_s = client.measure(path)

        self._enter(RunPhase.WARMUP)
        client.warmup(path, settings.warmup_requests)

        self._enter(RunPhase.MEASURE)
        latencies = client.measure_many(path, settings.measure_requests)

        self._enter(RunPhase.JOIN_SAMPLER)
        load_samples, _ = collect_with_deadline(self._background, settings.sampler_join_timeout_s)

        self._enter(RunPhase.POST_SAMPLING)
        post_samples = sampler.burst(settings.post_samples, settings.sample_interval_s)

        return RunResult(
            config_name=config.name,
            image=config.image,
            effective_flags=effective_flags,
            readiness=readiness,
            first_request_s=first_request_s,
            latencies_s=tuple(latencies),
            idle_samples=tuple(idle_samples),
            load_samples=tuple(load_samples),
            post_samples=tuple(post_samples),
            scenario=workload.scenario,
            workload_n=workload.n,
            workload_path=path,
            startup_log=startup_log,
        )

    def _container_spec(self, config: RunConfig, effective_flags: str | None) -> ContainerSpec:
        settings = self._settings
        environment = {}
        if effective_flags:
            environment[settings.flags_env_var] = effective_flags
        return ContainerSpec(
            image=config.image,
            host_port=settings.host_port,
            container_port=settings.container_port,
            cpus=settings.cpus,
            memory=settings.memory,
            environment=environment,
        )

    def _fail(self, config: RunConfig, exc: Exception) -> RunFailedError:
        failed_in = self.phase
        self._enter(RunPhase.FAILED)
        self._cancel_background()
        LOGGER.error("Run %s failed during %s: %s", config.name, failed_in.value, exc)

        logs = None
        if self.container_id:
            logs = capture_diagnostics(
                self._runtime,
                self.container_id,
                self._settings.log_tail_lines,
                None,
                self._settings.command_timeout_s,
            )
            if logs is not None:
                LOGGER.error(
                    "=== docker logs (tail %d) ===\n%s", self._settings.log_tail_lines, logs
                )
            if self._settings.keep_failed_containers:
                LOGGER.warning("Container kept for inspection: %s", self.container_id)
            else:
                self._teardown()

        return RunFailedError(config.name, exc, container_id=self.container_id, logs=logs)

    def _teardown(self) -> None:
        if not self.container_id:
            return
        timeout_s = self._settings.command_timeout_s
        try:
            self._runtime.stop(self.container_id, timeout_s)
        except BenchmarkError as exc:
            LOGGER.warning("Failed to stop container %s: %s", _short(self.container_id), exc)
        try:
            self._runtime.remove(self.container_id, timeout_s)
        except BenchmarkError as exc:
            LOGGER.warning("Failed to remove container %s: %s", _short(self.container_id), exc)

    def _cancel_background(self) -> None:
        if self._background is not None:
            self._background.cancel()

    def _enter(self, phase: RunPhase) -> None:
        LOGGER.debug("Run phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self.phases.append(phase)


def capture_diagnostics(
    runtime: ContainerRuntime,
    container_id: str,
    tail_lines: int,
    max_chars: int | None,
    timeout_s: float,
) -> str | None:
    """Best-effort log tail; never raises, returns None when unavailable."""
    try:
        logs = runtime.logs_tail(container_id, tail_lines, timeout_s)
    except Exception as exc:  # noqa: BLE001
        LOGGER.debug("Could not capture logs for %s: %s", _short(container_id), exc)
        return None
    if max_chars is not None:
        return trim_snippet(logs, max_chars)
    return logs


def trim_snippet(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n... (truncated)"


def _short(container_id: str | None) -> str:
    return (container_id or "")[:12]
