from __future__ import annotations

import threading
import time
from typing import Callable

import pytest
import requests

from containerbench.config import RunSettings, Scenario
from containerbench.docker_control import ContainerSpec
from containerbench.errors import ContainerStartError, RuntimeCommandError
from containerbench.executor import RunResult
from containerbench.readiness import ReadinessMechanism, ReadinessOutcome
from containerbench.stats import parse

SAMPLE_LINE = "0.12%|151.9MiB / 768MiB|19.78%|4.9kB / 2.93kB|40.9MB / 0B|29"


class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FakeSession:
    """Stands in for requests.Session; ``handler(url)`` returns a status or raises."""

    def __init__(self, handler: Callable[[str], int | FakeResponse]) -> None:
        self._handler = handler
        self._lock = threading.Lock()
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None, stream: bool = False) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
        outcome = self._handler(url)
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(outcome, b"[]")

    def count(self, fragment: str) -> int:
        with self._lock:
            return sum(1 for url in self.calls if fragment in url)


class FakeRuntime:
    """In-memory container runtime recording every lifecycle command."""

    def __init__(
        self,
        stats_line: str = SAMPLE_LINE,
        fail_images: tuple[str, ...] = (),
        logs: str = "Started DemoApplication",
        stats_error: Exception | None = None,
    ) -> None:
        self.stats_line_value = stats_line
        self.fail_images = set(fail_images)
        self.logs = logs
        self.stats_error = stats_error
        self.started: list[ContainerSpec] = []
        self.stopped: list[str] = []
        self.removed: list[str] = []
        self.stats_calls = 0
        self._lock = threading.Lock()

    def run(self, spec: ContainerSpec, timeout_s: float) -> str:
        if spec.image in self.fail_images:
            raise ContainerStartError(f"docker run failed (exit 1) for {spec.image}")
        self.started.append(spec)
        return f"cid-{len(self.started):02d}-{spec.image.replace(':', '-')}"

    def stats_line(self, container_id: str, timeout_s: float) -> str:
        with self._lock:
            self.stats_calls += 1
        if self.stats_error is not None:
            raise self.stats_error
        return self.stats_line_value

    def logs_tail(self, container_id: str, lines: int, timeout_s: float) -> str:
        if self.logs is None:
            raise RuntimeCommandError(["docker", "logs", container_id], 1, "", "no such container")
        return self.logs

    def stop(self, container_id: str, timeout_s: float) -> None:
        self.stopped.append(container_id)

    def remove(self, container_id: str, timeout_s: float) -> None:
        self.removed.append(container_id)


def ready_after(delay_s: float, workload_delay_s: float = 0.001) -> FakeSession:
    """Service refusing connections for ``delay_s``, then answering everything with 200."""
    started = time.monotonic()

    def handler(url: str) -> int:
        if time.monotonic() - started < delay_s:
            raise requests.ConnectionError("connection refused")
        if "/actuator" not in url:
            time.sleep(workload_delay_s)
        return 200

    return FakeSession(handler)


@pytest.fixture
def fast_settings() -> RunSettings:
    return RunSettings(
        readiness_timeout_s=5.0,
        poll_interval_s=0.01,
        probe_timeout_s=0.5,
        warmup_requests=2,
        measure_requests=10,
        idle_samples=2,
        load_samples=3,
        post_samples=2,
        sample_interval_s=0.01,
        sampler_join_timeout_s=2.0,
    )


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


def make_result(
    name: str = "baseline",
    image: str = "demo:jvm",
    effective_flags: str | None = "",
    latencies: tuple[float, ...] = (0.01, 0.02, 0.03, 0.04),
    load_mem: tuple[float, ...] = (30.0, 45.5),
) -> RunResult:
    def samples(mems):
        return tuple(
            parse(f"12.50%|{mem * 7.68:.1f}MiB / 768MiB|{mem:.2f}%|1kB / 2kB|0B / 0B|30") for mem in mems
        )

    return RunResult(
        config_name=name,
        image=image,
        effective_flags=effective_flags,
        readiness=ReadinessOutcome(ReadinessMechanism.HEALTH_PROBE, 1234),
        first_request_s=0.25,
        latencies_s=latencies,
        idle_samples=samples((20.0,)),
        load_samples=samples(load_mem),
        post_samples=samples((25.0, 24.0)),
        scenario=Scenario.PAYLOAD_HEAVY_JSON,
        workload_n=1000,
        workload_path="/json?n=1000",
        startup_log="Started",
    )
