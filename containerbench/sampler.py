from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .docker_control import ContainerRuntime
from .errors import BenchmarkError
from .stats import ResourceSample, parse

LOGGER = logging.getLogger("containerbench.sampler")


class ResourceSampler:
    """Take ``docker stats`` snapshots of one container on a fixed cadence."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        container_id: str,
        command_timeout_s: float = 10.0,
    ) -> None:
        self._runtime = runtime
        self._container_id = container_id
        self._command_timeout_s = command_timeout_s

    def sample_once(self) -> ResourceSample:
        line = self._runtime.stats_line(self._container_id, self._command_timeout_s)
        return parse(line)

    def burst(self, count: int, interval_s: float) -> list[ResourceSample]:
        """Blocking burst; any fetch or parse failure propagates."""
        samples: list[ResourceSample] = []
        for idx in range(count):
            samples.append(self.sample_once())
            if idx < count - 1:
                time.sleep(interval_s)
        return samples

    def start_background(self, count: int, interval_s: float) -> "BackgroundSampler":
        sampler = BackgroundSampler(self.sample_once, count, interval_s)
        sampler.start()
        return sampler


class BackgroundSampler:
    """Collects samples on a daemon thread into a lock-guarded buffer.

    Failed snapshots are logged and skipped. The thread always ends on its own
    once ``count`` attempts were made, or earlier once cancelled.
    """

    def __init__(
        self,
        take_sample: Callable[[], ResourceSample],
        count: int,
        interval_s: float,
    ) -> None:
        self._take_sample = take_sample
        self._count = count
        self._interval_s = interval_s
        self._lock = threading.Lock()
        self._samples: list[ResourceSample] = []
        self._failures = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        thread = threading.Thread(target=self._run, name="docker-stats-sampler", daemon=True)
        thread.start()
        self._thread = thread

    def join(self, timeout_s: float) -> bool:
        """Wait up to ``timeout_s``; True when the sampler finished in time."""
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout_s)
        return not self._thread.is_alive()

    def cancel(self) -> None:
        self._stop_event.set()

    def snapshot(self) -> list[ResourceSample]:
        with self._lock:
            return list(self._samples)

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def _run(self) -> None:
        for idx in range(self._count):
            if self._stop_event.is_set():
                return
            try:
                sample = self._take_sample()
            except BenchmarkError as exc:
                LOGGER.debug("Skipping background sample %d: %s", idx + 1, exc)
                with self._lock:
                    self._failures += 1
            except Exception:  # noqa: BLE001
                LOGGER.exception("Background sample %d failed", idx + 1)
                with self._lock:
                    self._failures += 1
            else:
                with self._lock:
                    self._samples.append(sample)
            if idx < self._count - 1 and self._stop_event.wait(timeout=self._interval_s):
                return


def collect_with_deadline(
    sampler: BackgroundSampler, timeout_s: float
) -> tuple[list[ResourceSample], bool]:
    """Bounded handoff: wait for the sampler, abandon it after the deadline.

    Returns the samples collected so far and whether the sampler completed.
    """
    completed = sampler.join(timeout_s)
    if not completed:
        LOGGER.warning(
            "Background sampler did not finish within %.1fs; continuing with partial samples",
            timeout_s,
        )
        sampler.cancel()
    samples = sampler.snapshot()
    if sampler.failures:
        LOGGER.info("Background sampler skipped %d failed snapshot(s)", sampler.failures)
    return samples, completed
