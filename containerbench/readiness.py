"""
Readiness detection for freshly started services.

The prober walks an ordered fallback chain of probe targets that all draw from
one shared time budget: a dedicated readiness endpoint, a generic health
endpoint, and finally the workload path itself. A 401/403/404 answer means the
target does not exist (or is locked down) for this service and moves on to the
next link immediately; anything else that is not a 200 keeps polling.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable

import requests

from .errors import ReadinessTimeoutError

LOGGER = logging.getLogger("containerbench.readiness")

DEFAULT_FALLBACK_PATH = "/json"
UNUSABLE_STATUSES = frozenset({401, 403, 404})


class ReadinessMechanism(str, enum.Enum):
    """Which link of the fallback chain proved the service ready, best first."""

    READINESS_PROBE = "readiness_probe"
    HEALTH_PROBE = "health_probe"
    WORKLOAD_UNTIL_200 = "workload_until_200"


@dataclass(frozen=True)
class ReadinessOutcome:
    mechanism: ReadinessMechanism
    elapsed_ms: int


class ProbeResult(enum.Enum):
    READY = "ready"
    UNUSABLE = "unusable"
    EXPIRED = "expired"


class ReadinessProber:
    def __init__(
        self,
        session: requests.Session | None = None,
        readiness_path: str = "/actuator/health/readiness",
        health_path: str = "/actuator/health",
        poll_interval_s: float = 0.05,
        probe_timeout_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self._readiness_path = readiness_path
        self._health_path = health_path
        self._poll_interval_s = poll_interval_s
        self._probe_timeout_s = probe_timeout_s
        self._clock = clock
        self._sleep = sleep

    def wait_until_ready(
        self, base_url: str, total_timeout_s: float, fallback_path: str | None
    ) -> ReadinessOutcome:
        start = self._clock()
        deadline = start + total_timeout_s
        chain = (
            (ReadinessMechanism.READINESS_PROBE, to_url(base_url, self._readiness_path)),
            (ReadinessMechanism.HEALTH_PROBE, to_url(base_url, self._health_path)),
            (ReadinessMechanism.WORKLOAD_UNTIL_200, to_url(base_url, (fallback_path or "").strip() or DEFAULT_FALLBACK_PATH)),
        )

        for mechanism, url in chain:
            if self._clock() >= deadline:
                break
            result = self.poll_until_200(url, deadline)
            if result is ProbeResult.READY:
                elapsed_ms = int((self._clock() - start) * 1000)
                LOGGER.info("Service ready after %d ms via %s (%s)", elapsed_ms, mechanism.value, url)
                return ReadinessOutcome(mechanism=mechanism, elapsed_ms=elapsed_ms)
            LOGGER.debug("Readiness probe %s gave up: %s", url, result.value)

        raise ReadinessTimeoutError(f"Readiness timeout after {total_timeout_s:.1f}s at {base_url}")

    def poll_until_200(self, url: str, deadline: float) -> ProbeResult:
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return ProbeResult.EXPIRED
            status = self._try_get_status(url, min(self._probe_timeout_s, remaining))
            if status == 200:
                return ProbeResult.READY
            if status in UNUSABLE_STATUSES:
                return ProbeResult.UNUSABLE
            remaining = deadline - self._clock()
            if remaining <= 0:
                return ProbeResult.EXPIRED
            self._sleep(min(self._poll_interval_s, remaining))

    def _try_get_status(self, url: str, timeout_s: float) -> int | None:
        try:
            with self._session.get(url, timeout=timeout_s, stream=True) as response:
                return response.status_code
        except requests.RequestException as exc:
            LOGGER.debug("Probe %s not answering yet: %s", url, exc)
            return None


def to_url(base_url: str, path: str) -> str:
    path = path.strip()
    if path.startswith(("http://", "https://")):
        return path
    if not path.startswith("/"):
        path = "/" + path
    return base_url.rstrip("/") + path
