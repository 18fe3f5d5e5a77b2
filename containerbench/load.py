from __future__ import annotations

import logging
import time

import requests

from .errors import MeasurementError
from .readiness import to_url

LOGGER = logging.getLogger("containerbench.load")


class WorkloadClient:
    """Issues workload GET requests strictly one at a time and times them."""

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        request_timeout_s: float = 5.0,
    ) -> None:
        self._base_url = base_url
        self._session = session or requests.Session()
        self._request_timeout_s = request_timeout_s

    def measure(self, path: str) -> float:
        """Seconds for one GET including the full response body."""
        url = to_url(self._base_url, path)
        started = time.perf_counter()
        try:
            response = self._session.get(url, timeout=self._request_timeout_s)
            body = response.content
        except requests.RequestException as exc:
            raise MeasurementError(f"GET {path} failed: {exc}") from exc
        elapsed = time.perf_counter() - started

        if response.status_code != 200:
            snippet = body[:200].decode("utf-8", errors="replace") if body else ""
            raise MeasurementError(f"GET {path} failed: {response.status_code} body={snippet}")
        return elapsed

    def warmup(self, path: str, times: int) -> None:
        for _ in range(times):
            self.measure(path)

    def measure_many(self, path: str, times: int) -> list[float]:
        latencies: list[float] = []
        for _ in range(times):
            latencies.append(self.measure(path))
        LOGGER.debug("Measured %d requests against %s", len(latencies), path)
        return latencies
