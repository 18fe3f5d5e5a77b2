"""Tests for the readiness fallback chain."""

import time

import pytest
import requests

from containerbench.errors import ReadinessTimeoutError
from containerbench.readiness import (
    ProbeResult,
    ReadinessMechanism,
    ReadinessProber,
    to_url,
)
from tests.conftest import FakeSession

BASE = "http://localhost:8080"
WORKLOAD = "/json?n=1000"


def _prober(session: FakeSession) -> ReadinessProber:
    return ReadinessProber(session=session, poll_interval_s=0.01, probe_timeout_s=0.2)


def _routes(readiness, health, workload):
    """Build a handler from per-endpoint status codes or callables."""

    def handler(url: str) -> int:
        if url.endswith("/actuator/health/readiness"):
            target = readiness
        elif url.endswith("/actuator/health"):
            target = health
        else:
            target = workload
        return target() if callable(target) else target

    return handler


def _refuse() -> int:
    raise requests.ConnectionError("connection refused")


class TestFallbackChain:
    def test_dedicated_readiness_wins_without_touching_workload(self) -> None:
        session = FakeSession(_routes(200, 200, 200))

        outcome = _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)

        assert outcome.mechanism is ReadinessMechanism.READINESS_PROBE
        assert session.count("/json") == 0
        assert session.calls == [f"{BASE}/actuator/health/readiness"]

    def test_404_short_circuits_to_generic_health(self) -> None:
        session = FakeSession(_routes(404, 200, 200))

        started = time.monotonic()
        outcome = _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)
        elapsed = time.monotonic() - started

        assert outcome.mechanism is ReadinessMechanism.HEALTH_PROBE
        assert elapsed < 1.0
        assert session.count("/actuator/health/readiness") == 1
        assert session.count("/json") == 0

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_unusable_statuses_fall_through_to_workload(self, status: int) -> None:
        session = FakeSession(_routes(status, status, 200))

        outcome = _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)

        assert outcome.mechanism is ReadinessMechanism.WORKLOAD_UNTIL_200
        assert session.calls[-1] == f"{BASE}{WORKLOAD}"

    def test_workload_polled_until_200(self) -> None:
        answers = iter([503, 503, 500, 200])
        session = FakeSession(_routes(404, 404, lambda: next(answers)))

        outcome = _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)

        assert outcome.mechanism is ReadinessMechanism.WORKLOAD_UNTIL_200
        assert session.count("/json") == 4

    def test_connection_errors_keep_polling(self) -> None:
        started = time.monotonic()

        def readiness() -> int:
            if time.monotonic() - started < 0.2:
                raise requests.ConnectionError("connection refused")
            return 200

        session = FakeSession(_routes(readiness, 200, 200))

        outcome = _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)

        assert outcome.mechanism is ReadinessMechanism.READINESS_PROBE
        assert outcome.elapsed_ms >= 200
        assert session.count("/actuator/health/readiness") > 1
        assert session.count("/json") == 0

    def test_server_errors_consume_budget_then_time_out(self) -> None:
        session = FakeSession(_routes(503, 503, 503))

        started = time.monotonic()
        with pytest.raises(ReadinessTimeoutError):
            _prober(session).wait_until_ready(BASE, 0.3, WORKLOAD)
        elapsed = time.monotonic() - started

        assert 0.3 <= elapsed < 1.5
        # the first link kept polling and used up the whole budget
        assert session.count("/json") == 0

    def test_times_out_when_nothing_answers(self) -> None:
        session = FakeSession(_routes(_refuse, _refuse, _refuse))

        with pytest.raises(ReadinessTimeoutError):
            _prober(session).wait_until_ready(BASE, 0.2, WORKLOAD)

    def test_times_out_when_every_link_is_unusable(self) -> None:
        session = FakeSession(_routes(404, 404, 404))

        with pytest.raises(ReadinessTimeoutError):
            _prober(session).wait_until_ready(BASE, 5.0, WORKLOAD)
        assert len(session.calls) == 3

    def test_blank_fallback_uses_default_path(self) -> None:
        session = FakeSession(_routes(404, 404, 200))

        _prober(session).wait_until_ready(BASE, 5.0, "  ")

        assert session.calls[-1] == f"{BASE}/json"


class TestPollUntil200:
    def test_expired_deadline_does_not_probe(self) -> None:
        session = FakeSession(_routes(200, 200, 200))

        result = _prober(session).poll_until_200(f"{BASE}/x", time.monotonic() - 1)

        assert result is ProbeResult.EXPIRED
        assert session.calls == []


class TestToUrl:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/json?n=5", "http://h:1/json?n=5"),
            ("json?n=5", "http://h:1/json?n=5"),
            ("http://other:2/alloc", "http://other:2/alloc"),
            ("https://other/alloc", "https://other/alloc"),
        ],
    )
    def test_to_url(self, path: str, expected: str) -> None:
        assert to_url("http://h:1", path) == expected
