"""Tests for the command line entry point."""

import io
import json
from unittest.mock import patch

import pandas as pd
import pytest

from containerbench.config import RunSettings, Scenario
from containerbench.main import main, parse_args, prompt_scenario, resolve_scenario
from tests.conftest import FakeRuntime, ready_after


class TestScenarioSelection:
    def test_explicit_value_wins(self) -> None:
        assert resolve_scenario("alloc") is Scenario.ALLOC_HEAVY

    def test_non_interactive_defaults_to_json(self) -> None:
        assert resolve_scenario(None, stdin=io.StringIO("2\n")) is Scenario.PAYLOAD_HEAVY_JSON

    @pytest.mark.parametrize(
        "answer,expected",
        [
            ("\n", Scenario.PAYLOAD_HEAVY_JSON),
            ("1\n", Scenario.PAYLOAD_HEAVY_JSON),
            ("2\n", Scenario.ALLOC_HEAVY),
            ("banana\n", Scenario.PAYLOAD_HEAVY_JSON),
        ],
    )
    def test_prompt(self, answer: str, expected: Scenario) -> None:
        out = io.StringIO()

        assert prompt_scenario(io.StringIO(answer), out) is expected
        assert "Choose workload scenario" in out.getvalue()


class TestParseArgs:
    def test_env_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("BENCH_SCENARIO", "alloc")
        monkeypatch.setenv("BENCH_HOST_PORT", "18080")
        monkeypatch.setenv("BENCH_READINESS_TIMEOUT", "30.5")
        monkeypatch.delenv("BENCH_WARMUP_REQUESTS", raising=False)
        monkeypatch.delenv("BENCH_WORKLOAD_N", raising=False)

        args = parse_args([])

        assert args.scenario == "alloc"
        assert args.host_port == 18080
        assert args.readiness_timeout == 30.5
        assert args.warmup == 20
        assert args.n is None
        assert args.on_failure == "continue"

    def test_invalid_env_value_is_rejected_like_a_flag(self, monkeypatch, capsys) -> None:
        monkeypatch.setenv("BENCH_WARMUP_REQUESTS", "not-a-number")

        with pytest.raises(SystemExit) as excinfo:
            parse_args([])

        assert excinfo.value.code == 2
        assert "--warmup: invalid int value: 'not-a-number'" in capsys.readouterr().err

    def test_flags_override_env(self, monkeypatch) -> None:
        monkeypatch.setenv("BENCH_SCENARIO", "alloc")

        args = parse_args(["--scenario", "json", "--on-failure", "abort", "--remove-failed"])

        assert args.scenario == "json"
        assert args.on_failure == "abort"
        assert args.remove_failed


class TestMain:
    def test_dry_run_prints_plan(self, capsys) -> None:
        assert main(["--scenario", "json", "--n", "10", "--dry-run"]) == 0

        out = capsys.readouterr().out
        assert "Workload: /json?n=10" in out
        assert "native: image=jvm-optim-demo:native, flags=(native)" in out
        assert "baseline: image=jvm-optim-demo:jvm, flags=(none)" in out

    def test_invalid_scenario_exits_2(self) -> None:
        assert main(["--scenario", "cpu", "--dry-run"]) == 2

    def _run(self, argv, runtime: FakeRuntime, settings: RunSettings) -> int:
        with patch("containerbench.main.create_runtime", return_value=runtime), patch(
            "containerbench.main.requests.Session", side_effect=lambda: ready_after(0.0)
        ), patch("containerbench.main.build_settings", return_value=settings):
            return main(argv)

    def test_full_run_writes_outputs(self, tmp_path, fast_settings: RunSettings) -> None:
        runtime = FakeRuntime()
        argv = ["--scenario", "alloc", "--n", "100", "--output-dir", str(tmp_path), "--no-charts"]

        assert self._run(argv, runtime, fast_settings) == 0

        assert len(runtime.started) == 4
        results_csv = next(tmp_path.glob("results-*.csv"))
        df = pd.read_csv(results_csv)
        assert list(df["config_name"]) == ["baseline", "coops-off", "coh-on", "native"]
        assert set(df["workload_path"]) == {"/alloc?n=100"}
        payload = json.loads(next(tmp_path.glob("results-*.json")).read_text(encoding="utf-8"))
        assert payload["results"][3]["effectiveFlags"] is None
        assert next(tmp_path.glob("samples-*.csv")).exists()
        assert not list(tmp_path.glob("*.png"))

    def test_failed_config_exits_1(self, tmp_path, fast_settings: RunSettings) -> None:
        plan = tmp_path / "plan.json"
        plan.write_text(
            json.dumps(
                {
                    "configs": [
                        {"name": "ok", "image": "svc:jvm"},
                        {"name": "broken", "image": "svc:broken"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        runtime = FakeRuntime(fail_images=("svc:broken",))
        argv = ["--scenario", "json", "--n", "5", "--plan-path", str(plan), "--output-dir", str(tmp_path), "--no-charts"]

        assert self._run(argv, runtime, fast_settings) == 1

        df = pd.read_csv(next(tmp_path.glob("results-*.csv")))
        assert list(df["config_name"]) == ["ok"]

    def test_abort_keeps_partial_results(self, tmp_path, fast_settings: RunSettings) -> None:
        plan = tmp_path / "plan.json"
        plan.write_text(
            json.dumps(
                {
                    "configs": [
                        {"name": "broken", "image": "svc:broken"},
                        {"name": "never", "image": "svc:jvm"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        runtime = FakeRuntime(fail_images=("svc:broken",))
        argv = [
            "--scenario", "json", "--plan-path", str(plan), "--output-dir", str(tmp_path),
            "--no-charts", "--on-failure", "abort",
        ]

        assert self._run(argv, runtime, fast_settings) == 1

        assert runtime.started == []
        assert pd.read_csv(next(tmp_path.glob("results-*.csv"))).empty
