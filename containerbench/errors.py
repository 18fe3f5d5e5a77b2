from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for failures raised by the benchmark harness."""


class RuntimeCommandError(BenchmarkError):
    """Raised when a container runtime command exits with a nonzero status."""

    def __init__(self, cmd: list[str], exit_code: int, stdout: str, stderr: str) -> None:
        self.cmd = list(cmd)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"{' '.join(self.cmd)} failed (exit {exit_code}): {stderr.strip() or stdout.strip()}"
        )


class ContainerStartError(BenchmarkError):
    """Raised when a container could not be started or returned no identifier."""


class CommandTimeoutError(BenchmarkError):
    """Raised when a container runtime command exceeds its wall-clock timeout."""

    def __init__(self, cmd: list[str], timeout_s: float) -> None:
        self.cmd = list(cmd)
        self.timeout_s = timeout_s
        super().__init__(f"Command timed out after {timeout_s:.1f}s: {' '.join(self.cmd)}")


class ReadinessTimeoutError(BenchmarkError):
    """Raised when no readiness probe succeeded within the total budget."""


class MeasurementError(BenchmarkError):
    """Raised when a workload request does not answer with HTTP 200."""


class StatsFormatError(BenchmarkError, ValueError):
    """Raised when a resource snapshot line cannot be parsed."""


class RunFailedError(BenchmarkError):
    """A single configuration's run failed; the cause is chained."""

    def __init__(
        self,
        config_name: str,
        cause: BaseException,
        container_id: str | None = None,
        logs: str | None = None,
    ) -> None:
        self.config_name = config_name
        self.cause = cause
        self.container_id = container_id
        self.logs = logs
        super().__init__(f"Run {config_name!r} failed: {cause}")
