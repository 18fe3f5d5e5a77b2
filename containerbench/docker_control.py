from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol

import docker
import requests
from docker.errors import DockerException

from .errors import CommandTimeoutError, ContainerStartError, RuntimeCommandError
from .stats import STATS_FORMAT

LOGGER = logging.getLogger("containerbench.docker")


@dataclass(frozen=True)
class ContainerSpec:
    image: str
    host_port: int
    container_port: int
    cpus: str
    memory: str
    environment: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str


class ContainerRuntime(Protocol):
    """Lifecycle and stats commands the run executor issues against one container."""

    def run(self, spec: ContainerSpec, timeout_s: float) -> str: ...

    def stats_line(self, container_id: str, timeout_s: float) -> str: ...

    def logs_tail(self, container_id: str, lines: int, timeout_s: float) -> str: ...

    def stop(self, container_id: str, timeout_s: float) -> None: ...

    def remove(self, container_id: str, timeout_s: float) -> None: ...


class DockerCli:
    """Drive containers through the ``docker`` command line, one subprocess per call."""

    def __init__(self, binary: str = "docker") -> None:
        self._binary = binary

    def run(self, spec: ContainerSpec, timeout_s: float) -> str:
        cmd = [
            self._binary,
            "run",
            "-d",
            "-p",
            f"{spec.host_port}:{spec.container_port}",
            "--cpus",
            spec.cpus,
            "--memory",
            spec.memory,
        ]
        for key, value in spec.environment.items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.append(spec.image)

        res = self._exec(cmd, timeout_s)
        if res.exit_code != 0:
            raise ContainerStartError(
                f"docker run failed (exit {res.exit_code})\n"
                f"cmd: {' '.join(cmd)}\n"
                f"stderr: {res.stderr}\n"
                f"stdout: {res.stdout}"
            )
        container_id = res.stdout.strip()
        if not container_id:
            raise ContainerStartError(
                f"docker run returned empty container id. stdout={res.stdout!r}, stderr={res.stderr!r}"
            )
        return container_id

    def stats_line(self, container_id: str, timeout_s: float) -> str:
        cmd = [self._binary, "stats", "--no-stream", "--format", STATS_FORMAT, container_id]
        res = self._exec(cmd, timeout_s)
        if res.exit_code != 0:
            raise RuntimeCommandError(cmd, res.exit_code, res.stdout, res.stderr)
        return res.stdout.strip()

    def logs_tail(self, container_id: str, lines: int, timeout_s: float) -> str:
        cmd = [self._binary, "logs", "--tail", str(lines), container_id]
        res = self._exec(cmd, timeout_s)
        if res.exit_code != 0:
            raise RuntimeCommandError(cmd, res.exit_code, res.stdout, res.stderr)
        # docker logs replays the container's stderr on our stderr
        return res.stdout + res.stderr

    def stop(self, container_id: str, timeout_s: float) -> None:
        cmd = [self._binary, "stop", container_id]
        res = self._exec(cmd, timeout_s)
        if res.exit_code != 0:
            raise RuntimeCommandError(cmd, res.exit_code, res.stdout, res.stderr)

    def remove(self, container_id: str, timeout_s: float) -> None:
        cmd = [self._binary, "rm", "-f", container_id]
        res = self._exec(cmd, timeout_s)
        if res.exit_code != 0:
            raise RuntimeCommandError(cmd, res.exit_code, res.stdout, res.stderr)

    def _exec(self, cmd: List[str], timeout_s: float) -> ExecResult:
        LOGGER.debug("exec: %s", " ".join(cmd))
        try:
            # subprocess.run kills the child before re-raising TimeoutExpired
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(cmd, timeout_s) from exc
        except OSError as exc:
            raise RuntimeCommandError(cmd, -1, "", str(exc)) from exc
        return ExecResult(exit_code=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


class DockerSdkRuntime:
    """Drive containers through the Docker Engine API using the docker SDK.

    The SDK only knows a client-wide request timeout, so every call swaps the
    caller's bound onto the low-level client for its duration.
    """

    def __init__(self, client: docker.DockerClient | None = None, api_timeout_s: int = 60) -> None:
        self._client = client or docker.from_env(timeout=api_timeout_s)
        self._lock = threading.Lock()

    def run(self, spec: ContainerSpec, timeout_s: float) -> str:
        cmd = ["run", spec.image]
        try:
            container = self._call(
                cmd,
                timeout_s,
                self._client.containers.run,
                spec.image,
                detach=True,
                ports={f"{spec.container_port}/tcp": spec.host_port},
                nano_cpus=int(float(spec.cpus) * 1_000_000_000),
                mem_limit=spec.memory,
                environment=dict(spec.environment) or None,
            )
        except (DockerException, requests.RequestException) as exc:
            raise ContainerStartError(f"Failed to start container from {spec.image}: {exc}") from exc
        if not container.id:
            raise ContainerStartError(f"Docker API returned empty container id for {spec.image}")
        return container.id

    def stats_line(self, container_id: str, timeout_s: float) -> str:
        cmd = ["stats", container_id]
        try:
            raw = self._call(cmd, timeout_s, self._client.api.stats, container_id, stream=False)
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeCommandError(cmd, -1, "", str(exc)) from exc
        return format_stats_line(raw)

    def logs_tail(self, container_id: str, lines: int, timeout_s: float) -> str:
        cmd = ["logs", container_id]
        try:
            data = self._call(cmd, timeout_s, self._client.api.logs, container_id, tail=lines)
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeCommandError(cmd, -1, "", str(exc)) from exc
        return data.decode("utf-8", errors="replace")

    def stop(self, container_id: str, timeout_s: float) -> None:
        cmd = ["stop", container_id]
        # The SDK adds the grace period to the request timeout for stop.
        grace_s = max(int(timeout_s) // 2, 1)
        try:
            self._call(cmd, timeout_s - grace_s, self._client.api.stop, container_id, timeout=grace_s)
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeCommandError(cmd, -1, "", str(exc)) from exc

    def remove(self, container_id: str, timeout_s: float) -> None:
        cmd = ["rm", container_id]
        try:
            self._call(cmd, timeout_s, self._client.api.remove_container, container_id, force=True)
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeCommandError(cmd, -1, "", str(exc)) from exc

    def _call(self, cmd: List[str], timeout_s: float, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        api = self._client.api
        with self._lock:
            previous = api.timeout
            api.timeout = max(timeout_s, 0.1)
            try:
                return func(*args, **kwargs)
            except requests.Timeout as exc:
                raise CommandTimeoutError(cmd, timeout_s) from exc
            finally:
                api.timeout = previous


def create_runtime(kind: str, binary: str = "docker") -> ContainerRuntime:
    if kind == "cli":
        return DockerCli(binary=binary)
    if kind == "sdk":
        return DockerSdkRuntime()
    raise ValueError(f"Unknown container runtime: {kind!r} (use: cli|sdk)")


def format_stats_line(raw: Dict[str, Any]) -> str:
    """Render an Engine API stats payload the way ``docker stats --format`` prints it."""
    cpu_stats = raw.get("cpu_stats") or {}
    precpu_stats = raw.get("precpu_stats") or {}
    cpu_usage = cpu_stats.get("cpu_usage") or {}
    precpu_usage = precpu_stats.get("cpu_usage") or {}

    cpu_delta = cpu_usage.get("total_usage", 0) - precpu_usage.get("total_usage", 0)
    system_delta = cpu_stats.get("system_cpu_usage", 0) - precpu_stats.get("system_cpu_usage", 0)
    online_cpus = cpu_stats.get("online_cpus") or len(cpu_usage.get("percpu_usage") or []) or 1
    cpu_percent = 0.0
    if cpu_delta > 0 and system_delta > 0:
        cpu_percent = cpu_delta / system_delta * online_cpus * 100.0

    memory = raw.get("memory_stats") or {}
    mem_detail = memory.get("stats") or {}
    # cgroup v2 reports inactive_file, cgroup v1 total_inactive_file
    cache = mem_detail.get("inactive_file", mem_detail.get("total_inactive_file", 0))
    mem_usage = max(memory.get("usage", 0) - cache, 0)
    mem_limit = memory.get("limit", 0)
    mem_percent = mem_usage / mem_limit * 100.0 if mem_limit else 0.0

    networks = raw.get("networks") or {}
    net_rx = sum(net.get("rx_bytes", 0) for net in networks.values())
    net_tx = sum(net.get("tx_bytes", 0) for net in networks.values())

    block_read = 0
    block_write = 0
    for entry in (raw.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []:
        op = str(entry.get("op", "")).lower()
        if op == "read":
            block_read += entry.get("value", 0)
        elif op == "write":
            block_write += entry.get("value", 0)

    pids = (raw.get("pids_stats") or {}).get("current", 0)

    return "|".join(
        [
            f"{cpu_percent:.2f}%",
            f"{binary_size(mem_usage)} / {binary_size(mem_limit)}",
            f"{mem_percent:.2f}%",
            f"{decimal_size(net_rx)} / {decimal_size(net_tx)}",
            f"{decimal_size(block_read)} / {decimal_size(block_write)}",
            str(pids),
        ]
    )


_DECIMAL_UNITS = ("B", "kB", "MB", "GB", "TB", "PB")
_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


def decimal_size(size: float) -> str:
    return _human_size(size, 1000.0, _DECIMAL_UNITS)


def binary_size(size: float) -> str:
    return _human_size(size, 1024.0, _BINARY_UNITS)


def _human_size(size: float, base: float, units: tuple[str, ...]) -> str:
    value = float(size)
    idx = 0
    while value >= base and idx < len(units) - 1:
        value /= base
        idx += 1
    return f"{value:.4g}{units[idx]}"
