from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

NATIVE_TAG_SUFFIX = ":native"


class Scenario(str, enum.Enum):
    """Synthetic endpoint exercised by the workload."""

    PAYLOAD_HEAVY_JSON = "json"
    ALLOC_HEAVY = "alloc"

    @property
    def path(self) -> str:
        return f"/{self.value}"

    @property
    def default_n(self) -> int:
        return SCENARIO_DEFAULT_N[self]

    @classmethod
    def parse(cls, raw: str) -> "Scenario":
        key = raw.strip().lower()
        try:
            return SCENARIO_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown scenario: {raw!r} (use: json|alloc)") from None


SCENARIO_DEFAULT_N: dict[Scenario, int] = {
    Scenario.PAYLOAD_HEAVY_JSON: 200_000,
    Scenario.ALLOC_HEAVY: 10_000_000,
}

SCENARIO_ALIASES: dict[str, Scenario] = {
    "json": Scenario.PAYLOAD_HEAVY_JSON,
    "/json": Scenario.PAYLOAD_HEAVY_JSON,
    "payload": Scenario.PAYLOAD_HEAVY_JSON,
    "payload-heavy": Scenario.PAYLOAD_HEAVY_JSON,
    "payload-heavy-json": Scenario.PAYLOAD_HEAVY_JSON,
    "alloc": Scenario.ALLOC_HEAVY,
    "/alloc": Scenario.ALLOC_HEAVY,
    "alloc-heavy": Scenario.ALLOC_HEAVY,
    "alloc-heavy-ok": Scenario.ALLOC_HEAVY,
    "ok": Scenario.ALLOC_HEAVY,
}


@dataclass(frozen=True)
class RunConfig:
    """One named variant under test: an image plus optional runtime flags."""

    name: str
    image: str
    flags: tuple[str, ...] = ()
    native: bool | None = None

    def __post_init__(self) -> None:
        # Accept lists from callers and plan files but store an immutable tuple.
        object.__setattr__(self, "flags", tuple(self.flags))

    @property
    def is_native(self) -> bool:
        if self.native is not None:
            return self.native
        return self.image.endswith(NATIVE_TAG_SUFFIX)

    def effective_flags(self) -> str | None:
        """Flags string injected into the container, or None when not applicable."""
        if self.is_native:
            return None
        return " ".join(flag.strip() for flag in self.flags if flag.strip())


@dataclass(frozen=True)
class WorkloadSpec:
    """Endpoint and intensity shared by every configuration of a run set."""

    scenario: Scenario
    n: int

    def __post_init__(self) -> None:
        if self.n <= 0:
            raise ValueError("WorkloadSpec n must be > 0")

    @property
    def path(self) -> str:
        return f"{self.scenario.path}?n={self.n}"

    @classmethod
    def for_scenario(cls, scenario: Scenario, n: int | None = None) -> "WorkloadSpec":
        return cls(scenario=scenario, n=scenario.default_n if n is None else n)


@dataclass(frozen=True)
class RunSettings:
    """Knobs applied uniformly to every run of an invocation."""

    host: str = "localhost"
    host_port: int = 8080
    container_port: int = 8080
    cpus: str = "1"
    memory: str = "768m"
    flags_env_var: str = "JAVA_TOOL_OPTIONS"

    readiness_timeout_s: float = 120.0
    readiness_path: str = "/actuator/health/readiness"
    health_path: str = "/actuator/health"
    poll_interval_s: float = 0.05
    probe_timeout_s: float = 2.0

    request_timeout_s: float = 5.0
    warmup_requests: int = 20
    measure_requests: int = 100

    idle_samples: int = 3
    load_samples: int = 10
    post_samples: int = 3
    sample_interval_s: float = 1.0
    sampler_join_timeout_s: float = 15.0

    log_tail_lines: int = 200
    log_snippet_chars: int = 2000
    start_timeout_s: float = 30.0
    command_timeout_s: float = 10.0
    keep_failed_containers: bool = True

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.host_port}"


@dataclass
class BenchmarkPlan:
    """Ordered list of configurations the harness will execute."""

    configs: list[RunConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for config in self.configs:
            if config.name in seen:
                raise ValueError(f"Duplicate configuration name in plan: {config.name!r}")
            seen.add(config.name)

    def __iter__(self) -> Iterator[RunConfig]:
        return iter(self.configs)

    def __len__(self) -> int:
        return len(self.configs)


def default_benchmark_plan() -> BenchmarkPlan:
    """Return the default set of JVM flag variants plus the native image."""

    jvm_image = "jvm-optim-demo:jvm"
    native_image = "jvm-optim-demo:native"
    return BenchmarkPlan(
        configs=[
            RunConfig(name="baseline", image=jvm_image),
            RunConfig(name="coops-off", image=jvm_image, flags=("-XX:-UseCompressedOops",)),
            RunConfig(
                name="coh-on",
                image=jvm_image,
                flags=("-XX:+UnlockExperimentalVMOptions", "-XX:+UseCompactObjectHeaders"),
            ),
            RunConfig(name="native", image=native_image),
        ]
    )


def load_plan(path: str | Path | None) -> BenchmarkPlan:
    if not path:
        return default_benchmark_plan()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return plan_from_dict(data)


def plan_from_dict(data: dict) -> BenchmarkPlan:
    entries: Sequence[dict] = data.get("configs") or []
    if not entries:
        raise ValueError("Benchmark plan must contain at least one entry under 'configs'")
    configs = []
    for entry in entries:
        try:
            name = entry["name"]
            image = entry["image"]
        except KeyError as exc:
            raise ValueError(f"Plan entry is missing required key {exc.args[0]!r}: {entry}") from exc
        flags = entry.get("flags") or []
        if isinstance(flags, str):
            flags = flags.split()
        configs.append(RunConfig(name=name, image=image, flags=tuple(flags), native=entry.get("native")))
    return BenchmarkPlan(configs=configs)
