from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from .config import RunConfig, WorkloadSpec
from .errors import RunFailedError
from .executor import RunExecutor, RunResult

LOGGER = logging.getLogger("containerbench.runner")


class FailurePolicy(str, enum.Enum):
    """What the run set does after one configuration fails."""

    CONTINUE = "continue"
    ABORT = "abort"


@dataclass(frozen=True)
class RunFailure:
    config_name: str
    error: RunFailedError

    @property
    def container_id(self) -> str | None:
        return self.error.container_id


class RunSetController:
    """Runs every configuration strictly one after another, one executor each."""

    def __init__(
        self,
        configs: Sequence[RunConfig],
        workload: WorkloadSpec,
        executor_factory: Callable[[], RunExecutor],
        failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
    ) -> None:
        names = [config.name for config in configs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Configuration names must be unique: {', '.join(duplicates)}")
        self._configs = list(configs)
        self._workload = workload
        self._executor_factory = executor_factory
        self._failure_policy = failure_policy
        self.results: list[RunResult] = []
        self.failures: list[RunFailure] = []

    def run_all(self) -> list[RunResult]:
        self.results = []
        self.failures = []
        total = len(self._configs)
        for idx, config in enumerate(self._configs, start=1):
            LOGGER.info(
                "Running config %d/%d: %s (image=%s, flags=%s)",
                idx,
                total,
                config.name,
                config.image,
                config.effective_flags(),
            )
            executor = self._executor_factory()
            try:
                self.results.append(executor.execute(config, self._workload))
            except RunFailedError as exc:
                self.failures.append(RunFailure(config_name=config.name, error=exc))
                if self._failure_policy is FailurePolicy.ABORT:
                    LOGGER.error("Aborting run set after failed config %s", config.name)
                    raise
                LOGGER.error("Config %s produced no result; continuing with the next one", config.name)
        LOGGER.info("Run set finished: %d succeeded, %d failed", len(self.results), len(self.failures))
        return self.results
