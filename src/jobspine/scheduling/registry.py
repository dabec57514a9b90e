"""Job registry: the fixed table of jobs a scheduler runs.

The registry is built once at startup and never changes afterwards. Each
entry pairs a unique name with its schedule, its async handler and the
resilience policy the handler runs under.

Example:
    >>> registry = JobRegistry([
    ...     JobDefinition("backup", "0 3 * * *", run_backup, timeout_ms=600_000),
    ...     JobDefinition("ping", "every 30s", ping_upstream),
    ... ])
    >>> registry.get("backup").schedule.describe()
    '0 3 * * *'
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Any

from jobspine.core.errors import ConfigError, JobNotFoundError
from jobspine.execution.circuit_breaker import CircuitBreaker
from jobspine.execution.retry import RetryConfig
from jobspine.scheduling.triggers import Schedule, parse_schedule

JobHandler = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class JobDefinition:
    """One registered job.

    Attributes:
        name: Unique, stable identity (also the primary key of its state row)
        schedule: Schedule object, ``timedelta`` or schedule text
        handler: Zero-argument async callable doing the work
        description: Free text shown by the CLI
        retry: Retry policy for one execution
        timeout_ms: Per-attempt deadline (overrides ``retry.timeout_ms``)
        breaker: Circuit breaker guarding the job's dependency
    """

    name: str
    schedule: Schedule
    handler: JobHandler
    description: str = ""
    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout_ms: float | None = None
    breaker: CircuitBreaker | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigError("Job name must not be empty")
        if not callable(self.handler):
            raise ConfigError(f"Handler for job '{self.name}' is not callable")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ConfigError(f"timeout_ms for job '{self.name}' must be positive")
        if isinstance(self.schedule, (str, timedelta)):
            object.__setattr__(self, "schedule", parse_schedule(self.schedule))

    @property
    def attempt_timeout_ms(self) -> float | None:
        """Deadline applied to each attempt."""
        if self.timeout_ms is not None:
            return self.timeout_ms
        return self.retry.timeout_ms


class JobRegistry:
    """Immutable name → definition table, iterated in registration order."""

    def __init__(self, definitions: Iterable[JobDefinition] = ()):
        jobs: dict[str, JobDefinition] = {}
        for definition in definitions:
            if definition.name in jobs:
                raise ConfigError(f"Duplicate job name: {definition.name}")
            jobs[definition.name] = definition
        self._jobs = MappingProxyType(jobs)

    def get(self, name: str) -> JobDefinition:
        """Look up a definition.

        Raises:
            JobNotFoundError: If ``name`` is not registered
        """
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotFoundError(name) from None

    def names(self) -> list[str]:
        return list(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __iter__(self) -> Iterator[JobDefinition]:
        return iter(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    def __repr__(self) -> str:
        return f"JobRegistry({self.names()!r})"


__all__ = ["JobDefinition", "JobHandler", "JobRegistry"]
