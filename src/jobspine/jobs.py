"""The backend's built-in job catalogue.

The job set is fixed: schedules, descriptions and resilience policies live
here, while the bodies are supplied by the application, keyed by job name.

Example:
    >>> registry = build_default_registry({
    ...     "weekly-summary": send_weekly_summaries,
    ...     "invoice-reminder": send_invoice_reminders,
    ...     "cleanup": archive_old_logs,
    ...     "backup": create_backup,
    ...     "analytics-aggregation": aggregate_analytics,
    ... })
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from jobspine.core.errors import ConfigError
from jobspine.execution.circuit_breaker import CircuitBreakerRegistry
from jobspine.execution.retry import RetryConfig
from jobspine.scheduling.registry import JobDefinition, JobHandler, JobRegistry
from jobspine.scheduling.triggers import CronSchedule


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    cron: str
    description: str
    timeout_ms: float | None = None
    dependency: str | None = None


# Jobs that send mail share the "notifications" breaker
DEFAULT_JOBS: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        "weekly-summary",
        "0 8 * * 1",
        "Calculate and send weekly earnings summaries",
        timeout_ms=10 * 60_000,
        dependency="notifications",
    ),
    CatalogEntry(
        "invoice-reminder",
        "0 9 * * *",
        "Send invoice payment reminders",
        timeout_ms=10 * 60_000,
        dependency="notifications",
    ),
    CatalogEntry(
        "cleanup",
        "0 2 * * 0",
        "Clean up old logs and archive data",
        timeout_ms=30 * 60_000,
    ),
    CatalogEntry(
        "backup",
        "0 3 * * *",
        "Create database backups",
        timeout_ms=60 * 60_000,
    ),
    CatalogEntry(
        "analytics-aggregation",
        "0 0 * * *",
        "Aggregate daily analytics and update dashboard cache",
        timeout_ms=30 * 60_000,
    ),
)


def build_default_registry(
    handlers: Mapping[str, JobHandler],
    *,
    breakers: CircuitBreakerRegistry | None = None,
    retry: RetryConfig | None = None,
    timezone: str = "UTC",
) -> JobRegistry:
    """Pair the catalogue with the application's handlers.

    Args:
        handlers: Async callables keyed by job name, one per catalogue entry
        breakers: Registry the shared dependency breakers are taken from
            (a private one is created when omitted)
        retry: Retry policy for every job (default: ``RetryConfig()``)
        timezone: Timezone the cron expressions are evaluated in

    Raises:
        ConfigError: If a catalogue job has no handler, or a handler is
            given for a name that is not in the catalogue
    """
    known = {entry.name for entry in DEFAULT_JOBS}
    unknown = sorted(set(handlers) - known)
    if unknown:
        raise ConfigError(f"Handlers given for unknown jobs: {', '.join(unknown)}")
    missing = [entry.name for entry in DEFAULT_JOBS if entry.name not in handlers]
    if missing:
        raise ConfigError(f"No handler for jobs: {', '.join(missing)}")

    breakers = breakers or CircuitBreakerRegistry()
    retry = retry or RetryConfig()

    return JobRegistry(
        JobDefinition(
            name=entry.name,
            schedule=CronSchedule(entry.cron, timezone=timezone),
            handler=handlers[entry.name],
            description=entry.description,
            retry=retry,
            timeout_ms=entry.timeout_ms,
            breaker=breakers.get_or_create(entry.dependency) if entry.dependency else None,
        )
        for entry in DEFAULT_JOBS
    )


__all__ = ["CatalogEntry", "DEFAULT_JOBS", "build_default_registry"]
