"""Job state models.

Manifesto:
    The scheduler, its stores, the HTTP router and the CLI all pass the
    same two records around: the per-job state row and the append-only
    execution log row. They are plain dataclasses so each store maps
    them to its own storage and each surface renders them with
    ``to_dict()``.

Tags:
    jobspine, models, scheduling, dataclasses

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from jobspine.core.timestamps import to_iso8601, utc_now


class JobStatus(str, Enum):
    """Lifecycle status of a job row."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LogStatus(str, Enum):
    """Final status of one execution."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Trigger(str, Enum):
    """What started an execution."""

    SCHEDULE = "schedule"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


@dataclass
class Job:
    """Persistent state of one registered job (``jobs``)."""

    name: str
    is_enabled: bool = True
    status: JobStatus = JobStatus.IDLE
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def evolve(self, **changes: Any) -> Job:
        """Return a copy with ``changes`` applied and ``updated_at`` bumped."""
        changes.setdefault("updated_at", utc_now())
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_enabled": self.is_enabled,
            "status": self.status.value,
            "last_run": to_iso8601(self.last_run),
            "next_run": to_iso8601(self.next_run),
            "last_error": self.last_error,
        }


# ---------------------------------------------------------------------------
# job_logs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JobLog:
    """One execution of a job (``job_logs``). Never mutated once written."""

    id: str
    job_name: str
    started_at: datetime
    finished_at: datetime
    status: LogStatus
    error_message: str | None = None
    duration_ms: int = 0
    attempts: int = 1
    trigger: Trigger = Trigger.SCHEDULE

    @property
    def succeeded(self) -> bool:
        return self.status == LogStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_name": self.job_name,
            "started_at": to_iso8601(self.started_at),
            "finished_at": to_iso8601(self.finished_at),
            "status": self.status.value,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
            "trigger": self.trigger.value,
        }


__all__ = [
    "Job",
    "JobLog",
    "JobStatus",
    "LogStatus",
    "Trigger",
]
