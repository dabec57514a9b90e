"""Response schemas for the jobs API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from jobspine.core.models import Job, JobLog


class JobSchema(BaseModel):
    name: str
    is_enabled: bool
    status: str
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None

    @classmethod
    def from_model(cls, job: Job) -> JobSchema:
        return cls(
            name=job.name,
            is_enabled=job.is_enabled,
            status=job.status.value,
            last_run=job.last_run,
            next_run=job.next_run,
            last_error=job.last_error,
        )


class JobLogSchema(BaseModel):
    id: str
    job_name: str
    started_at: datetime
    finished_at: datetime
    status: str
    error_message: str | None = None
    duration_ms: int
    attempts: int
    trigger: str

    @classmethod
    def from_model(cls, log: JobLog) -> JobLogSchema:
        return cls(
            id=log.id,
            job_name=log.job_name,
            started_at=log.started_at,
            finished_at=log.finished_at,
            status=log.status.value,
            error_message=log.error_message,
            duration_ms=log.duration_ms,
            attempts=log.attempts,
            trigger=log.trigger.value,
        )
