"""
Jobs router - inspect and control the scheduler over HTTP.

GET    /jobs
GET    /jobs/health
POST   /jobs/{name}/run
POST   /jobs/{name}/enable
POST   /jobs/{name}/disable
GET    /jobs/{name}/logs?limit=N
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Path, Query

from jobspine.api.errors import error_response
from jobspine.api.schemas import JobLogSchema, JobSchema
from jobspine.core.errors import JobspineError
from jobspine.scheduling.engine import JobScheduler


def create_jobs_router(scheduler: JobScheduler, *, default_log_limit: int = 10) -> APIRouter:
    """Build the jobs router bound to ``scheduler``.

    Errors are rendered inside each endpoint so the router behaves the
    same when mounted into an application that has its own handlers.
    """
    router = APIRouter(prefix="/jobs")

    @router.get("", response_model=list[JobSchema])
    async def list_jobs():
        """Every registered job with its current state and next run."""
        try:
            jobs = await scheduler.get_job_statuses()
        except JobspineError as e:
            return error_response(e)
        return [JobSchema.from_model(job) for job in jobs]

    @router.get("/health")
    async def jobs_health() -> dict[str, Any]:
        """Scheduler engine health and counters."""
        return scheduler.health().to_dict()

    @router.post("/{name}/run", response_model=JobLogSchema)
    async def run_job(name: str = Path(..., description="Job name")):
        """Run a job now and return its execution record.

        Raises:
            404: Job is not registered
            409: Job is already running
        """
        try:
            log = await scheduler.run_job_now(name)
        except JobspineError as e:
            return error_response(e)
        return JobLogSchema.from_model(log)

    @router.post("/{name}/enable", response_model=JobSchema)
    async def enable_job(name: str = Path(..., description="Job name")):
        try:
            job = await scheduler.enable_job(name)
        except JobspineError as e:
            return error_response(e)
        return JobSchema.from_model(job)

    @router.post("/{name}/disable", response_model=JobSchema)
    async def disable_job(name: str = Path(..., description="Job name")):
        try:
            job = await scheduler.disable_job(name)
        except JobspineError as e:
            return error_response(e)
        return JobSchema.from_model(job)

    @router.get("/{name}/logs", response_model=list[JobLogSchema])
    async def job_logs(
        name: str = Path(..., description="Job name"),
        limit: int = Query(default_log_limit, ge=1, le=1000),
    ):
        """Recent executions of a job, newest first."""
        try:
            logs = await scheduler.get_job_logs(name, limit)
        except JobspineError as e:
            return error_response(e)
        return [JobLogSchema.from_model(log) for log in logs]

    return router


__all__ = ["create_jobs_router"]
