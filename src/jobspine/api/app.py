"""
FastAPI application factory.

``create_app()`` wires the jobs router, error handlers and the lifespan
that starts and stops the scheduler into a single ``FastAPI`` instance.

Tags:
    jobspine, api, app-factory, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jobspine import __version__
from jobspine.api.errors import jobspine_error_handler, unhandled_exception_handler
from jobspine.api.router import create_jobs_router
from jobspine.core.errors import JobspineError
from jobspine.core.logging import get_logger
from jobspine.core.settings import SchedulerSettings, get_settings
from jobspine.scheduling.engine import JobScheduler


def create_app(
    scheduler: JobScheduler,
    settings: SchedulerSettings | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    The scheduler is initialized when the application starts and stopped
    when it shuts down.
    """
    settings = settings or get_settings()
    log = get_logger("jobspine.api")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        log.info("jobspine API starting", version=__version__)
        await scheduler.initialize()
        try:
            yield
        finally:
            await scheduler.stop()
            log.info("jobspine API shutting down")

    app = FastAPI(
        title="jobspine",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.scheduler = scheduler

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(JobspineError, jobspine_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    app.include_router(
        create_jobs_router(scheduler, default_log_limit=settings.default_log_limit),
        prefix=settings.api_prefix,
        tags=["jobs"],
    )

    # Liveness at root level for container healthchecks
    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, object]:
        return {"status": "ok", "scheduler_running": scheduler.is_running}

    return app


__all__ = ["create_app"]
