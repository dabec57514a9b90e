"""Scheduler settings.

Configuration is read once from the environment (prefix ``JOBSPINE_``) and
an optional ``.env`` file, validated by pydantic at startup.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first use
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** Scheduling is off until explicitly enabled
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> import os
    >>> os.environ["ENABLE_JOBS"] = "true"
    >>> SchedulerSettings().enable_jobs
    True

Tags:
    settings, configuration, pydantic, environment, jobspine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Settings for the scheduler process.

    Fields
    ──────
    enable_jobs            : Arm timers on initialize (``ENABLE_JOBS`` also accepted)
    database_path          : SQLite file for job state; None keeps state in memory
    shutdown_grace_seconds : How long stop() waits for in-flight executions
    default_log_limit      : Log rows returned when no limit is given
    log_level              : Structlog log level
    json_logs              : JSON output; None auto-detects from the TTY
    host / port            : Bind address for ``jobspine serve``
    api_prefix             : Mount point of the jobs router
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Scheduling ───────────────────────────────────────────────
    enable_jobs: bool = Field(
        default=False,
        validation_alias=AliasChoices("JOBSPINE_ENABLE_JOBS", "ENABLE_JOBS", "enable_jobs"),
        description="Arm job timers when the scheduler initializes",
    )
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)
    default_log_limit: int = Field(default=10, ge=1)

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path | None = Field(
        default=None,
        description="SQLite database for job state (None = in-memory)",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Network ──────────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api/v1"

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


@lru_cache
def get_settings() -> SchedulerSettings:
    """Return the process-wide settings, loaded once."""
    return SchedulerSettings()


__all__ = ["SchedulerSettings", "get_settings"]
