"""Core building blocks: errors, logging, settings, models and timestamps."""

from jobspine.core.errors import (
    CircuitOpenError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobspineError,
    StoreError,
    TimeoutExpired,
    TransientError,
    is_retryable,
)
from jobspine.core.models import Job, JobLog, JobStatus, LogStatus, Trigger

__all__ = [
    "CircuitOpenError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "JobAlreadyRunningError",
    "JobNotFoundError",
    "JobspineError",
    "StoreError",
    "TimeoutExpired",
    "TransientError",
    "is_retryable",
    "Job",
    "JobLog",
    "JobStatus",
    "LogStatus",
    "Trigger",
]
