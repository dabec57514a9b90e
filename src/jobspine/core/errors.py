"""
Structured error types for jobspine.

Every error raised by the scheduler, its resilience primitives and its
stores extends :class:`JobspineError`, which carries a category, an explicit
``retryable`` flag, optional ``retry_after`` guidance, structured context and
a chained cause. The retry layer reads ``retryable`` through
:func:`is_retryable`; the HTTP layer maps the error type to a status code.

Manifesto:
    - **Typed Error Hierarchy:** not-found, conflict, transient, terminal and
      infrastructure failures are different types, not different messages
    - **Explicit Retry Semantics:** each error knows if it is retryable
    - **Rich Context:** errors carry the job name and other metadata
    - **Error Chaining:** the original exception is preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      JobspineError                           │
        │  (category, retryable, retry_after, context, cause)          │
        ├─────────────────────────────────────────────────────────────┤
        │  TransientError      ConfigError        OrchestrationError   │
        │  (retryable=True)    (CONFIG)           (ORCHESTRATION)      │
        │       │                                      │               │
        │  NetworkError                         JobNotFoundError       │
        │  TimeoutExpired                       JobAlreadyRunningError │
        │                                                               │
        │  DatabaseError       CircuitOpenError                        │
        │  (DATABASE)          (DEPENDENCY, never retryable)           │
        │       │                                                       │
        │  StoreError                                                   │
        └─────────────────────────────────────────────────────────────┘

Tags:
    error-handling, exception-hierarchy, retry-logic, jobspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import asyncio
import builtins
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"              # Connection, timeout, DNS
    DATABASE = "DATABASE"            # Job store unavailable, query failure

    # Downstream protection
    DEPENDENCY = "DEPENDENCY"        # Circuit breaker rejected the call

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"                # Bad registry, bad schedule, missing handler

    # Application errors
    ORCHESTRATION = "ORCHESTRATION"  # Scheduler control errors
    JOB = "JOB"                      # Job body failures

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        job_name: Job the error belongs to
        trigger: What started the execution (``schedule`` or ``manual``)
        attempt: Attempt number inside a retry loop
        dependency: Name of the guarded downstream dependency
        metadata: Additional key-value pairs
    """

    job_name: str | None = None
    trigger: str | None = None
    attempt: int | None = None
    dependency: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_name", "trigger", "attempt", "dependency"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobspineError(Exception):
    """
    Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    the common case needs only a message.

    Examples:
        >>> error = JobspineError("Something went wrong")
        >>> error.retryable
        False
        >>> error.with_context(job_name="backup").context.job_name
        'backup'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobspineError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Usually Retryable)
# =============================================================================


class TransientError(JobspineError):
    """
    Temporary error that may succeed on retry.

    Raise it from a job body (or from a client the job body calls) when the
    same call, made again after a delay, has a reasonable chance of working.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Network-related transient error."""


class TimeoutExpired(TransientError, builtins.TimeoutError):
    """
    Raised when an operation exceeds its deadline.

    Also a builtin ``TimeoutError`` so generic handlers still catch it.

    Attributes:
        label: Name of the operation that timed out
        timeout_ms: The deadline that was exceeded
    """

    def __init__(self, label: str = "operation", timeout_ms: float = 0, **kwargs: Any):
        self.label = label
        self.timeout_ms = timeout_ms
        super().__init__(f"Operation '{label}' timed out after {timeout_ms:g}ms", **kwargs)


# =============================================================================
# DEPENDENCY PROTECTION
# =============================================================================


class CircuitOpenError(JobspineError):
    """Raised when a circuit breaker is open and rejecting calls."""

    default_category = ErrorCategory.DEPENDENCY
    default_retryable = False

    def __init__(self, message: str = "Circuit breaker is open", *, breaker: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.breaker = breaker
        if breaker is not None:
            self.context.dependency = breaker


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(JobspineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidScheduleError(ConfigError):
    """A schedule expression could not be parsed."""

    def __init__(self, expression: str, reason: str | None = None):
        self.expression = expression
        message = f"Invalid schedule expression: {expression!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(JobspineError):
    """Scheduler control error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class JobNotFoundError(OrchestrationError):
    """Job name is not in the registry."""

    def __init__(self, name: str):
        self.job_name = name
        super().__init__(f"Job not found: {name}", context=ErrorContext(job_name=name))


class JobAlreadyRunningError(OrchestrationError):
    """A job was triggered while an execution of it is still in flight."""

    def __init__(self, name: str):
        self.job_name = name
        super().__init__(f"Job already running: {name}", context=ErrorContext(job_name=name))


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class DatabaseError(JobspineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class StoreError(DatabaseError):
    """The job store could not read or write a record."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable.

    Jobspine errors answer for themselves. Of the builtin exceptions only
    timeouts and connection failures count as transient.
    """
    if isinstance(error, JobspineError):
        return error.retryable
    retryable_types = (
        builtins.TimeoutError,
        asyncio.TimeoutError,
        ConnectionError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, JobspineError):
        return error.category
    if isinstance(error, (ConnectionError, builtins.TimeoutError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


def error_message(error: BaseException) -> str:
    """Return a non-empty, human readable message for an exception."""
    text = str(error)
    if not text:
        return error.__class__.__name__
    return text


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "JobspineError",
    "TransientError",
    "NetworkError",
    "TimeoutExpired",
    "CircuitOpenError",
    "ConfigError",
    "InvalidScheduleError",
    "OrchestrationError",
    "JobNotFoundError",
    "JobAlreadyRunningError",
    "DatabaseError",
    "StoreError",
    "is_retryable",
    "categorize_error",
    "error_message",
]
