"""Resilience primitives wrapped around every job execution.

- :func:`retry` re-runs transient failures with exponential backoff
- :func:`with_timeout` bounds each attempt with a deadline
- :class:`CircuitBreaker` fails fast while a dependency is down
"""

from jobspine.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    CircuitStats,
)
from jobspine.execution.retry import RetryConfig, RetryState, retry, retry_linear, with_retry
from jobspine.execution.timeout import deadline, timeout, with_timeout

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    "RetryConfig",
    "RetryState",
    "retry",
    "retry_linear",
    "with_retry",
    "deadline",
    "timeout",
    "with_timeout",
]
