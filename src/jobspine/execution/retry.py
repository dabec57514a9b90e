"""Retry with exponential backoff, jitter, and configurable policies.

Every job execution runs through :func:`retry`. A transient failure is
retried after a growing delay; a terminal failure (anything the policy's
``should_retry`` rejects) is re-raised immediately, unchanged.

Example:
    >>> from jobspine.execution.retry import RetryConfig, retry
    >>>
    >>> config = RetryConfig(max_attempts=5, delay_ms=200)
    >>> for attempt in range(1, 5):
    ...     print(f"Retry {attempt}: wait {config.next_delay_ms(attempt):.0f}ms")
    >>> result = await retry(lambda: fetch_rates(), config)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, TypeVar

from jobspine.core.errors import is_retryable
from jobspine.core.logging import get_logger
from jobspine.core.timestamps import utc_now
from jobspine.execution.timeout import with_timeout

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy.

    Delay before retry *n* (1-based) is
    ``min(delay_ms * backoff_multiplier ** (n - 1), max_delay_ms)`` plus up
    to ``jitter`` of that delay added at random.

    Attributes:
        max_attempts: Total attempts including the first one
        delay_ms: Delay before the first retry
        backoff_multiplier: Growth factor between consecutive delays
        max_delay_ms: Cap on any single delay
        timeout_ms: Per-attempt deadline (None = no deadline)
        jitter: Random extra delay as a fraction of the delay (0.0-1.0)
        should_retry: Decides if an error is worth another attempt
        on_retry: Called with (error, attempt) before each retry sleep
    """

    max_attempts: int = 3
    delay_ms: float = 1000
    backoff_multiplier: float = 2
    max_delay_ms: float = 30000
    timeout_ms: float | None = None
    jitter: float = 0.0
    should_retry: Callable[[BaseException], bool] = is_retryable
    on_retry: Callable[[BaseException, int], None] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0 and 1, got {self.jitter}")

    def next_delay_ms(self, attempt: int) -> float:
        """Delay in milliseconds before retry number ``attempt`` (1-based)."""
        delay = min(
            self.delay_ms * (self.backoff_multiplier ** (attempt - 1)),
            self.max_delay_ms,
        )
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay


@dataclass
class RetryState:
    """Accounting for one :func:`retry` call.

    Pass an instance to :func:`retry` to learn how many attempts were made
    without wrapping the operation yourself.
    """

    attempts: int = field(default=0, init=False)
    last_error: BaseException | None = field(default=None, init=False)
    errors: list[tuple[int, BaseException, datetime]] = field(default_factory=list, init=False)
    started_at: datetime = field(default_factory=utc_now, init=False)

    def record_failure(self, error: BaseException) -> None:
        self.errors.append((self.attempts, error, utc_now()))
        self.last_error = error

    @property
    def elapsed_seconds(self) -> float:
        """Total elapsed time since the first attempt."""
        return (utc_now() - self.started_at).total_seconds()


async def retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    state: RetryState | None = None,
    label: str = "operation",
    **overrides: Any,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        config: Retry policy (default: ``RetryConfig()``)
        state: Optional accounting object updated as attempts are made
        label: Operation name used in logs and timeout errors
        **overrides: Field overrides applied on top of ``config``

    Returns:
        Result of the first successful attempt

    Raises:
        The last error, unchanged, once attempts are exhausted or
        ``should_retry`` rejects it.
    """
    config = config or RetryConfig()
    if overrides:
        config = replace(config, **overrides)
    state = state if state is not None else RetryState()

    while True:
        state.attempts += 1
        try:
            if config.timeout_ms is not None:
                return await with_timeout(operation(), config.timeout_ms, label)
            return await operation()
        except Exception as e:
            state.record_failure(e)

            if state.attempts >= config.max_attempts or not config.should_retry(e):
                raise

            delay_ms = config.next_delay_ms(state.attempts)
            logger.warning(
                "retry_scheduled",
                operation=label,
                attempt=state.attempts,
                max_attempts=config.max_attempts,
                next_retry_in_ms=round(delay_ms, 1),
                error=str(e) or e.__class__.__name__,
            )

            if config.on_retry:
                config.on_retry(e, state.attempts)

            await asyncio.sleep(delay_ms / 1000)


async def retry_linear(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay_ms: float = 1000,
    **overrides: Any,
) -> T:
    """Retry with a constant delay between attempts."""
    config = RetryConfig(max_attempts=max_attempts, delay_ms=delay_ms, backoff_multiplier=1)
    return await retry(operation, config, **overrides)


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator factory to add retry logic to an async function.

    Example:
        >>> @with_retry(RetryConfig(max_attempts=3, delay_ms=500))
        ... async def send_reminder(invoice_id: str) -> None:
        ...     await mailer.send(invoice_id)
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"with_retry requires an async function, got {func!r}")

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry(lambda: func(*args, **kwargs), config, label=func.__name__)

        return async_wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "RetryState",
    "retry",
    "retry_linear",
    "with_retry",
]
