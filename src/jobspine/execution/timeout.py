"""Timeout enforcement for job execution.

Manifesto:
    A job without a deadline can hold its slot forever: the scheduler's
    one-execution-per-job guard then skips every later fire. Deadlines
    keep the schedule moving.

    - Coroutine form: ``await with_timeout(fetch(), 5000, "fetch")``
    - Context manager: ``async with deadline(5000, "fetch"):``
    - Decorator: ``@timeout(5000)``

Architecture:
    ::

        with_timeout(awaitable, timeout_ms, label)
                │
                ▼
        ┌────────────────────────────────────────────────┐
        │ asyncio.timeout(seconds)                        │
        │  - cancels the awaited task on expiry          │
        │  - expiry surfaces as TimeoutExpired            │
        │  - errors raised by the operation itself       │
        │    (even a TimeoutError) pass through as-is    │
        └────────────────────────────────────────────────┘

Guardrails:
    - Cancellation is cooperative. Work that never yields to the event
      loop, or that runs in a thread, keeps running after the deadline.
    - ``TimeoutExpired`` is transient, so :func:`~jobspine.execution.retry.retry`
      retries it by default.

Tags:
    timeout, deadline, resilience, execution, jobspine

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from jobspine.core.errors import TimeoutExpired

T = TypeVar("T")


def _validate(timeout_ms: float) -> None:
    if timeout_ms <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_ms}ms")


async def with_timeout(
    operation: Awaitable[T],
    timeout_ms: float,
    label: str = "operation",
) -> T:
    """Await ``operation`` but give up after ``timeout_ms`` milliseconds.

    Args:
        operation: Coroutine or other awaitable to run
        timeout_ms: Deadline in milliseconds
        label: Operation name for the error message

    Returns:
        Result of the operation

    Raises:
        TimeoutExpired: If the deadline passes first
        ValueError: If ``timeout_ms <= 0``

    Example:
        >>> report = await with_timeout(build_report(), 30_000, "weekly-summary")
    """
    if timeout_ms <= 0:
        if inspect.iscoroutine(operation):
            operation.close()
        _validate(timeout_ms)

    async with deadline(timeout_ms, label):
        return await operation


@asynccontextmanager
async def deadline(timeout_ms: float, label: str = "operation") -> AsyncIterator[None]:
    """Async context manager enforcing a deadline on its body.

    Example:
        >>> async with deadline(10_000, "backup"):
        ...     await dump_database()
    """
    _validate(timeout_ms)

    try:
        async with asyncio.timeout(timeout_ms / 1000) as scope:
            yield
    except TimeoutError:
        if scope.expired():
            raise TimeoutExpired(label, timeout_ms) from None
        raise


def timeout(
    timeout_ms: float, label: str | None = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator enforcing a deadline on every call of an async function.

    Example:
        >>> @timeout(5_000)
        ... async def ping() -> None:
        ...     await client.get("/health")
    """
    _validate(timeout_ms)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"timeout requires an async function, got {func!r}")
        op_name = label or func.__name__

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_timeout(func(*args, **kwargs), timeout_ms, op_name)

        return async_wrapper

    return decorator


__all__ = [
    "TimeoutExpired",
    "deadline",
    "timeout",
    "with_timeout",
]
