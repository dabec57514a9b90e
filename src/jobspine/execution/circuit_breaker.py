"""Circuit breaker pattern for fault tolerance.

Prevents cascading failures by failing fast when a downstream dependency
is experiencing issues. Several jobs that talk to the same dependency share
one breaker through :class:`CircuitBreakerRegistry`.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Failing fast, calls rejected with CircuitOpenError
    HALF_OPEN: One trial call is let through to test recovery

Example:
    >>> from jobspine.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker(
    ...     name="payments-api",
    ...     failure_threshold=5,
    ...     open_duration_ms=30_000,
    ... )
    >>> result = await breaker.call(fetch_invoices, tenant_id)
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from jobspine.core.errors import CircuitOpenError
from jobspine.core.logging import get_logger
from jobspine.core.timestamps import to_iso8601, utc_now

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Rejecting calls
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "rejected_requests": self.rejected_requests,
            "state_changes": self.state_changes,
            "failure_rate": round(self.failure_rate, 2),
            "last_failure_time": to_iso8601(self.last_failure_time),
            "last_success_time": to_iso8601(self.last_success_time),
            "last_state_change": to_iso8601(self.last_state_change),
        }


@dataclass
class CircuitBreaker:
    """Circuit breaker for fault tolerance.

    ``failure_threshold`` counts consecutive failures: a success while
    closed resets the count. With ``rolling_window_ms`` set, a failure that
    arrives more than the window after the previous one starts a new count.

    The open to half-open transition is lazy: it happens on the first
    state read or call after ``open_duration_ms`` has elapsed.

    Attributes:
        name: Identifier for this circuit (usually the dependency name)
        failure_threshold: Consecutive failures before opening
        open_duration_ms: How long to stay open before allowing a trial
        rolling_window_ms: Optional window for counting failures
        clock: Monotonic clock in seconds, injectable for tests
    """

    name: str = "default"
    failure_threshold: int = 5
    open_duration_ms: float = 30_000
    rolling_window_ms: float | None = None
    clock: Callable[[], float] = time.monotonic

    # Internal state
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.open_duration_ms < 0:
            raise ValueError(f"open_duration_ms must be >= 0, got {self.open_duration_ms}")

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        """Clock reading of the most recent failure."""
        with self._lock:
            return self._last_failure_time

    @property
    def stats(self) -> CircuitStats:
        """Get circuit statistics."""
        return self._stats

    def _check_state_transition(self) -> None:
        """Move OPEN to HALF_OPEN once the open duration has elapsed."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            elapsed_ms = (self.clock() - self._last_failure_time) * 1000
            if elapsed_ms >= self.open_duration_ms:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = utc_now()

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
        self._trial_in_flight = False

        logger.info(
            "circuit_state_changed",
            breaker=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            failure_count=self._failure_count,
        )

    def allow_request(self) -> bool:
        """Check if a call should be allowed.

        In HALF_OPEN only one trial call is admitted until it reports back.
        """
        with self._lock:
            self._check_state_transition()
            self._stats.total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True

            self._stats.rejected_requests += 1
            return False

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = utc_now()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed call."""
        with self._lock:
            now = self.clock()
            if (
                self.rolling_window_ms is not None
                and self._last_failure_time is not None
                and (now - self._last_failure_time) * 1000 > self.rolling_window_ms
            ):
                self._failure_count = 0

            self._failure_count += 1
            self._last_failure_time = now
            self._stats.failed_requests += 1
            self._stats.last_failure_time = utc_now()

            if self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition_to(CircuitState.OPEN)

    def _release_trial(self) -> None:
        with self._lock:
            self._trial_in_flight = False

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._last_failure_time = None

    def force_open(self) -> None:
        """Force circuit to open state (for testing/maintenance)."""
        with self._lock:
            self._last_failure_time = self.clock()
            self._transition_to(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute an async function through the circuit breaker.

        Raises:
            CircuitOpenError: If the circuit is open, or half-open with its
                trial call already in flight
        """
        if not self.allow_request():
            raise CircuitOpenError(
                f"Circuit '{self.name}' is open, rejecting request",
                breaker=self.name,
            )

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def to_dict(self) -> dict[str, Any]:
        state = self.state
        with self._lock:
            return {
                "name": self.name,
                "state": state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "open_duration_ms": self.open_duration_ms,
                "stats": self._stats.to_dict(),
            }


class CircuitBreakerRegistry:
    """Registry of named circuit breakers.

    Create one per process and hand it to whatever builds the job
    definitions; there is no module-level instance.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name, returns None if not found."""
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        failure_threshold: int = 5,
        open_duration_ms: float = 30_000,
        **kwargs: Any,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker by name.

        Settings only apply when the breaker is created.
        """
        with self._lock:
            if name not in self._breakers:
                kwargs.setdefault("clock", self._clock)
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=failure_threshold,
                    open_duration_ms=open_duration_ms,
                    **kwargs,
                )
            return self._breakers[name]

    def list_all(self) -> list[str]:
        """List all registered circuit breaker names."""
        with self._lock:
            return list(self._breakers.keys())

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()

    def to_dict(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {name: breaker.to_dict() for name, breaker in self._breakers.items()}


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "CircuitStats",
]
