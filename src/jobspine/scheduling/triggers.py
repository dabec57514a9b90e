"""Schedule triggers: when does a job fire next?

Two kinds of schedule are supported:

- :class:`IntervalSchedule`: a fixed period ("every 5m")
- :class:`CronSchedule`: a 5-field cron expression evaluated with croniter,
  optionally in a named timezone

Both answer one question, ``next_after(moment)``, and always return a time
strictly later than ``moment``.

Tags:
    jobspine, scheduling, cron, croniter, interval, timezone

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
import zoneinfo
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from croniter import CroniterBadDateError, croniter

from jobspine.core.errors import InvalidScheduleError
from jobspine.core.timestamps import ensure_utc

CRON_ALIASES = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "sec": 1,
    "second": 1,
    "m": 60,
    "min": 60,
    "minute": 60,
    "h": 3600,
    "hour": 3600,
    "d": 86400,
    "day": 86400,
}

_EVERY_RE = re.compile(r"^every\s+(\d+(?:\.\d+)?)\s*([a-z]+)$", re.IGNORECASE)


@runtime_checkable
class Schedule(Protocol):
    """Anything that can compute its next fire time."""

    def next_after(self, moment: datetime) -> datetime:
        """Return the first fire time strictly after ``moment`` (UTC)."""
        ...

    def describe(self) -> str:
        ...


@dataclass(frozen=True)
class IntervalSchedule:
    """Fire every ``every``, measured from the previous fire."""

    every: timedelta

    def __post_init__(self) -> None:
        if self.every <= timedelta(0):
            raise InvalidScheduleError(str(self.every), "interval must be positive")

    @classmethod
    def of(cls, seconds: float) -> IntervalSchedule:
        return cls(timedelta(seconds=seconds))

    @property
    def seconds(self) -> float:
        return self.every.total_seconds()

    def next_after(self, moment: datetime) -> datetime:
        return ensure_utc(moment) + self.every

    def describe(self) -> str:
        seconds = self.seconds
        for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
            if seconds >= size and seconds % size == 0:
                return f"every {int(seconds // size)}{unit}"
        return f"every {seconds:g}s"


@dataclass(frozen=True)
class CronSchedule:
    """Fire on a 5-field cron expression, evaluated in ``timezone``."""

    expression: str
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if len(self.expression.split()) != 5 or not croniter.is_valid(self.expression):
            raise InvalidScheduleError(self.expression, "expected a 5-field cron expression")
        try:
            zoneinfo.ZoneInfo(self.timezone)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidScheduleError(self.expression, f"unknown timezone {self.timezone!r}") from e
        # "0 0 30 2 *" parses but never fires
        try:
            croniter(self.expression, datetime.now(UTC)).get_next(datetime)
        except CroniterBadDateError as e:
            raise InvalidScheduleError(self.expression, "expression never fires") from e

    def next_after(self, moment: datetime) -> datetime:
        after = ensure_utc(moment)
        if self.timezone != "UTC":
            after = after.astimezone(zoneinfo.ZoneInfo(self.timezone))

        next_run = croniter(self.expression, after).get_next(datetime)

        # Convert back to UTC
        if next_run.tzinfo is None:
            next_run = next_run.replace(tzinfo=after.tzinfo)
        return next_run.astimezone(UTC)

    def describe(self) -> str:
        if self.timezone == "UTC":
            return self.expression
        return f"{self.expression} ({self.timezone})"


def parse_schedule(value: str | Schedule | timedelta, timezone: str = "UTC") -> Schedule:
    """Build a schedule from its textual form.

    Accepts ``"every 30s"``, ``"every 5m"``, ``"every 2 hours"``, the cron
    aliases (``"@hourly"``, ``"@daily"``...), 5-field cron expressions, and
    ready-made schedules or ``timedelta`` values, which pass through.

    Raises:
        InvalidScheduleError: If the text matches none of these forms
    """
    if isinstance(value, timedelta):
        return IntervalSchedule(value)
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        raise InvalidScheduleError(value, "empty schedule")

    match = _EVERY_RE.match(text)
    if match:
        amount, unit = match.groups()
        unit = unit.lower()
        size = _UNIT_SECONDS.get(unit)
        if size is None and unit.endswith("s"):
            size = _UNIT_SECONDS.get(unit[:-1])
        if size is None:
            raise InvalidScheduleError(value, f"unknown unit {unit!r}")
        return IntervalSchedule(timedelta(seconds=float(amount) * size))

    expression = CRON_ALIASES.get(text.lower(), text)
    return CronSchedule(expression, timezone=timezone)


__all__ = [
    "CRON_ALIASES",
    "CronSchedule",
    "IntervalSchedule",
    "Schedule",
    "parse_schedule",
]
