"""
Timestamp and identifier helpers.

All times inside jobspine are timezone-aware UTC datetimes. Stores persist
them as ISO 8601 strings; log ids are ULID-style, so they sort by creation
time as well as being unique.

Tags:
    timestamps, ulid, utc, datetime, jobspine

STDLIB ONLY.
"""

import random
import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_ulid() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, Crockford base32, time-sortable.
    """
    # 48-bit millisecond timestamp -> 10 chars
    timestamp_chars = _encode_base32(int(time.time() * 1000), 10)
    # 80 random bits -> 16 chars
    random_part = "".join(random.choices(_ENCODING, k=16))
    return timestamp_chars + random_part


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to a UTC datetime."""
    if s is None:
        return None
    return ensure_utc(datetime.fromisoformat(s))


_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
