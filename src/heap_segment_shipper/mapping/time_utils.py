"""Timestamp parsing and UTC normalization for Heap record fields.

Heap Connect writes event times (`time`, `session_time`) as text such as
`2023-04-18 10:15:02.123` and user profile dates (`joindate`,
`last_modified`) as integer microseconds since the epoch. The Avro decoder may
also hand back `datetime` objects when the schema declares a timestamp logical
type.

Design Invariant:
    Every timestamp leaving this module is timezone-aware UTC. Naive values
    are interpreted as UTC, never as local time.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

__all__ = ["ensure_utc", "parse_time", "parse_heap_timestamp"]


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_time(value: Any) -> datetime:
    """Parse an event time into a timezone-aware UTC datetime.

    Accepts datetimes, ISO-8601 text (space or `T` separator, optional `Z`
    suffix) and integer epochs in microseconds.

    Raises:
        ValueError: If the value is missing or cannot be interpreted.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Unsupported time value: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1_000_000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def parse_heap_timestamp(value: Any) -> Optional[str]:
    """Render a microsecond epoch as an ISO-8601 UTC string (second precision).

    Values that are not numeric are returned unchanged so an unexpected
    trait format is still shipped rather than lost.
    """
    if value is None:
        return None
    try:
        seconds = int(value) // 1_000_000
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (TypeError, ValueError, OverflowError, OSError):
        return value
