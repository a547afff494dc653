"""Shared time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_isoformat() -> str:
    """Return the current UTC timestamp as an ISO string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def now_millis() -> int:
    """Return the current instant in milliseconds since epoch."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_millis(value: datetime | float | int) -> int:
    """Convert a datetime or epoch-seconds value to epoch milliseconds.

    Naive datetimes are taken as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return int(float(value) * 1000)
