"""Timestamp helpers shared by the wire codec and the stores."""

from __future__ import annotations

import time
from datetime import UTC, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(UTC)


def epoch_ms() -> int:
    """Milliseconds since the Unix epoch, as carried by room announcements."""
    return int(time.time() * 1000)


def to_iso(dt: datetime) -> str:
    """Serialize to ISO 8601, treating naive datetimes as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting the ``Z`` suffix browsers emit."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

