"""
Time helpers.

All timestamps are handled as timezone-aware UTC. Some database drivers
(SQLite) hand back naive datetimes, so values read from storage go through
``as_utc`` before any arithmetic.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end (negative if end is earlier)."""
    return (as_utc(end) - as_utc(start)).total_seconds() / 60
