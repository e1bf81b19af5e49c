"""Timezone-aware time helpers.

Services take a ``Clock`` (any zero-arg callable returning an aware UTC
datetime) so tests can pin ``now``.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return current UTC time with tzinfo set."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = ["Clock", "ensure_utc", "utcnow"]
