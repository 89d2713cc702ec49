"""
Timezone utilities for the Talbiyah lesson service.

All lesson timestamps are stored in UTC. SQLite (used by the test-suite)
drops tzinfo on read, so values are normalised before any arithmetic.
"""

from datetime import datetime, timezone
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as an aware UTC datetime (naive values are assumed UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from ``start`` to ``end``."""
    start_utc = ensure_utc(start)
    end_utc = ensure_utc(end)
    assert start_utc is not None and end_utc is not None
    return (end_utc - start_utc).total_seconds() / 3600.0


def format_lesson_time(dt: datetime, tz_name: str) -> str:
    """
    Format a lesson time for display, e.g. ``Monday 3 March 2025, 17:00 GMT``.

    Args:
        dt: Lesson time (UTC)
        tz_name: IANA timezone used for display
    """
    local_tz = pytz.timezone(tz_name)
    localized = ensure_utc(dt).astimezone(local_tz)  # type: ignore[union-attr]
    return f"{localized:%A} {localized.day} {localized:%B %Y, %H:%M %Z}"


def parse_iso_utc(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    parsed = ensure_utc(datetime.fromisoformat(value))
    assert parsed is not None
    return parsed
