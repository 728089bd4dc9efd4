"""Date/time helpers.

Timestamps are stored as UTC. SQLite hands back naive datetimes, so every
value read from the database goes through ``as_utc`` before comparison.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from florist_ledger.core.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_to_utc(value: Optional[datetime], tz: ZoneInfo) -> Optional[datetime]:
    """Like ``as_utc``, but naive values are wall-clock time in ``tz``."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def parse_date(date_string: str) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date."""
    try:
        return date.fromisoformat(date_string)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{date_string}', expected YYYY-MM-DD", field="date")


def local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC bounds ``[start, end)`` of a calendar day in the given zone."""
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def iter_days(start: date, end: date):
    """Yield each date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
