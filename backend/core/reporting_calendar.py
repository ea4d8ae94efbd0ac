"""
Reporting calendar.

Day and month boundaries for every report are taken in one configured
timezone (``REPORTING_TIMEZONE``) and converted to UTC instants, which is how
dispense timestamps are stored.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from core.config import settings

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def reporting_tz(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.reporting_timezone)


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize an aware datetime to the naive-UTC form used in storage."""
    if dt.tzinfo is None:
        raise ValueError("expected a timezone-aware datetime")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(instant: datetime, tz: ZoneInfo) -> date:
    """Calendar day of an aware instant in the reporting timezone."""
    return instant.astimezone(tz).date()


def day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar day as aware UTC datetimes."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def month_bounds(year: int, month: int, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar month as aware UTC datetimes."""
    ny, nm = shift_month(year, month, 1)
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime(ny, nm, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def month_label(year: int, month: int) -> str:
    # e.g. "October 2026"; strftime("%B") is locale dependent, this is not
    return f"{_MONTH_NAMES[month - 1]} {year}"
