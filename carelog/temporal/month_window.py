"""
Month Window
============

Local calendar arithmetic over millisecond timestamps.

INVARIANTS:
- month_range is half-open: [first instant of month, first instant of next)
- Every helper here interprets timestamps in the same time zone, so the
  store's month query and the interval reconstructor never disagree about
  which calendar day an event belongs to
- tz=None means the process's local time zone
"""

from __future__ import annotations
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple
import re

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")

MINUTES_PER_DAY = 24 * 60
LAST_MINUTE_OF_DAY = 23 * 60 + 59


def resolve_tz(name: Optional[str]) -> Optional[tzinfo]:
    """
    Resolve a time-zone name.

    Returns None for "local" (callers then use the process's local zone),
    timezone.utc for "UTC", a fixed offset for "+09:00" / "-0500", or a
    ZoneInfo for IANA names. Raises ValueError for anything else.
    """
    if name is None:
        return None
    s = str(name).strip()
    low = s.lower()
    if not s or low in {"local", "system"}:
        return None
    if low in {"utc", "z", "gmt"}:
        return timezone.utc

    m = _OFFSET_RE.match(s)
    if m:
        sign_s, hh_s, mm_s = m.groups()
        hh, mm = int(hh_s), int(mm_s)
        if hh > 23 or mm > 59:
            raise ValueError(f"Invalid timezone offset: {s!r}")
        sign = 1 if sign_s == "+" else -1
        return timezone(timedelta(minutes=sign * (hh * 60 + mm)))

    try:
        return ZoneInfo(s)
    except (ZoneInfoNotFoundError, ValueError, OSError) as ex:
        raise ValueError(f"Invalid timezone identifier: {s!r}") from ex


def local_datetime(timestamp_ms: int, tz: Optional[tzinfo] = None) -> datetime:
    """Wall-clock datetime of a timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz)


def local_date(timestamp_ms: int, tz: Optional[tzinfo] = None) -> date:
    return local_datetime(timestamp_ms, tz).date()


def minute_of_day(timestamp_ms: int, tz: Optional[tzinfo] = None) -> float:
    """Local hour * 60 + minute. Seconds are truncated."""
    dt = local_datetime(timestamp_ms, tz)
    return float(dt.hour * 60 + dt.minute)


def to_millis(dt: datetime) -> int:
    # Naive datetimes are interpreted as local time by datetime.timestamp()
    return int(round(dt.timestamp() * 1000))


def start_of_day_ms(day: date, tz: Optional[tzinfo] = None) -> int:
    """Local midnight of `day`."""
    return to_millis(datetime(day.year, day.month, day.day, tzinfo=tz))


def first_of_month(reference_date: date) -> date:
    return date(reference_date.year, reference_date.month, 1)


def first_of_next_month(reference_date: date) -> date:
    if reference_date.month == 12:
        return date(reference_date.year + 1, 1, 1)
    return date(reference_date.year, reference_date.month + 1, 1)


def month_range(reference_date: date, tz: Optional[tzinfo] = None) -> Tuple[int, int]:
    """
    Half-open millisecond range of the calendar month containing
    `reference_date`: local midnight of the 1st up to (excluding) local
    midnight of the 1st of the following month.
    """
    return (
        start_of_day_ms(first_of_month(reference_date), tz),
        start_of_day_ms(first_of_next_month(reference_date), tz),
    )


def in_month(timestamp_ms: int, reference_date: date, tz: Optional[tzinfo] = None) -> bool:
    start, end = month_range(reference_date, tz)
    return start <= timestamp_ms < end


def days_in_month(reference_date: date) -> int:
    return (first_of_next_month(reference_date) - first_of_month(reference_date)).days


def parse_month(value: str) -> date:
    """Parse "YYYY-MM" into the first day of that month."""
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except ValueError:
        raise ValueError(f"Invalid month (expected YYYY-MM): {value!r}") from None
    return date(parsed.year, parsed.month, 1)
