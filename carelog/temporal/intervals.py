"""
Sleep Interval Reconstruction
=============================

Turns independent SLEEP and WAKE_UP point events into day-attributed
intervals for chart rendering.

GUARANTEES:
- Pure: no I/O, no clock reads
- Deterministic: same event set -> same interval map
- Days without SLEEP/WAKE_UP activity are absent from the result

KNOWN APPROXIMATIONS (kept as-is):
- A sleep crossing midnight is NOT split. It is recorded as one segment
  on the wake day, so start_minute may be greater than end_minute.
- An unclosed sleep ends at 23:59 of its own day.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from ..contracts.events import EventKind, EventRecord, Interval, SLEEP_KINDS
from .month_window import LAST_MINUTE_OF_DAY, local_date, minute_of_day


IntervalMap = Dict[int, List[Interval]]


@dataclass(frozen=True)
class AttributedInterval:
    """An interval together with the calendar day it is attributed to."""
    day: date
    interval: Interval


def _unclosed(pending: EventRecord, tz: Optional[tzinfo]) -> AttributedInterval:
    return AttributedInterval(
        day=local_date(pending.timestamp, tz),
        interval=Interval(
            start_minute=minute_of_day(pending.timestamp, tz),
            end_minute=float(LAST_MINUTE_OF_DAY),
            closed=False
        )
    )


def scan_intervals(
    events: Iterable[EventRecord],
    tz: Optional[tzinfo] = None
) -> List[AttributedInterval]:
    """
    Scan SLEEP/WAKE_UP events in chronological order with a single
    pending-sleep slot. Other kinds are ignored.
    """
    ordered = sorted(
        (e for e in events if e.kind in SLEEP_KINDS),
        key=lambda e: e.timestamp
    )

    emitted: List[AttributedInterval] = []
    pending: Optional[EventRecord] = None

    for event in ordered:
        if event.kind == EventKind.SLEEP:
            if pending is not None:
                # Two SLEEPs with no WAKE_UP between them
                emitted.append(_unclosed(pending, tz))
            pending = event
            continue

        wake_minute = minute_of_day(event.timestamp, tz)
        start_minute = minute_of_day(pending.timestamp, tz) if pending is not None else 0.0
        emitted.append(AttributedInterval(
            day=local_date(event.timestamp, tz),
            interval=Interval(start_minute=start_minute, end_minute=wake_minute)
        ))
        pending = None

    if pending is not None:
        emitted.append(_unclosed(pending, tz))

    return emitted


def reconstruct(
    events: Iterable[EventRecord],
    month: Optional[date] = None,
    tz: Optional[tzinfo] = None
) -> IntervalMap:
    """
    Reconstruct sleep intervals grouped by day of month.

    Args:
        events: Any events; only SLEEP and WAKE_UP are considered.
        month: If given, intervals attributed to a day outside this
            calendar month are dropped. Without it, the caller is expected
            to pass a single month's events.
        tz: Time zone for day and minute-of-day. None = local.

    Returns:
        {day_of_month: [Interval, ...]} in emission order. Test for
        "no data" on a day with membership, not list emptiness.
    """
    result: IntervalMap = {}
    for attributed in scan_intervals(events, tz):
        if month is not None and (
            attributed.day.year != month.year or attributed.day.month != month.month
        ):
            continue
        result.setdefault(attributed.day.day, []).append(attributed.interval)
    return result


def total_minutes(intervals: Iterable[Interval]) -> float:
    """
    Sum of interval lengths in minutes. A segment with start > end
    (slept across midnight) counts the wrap-around span.
    """
    total = 0.0
    for interval in intervals:
        span = interval.end_minute - interval.start_minute
        if span < 0:
            span += 24 * 60
        total += span
    return total


def as_pairs(interval_map: IntervalMap) -> Dict[int, List[Tuple[float, float]]]:
    """Plain (start, end) pairs per day, the shape chart renderers consume."""
    return {
        day: [(i.start_minute, i.end_minute) for i in intervals]
        for day, intervals in sorted(interval_map.items())
    }
