"""
Temporal Layer

Local calendar arithmetic and the derived views computed from an event
stream: sleep intervals and day-grouped diaries.
"""

from .month_window import (
    month_range, in_month, local_date, minute_of_day, parse_month, resolve_tz
)
from .intervals import reconstruct, scan_intervals, IntervalMap
from .diary import group_diary, filter_events

__all__ = [
    'month_range',
    'in_month',
    'local_date',
    'minute_of_day',
    'parse_month',
    'resolve_tz',
    'reconstruct',
    'scan_intervals',
    'IntervalMap',
    'group_diary',
    'filter_events',
]
