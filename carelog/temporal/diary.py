"""
Diary Aggregation

Groups events that carry free text by local day of month, oldest first.
"""

from __future__ import annotations
from datetime import date, tzinfo
from typing import Dict, Iterable, List, Optional

from ..contracts.events import EventKind, EventRecord
from .month_window import local_date


DiaryMap = Dict[int, List[EventRecord]]


def group_diary(
    events: Iterable[EventRecord],
    kinds: Optional[Iterable[EventKind]] = None,
    month: Optional[date] = None,
    tz: Optional[tzinfo] = None
) -> DiaryMap:
    """
    Day-grouped diary of events with a non-blank note.

    An empty or None `kinds` keeps every kind. Days whose events are all
    filtered out are absent from the result.
    """
    wanted = frozenset(kinds) if kinds else None
    diary: DiaryMap = {}

    for event in sorted(events, key=lambda e: e.timestamp):
        if not event.note.strip():
            continue
        if wanted is not None and event.kind not in wanted:
            continue
        day = local_date(event.timestamp, tz)
        if month is not None and (day.year, day.month) != (month.year, month.month):
            continue
        diary.setdefault(day.day, []).append(event)

    return diary


def filter_events(
    events: Iterable[EventRecord],
    kind: Optional[EventKind] = None
) -> List[EventRecord]:
    """Timeline filter: every event, or only those of one kind. Order kept."""
    if kind is None:
        return list(events)
    return [e for e in events if e.kind == kind]
