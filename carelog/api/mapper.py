"""
API Mapper
==========

Transforms contract types into JSON-ready DTOs.
"""
from typing import Any, Dict, List
from datetime import datetime, timezone

from ..contracts.events import EventRecord, Interval, Note, SubscriptionEntry
from ..temporal.diary import DiaryMap
from ..temporal.intervals import IntervalMap


def _iso_utc(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, timezone.utc).isoformat().replace('+00:00', 'Z')


def note_to_dto(note: Note) -> Dict[str, Any]:
    return {
        "id": note.id,
        "name": note.name,
        "owner_id": note.owner_id,
        "shared_id": note.shared_id,
    }


def event_to_dto(event: EventRecord) -> Dict[str, Any]:
    return {
        "timestamp": event.timestamp,
        "recorded_at": _iso_utc(event.timestamp),
        "kind": event.kind.identifier,
        "label": event.kind.label,
        "note": event.note,
        "attribution": event.attribution,
    }


def interval_to_dto(interval: Interval) -> Dict[str, Any]:
    return {
        "start_minute": interval.start_minute,
        "end_minute": interval.end_minute,
        "closed": interval.closed,
    }


def intervals_to_dto(interval_map: IntervalMap) -> Dict[str, List[Dict[str, Any]]]:
    """Day keys become strings; days stay in ascending order."""
    return {
        str(day): [interval_to_dto(i) for i in intervals]
        for day, intervals in sorted(interval_map.items())
    }


def diary_to_dto(diary: DiaryMap) -> Dict[str, List[Dict[str, Any]]]:
    return {
        str(day): [event_to_dto(e) for e in events]
        for day, events in sorted(diary.items())
    }


def subscription_to_dto(entry: SubscriptionEntry) -> Dict[str, Any]:
    note = entry.as_note()
    return {
        "shared_id": entry.shared_id,
        "resolved": entry.is_resolved,
        "note": note_to_dto(note) if note is not None else None,
    }
