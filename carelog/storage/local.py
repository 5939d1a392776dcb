"""
Local Timeline Store

Single-device backend over a KeyValueStore.

LAYOUT:
=======
- namespace "notes":            note_id -> note name
- namespace "events_<note_id>": str(timestamp) -> "KIND|note text"

Sharing is not supported locally: subscriptions are always empty and
shared-ids are never registered. Attribution is not persisted.
"""

from __future__ import annotations
from datetime import date, tzinfo
from typing import List, Optional, Sequence
import logging
import uuid

from ..contracts.base import NoteNotFoundError, StoreError, now_millis
from ..contracts.events import (
    EventKind, EventRecord, Note, SharedNoteInfo, StorageWriteResult
)
from ..temporal.month_window import month_range
from .contract import (
    MAX_BATCH_WRITES, TimelineStore, chunked, partial_write_result, pick_suggestions
)
from .kv import KeyValueStore


logger = logging.getLogger(__name__)

NOTES_NAMESPACE = "notes"


def events_namespace(note_id: str) -> str:
    return f"events_{note_id}"


def encode_value(kind: EventKind, note: str) -> str:
    return f"{kind.identifier}|{note}"


def decode_entry(key: str, value: object) -> EventRecord:
    """
    Parse one stored entry. Raises ValueError for a non-numeric key,
    a non-string value or an unknown kind identifier.
    """
    if not isinstance(value, str):
        raise ValueError(f"value for {key!r} is not a string")
    parts = value.split('|', 1)
    kind = EventKind.from_identifier(parts[0])
    note = parts[1] if len(parts) > 1 else ""
    return EventRecord(timestamp=int(key), kind=kind, note=note)


class LocalTimelineStore(TimelineStore):
    """
    Key-value backed timeline store.

    Every note's events live in their own namespace, so access to
    different notes never contends.
    """

    def __init__(self, kv: KeyValueStore, tz: Optional[tzinfo] = None):
        self._kv = kv
        self._tz = tz

    def _decode_all(self, note_id: str) -> List[EventRecord]:
        """Every parsable event of a note, unordered. Malformed entries are skipped."""
        events = []
        for key, value in self._kv.all(events_namespace(note_id)).items():
            try:
                events.append(decode_entry(key, value))
            except ValueError as e:
                logger.debug(f"Skipping malformed entry {key!r} in note {note_id}: {e}")
        return events

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    async def list_notes(self, owner_id: str) -> List[Note]:
        logger.debug("API CALL: list_notes()")
        return [
            Note(id=note_id, name=name, owner_id=owner_id)
            for note_id, name in self._kv.all(NOTES_NAMESPACE).items()
            if isinstance(name, str)
        ]

    async def create_note(self, owner_id: str, name: str, shared_id: Optional[str] = None) -> Note:
        logger.debug(f"API CALL: create_note({name})")
        if shared_id is not None:
            logger.debug(f"Local store does not register shared-ids; ignoring {shared_id}")
        note_id = str(uuid.uuid4())
        self._kv.put(NOTES_NAMESPACE, note_id, name)
        return Note(id=note_id, name=name, owner_id=owner_id)

    async def update_note(self, note: Note) -> None:
        logger.debug(f"API CALL: update_note({note.id})")
        if self._kv.get(NOTES_NAMESPACE, note.id) is None:
            raise NoteNotFoundError(f"Note {note.id} does not exist")
        self._kv.put(NOTES_NAMESPACE, note.id, note.name)

    async def delete_note(self, owner_id: str, note_id: str) -> None:
        logger.debug(f"API CALL: delete_note({note_id})")
        # Events first: a failure in between leaves the note visible, never orphans
        self._kv.clear(events_namespace(note_id))
        self._kv.remove(NOTES_NAMESPACE, note_id)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def get_events_for_month(
        self,
        owner_id: str,
        note_id: str,
        shared_id: Optional[str],
        reference_date: date
    ) -> List[EventRecord]:
        logger.debug(f"API CALL: get_events_for_month(note_id: {note_id}, month: {reference_date:%Y-%m})")
        start, end = month_range(reference_date, self._tz)
        events = [e for e in self._decode_all(note_id) if start <= e.timestamp < end]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    async def get_all_events(self, owner_id: str, note_id: str) -> List[EventRecord]:
        logger.debug(f"API CALL: get_all_events(note_id: {note_id})")
        return sorted(self._decode_all(note_id), key=lambda e: e.timestamp)

    async def get_event(self, owner_id: str, note_id: str, timestamp: int) -> Optional[EventRecord]:
        logger.debug(f"API CALL: get_event(timestamp: {timestamp})")
        key = str(timestamp)
        value = self._kv.get(events_namespace(note_id), key)
        if value is None:
            return None
        try:
            return decode_entry(key, value)
        except ValueError as e:
            logger.debug(f"Stored entry {key!r} is malformed: {e}")
            return None

    async def get_note_suggestions(self, owner_id: str, note_id: str, kind: EventKind) -> List[str]:
        logger.debug(f"API CALL: get_note_suggestions(kind: {kind.name})")
        newest_first = sorted(
            (e for e in self._decode_all(note_id) if e.kind == kind),
            key=lambda e: e.timestamp,
            reverse=True
        )
        return pick_suggestions(e.note for e in newest_first)

    async def save_event(
        self,
        owner_id: str,
        note_id: str,
        kind: EventKind,
        note: str,
        timestamp: Optional[int] = None,
        attribution: Optional[str] = None
    ) -> EventRecord:
        logger.debug(f"API CALL: save_event(kind: {kind.name})")
        if timestamp is None:
            timestamp = now_millis()
        self._kv.put(events_namespace(note_id), str(timestamp), encode_value(kind, note))
        return EventRecord(timestamp=timestamp, kind=kind, note=note)

    async def save_events(
        self,
        owner_id: str,
        note_id: str,
        batch: Sequence[EventRecord]
    ) -> StorageWriteResult:
        logger.debug(f"API CALL: save_events(count: {len(batch)})")
        written = 0
        sizes: List[int] = []
        for chunk in chunked(list(batch), MAX_BATCH_WRITES):
            try:
                self._kv.put_many(
                    events_namespace(note_id),
                    ((str(e.timestamp), encode_value(e.kind, e.note)) for e in chunk)
                )
            except StoreError as e:
                logger.warning(f"save_events stopped after {written} of {len(batch)} items: {e}")
                return partial_write_result(written, sizes, e)
            written += len(chunk)
            sizes.append(len(chunk))
        return StorageWriteResult(
            success=True,
            written_count=written,
            chunk_count=len(sizes),
            chunk_sizes=tuple(sizes)
        )

    async def delete_event(self, owner_id: str, note_id: str, event: EventRecord) -> None:
        logger.debug(f"API CALL: delete_event(timestamp: {event.timestamp})")
        self._kv.remove(events_namespace(note_id), str(event.timestamp))

    # -------------------------------------------------------------------------
    # Sharing (not supported locally)
    # -------------------------------------------------------------------------

    async def subscribe(self, owner_id: str, shared_id: str) -> None:
        return None

    async def unsubscribe(self, owner_id: str, shared_id: str) -> None:
        return None

    async def list_subscriptions(self, owner_id: str) -> List[str]:
        return []

    async def resolve_shared_note(self, shared_id: str) -> Optional[SharedNoteInfo]:
        return None
