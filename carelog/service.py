"""
Timeline Service

Session facade over one TimelineStore for one signed-in owner.

RESPONSIBILITY:
===============
- Note selection at startup (bootstrap) and its persistence
- Month views: events, sleep intervals, diary
- Stamping and editing events; suggesting notes
- Subscriptions to shared notes, including dangling ones
- CSV export/import of a note
- Recording every mutating operation in the audit trail

Events of a note are always addressed through the note's own owner_id,
so a subscribed note (owned by someone else) works the same as an own one.
"""

from __future__ import annotations
from datetime import date, tzinfo
from pathlib import Path
from typing import Iterable, List, Optional
import logging

from .contracts.base import Result
from .contracts.events import (
    EventKind, EventRecord, Note, StorageWriteResult, SubscriptionEntry
)
from .exchange import CsvExchange
from .observability import AuditAction, AuditTrail
from .preferences import AppPreferences
from .storage.contract import TimelineStore
from .storage.kv import InMemoryKeyValueStore
from .temporal.diary import DiaryMap, filter_events, group_diary
from .temporal.intervals import IntervalMap, reconstruct


logger = logging.getLogger(__name__)

DEFAULT_NOTE_NAME = "Note 1"


class TimelineService:
    """
    One owner's view of the timeline store.

    Args:
        store: Backend chosen at startup.
        owner_id: The signed-in owner ("local" for the local backend).
        preferences: Device preferences; in-memory if not given.
        audit: Audit trail; a fresh one if not given.
        tz: Time zone for month windows and day grouping. None = local.
    """

    def __init__(
        self,
        store: TimelineStore,
        owner_id: str,
        preferences: Optional[AppPreferences] = None,
        audit: Optional[AuditTrail] = None,
        tz: Optional[tzinfo] = None
    ):
        self._store = store
        self._owner_id = owner_id
        self._prefs = preferences or AppPreferences(InMemoryKeyValueStore())
        self._audit = audit or AuditTrail()
        self._tz = tz
        self._exchange = CsvExchange(store, tz=tz)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def store(self) -> TimelineStore:
        return self._store

    @property
    def preferences(self) -> AppPreferences:
        return self._prefs

    @property
    def audit(self) -> AuditTrail:
        return self._audit

    @property
    def tz(self) -> Optional[tzinfo]:
        return self._tz

    # =========================================================================
    # NOTES
    # =========================================================================

    async def list_notes(self) -> List[Note]:
        return await self._store.list_notes(self._owner_id)

    async def find_note(self, note_id: str) -> Optional[Note]:
        """An own note by id, or a resolved subscription whose note has that id."""
        for note in await self.list_notes():
            if note.id == note_id:
                return note
        for entry in await self.subscriptions():
            note = entry.as_note()
            if note is not None and note.id == note_id:
                return note
        return None

    async def create_note(self, name: str, shared_id: Optional[str] = None) -> Note:
        note = await self._store.create_note(self._owner_id, name, shared_id)
        self._audit.record(AuditAction.NOTE_CREATED, note.id, (("name", name),))
        return note

    async def update_note(self, note: Note) -> Note:
        await self._store.update_note(note)
        self._audit.record(
            AuditAction.NOTE_UPDATED,
            note.id,
            (("name", note.name), ("shared_id", note.shared_id or ""))
        )
        last = self._prefs.last_note()
        if last is not None and last.id == note.id:
            self._prefs.save_last_note(note)
        return note

    async def delete_note(self, note: Note) -> None:
        await self._store.delete_note(note.owner_id, note.id)
        self._audit.record(AuditAction.NOTE_DELETED, note.id)
        last = self._prefs.last_note()
        if last is not None and last.id == note.id:
            self._prefs.clear_last_note()

    def select_note(self, note: Note) -> None:
        self._prefs.save_last_note(note)

    async def bootstrap(self, default_name: str = DEFAULT_NOTE_NAME) -> Note:
        """
        Pick the note to show at startup.

        The last selected note is kept if it is still an own note or, for a
        note owned by someone else, its shared-id is still subscribed.
        Otherwise the first own note is chosen, creating `default_name`
        when there are none. The choice is persisted.
        """
        own_notes = await self.list_notes()
        last = self._prefs.last_note()

        if last is not None:
            if last.owner_id == self._owner_id or last.shared_id is None:
                valid = any(n.id == last.id for n in own_notes)
            else:
                valid = last.shared_id in await self._store.list_subscriptions(self._owner_id)
            if valid:
                logger.info(f"Restored last selected note {last.id}")
                return last
            logger.info(f"Last selected note {last.id} is no longer available")

        if own_notes:
            chosen = own_notes[0]
        else:
            chosen = await self.create_note(default_name)
        self._prefs.save_last_note(chosen)
        return chosen

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    async def subscriptions(self) -> List[SubscriptionEntry]:
        """Every subscribed shared-id, resolved where the registration still exists."""
        entries = []
        for shared_id in await self._store.list_subscriptions(self._owner_id):
            info = await self._store.resolve_shared_note(shared_id)
            if info is None:
                logger.debug(f"Subscription {shared_id} is dangling")
            entries.append(SubscriptionEntry(shared_id=shared_id, info=info))
        return entries

    async def subscribe(self, shared_id: str) -> SubscriptionEntry:
        await self._store.subscribe(self._owner_id, shared_id)
        self._audit.record(AuditAction.SUBSCRIBED, metadata=(("shared_id", shared_id),))
        info = await self._store.resolve_shared_note(shared_id)
        return SubscriptionEntry(shared_id=shared_id, info=info)

    async def unsubscribe(self, shared_id: str) -> None:
        await self._store.unsubscribe(self._owner_id, shared_id)
        self._audit.record(AuditAction.UNSUBSCRIBED, metadata=(("shared_id", shared_id),))
        last = self._prefs.last_note()
        if last is not None and last.shared_id == shared_id and last.owner_id != self._owner_id:
            self._prefs.clear_last_note()

    # =========================================================================
    # MONTH VIEWS
    # =========================================================================

    async def month_events(
        self,
        note: Note,
        reference_date: date,
        kind: Optional[EventKind] = None
    ) -> List[EventRecord]:
        """Events of the month, newest first, optionally of one kind."""
        events = await self._store.get_events_for_month(
            note.owner_id, note.id, note.shared_id, reference_date
        )
        return filter_events(events, kind)

    async def month_intervals(self, note: Note, reference_date: date) -> IntervalMap:
        events = await self._store.get_events_for_month(
            note.owner_id, note.id, note.shared_id, reference_date
        )
        return reconstruct(events, month=reference_date, tz=self._tz)

    async def month_diary(
        self,
        note: Note,
        reference_date: date,
        kinds: Optional[Iterable[EventKind]] = None
    ) -> DiaryMap:
        events = await self._store.get_events_for_month(
            note.owner_id, note.id, note.shared_id, reference_date
        )
        return group_diary(events, kinds=kinds, month=reference_date, tz=self._tz)

    @staticmethod
    def filter_events(
        events: Iterable[EventRecord],
        kind: Optional[EventKind] = None
    ) -> List[EventRecord]:
        return filter_events(events, kind)

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def suggestions(self, note: Note, kind: EventKind) -> List[str]:
        return await self._store.get_note_suggestions(note.owner_id, note.id, kind)

    async def record(
        self,
        note: Note,
        kind: EventKind,
        text: str = "",
        timestamp: Optional[int] = None
    ) -> EventRecord:
        """Stamp an event. Same timestamp again overwrites (last writer wins)."""
        record = await self._store.save_event(note.owner_id, note.id, kind, text, timestamp)
        self._audit.record(
            AuditAction.EVENT_SAVED,
            note.id,
            (("timestamp", str(record.timestamp)), ("kind", kind.identifier))
        )
        return record

    async def get_event(self, note: Note, timestamp: int) -> Optional[EventRecord]:
        return await self._store.get_event(note.owner_id, note.id, timestamp)

    async def edit_event(
        self,
        note: Note,
        event: EventRecord,
        text: str,
        timestamp: Optional[int] = None
    ) -> EventRecord:
        """
        Replace an event's note text and, optionally, move it to a new time.

        The kind is kept. The new record is written before the old key is
        removed, so a failure in between leaves a duplicate, never a loss.
        A new timestamp that is already taken is overwritten.
        """
        new_timestamp = event.timestamp if timestamp is None else timestamp
        record = await self._store.save_event(
            note.owner_id, note.id, event.kind, text, new_timestamp
        )
        if new_timestamp != event.timestamp:
            await self._store.delete_event(note.owner_id, note.id, event)
        self._audit.record(
            AuditAction.EVENT_EDITED,
            note.id,
            (("timestamp", str(event.timestamp)), ("new_timestamp", str(new_timestamp)))
        )
        return record

    async def delete_event(self, note: Note, event: EventRecord) -> None:
        await self._store.delete_event(note.owner_id, note.id, event)
        self._audit.record(
            AuditAction.EVENT_DELETED, note.id, (("timestamp", str(event.timestamp)),)
        )

    async def record_many(self, note: Note, events: List[EventRecord]) -> StorageWriteResult:
        outcome = await self._store.save_events(note.owner_id, note.id, events)
        self._audit.record(
            AuditAction.EVENTS_BULK_SAVED,
            note.id,
            (("written", str(outcome.written_count)), ("success", str(outcome.success)))
        )
        return outcome

    # =========================================================================
    # CSV EXCHANGE
    # =========================================================================

    async def export_csv_text(self, note: Note) -> str:
        text = await self._exchange.export_csv_text(note)
        self._audit.record(AuditAction.CSV_EXPORTED, note.id)
        return text

    async def export_to_path(self, note: Note, path: Path) -> Result:
        result = await self._exchange.export_to_path(note, path)
        if result.is_success:
            self._audit.record(AuditAction.CSV_EXPORTED, note.id, (("rows", str(result.value)),))
        return result

    async def import_csv_text(self, note: Note, text: str) -> Result:
        return self._audited_import(note, await self._exchange.import_csv_text(note, text))

    async def import_from_path(self, note: Note, path: Path) -> Result:
        return self._audited_import(note, await self._exchange.import_from_path(note, path))

    def _audited_import(self, note: Note, result: Result) -> Result:
        if result.is_success:
            imported = str(result.value)
        else:
            imported = result.error.context_value("imported") or "0"
        self._audit.record(
            AuditAction.CSV_IMPORTED,
            note.id,
            (("imported", imported), ("success", str(result.is_success)))
        )
        return result

    async def close(self) -> None:
        await self._store.close()
