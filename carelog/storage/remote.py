"""
Remote Timeline Store

Multi-user backend over a DocumentClient.

LAYOUT:
=======
- users/{ownerId}                                  subscribedNoteIds: [str]
- users/{ownerId}/notes/{noteId}                   name, sharedId?
- users/{ownerId}/notes/{noteId}/timeline/{ts}     itemType, timestamp, type,
                                                   note, operatorName?
- sharedNotes/{sharedId}                           ownerId, noteId, noteName

CONSISTENCY:
============
The atomic batch is the only consistency primitive. Note create, update
and delete each commit as batches. Bulk event writes are chunked to the
batch ceiling and each chunk commits on its own: a failure leaves earlier
chunks committed and is reported as partial success, never rolled back.
"""

from __future__ import annotations
from datetime import date, tzinfo
from typing import Any, Dict, List, Optional, Sequence
import logging

from ..contracts.base import (
    DocumentNotFoundError, NoteNotFoundError, StoreError, now_millis
)
from ..contracts.events import (
    EventKind, EventRecord, Note, SharedNoteInfo, StorageWriteResult
)
from ..temporal.month_window import month_range
from .contract import (
    MAX_BATCH_WRITES, SUGGESTION_LOOKBACK, TimelineStore, chunked,
    partial_write_result, pick_suggestions
)
from .documents import ArrayRemove, ArrayUnion, DocumentClient, DocumentSnapshot, Filter


logger = logging.getLogger(__name__)

STAMP_ITEM_TYPE = "stamp"


def user_path(owner_id: str) -> str:
    return f"users/{owner_id}"


def notes_collection(owner_id: str) -> str:
    return f"users/{owner_id}/notes"


def note_path(owner_id: str, note_id: str) -> str:
    return f"{notes_collection(owner_id)}/{note_id}"


def timeline_collection(owner_id: str, note_id: str) -> str:
    return f"{note_path(owner_id, note_id)}/timeline"


def event_path(owner_id: str, note_id: str, timestamp: int) -> str:
    return f"{timeline_collection(owner_id, note_id)}/{timestamp}"


def shared_note_path(shared_id: str) -> str:
    return f"sharedNotes/{shared_id}"


def event_fields(record: EventRecord) -> Dict[str, Any]:
    return {
        "itemType": STAMP_ITEM_TYPE,
        "timestamp": record.timestamp,
        "type": record.kind.identifier,
        "note": record.note,
        "operatorName": record.attribution,
    }


def decode_event(snapshot: DocumentSnapshot) -> Optional[EventRecord]:
    """EventRecord from a timeline document, None if it is not a valid stamp."""
    if not snapshot.exists or snapshot.get("itemType") != STAMP_ITEM_TYPE:
        return None
    timestamp = snapshot.get("timestamp")
    note = snapshot.get("note")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool) or not isinstance(note, str):
        logger.debug(f"Skipping malformed timeline document {snapshot.path}")
        return None
    try:
        kind = EventKind.from_identifier(str(snapshot.get("type")))
    except ValueError as e:
        logger.debug(f"Skipping timeline document {snapshot.path}: {e}")
        return None
    operator = snapshot.get("operatorName")
    return EventRecord(
        timestamp=timestamp,
        kind=kind,
        note=note,
        attribution=operator if isinstance(operator, str) else None
    )


class RemoteTimelineStore(TimelineStore):
    """
    Document-store backed timeline store.

    `operator_name` is the display name stamped on single-event writes
    that carry no explicit attribution (the signed-in user's name).
    """

    def __init__(
        self,
        client: DocumentClient,
        operator_name: Optional[str] = None,
        tz: Optional[tzinfo] = None
    ):
        self._client = client
        self._operator_name = operator_name
        self._tz = tz

    def _decode_many(self, snapshots: Sequence[DocumentSnapshot]) -> List[EventRecord]:
        events = []
        for snapshot in snapshots:
            record = decode_event(snapshot)
            if record is not None:
                events.append(record)
        return events

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    async def list_notes(self, owner_id: str) -> List[Note]:
        logger.debug("API CALL: list_notes()")
        notes = []
        for doc in await self._client.list_documents(notes_collection(owner_id)):
            name = doc.get("name")
            if not isinstance(name, str):
                continue
            shared_id = doc.get("sharedId")
            notes.append(Note(
                id=doc.id,
                name=name,
                owner_id=owner_id,
                shared_id=shared_id if isinstance(shared_id, str) else None
            ))
        return notes

    async def create_note(self, owner_id: str, name: str, shared_id: Optional[str] = None) -> Note:
        logger.debug(f"API CALL: create_note({name})")
        note_id = self._client.new_id()
        batch = self._client.batch()

        note_data: Dict[str, Any] = {"name": name}
        if shared_id is not None:
            note_data["sharedId"] = shared_id
            batch.set(shared_note_path(shared_id), {
                "ownerId": owner_id,
                "noteId": note_id,
                "noteName": name,
            })
        batch.set(note_path(owner_id, note_id), note_data)
        await batch.commit()

        return Note(id=note_id, name=name, owner_id=owner_id, shared_id=shared_id)

    async def update_note(self, note: Note) -> None:
        logger.debug(f"API CALL: update_note({note.id})")
        path = note_path(note.owner_id, note.id)
        old = await self._client.get(path)
        if not old.exists:
            raise NoteNotFoundError(f"Note {note.id} does not exist")
        old_shared_id = old.get("sharedId")

        batch = self._client.batch()
        if old_shared_id and old_shared_id != note.shared_id:
            old_registration = await self._client.get(shared_note_path(old_shared_id))
            # Tolerate a registration someone already removed
            if old_registration.exists:
                batch.delete(shared_note_path(old_shared_id))

        if note.shared_id is not None:
            batch.set(shared_note_path(note.shared_id), {
                "ownerId": note.owner_id,
                "noteId": note.id,
                "noteName": note.name,
            })

        batch.update(path, {"name": note.name, "sharedId": note.shared_id})
        try:
            await batch.commit()
        except DocumentNotFoundError as e:
            raise NoteNotFoundError(f"Note {note.id} was deleted concurrently") from e

    async def delete_note(self, owner_id: str, note_id: str) -> None:
        logger.debug(f"API CALL: delete_note({note_id})")
        path = note_path(owner_id, note_id)
        snapshot = await self._client.get(path)
        shared_id = snapshot.get("sharedId")

        timeline = await self._client.list_documents(timeline_collection(owner_id, note_id))
        for chunk in chunked([doc.path for doc in timeline], MAX_BATCH_WRITES):
            batch = self._client.batch()
            for doc_path in chunk:
                batch.delete(doc_path)
            await batch.commit()

        # Note and registration always share one batch of their own.
        batch = self._client.batch()
        batch.delete(path)
        if shared_id:
            batch.delete(shared_note_path(shared_id))
        await batch.commit()

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
        snapshots = await self._client.query(
            timeline_collection(owner_id, note_id),
            filters=(Filter("timestamp", ">=", start), Filter("timestamp", "<", end)),
            order_by="timestamp",
            descending=True
        )
        return self._decode_many(snapshots)

    async def get_all_events(self, owner_id: str, note_id: str) -> List[EventRecord]:
        logger.debug(f"API CALL: get_all_events(note_id: {note_id})")
        snapshots = await self._client.query(
            timeline_collection(owner_id, note_id),
            filters=(Filter("itemType", "==", STAMP_ITEM_TYPE),),
            order_by="timestamp"
        )
        return self._decode_many(snapshots)

    async def get_event(self, owner_id: str, note_id: str, timestamp: int) -> Optional[EventRecord]:
        logger.debug(f"API CALL: get_event(timestamp: {timestamp})")
        return decode_event(await self._client.get(event_path(owner_id, note_id, timestamp)))

    async def get_note_suggestions(self, owner_id: str, note_id: str, kind: EventKind) -> List[str]:
        logger.debug(f"API CALL: get_note_suggestions(kind: {kind.name})")
        snapshots = await self._client.query(
            timeline_collection(owner_id, note_id),
            filters=(
                Filter("itemType", "==", STAMP_ITEM_TYPE),
                Filter("type", "==", kind.identifier),
            ),
            order_by="timestamp",
            descending=True,
            limit=SUGGESTION_LOOKBACK
        )
        return pick_suggestions(
            s.get("note") for s in snapshots if isinstance(s.get("note"), str)
        )

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
        record = EventRecord(
            timestamp=timestamp if timestamp is not None else now_millis(),
            kind=kind,
            note=note,
            attribution=attribution if attribution is not None else self._operator_name
        )
        await self._client.set(event_path(owner_id, note_id, record.timestamp), event_fields(record))
        return record

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
            write_batch = self._client.batch()
            for record in chunk:
                write_batch.set(event_path(owner_id, note_id, record.timestamp), event_fields(record))
            try:
                await write_batch.commit()
            except StoreError as e:
                # Earlier chunks stay committed; no rollback
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
        await self._client.delete(event_path(owner_id, note_id, event.timestamp))

    # -------------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------------

    async def subscribe(self, owner_id: str, shared_id: str) -> None:
        logger.debug(f"API CALL: subscribe({shared_id})")
        await self._client.set(
            user_path(owner_id),
            {"subscribedNoteIds": ArrayUnion((shared_id,))},
            merge=True
        )

    async def unsubscribe(self, owner_id: str, shared_id: str) -> None:
        logger.debug(f"API CALL: unsubscribe({shared_id})")
        await self._client.set(
            user_path(owner_id),
            {"subscribedNoteIds": ArrayRemove((shared_id,))},
            merge=True
        )

    async def list_subscriptions(self, owner_id: str) -> List[str]:
        logger.debug("API CALL: list_subscriptions()")
        ids = (await self._client.get(user_path(owner_id))).get("subscribedNoteIds")
        if not isinstance(ids, list):
            return []
        return [i for i in ids if isinstance(i, str)]

    async def resolve_shared_note(self, shared_id: str) -> Optional[SharedNoteInfo]:
        logger.debug(f"API CALL: resolve_shared_note({shared_id})")
        doc = await self._client.get(shared_note_path(shared_id))
        if not doc.exists:
            return None
        owner_id, note_id, note_name = doc.get("ownerId"), doc.get("noteId"), doc.get("noteName")
        if not all(isinstance(v, str) for v in (owner_id, note_id, note_name)):
            return None
        return SharedNoteInfo(note_id=note_id, owner_id=owner_id, note_name=note_name)

    async def close(self) -> None:
        await self._client.close()
