"""
Remote Timeline Store Tests
===========================

Document-store backend over InMemoryDocumentClient.

CONSISTENCY VERIFICATION:
=========================
1. Note create/update/delete keep sharedNotes registrations in step
2. Bulk writes commit per chunk of 500, with no rollback on failure
3. Subscriptions survive their target's deletion as dangling entries
"""

import asyncio
import pytest
from datetime import date, datetime, timezone

from carelog.contracts.base import (
    BatchTooLargeError, ErrorCode, NoteNotFoundError, StoreUnavailableError
)
from carelog.contracts.events import EventKind, EventRecord, SharedNoteInfo
from carelog.storage import InMemoryDocumentClient, RemoteTimelineStore
from carelog.storage.remote import (
    event_path, note_path, shared_note_path, timeline_collection
)
from carelog.temporal.month_window import to_millis

UTC = timezone.utc
ALICE = "alice"
BOB = "bob"


def ms(*args) -> int:
    return to_millis(datetime(*args, tzinfo=UTC))


class FlakyDocumentClient(InMemoryDocumentClient):
    """Fails the n-th commit with a transport error."""

    def __init__(self, fail_on_commit: int = 0):
        super().__init__()
        self.attempts = 0
        self._fail_on_commit = fail_on_commit

    def fail_on(self, commit_number: int) -> None:
        """Count commits again from zero and fail the given one."""
        self.attempts = 0
        self._fail_on_commit = commit_number

    async def commit(self, ops):
        self.attempts += 1
        if self.attempts == self._fail_on_commit:
            raise StoreUnavailableError("connection reset")
        await super().commit(ops)


@pytest.fixture
def client():
    return InMemoryDocumentClient()


@pytest.fixture
def store(client):
    return RemoteTimelineStore(client, operator_name="Alice", tz=UTC)


class TestRemoteNotes:

    def test_create_registers_shared_id_atomically(self, store, client):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        assert client.commit_count == 1
        info = asyncio.run(store.resolve_shared_note("abc"))
        assert info == SharedNoteInfo(note_id=note.id, owner_id=ALICE, note_name="Daily")

    def test_list_notes_carries_shared_id(self, store):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(store.create_note(ALICE, "Private"))
        notes = {n.name: n for n in asyncio.run(store.list_notes(ALICE))}
        assert notes["Daily"] == note
        assert notes["Private"].shared_id is None
        assert asyncio.run(store.list_notes(BOB)) == []

    def test_unsharing_deletes_registration(self, store, client):
        """Changing sharedId from 'abc' to None removes sharedNotes/abc and adds nothing."""
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(store.update_note(note.with_shared_id(None)))

        assert asyncio.run(store.resolve_shared_note("abc")) is None
        assert not [p for p in client.document_paths() if p.startswith("sharedNotes/")]
        assert asyncio.run(store.list_notes(ALICE))[0].shared_id is None

    def test_changing_shared_id_moves_registration(self, store):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(store.update_note(note.with_shared_id("xyz").renamed("Nights")))

        assert asyncio.run(store.resolve_shared_note("abc")) is None
        assert asyncio.run(store.resolve_shared_note("xyz")).note_name == "Nights"

    def test_update_tolerates_missing_old_registration(self, store, client):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(client.delete(shared_note_path("abc")))
        asyncio.run(store.update_note(note.with_shared_id("xyz")))
        assert asyncio.run(store.resolve_shared_note("xyz")) is not None

    def test_update_missing_note_raises(self, store):
        note = asyncio.run(store.create_note(ALICE, "Daily"))
        asyncio.run(store.delete_note(ALICE, note.id))
        with pytest.raises(NoteNotFoundError):
            asyncio.run(store.update_note(note.renamed("Ghost")))

    def test_delete_cascades(self, store, client):
        """Note, events and registration are all gone afterwards."""
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        for i in range(3):
            asyncio.run(store.save_event(ALICE, note.id, EventKind.MEMO, str(i), 1000 + i))

        asyncio.run(store.delete_note(ALICE, note.id))

        assert asyncio.run(store.list_notes(ALICE)) == []
        assert asyncio.run(store.resolve_shared_note("abc")) is None
        assert asyncio.run(store.get_all_events(ALICE, note.id)) == []
        assert client.document_paths() == []

    def test_delete_large_note_chunks_batches(self, store, client):
        note = asyncio.run(store.create_note(ALICE, "Daily"))
        batch = [EventRecord(1000 + i, EventKind.MEMO) for i in range(700)]
        asyncio.run(store.save_events(ALICE, note.id, batch))
        before = client.commit_count

        asyncio.run(store.delete_note(ALICE, note.id))

        assert client.commit_count - before == 3
        assert client.document_paths() == []

    def test_interrupted_delete_keeps_note_and_registration_together(self):
        """A failed final commit leaves the note and its registration both in place."""
        client = FlakyDocumentClient()
        store = RemoteTimelineStore(client, operator_name="Alice", tz=UTC)
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        batch = [EventRecord(1000 + i, EventKind.MEMO) for i in range(499)]
        assert asyncio.run(store.save_events(ALICE, note.id, batch)).success

        client.fail_on(2)
        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.delete_note(ALICE, note.id))

        assert [n.id for n in asyncio.run(store.list_notes(ALICE))] == [note.id]
        assert asyncio.run(store.resolve_shared_note("abc")) is not None
        assert asyncio.run(store.get_all_events(ALICE, note.id)) == []

        asyncio.run(store.delete_note(ALICE, note.id))
        assert asyncio.run(store.resolve_shared_note("abc")) is None
        assert client.document_paths() == []


class TestRemoteEvents:

    def test_single_write_attributed_to_operator(self, store):
        saved = asyncio.run(store.save_event(ALICE, "n1", EventKind.MEMO, "x", ms(2024, 5, 1)))
        assert saved.attribution == "Alice"
        assert asyncio.run(store.get_event(ALICE, "n1", ms(2024, 5, 1))).attribution == "Alice"

    def test_explicit_attribution_wins(self, store):
        saved = asyncio.run(store.save_event(ALICE, "n1", EventKind.MEMO, "x", 5, attribution="Carol"))
        assert saved.attribution == "Carol"

    def test_month_query(self, store):
        for ts in (ms(2024, 4, 30, 23), ms(2024, 5, 1), ms(2024, 5, 31, 23, 59), ms(2024, 6, 1)):
            asyncio.run(store.save_event(ALICE, "n1", EventKind.SLEEP, "", ts))
        events = asyncio.run(store.get_events_for_month(ALICE, "n1", None, date(2024, 5, 9)))
        assert [e.timestamp for e in events] == [ms(2024, 5, 31, 23, 59), ms(2024, 5, 1)]

    def test_malformed_documents_are_skipped(self, store, client):
        good = ms(2024, 5, 2)
        asyncio.run(store.save_event(ALICE, "n1", EventKind.MEMO, "fine", good))
        asyncio.run(client.set(event_path(ALICE, "n1", ms(2024, 5, 3)), {
            "itemType": "stamp", "timestamp": ms(2024, 5, 3), "type": "DANCE", "note": "",
        }))
        asyncio.run(client.set(event_path(ALICE, "n1", ms(2024, 5, 4)), {
            "itemType": "stamp", "timestamp": "yesterday", "type": "MEMO", "note": "",
        }))
        asyncio.run(client.set(f"{timeline_collection(ALICE, 'n1')}/header", {
            "itemType": "banner", "timestamp": ms(2024, 5, 5),
        }))

        events = asyncio.run(store.get_events_for_month(ALICE, "n1", None, date(2024, 5, 1)))
        assert [e.note for e in events] == ["fine"]
        assert [e.note for e in asyncio.run(store.get_all_events(ALICE, "n1"))] == ["fine"]

    def test_suggestions(self, store):
        for i, text in enumerate(["warm milk", "story", "warm milk", ""]):
            asyncio.run(store.save_event(ALICE, "n1", EventKind.SLEEP, text, 1000 + i))
        assert asyncio.run(store.get_note_suggestions(ALICE, "n1", EventKind.SLEEP)) == ["warm milk", "story"]

    def test_delete_event(self, store, client):
        event = asyncio.run(store.save_event(ALICE, "n1", EventKind.MEMO, "x", 7))
        asyncio.run(store.delete_event(ALICE, "n1", event))
        assert event_path(ALICE, "n1", 7) not in client.document_paths()


class TestRemoteBulkWrites:

    def _batch(self, count):
        return [EventRecord(1000 + i, EventKind.MEMO, f"n{i}") for i in range(count)]

    def test_twelve_hundred_records_in_three_batches(self, store, client):
        result = asyncio.run(store.save_events(ALICE, "n1", self._batch(1200)))
        assert result.success
        assert result.chunk_sizes == (500, 500, 200)
        assert client.commit_count == 3
        assert len(asyncio.run(store.get_all_events(ALICE, "n1"))) == 1200

    def test_second_chunk_failure_keeps_first(self):
        client = FlakyDocumentClient(fail_on_commit=2)
        store = RemoteTimelineStore(client, tz=UTC)
        result = asyncio.run(store.save_events(ALICE, "n1", self._batch(1200)))

        assert not result.success
        assert result.written_count == 500
        assert result.chunk_sizes == (500,)
        assert result.error.code == ErrorCode.PARTIAL_WRITE
        assert len(asyncio.run(store.get_all_events(ALICE, "n1"))) == 500

    def test_bulk_writes_keep_record_attribution(self, store):
        """Unattributed records stay unattributed; operator name is not stamped on them."""
        asyncio.run(store.save_events(ALICE, "n1", self._batch(2)))
        assert all(e.attribution is None for e in asyncio.run(store.get_all_events(ALICE, "n1")))

    def test_client_rejects_oversized_batch(self, client):
        batch = client.batch()
        for i in range(501):
            batch.set(f"c/{i}", {"v": i})
        with pytest.raises(BatchTooLargeError):
            asyncio.run(batch.commit())
        assert client.document_paths() == []


class TestRemoteSubscriptions:

    def test_subscribe_is_idempotent(self, store):
        asyncio.run(store.subscribe(BOB, "abc"))
        asyncio.run(store.subscribe(BOB, "abc"))
        assert asyncio.run(store.list_subscriptions(BOB)) == ["abc"]

    def test_unsubscribe_without_user_document(self, store):
        asyncio.run(store.unsubscribe(BOB, "abc"))
        assert asyncio.run(store.list_subscriptions(BOB)) == []

    def test_subscriber_reads_owner_events(self, store):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(store.save_event(ALICE, note.id, EventKind.FUN, "park", ms(2024, 5, 2)))
        asyncio.run(store.subscribe(BOB, "abc"))

        info = asyncio.run(store.resolve_shared_note("abc"))
        events = asyncio.run(store.get_events_for_month(info.owner_id, info.note_id, "abc", date(2024, 5, 1)))
        assert [e.note for e in events] == ["park"]

    def test_subscription_dangles_after_owner_deletes(self, store):
        note = asyncio.run(store.create_note(ALICE, "Daily", shared_id="abc"))
        asyncio.run(store.subscribe(BOB, "abc"))
        asyncio.run(store.delete_note(ALICE, note.id))

        assert asyncio.run(store.list_subscriptions(BOB)) == ["abc"]
        assert asyncio.run(store.resolve_shared_note("abc")) is None

    def test_note_paths(self):
        assert note_path(ALICE, "n1") == "users/alice/notes/n1"
        assert event_path(ALICE, "n1", 42) == "users/alice/notes/n1/timeline/42"
        assert shared_note_path("abc") == "sharedNotes/abc"
