"""
Timeline Store Contract

The interface every storage backend implements, plus the helpers the
backends share. Callers hold a TimelineStore and never branch on which
backend is behind it.

FAILURE SEMANTICS:
==================
- Any operation MAY raise StoreUnavailableError on transient I/O failure
- No operation is retried by the store; retry policy belongs to the caller
- save_events reports partial success through StorageWriteResult instead
  of raising, because earlier chunks stay committed
"""

from __future__ import annotations
from datetime import date
from typing import Iterable, Iterator, List, Optional, Sequence, TypeVar

from ..contracts.base import Error, ErrorCode
from ..contracts.events import (
    EventKind, EventRecord, Note, SharedNoteInfo, StorageWriteResult
)


# Per-commit write ceiling of the backing document store
MAX_BATCH_WRITES = 500

SUGGESTION_LIMIT = 10
SUGGESTION_LOOKBACK = 100

T = TypeVar("T")


def chunked(items: Sequence[T], size: int = MAX_BATCH_WRITES) -> Iterator[Sequence[T]]:
    """Split a sequence into consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def pick_suggestions(notes_newest_first: Iterable[str]) -> List[str]:
    """
    Distinct non-blank note texts, most recent first.

    Only the first SUGGESTION_LOOKBACK entries are considered; at most
    SUGGESTION_LIMIT are returned.
    """
    seen = set()
    suggestions: List[str] = []
    for index, text in enumerate(notes_newest_first):
        if index >= SUGGESTION_LOOKBACK or len(suggestions) >= SUGGESTION_LIMIT:
            break
        if not text or not text.strip() or text in seen:
            continue
        seen.add(text)
        suggestions.append(text)
    return suggestions


class TimelineStore:
    """
    Abstract timeline store.

    Events are scoped to a note and keyed by timestamp. All operations are
    coroutines; the local backend completes them without suspending.
    """

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    async def list_notes(self, owner_id: str) -> List[Note]:
        """All notes owned by `owner_id`. Order is unspecified."""
        raise NotImplementedError

    async def create_note(self, owner_id: str, name: str, shared_id: Optional[str] = None) -> Note:
        """Create a note, registering `shared_id` atomically when given."""
        raise NotImplementedError

    async def update_note(self, note: Note) -> None:
        """Rename and/or change the shared-id of an existing note."""
        raise NotImplementedError

    async def delete_note(self, owner_id: str, note_id: str) -> None:
        """Delete a note, its events and its shared registration."""
        raise NotImplementedError

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
        """Events of the month containing `reference_date`, newest first."""
        raise NotImplementedError

    async def get_all_events(self, owner_id: str, note_id: str) -> List[EventRecord]:
        """Every event of a note, oldest first."""
        raise NotImplementedError

    async def get_event(self, owner_id: str, note_id: str, timestamp: int) -> Optional[EventRecord]:
        raise NotImplementedError

    async def get_note_suggestions(self, owner_id: str, note_id: str, kind: EventKind) -> List[str]:
        """Recent distinct note texts used with `kind`."""
        raise NotImplementedError

    async def save_event(
        self,
        owner_id: str,
        note_id: str,
        kind: EventKind,
        note: str,
        timestamp: Optional[int] = None,
        attribution: Optional[str] = None
    ) -> EventRecord:
        """Upsert by timestamp. `timestamp=None` stamps the current time."""
        raise NotImplementedError

    async def save_events(
        self,
        owner_id: str,
        note_id: str,
        batch: Sequence[EventRecord]
    ) -> StorageWriteResult:
        """Bulk upsert in chunks of at most MAX_BATCH_WRITES. No rollback."""
        raise NotImplementedError

    async def delete_event(self, owner_id: str, note_id: str, event: EventRecord) -> None:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Sharing
    # -------------------------------------------------------------------------

    async def subscribe(self, owner_id: str, shared_id: str) -> None:
        raise NotImplementedError

    async def unsubscribe(self, owner_id: str, shared_id: str) -> None:
        raise NotImplementedError

    async def list_subscriptions(self, owner_id: str) -> List[str]:
        raise NotImplementedError

    async def resolve_shared_note(self, shared_id: str) -> Optional[SharedNoteInfo]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
        return None


def partial_write_result(written: int, sizes: Sequence[int], cause: Exception) -> StorageWriteResult:
    """Result of a bulk write that stopped after `written` committed items."""
    return StorageWriteResult(
        success=False,
        written_count=written,
        chunk_count=len(sizes),
        chunk_sizes=tuple(sizes),
        error=Error.create(ErrorCode.PARTIAL_WRITE, str(cause)).with_context("written", str(written))
    )
