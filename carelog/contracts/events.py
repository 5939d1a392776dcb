"""
Event Contracts

Immutable data types exchanged between storage, temporal and exchange
layers.

DESIGN PRINCIPLES:
==================
1. An EventRecord is identified by its timestamp within one note
2. EventKind is a closed enumeration; its name is the persisted identifier
3. Display metadata beyond the label (icons, colors) is NOT part of the core
4. Derived types (Interval) are never persisted
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .base import Error


NOTE_MAX_LENGTH = 2048


# =============================================================================
# EVENT KINDS (Closed World)
# =============================================================================

class EventKind(Enum):
    """
    Kinds of stamped events.

    The member name is the stable identifier used for persistence.
    The value is the display label, used by CSV exchange.
    """
    SLEEP = "Sleep"
    WAKE_UP = "Wake up"
    PAINFUL = "Painful"
    FUN = "Fun"
    TANTRUM = "Tantrum"
    MEDICATION = "Medication"
    POO = "Poo"
    PEE = "Pee"
    MEMO = "Memo"
    OUTING = "Outing"

    @property
    def identifier(self) -> str:
        return self.name

    @property
    def label(self) -> str:
        return self.value

    @staticmethod
    def from_identifier(identifier: str) -> EventKind:
        """Resolve a persisted identifier. Raises ValueError if unknown."""
        try:
            return EventKind[identifier]
        except KeyError:
            raise ValueError(f"Unknown event kind identifier: {identifier!r}") from None

    @staticmethod
    def from_label(label: str) -> Optional[EventKind]:
        """Exact match against display labels, None if no kind matches."""
        for kind in EventKind:
            if kind.value == label:
                return kind
        return None


SLEEP_KINDS = frozenset({EventKind.SLEEP, EventKind.WAKE_UP})


# =============================================================================
# EVENT RECORD
# =============================================================================

@dataclass(frozen=True)
class EventRecord:
    """
    A single stamped event.

    `timestamp` is milliseconds since epoch and acts as both sort key and
    identity within a note. `attribution` is the display name of whoever
    recorded the event, absent for single-user local notes.
    """
    timestamp: int
    kind: EventKind
    note: str = ""
    attribution: Optional[str] = None


# =============================================================================
# NOTES
# =============================================================================

@dataclass(frozen=True)
class Note:
    """An owned, named container of events. `shared_id` set iff published."""
    id: str
    name: str
    owner_id: str
    shared_id: Optional[str] = None

    def renamed(self, name: str) -> Note:
        return Note(id=self.id, name=name, owner_id=self.owner_id, shared_id=self.shared_id)

    def with_shared_id(self, shared_id: Optional[str]) -> Note:
        return Note(id=self.id, name=self.name, owner_id=self.owner_id, shared_id=shared_id)


@dataclass(frozen=True)
class SharedNoteInfo:
    """Read-only projection used by subscribers to resolve a shared-id."""
    note_id: str
    owner_id: str
    note_name: str


@dataclass(frozen=True)
class SubscriptionEntry:
    """
    A subscribed shared-id and what it resolves to.

    `info` is None when the shared-id no longer has a registration
    (dangling). That is a valid state, not an error.
    """
    shared_id: str
    info: Optional[SharedNoteInfo] = None

    @property
    def is_resolved(self) -> bool:
        return self.info is not None

    def as_note(self) -> Optional[Note]:
        if self.info is None:
            return None
        return Note(
            id=self.info.note_id,
            name=self.info.note_name,
            owner_id=self.info.owner_id,
            shared_id=self.shared_id
        )


# =============================================================================
# DERIVED VIEWS
# =============================================================================

@dataclass(frozen=True)
class Interval:
    """
    Reconstructed sleep segment within one calendar day.

    Minutes are local minute-of-day (0.0 - 1439.0). A sleep that started
    before midnight is recorded on the wake day with start > end.
    `closed` is False when the end was assumed (23:59) rather than observed.
    """
    start_minute: float
    end_minute: float
    closed: bool = True


# =============================================================================
# STORAGE RESULTS
# =============================================================================

@dataclass(frozen=True)
class StorageWriteResult:
    """
    Outcome of a bulk write.

    Chunks commit independently: on failure, `written_count` records how
    many items were committed by the chunks that succeeded before it.
    """
    success: bool
    written_count: int = 0
    chunk_count: int = 0
    error: Optional[Error] = None
    chunk_sizes: Tuple[int, ...] = field(default_factory=tuple)
