"""
Observability & Audit Layer

RESPONSIBILITY: Recording what mutating operations were performed
ALLOWED INPUTS: Action names, note ids, string metadata
OUTPUTS: AuditLogEntry lists

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Make decisions based on logged data
- Hold references to events or notes (only ids and strings)

BOUNDARY ENFORCEMENT:
=====================
- Append-only: entries are never modified or removed
- Read accessors return copies
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple
import hashlib
import logging


logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Mutating operations recorded by the service."""
    NOTE_CREATED = "note_created"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"
    EVENT_SAVED = "event_saved"
    EVENT_EDITED = "event_edited"
    EVENT_DELETED = "event_deleted"
    EVENTS_BULK_SAVED = "events_bulk_saved"
    CSV_EXPORTED = "csv_exported"
    CSV_IMPORTED = "csv_imported"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of one performed operation."""
    entry_id: str
    timestamp: datetime
    action: AuditAction
    note_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def metadata_value(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None


class AuditTrail:
    """
    Append-only in-memory audit collector.

    Entry ids are derived from sequence, action and time, so two entries
    never share an id within one trail.
    """

    def __init__(self):
        self._entries: List[AuditLogEntry] = []
        self._sequence: int = 0

    def record(
        self,
        action: AuditAction,
        note_id: Optional[str] = None,
        metadata: Tuple[Tuple[str, str], ...] = ()
    ) -> AuditLogEntry:
        now = datetime.now(timezone.utc)
        self._sequence += 1
        digest = hashlib.sha256(
            f"{self._sequence}|{action.value}|{now.timestamp()}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_{digest}",
            timestamp=now,
            action=action,
            note_id=note_id,
            metadata=tuple(metadata)
        )
        self._entries.append(entry)
        logger.debug(f"audit {action.value} note={note_id} {dict(entry.metadata)}")
        return entry

    def get_entries(
        self,
        action: Optional[AuditAction] = None,
        note_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Entries in recording order, optionally filtered."""
        entries = self._entries
        if action is not None:
            entries = [e for e in entries if e.action == action]
        if note_id is not None:
            entries = [e for e in entries if e.note_id == note_id]
        return list(entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)


__all__ = [
    'AuditAction',
    'AuditLogEntry',
    'AuditTrail',
]
