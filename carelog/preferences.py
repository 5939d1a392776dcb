"""
Application Preferences

Small per-device settings kept in the "app_prefs" namespace of a
KeyValueStore: which event kinds are hidden from the stamp palette, and
which note was selected last.
"""

from __future__ import annotations
from typing import FrozenSet, Iterable, List, Optional
import json
import logging

from .contracts.events import EventKind, Note
from .storage.kv import KeyValueStore


logger = logging.getLogger(__name__)

PREFS_NAMESPACE = "app_prefs"

HIDDEN_KINDS_KEY = "hidden_stamp_types"
LAST_NOTE_ID_KEY = "last_note_id"
LAST_NOTE_NAME_KEY = "last_note_name"
LAST_NOTE_OWNER_KEY = "last_note_owner_id"
LAST_NOTE_SHARED_KEY = "last_note_shared_id"

_LAST_NOTE_KEYS = (
    LAST_NOTE_ID_KEY, LAST_NOTE_NAME_KEY, LAST_NOTE_OWNER_KEY, LAST_NOTE_SHARED_KEY
)


class AppPreferences:
    """Preferences facade over a KeyValueStore."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def save_hidden_kinds(self, kinds: Iterable[EventKind]) -> None:
        identifiers = sorted({k.identifier for k in kinds})
        self._kv.put(PREFS_NAMESPACE, HIDDEN_KINDS_KEY, json.dumps(identifiers))

    def hidden_kinds(self) -> FrozenSet[EventKind]:
        """Hidden kinds. Identifiers no longer known are ignored."""
        raw = self._kv.get(PREFS_NAMESPACE, HIDDEN_KINDS_KEY)
        if not raw:
            return frozenset()
        try:
            identifiers = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable hidden kinds preference")
            return frozenset()

        kinds = set()
        for identifier in identifiers if isinstance(identifiers, list) else ():
            try:
                kinds.add(EventKind.from_identifier(str(identifier)))
            except ValueError:
                continue
        return frozenset(kinds)

    def visible_kinds(self) -> List[EventKind]:
        hidden = self.hidden_kinds()
        return [k for k in EventKind if k not in hidden]

    def save_last_note(self, note: Note) -> None:
        self._kv.put(PREFS_NAMESPACE, LAST_NOTE_ID_KEY, note.id)
        self._kv.put(PREFS_NAMESPACE, LAST_NOTE_NAME_KEY, note.name)
        self._kv.put(PREFS_NAMESPACE, LAST_NOTE_OWNER_KEY, note.owner_id)
        if note.shared_id is not None:
            self._kv.put(PREFS_NAMESPACE, LAST_NOTE_SHARED_KEY, note.shared_id)
        else:
            self._kv.remove(PREFS_NAMESPACE, LAST_NOTE_SHARED_KEY)

    def last_note(self) -> Optional[Note]:
        note_id = self._kv.get(PREFS_NAMESPACE, LAST_NOTE_ID_KEY)
        if note_id is None:
            return None
        return Note(
            id=note_id,
            name=self._kv.get(PREFS_NAMESPACE, LAST_NOTE_NAME_KEY) or "",
            owner_id=self._kv.get(PREFS_NAMESPACE, LAST_NOTE_OWNER_KEY) or "",
            shared_id=self._kv.get(PREFS_NAMESPACE, LAST_NOTE_SHARED_KEY)
        )

    def clear_last_note(self) -> None:
        for key in _LAST_NOTE_KEYS:
            self._kv.remove(PREFS_NAMESPACE, key)
