"""
Key-Value Persistence

Unordered string-to-string namespaces, the on-device persistence surface
the local timeline backend is written against.

BOUNDARY ENFORCEMENT:
=====================
- Values are opaque strings; this module never parses them
- Namespaces are independent: writing one never touches another
- I/O failures surface as StoreUnavailableError
"""

from __future__ import annotations
from typing import Dict, Iterable, Optional, Tuple
import contextlib
import json
import logging
import os
import re
import tempfile

from ..contracts.base import StoreUnavailableError


logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStore:
    """
    Abstract key-value interface.

    Implementations can use different storage systems (memory, files)
    while keeping the same namespace semantics.
    """

    def all(self, namespace: str) -> Dict[str, str]:
        """Return a copy of every entry in a namespace."""
        raise NotImplementedError

    def get(self, namespace: str, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, namespace: str, key: str, value: str) -> None:
        raise NotImplementedError

    def put_many(self, namespace: str, items: Iterable[Tuple[str, str]]) -> None:
        """Write several entries in one step."""
        raise NotImplementedError

    def remove(self, namespace: str, key: str) -> None:
        raise NotImplementedError

    def clear(self, namespace: str) -> None:
        """Drop every entry of a namespace."""
        raise NotImplementedError


# =============================================================================
# IN-MEMORY KEY-VALUE STORE (Reference Implementation)
# =============================================================================

class InMemoryKeyValueStore(KeyValueStore):
    """
    In-memory implementation. Suitable for testing and ephemeral sessions.
    """

    def __init__(self):
        self._namespaces: Dict[str, Dict[str, str]] = {}

    def all(self, namespace: str) -> Dict[str, str]:
        return dict(self._namespaces.get(namespace, {}))

    def get(self, namespace: str, key: str) -> Optional[str]:
        return self._namespaces.get(namespace, {}).get(key)

    def put(self, namespace: str, key: str, value: str) -> None:
        self._namespaces.setdefault(namespace, {})[key] = value

    def put_many(self, namespace: str, items: Iterable[Tuple[str, str]]) -> None:
        entries = self._namespaces.setdefault(namespace, {})
        for key, value in items:
            entries[key] = value

    def remove(self, namespace: str, key: str) -> None:
        self._namespaces.get(namespace, {}).pop(key, None)

    def clear(self, namespace: str) -> None:
        self._namespaces.pop(namespace, None)

    def namespaces(self) -> Tuple[str, ...]:
        return tuple(sorted(self._namespaces))


# =============================================================================
# FILE-BASED KEY-VALUE STORE
# =============================================================================

class JsonFileKeyValueStore(KeyValueStore):
    """
    File-based implementation: one JSON object per namespace.

    Each write rewrites the namespace file through a temporary file and an
    atomic rename, so a crash never leaves a half-written namespace.
    """

    def __init__(self, storage_dir: str):
        self._storage_dir = storage_dir
        try:
            os.makedirs(storage_dir, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create storage dir {storage_dir}: {e}") from e

    def _path(self, namespace: str) -> str:
        return os.path.join(self._storage_dir, _UNSAFE_CHARS.sub("_", namespace) + ".json")

    def _load(self, namespace: str) -> Dict[str, str]:
        path = self._path(namespace)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreUnavailableError(f"Failed to read namespace {namespace}: {e}") from e
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Namespace {namespace} is not a JSON object")
        return {str(k): v for k, v in data.items()}

    def _dump(self, namespace: str, entries: Dict[str, str]) -> None:
        path = self._path(namespace)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._storage_dir, suffix=".tmp")
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(entries, f, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            raise StoreUnavailableError(f"Failed to write namespace {namespace}: {e}") from e

    def all(self, namespace: str) -> Dict[str, str]:
        return self._load(namespace)

    def get(self, namespace: str, key: str) -> Optional[str]:
        return self._load(namespace).get(key)

    def put(self, namespace: str, key: str, value: str) -> None:
        entries = self._load(namespace)
        entries[key] = value
        self._dump(namespace, entries)

    def put_many(self, namespace: str, items: Iterable[Tuple[str, str]]) -> None:
        entries = self._load(namespace)
        for key, value in items:
            entries[key] = value
        self._dump(namespace, entries)

    def remove(self, namespace: str, key: str) -> None:
        entries = self._load(namespace)
        if key in entries:
            del entries[key]
            self._dump(namespace, entries)

    def clear(self, namespace: str) -> None:
        path = self._path(namespace)
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            raise StoreUnavailableError(f"Failed to clear namespace {namespace}: {e}") from e
        logger.debug(f"Cleared namespace {namespace}")
