"""
Timeline Storage Layer

RESPONSIBILITY: Note and event persistence behind one contract
ALLOWED INPUTS: EventRecord, Note, owner ids
OUTPUTS: EventRecord lists, Note lists, StorageWriteResult

WHAT THIS LAYER MUST NOT DO:
============================
- Derive intervals or diaries
- Interpret note text
- Retry failed I/O
- Read ambient global state (owner id and clients are passed in)

BACKENDS:
=========
1. LocalTimelineStore over a KeyValueStore (memory or JSON files).
   Single device, no sharing.
2. RemoteTimelineStore over a DocumentClient (in-memory or HTTP).
   Multi-user, shared notes and subscriptions.

The backend is chosen once, at construction, from TimelineStoreConfig.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional

from .contract import (
    TimelineStore, MAX_BATCH_WRITES, SUGGESTION_LIMIT, SUGGESTION_LOOKBACK, chunked
)
from .kv import KeyValueStore, InMemoryKeyValueStore, JsonFileKeyValueStore
from .local import LocalTimelineStore
from .documents import DocumentClient, InMemoryDocumentClient
from .remote import RemoteTimelineStore


@dataclass
class TimelineStoreConfig:
    """Configuration for timeline storage."""
    backend_type: str = "memory"  # "memory", "local" or "remote"
    storage_dir: Optional[str] = None
    remote_base_url: Optional[str] = None
    remote_timeout: float = 15.0
    api_token: Optional[str] = None


def create_key_value_store(config: TimelineStoreConfig) -> KeyValueStore:
    """Key-value store for local notes and preferences."""
    if config.storage_dir:
        return JsonFileKeyValueStore(config.storage_dir)
    return InMemoryKeyValueStore()


def create_timeline_store(
    config: Optional[TimelineStoreConfig] = None,
    operator_name: Optional[str] = None,
    tz: Optional[tzinfo] = None,
    kv: Optional[KeyValueStore] = None
) -> TimelineStore:
    """Create the timeline store selected by configuration."""
    config = config or TimelineStoreConfig()

    if config.backend_type == "remote":
        if not config.remote_base_url:
            raise ValueError("remote backend requires remote_base_url")
        from .http_documents import HttpDocumentClient
        client = HttpDocumentClient(
            base_url=config.remote_base_url,
            timeout=config.remote_timeout,
            api_token=config.api_token
        )
        return RemoteTimelineStore(client, operator_name=operator_name, tz=tz)

    if config.backend_type == "local":
        if not config.storage_dir:
            raise ValueError("local backend requires storage_dir")
        return LocalTimelineStore(kv or JsonFileKeyValueStore(config.storage_dir), tz=tz)

    if config.backend_type == "memory":
        return LocalTimelineStore(kv or InMemoryKeyValueStore(), tz=tz)

    raise ValueError(f"Unknown backend_type: {config.backend_type!r}")


__all__ = [
    'TimelineStore',
    'TimelineStoreConfig',
    'MAX_BATCH_WRITES',
    'SUGGESTION_LIMIT',
    'SUGGESTION_LOOKBACK',
    'chunked',
    'KeyValueStore',
    'InMemoryKeyValueStore',
    'JsonFileKeyValueStore',
    'LocalTimelineStore',
    'DocumentClient',
    'InMemoryDocumentClient',
    'RemoteTimelineStore',
    'create_key_value_store',
    'create_timeline_store',
]
