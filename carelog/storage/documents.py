"""
Document Store Abstraction

The slice of a remote document database the remote timeline backend
needs: path-addressed documents, simple filtered queries, array field
transforms and atomic multi-document batches.

BOUNDARY ENFORCEMENT:
=====================
- Paths alternate collection/document segments: "users/u1/notes/n1"
- A committed batch is all-or-nothing; no partial visibility
- A batch holds at most MAX_BATCH_WRITES operations
- Transport failures surface as StoreUnavailableError
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import copy
import uuid

from ..contracts.base import BatchTooLargeError, DocumentNotFoundError
from .contract import MAX_BATCH_WRITES


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class ArrayUnion:
    """Field transform: add values to an array field, skipping duplicates."""
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    """Field transform: remove every occurrence of values from an array field."""
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Filter:
    """Query predicate on one field. Supported ops: ==, >=, <."""
    field: str
    op: str
    value: Any

    def matches(self, data: Dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        try:
            if self.op == "==":
                return actual == self.value
            if self.op == ">=":
                return actual >= self.value
            if self.op == "<":
                return actual < self.value
        except TypeError:
            return False
        raise ValueError(f"Unsupported filter op: {self.op!r}")


@dataclass(frozen=True)
class DocumentSnapshot:
    """Read result for one document. `data` is None when it does not exist."""
    path: str
    data: Optional[Dict[str, Any]] = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def get(self, name: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(name, default)


@dataclass(frozen=True)
class WriteOp:
    """One buffered batch operation: "set", "update" or "delete"."""
    kind: str
    path: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


def order_key(value: Any) -> Tuple[int, Any]:
    """Sort key ordering values by type first (numbers, then strings, then the rest)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, repr(value))


def parent_collection(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def apply_fields(current: Optional[Dict[str, Any]], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `fields` into `current`, resolving array transforms."""
    merged = dict(current or {})
    for name, value in fields.items():
        if isinstance(value, ArrayUnion):
            existing = list(merged.get(name) or [])
            for item in value.values:
                if item not in existing:
                    existing.append(item)
            merged[name] = existing
        elif isinstance(value, ArrayRemove):
            merged[name] = [item for item in (merged.get(name) or []) if item not in value.values]
        else:
            merged[name] = value
    return merged


# =============================================================================
# CLIENT INTERFACE
# =============================================================================

class DocumentClient:
    """
    Abstract async document database client.

    Implementations: InMemoryDocumentClient (tests, single process) and
    HttpDocumentClient (remote service over httpx).
    """

    def new_id(self) -> str:
        """Allocate a fresh unique document id."""
        return uuid.uuid4().hex

    async def get(self, path: str) -> DocumentSnapshot:
        raise NotImplementedError

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    async def list_documents(self, collection: str) -> List[DocumentSnapshot]:
        raise NotImplementedError

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        raise NotImplementedError

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        """Apply every op atomically, or none of them."""
        raise NotImplementedError

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def close(self) -> None:
        return None


@dataclass
class WriteBatch:
    """Buffered group of writes committed as one atomic unit."""
    client: DocumentClient
    ops: List[WriteOp] = field(default_factory=list)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> WriteBatch:
        self.ops.append(WriteOp("set", path, dict(data), merge))
        return self

    def update(self, path: str, data: Dict[str, Any]) -> WriteBatch:
        self.ops.append(WriteOp("update", path, dict(data)))
        return self

    def delete(self, path: str) -> WriteBatch:
        self.ops.append(WriteOp("delete", path))
        return self

    def __len__(self) -> int:
        return len(self.ops)

    async def commit(self) -> None:
        if not self.ops:
            return
        await self.client.commit(list(self.ops))


# =============================================================================
# IN-MEMORY CLIENT (Reference Implementation)
# =============================================================================

class InMemoryDocumentClient(DocumentClient):
    """
    In-process document database.

    Enforces the same batch ceiling and update-requires-existing rule as
    the remote service, so backends behave identically against it.
    """

    def __init__(self, max_batch_writes: int = MAX_BATCH_WRITES):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._max_batch_writes = max_batch_writes
        self.commit_count = 0

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._documents.get(path)
        return DocumentSnapshot(path=path, data=copy.deepcopy(data) if data is not None else None)

    async def get(self, path: str) -> DocumentSnapshot:
        return self._snapshot(path)

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self.commit([WriteOp("set", path, dict(data), merge)])

    async def delete(self, path: str) -> None:
        await self.commit([WriteOp("delete", path)])

    async def list_documents(self, collection: str) -> List[DocumentSnapshot]:
        return [
            self._snapshot(path)
            for path in sorted(self._documents)
            if parent_collection(path) == collection
        ]

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        matches = [
            snapshot for snapshot in await self.list_documents(collection)
            if all(f.matches(snapshot.data) for f in filters)
        ]
        if order_by is not None:
            # Documents missing the ordering field are excluded, as a real index would
            matches = [s for s in matches if order_by in s.data]
            matches.sort(key=lambda s: order_key(s.data[order_by]), reverse=descending)
        if limit is not None:
            matches = matches[:limit]
        return matches

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        if len(ops) > self._max_batch_writes:
            raise BatchTooLargeError(
                f"Batch of {len(ops)} writes exceeds limit of {self._max_batch_writes}"
            )

        # Validate against a working copy first; publish only if every op applies
        staged = dict(self._documents)
        for op in ops:
            if op.kind == "delete":
                staged.pop(op.path, None)
            elif op.kind == "update":
                if op.path not in staged:
                    raise DocumentNotFoundError(f"No document to update at {op.path}")
                staged[op.path] = apply_fields(staged[op.path], op.data or {})
            elif op.kind == "set":
                base = staged.get(op.path) if op.merge else None
                staged[op.path] = apply_fields(base, op.data or {})
            else:
                raise ValueError(f"Unknown write op: {op.kind!r}")

        self._documents = staged
        self.commit_count += 1

    def document_paths(self) -> List[str]:
        return sorted(self._documents)
