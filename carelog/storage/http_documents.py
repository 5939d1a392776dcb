"""
HTTP Document Client

DocumentClient over a JSON REST document service, using httpx.

PROTOCOL:
=========
- GET    /documents/{path}               -> 200 {"fields": {...}} | 404
- PUT    /documents/{path}?merge=bool    body {"fields": {...}}
- DELETE /documents/{path}
- GET    /collections/{path}             -> 200 {"documents": [{"path", "fields"}]}
- POST   /query                          body {"collection", "filters", "orderBy",
                                               "descending", "limit"}
- POST   /commit                         body {"writes": [{"op", "path", "fields", "merge"}]}

Array transforms are encoded as {"__transform__": "arrayUnion"|"arrayRemove",
"values": [...]}. A commit either applies every write or none; the service
answers 404 when an update addresses a missing document and 413 when the
batch exceeds its write ceiling.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence
import logging

import httpx

from ..contracts.base import (
    BatchTooLargeError, DocumentNotFoundError, StoreUnavailableError
)
from .documents import (
    ArrayRemove, ArrayUnion, DocumentClient, DocumentSnapshot, Filter, WriteOp
)


logger = logging.getLogger(__name__)


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    encoded = {}
    for name, value in fields.items():
        if isinstance(value, ArrayUnion):
            encoded[name] = {"__transform__": "arrayUnion", "values": list(value.values)}
        elif isinstance(value, ArrayRemove):
            encoded[name] = {"__transform__": "arrayRemove", "values": list(value.values)}
        else:
            encoded[name] = value
    return encoded


class HttpDocumentClient(DocumentClient):
    """
    Remote document database client.

    Owns an httpx.AsyncClient unless one is injected (tests pass a client
    built on httpx.MockTransport). No retries: a failed request raises
    StoreUnavailableError and the caller decides what to do.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        api_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        headers = {"User-Agent": "carelog/0.3"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise StoreUnavailableError(f"{method} {url} failed: {e}") from e

        if response.status_code == 404 and method != "GET":
            raise DocumentNotFoundError(f"{method} {url}: document not found")
        if response.status_code == 413:
            raise BatchTooLargeError(f"{method} {url}: batch rejected as too large")
        if response.status_code >= 400 and response.status_code != 404:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            raise StoreUnavailableError(f"{method} {url} returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise StoreUnavailableError(f"Invalid JSON from document service: {e}") from e
        if not isinstance(body, dict):
            raise StoreUnavailableError("Document service returned a non-object body")
        return body

    def _snapshots(self, body: Dict[str, Any]) -> List[DocumentSnapshot]:
        return [
            DocumentSnapshot(path=doc["path"], data=dict(doc.get("fields") or {}))
            for doc in body.get("documents", [])
            if isinstance(doc, dict) and "path" in doc
        ]

    async def get(self, path: str) -> DocumentSnapshot:
        response = await self._request("GET", f"/documents/{path}")
        if response.status_code == 404:
            return DocumentSnapshot(path=path, data=None)
        return DocumentSnapshot(path=path, data=dict(self._decode(response).get("fields") or {}))

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self._request(
            "PUT",
            f"/documents/{path}",
            params={"merge": "true" if merge else "false"},
            json={"fields": encode_fields(data)}
        )

    async def delete(self, path: str) -> None:
        try:
            await self._request("DELETE", f"/documents/{path}")
        except DocumentNotFoundError:
            # Deleting an absent document is a no-op
            pass

    async def list_documents(self, collection: str) -> List[DocumentSnapshot]:
        response = await self._request("GET", f"/collections/{collection}")
        if response.status_code == 404:
            return []
        return self._snapshots(self._decode(response))

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        payload = {
            "collection": collection,
            "filters": [{"field": f.field, "op": f.op, "value": f.value} for f in filters],
            "orderBy": order_by,
            "descending": descending,
            "limit": limit,
        }
        response = await self._request("POST", "/query", json=payload)
        return self._snapshots(self._decode(response))

    async def commit(self, ops: Sequence[WriteOp]) -> None:
        writes = []
        for op in ops:
            write = {"op": op.kind, "path": op.path}
            if op.data is not None:
                write["fields"] = encode_fields(op.data)
            if op.merge:
                write["merge"] = True
            writes.append(write)
        await self._request("POST", "/commit", json={"writes": writes})

    async def close(self) -> None:
        await self._client.aclose()
