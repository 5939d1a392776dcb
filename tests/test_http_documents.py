"""
HTTP Document Client Tests
==========================

HttpDocumentClient against httpx.MockTransport: request encoding, status
mapping, and a full RemoteTimelineStore round trip through a fake
document service.
"""

import asyncio
import json
import pytest
from datetime import date, datetime, timezone

import httpx

from carelog.contracts.base import (
    BatchTooLargeError, DocumentNotFoundError, StoreUnavailableError
)
from carelog.contracts.events import EventKind, EventRecord
from carelog.storage import RemoteTimelineStore
from carelog.storage.documents import (
    ArrayRemove, ArrayUnion, Filter, InMemoryDocumentClient, WriteOp
)
from carelog.storage.http_documents import HttpDocumentClient, encode_fields
from carelog.temporal.month_window import to_millis

BASE_URL = "http://docs.test"
UTC = timezone.utc


def make_client(handler, api_token=None) -> HttpDocumentClient:
    headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
    transport = httpx.MockTransport(handler)
    return HttpDocumentClient(
        BASE_URL,
        client=httpx.AsyncClient(transport=transport, base_url=BASE_URL, headers=headers)
    )


def decode_fields(fields):
    decoded = {}
    for name, value in fields.items():
        if isinstance(value, dict) and value.get("__transform__") == "arrayUnion":
            decoded[name] = ArrayUnion(tuple(value["values"]))
        elif isinstance(value, dict) and value.get("__transform__") == "arrayRemove":
            decoded[name] = ArrayRemove(tuple(value["values"]))
        else:
            decoded[name] = value
    return decoded


class FakeDocumentService:
    """Serves the REST protocol from an InMemoryDocumentClient."""

    def __init__(self):
        self.backend = InMemoryDocumentClient()
        self.requests = []

    def _documents(self, snapshots):
        return {"documents": [{"path": s.path, "fields": s.data} for s in snapshots]}

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        try:
            if path.startswith("/documents/"):
                doc_path = path[len("/documents/"):]
                if request.method == "GET":
                    snapshot = await self.backend.get(doc_path)
                    if not snapshot.exists:
                        return httpx.Response(404)
                    return httpx.Response(200, json={"fields": snapshot.data})
                if request.method == "PUT":
                    merge = request.url.params.get("merge") == "true"
                    await self.backend.set(doc_path, decode_fields(body["fields"]), merge=merge)
                    return httpx.Response(200, json={})
                if request.method == "DELETE":
                    if not (await self.backend.get(doc_path)).exists:
                        return httpx.Response(404)
                    await self.backend.delete(doc_path)
                    return httpx.Response(204)

            if path.startswith("/collections/"):
                return httpx.Response(
                    200, json=self._documents(await self.backend.list_documents(path[len("/collections/"):]))
                )

            if path == "/query":
                snapshots = await self.backend.query(
                    body["collection"],
                    filters=[Filter(f["field"], f["op"], f["value"]) for f in body["filters"]],
                    order_by=body.get("orderBy"),
                    descending=body.get("descending", False),
                    limit=body.get("limit")
                )
                return httpx.Response(200, json=self._documents(snapshots))

            if path == "/commit":
                ops = [
                    WriteOp(w["op"], w["path"], decode_fields(w["fields"]) if "fields" in w else None,
                            w.get("merge", False))
                    for w in body["writes"]
                ]
                await self.backend.commit(ops)
                return httpx.Response(200, json={})
        except DocumentNotFoundError:
            return httpx.Response(404)
        except BatchTooLargeError:
            return httpx.Response(413)

        return httpx.Response(400)


class TestHttpDocumentClientMapping:

    def test_get_existing_and_missing(self):
        def handler(request):
            if request.url.path.endswith("/present"):
                return httpx.Response(200, json={"fields": {"name": "Daily"}})
            return httpx.Response(404)

        async def scenario():
            client = make_client(handler)
            present = await client.get("users/u/notes/present")
            missing = await client.get("users/u/notes/missing")
            await client.close()
            return present, missing

        present, missing = asyncio.run(scenario())
        assert present.exists and present.get("name") == "Daily"
        assert present.id == "present"
        assert not missing.exists

    def test_set_encodes_merge_and_transforms(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async def scenario():
            client = make_client(handler, api_token="t0k3n")
            await client.set("users/u", {"subscribedNoteIds": ArrayUnion(("abc",))}, merge=True)
            await client.close()

        asyncio.run(scenario())
        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/documents/users/u"
        assert request.url.params["merge"] == "true"
        assert request.headers["Authorization"] == "Bearer t0k3n"
        assert json.loads(request.content) == {
            "fields": {"subscribedNoteIds": {"__transform__": "arrayUnion", "values": ["abc"]}}
        }

    def test_delete_of_absent_document_is_noop(self):
        async def scenario():
            client = make_client(lambda request: httpx.Response(404))
            await client.delete("users/u/notes/n1")
            await client.close()

        asyncio.run(scenario())

    @pytest.mark.parametrize("status, error", [
        (404, DocumentNotFoundError),
        (413, BatchTooLargeError),
        (500, StoreUnavailableError),
        (401, StoreUnavailableError),
    ])
    def test_commit_status_mapping(self, status, error):
        async def scenario():
            client = make_client(lambda request: httpx.Response(status))
            try:
                await client.commit([WriteOp("update", "users/u/notes/n1", {"name": "x"})])
            finally:
                await client.close()

        with pytest.raises(error):
            asyncio.run(scenario())

    def test_transport_failure_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def scenario():
            client = make_client(handler)
            try:
                await client.get("users/u")
            finally:
                await client.close()

        with pytest.raises(StoreUnavailableError):
            asyncio.run(scenario())

    def test_invalid_json_is_unavailable(self):
        async def scenario():
            client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
            try:
                await client.get("users/u")
            finally:
                await client.close()

        with pytest.raises(StoreUnavailableError):
            asyncio.run(scenario())

    def test_missing_collection_lists_nothing(self):
        async def scenario():
            client = make_client(lambda request: httpx.Response(404))
            docs = await client.list_documents("users/u/notes")
            await client.close()
            return docs

        assert asyncio.run(scenario()) == []

    def test_encode_fields_passes_plain_values(self):
        assert encode_fields({"a": 1, "b": ArrayRemove(("x",))}) == {
            "a": 1, "b": {"__transform__": "arrayRemove", "values": ["x"]}
        }


class TestRemoteStoreOverHttp:

    def test_full_round_trip(self):
        """Notes, events, sharing and bulk writes through the REST protocol."""
        service = FakeDocumentService()
        may_2 = to_millis(datetime(2024, 5, 2, 21, 0, tzinfo=UTC))

        async def scenario():
            store = RemoteTimelineStore(make_client(service), operator_name="Alice", tz=UTC)
            note = await store.create_note("alice", "Daily", shared_id="abc")
            await store.save_event("alice", note.id, EventKind.SLEEP, "", may_2)
            result = await store.save_events("alice", note.id, [
                EventRecord(may_2 + i * 60_000 + 1, EventKind.MEMO, f"m{i}") for i in range(3)
            ])
            await store.subscribe("bob", "abc")
            info = await store.resolve_shared_note("abc")
            month = await store.get_events_for_month(
                info.owner_id, info.note_id, "abc", date(2024, 5, 1)
            )
            subscriptions = await store.list_subscriptions("bob")
            await store.delete_note("alice", note.id)
            after = await store.resolve_shared_note("abc")
            await store.close()
            return result, month, subscriptions, after

        result, month, subscriptions, after = asyncio.run(scenario())

        assert result.success and result.written_count == 3
        assert len(month) == 4
        assert month[-1].kind == EventKind.SLEEP
        assert month[-1].attribution == "Alice"
        assert subscriptions == ["abc"]
        assert after is None
        assert service.backend.document_paths() == ["users/bob"]
