"""Tests for mahuru.hooks.firestore — Firestore adapter over a mocked client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from mahuru.errors import AlreadyExistsError, NotFoundError, StoreError
from mahuru.hooks.firestore import FirestoreDocumentStore


def _snapshot(data: dict | None) -> MagicMock:
    snapshot = MagicMock()
    snapshot.exists = data is not None
    snapshot.to_dict.return_value = data
    return snapshot


class _Stream:
    """Async iterator standing in for Query.stream()."""

    def __init__(self, snapshots: list) -> None:
        self._snapshots = list(snapshots)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._snapshots:
            raise StopAsyncIteration
        return self._snapshots.pop(0)


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    document = client.collection.return_value.document.return_value
    document.get = AsyncMock(return_value=_snapshot(None))
    document.set = AsyncMock()
    document.create = AsyncMock()
    document.update = AsyncMock()
    document.delete = AsyncMock()
    query = client.collection.return_value
    query.where.return_value = query
    query.order_by.return_value = query
    query.limit.return_value = query
    query.stream.return_value = _Stream([])
    return client


class TestDocuments:
    @pytest.mark.asyncio
    async def test_get_existing(self, client) -> None:
        client.collection.return_value.document.return_value.get.return_value = _snapshot(
            {"id": "u1", "name": "Ana"}
        )
        store = FirestoreDocumentStore(client=client)
        assert await store.get("users", "u1") == {"id": "u1", "name": "Ana"}
        client.collection.assert_called_with("users")
        client.collection.return_value.document.assert_called_with("u1")

    @pytest.mark.asyncio
    async def test_get_missing(self, client) -> None:
        assert await FirestoreDocumentStore(client=client).get("users", "nobody") is None

    @pytest.mark.asyncio
    async def test_set_passes_merge(self, client) -> None:
        await FirestoreDocumentStore(client=client).set("users", "u1", {"name": "Ana"}, merge=True)
        client.collection.return_value.document.return_value.set.assert_awaited_once_with(
            {"name": "Ana"}, merge=True
        )

    @pytest.mark.asyncio
    async def test_update_missing_document(self, client) -> None:
        client.collection.return_value.document.return_value.update.side_effect = (
            google_exceptions.NotFound("no such document")
        )
        with pytest.raises(NotFoundError):
            await FirestoreDocumentStore(client=client).update("users", "u1", {"name": "x"})

    @pytest.mark.asyncio
    async def test_api_failures_become_store_errors(self, client) -> None:
        client.collection.return_value.document.return_value.set.side_effect = (
            google_exceptions.ServiceUnavailable("firestore down")
        )
        with pytest.raises(StoreError, match="users/u1"):
            await FirestoreDocumentStore(client=client).set("users", "u1", {})

    @pytest.mark.asyncio
    async def test_create_on_existing_document(self, client) -> None:
        client.collection.return_value.document.return_value.create.side_effect = (
            google_exceptions.AlreadyExists("document exists")
        )
        with pytest.raises(AlreadyExistsError):
            await FirestoreDocumentStore(client=client).create("user_progress", "u1_day-1", {})


class TestQuery:
    @pytest.mark.asyncio
    async def test_builds_filtered_ordered_query(self, client) -> None:
        query = client.collection.return_value
        query.stream.return_value = _Stream(
            [_snapshot({"id": "u1_day-2", "day": 2}), _snapshot({"id": "u1_day-1", "day": 1})]
        )
        docs = await FirestoreDocumentStore(client=client).query(
            "user_progress",
            where={"user_id": "u1"},
            order_by="completed_at",
            descending=True,
            limit=5,
        )
        assert [d["day"] for d in docs] == [2, 1]
        field_filter = query.where.call_args.kwargs["filter"]
        assert field_filter.field_path == "user_id"
        assert field_filter.value == "u1"
        query.order_by.assert_called_once_with(
            "completed_at", direction=firestore.Query.DESCENDING
        )
        query.limit.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_plain_query(self, client) -> None:
        query = client.collection.return_value
        await FirestoreDocumentStore(client=client).query("characters")
        query.where.assert_not_called()
        query.order_by.assert_not_called()
        query.limit.assert_not_called()


def _change(kind: str, doc_id: str, data: dict | None) -> MagicMock:
    change = MagicMock()
    change.type.name = kind
    change.document = _snapshot(data)
    change.document.id = doc_id
    return change


class TestWatch:
    @pytest.mark.asyncio
    async def test_skips_initial_snapshot_then_delivers_changes(self, client) -> None:
        listen_client = MagicMock()
        ref = listen_client.collection.return_value.document.return_value
        store = FirestoreDocumentStore(client=client, listen_client=listen_client)
        received = []
        done = asyncio.Event()

        async def on_change(change) -> None:
            received.append(change)
            if len(received) == 2:
                done.set()

        stop = store.watch("users", on_change, doc_id="u1")
        listen_client.collection.assert_called_with("users")
        ref_callback = ref.on_snapshot.call_args.args[0]

        ref_callback([], [_change("ADDED", "u1", {"current_day": 1})], None)
        ref_callback([], [_change("MODIFIED", "u1", {"current_day": 2})], None)
        ref_callback([], [_change("REMOVED", "u1", None)], None)
        await asyncio.wait_for(done.wait(), timeout=1)

        assert [(c.doc_id, c.data) for c in received] == [("u1", {"current_day": 2}), ("u1", None)]
        stop()
        stop()
        ref.on_snapshot.return_value.unsubscribe.assert_called_once_with()
