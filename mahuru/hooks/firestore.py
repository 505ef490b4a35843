"""Firestore document store — production adapter for DocumentStore.

Maps the DocumentStore contract onto google-cloud-firestore's AsyncClient.
Equality filters become FieldFilter clauses, ordering uses
Query.DESCENDING / ASCENDING. Provider exceptions never leak past this
module: a missing document on update becomes NotFoundError, an existing
one on create becomes AlreadyExistsError, every other Google API failure
becomes StoreError after being logged.

watch() uses on_snapshot listeners, which only the synchronous client
offers. The listener thread hands each change back to the event loop
that registered it with run_coroutine_threadsafe.

Firestore only returns documents that have the order_by field; the
in-memory stub sorts missing fields first instead. Callers order on
fields every document of the collection carries.

Tier 2 service — imports from mahuru.hooks.interfaces (Tier 1),
mahuru.errors + google-cloud-firestore.

Usage:
    from mahuru.hooks.firestore import FirestoreDocumentStore

    store = FirestoreDocumentStore(project="mahuru-2025")
    await store.query("activities", order_by="day")
"""

import asyncio
import logging
import threading
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from mahuru.errors import AlreadyExistsError, NotFoundError, StoreError
from mahuru.hooks.interfaces import DocumentChange, DocumentStore, StopWatching, WatchCallback

logger = logging.getLogger(__name__)


def _snapshot_to_dict(snapshot: Any) -> dict[str, Any] | None:
    """Converts a DocumentSnapshot to a plain dict, None if it doesn't exist."""
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


async def _deliver(callback: WatchCallback, change: DocumentChange) -> None:
    try:
        await callback(change)
    except Exception:
        logger.exception("Watcher on %s/%s failed", change.collection, change.doc_id)


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore backed by Cloud Firestore.

    Args:
        project: Google Cloud project id (FIREBASE_PROJECT_ID).
        client: Optional preconfigured AsyncClient; tests pass a mock.
        listen_client: Optional synchronous Client for watch(). Created on
            first use when omitted.
    """

    def __init__(
        self,
        project: str | None = None,
        client: Any | None = None,
        listen_client: Any | None = None,
    ) -> None:
        self._project = project
        self._client = client or firestore.AsyncClient(project=project)
        self._listen_client = listen_client

    def _doc(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            snapshot = await self._doc(collection, doc_id).get()
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore get %s/%s failed", collection, doc_id)
            raise StoreError(f"Could not read {collection}/{doc_id}.") from exc
        return _snapshot_to_dict(snapshot)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        # Firestore's merge=True already merges nested maps key by key.
        try:
            await self._doc(collection, doc_id).set(data, merge=merge)
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore set %s/%s failed", collection, doc_id)
            raise StoreError(f"Could not write {collection}/{doc_id}.") from exc

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._doc(collection, doc_id).create(data)
        except google_exceptions.Conflict as exc:
            raise AlreadyExistsError(f"Document {collection}/{doc_id} already exists.") from exc
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore create %s/%s failed", collection, doc_id)
            raise StoreError(f"Could not create {collection}/{doc_id}.") from exc

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._doc(collection, doc_id).update(data)
        except google_exceptions.NotFound as exc:
            raise NotFoundError(f"No document {collection}/{doc_id}.") from exc
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore update %s/%s failed", collection, doc_id)
            raise StoreError(f"Could not update {collection}/{doc_id}.") from exc

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._doc(collection, doc_id).delete()
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore delete %s/%s failed", collection, doc_id)
            raise StoreError(f"Could not delete {collection}/{doc_id}.") from exc

    async def query(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query: Any = self._client.collection(collection)
        for field, value in (where or {}).items():
            query = query.where(filter=FieldFilter(field, "==", value))
        if order_by is not None:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        try:
            return [
                doc
                async for snapshot in query.stream()
                if (doc := _snapshot_to_dict(snapshot)) is not None
            ]
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore query on %s failed", collection)
            raise StoreError(f"Could not query {collection}.") from exc

    def watch(
        self,
        collection: str,
        callback: WatchCallback,
        *,
        doc_id: str | None = None,
    ) -> StopWatching:
        loop = asyncio.get_running_loop()
        if self._listen_client is None:
            self._listen_client = firestore.Client(project=self._project)
        ref: Any = self._listen_client.collection(collection)
        if doc_id is not None:
            ref = ref.document(doc_id)

        # The first snapshot is the current state, not a change.
        initial = threading.Event()

        def on_snapshot(_snapshots: Any, changes: Any, _read_time: Any) -> None:
            if not initial.is_set():
                initial.set()
                return
            for change in changes:
                if loop.is_closed():
                    return
                data = None if change.type.name == "REMOVED" else _snapshot_to_dict(change.document)
                event = DocumentChange(collection, change.document.id, data)
                asyncio.run_coroutine_threadsafe(_deliver(callback, event), loop)

        try:
            listener = ref.on_snapshot(on_snapshot)
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore watch on %s failed", collection)
            raise StoreError(f"Could not watch {collection}.") from exc

        stopped = threading.Event()

        def stop() -> None:
            if not stopped.is_set():
                stopped.set()
                listener.unsubscribe()

        return stop
