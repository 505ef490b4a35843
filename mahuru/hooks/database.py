"""In-memory document store — development stub for DocumentStore.

Python dict-backed collections. Data lives only in memory and is lost on
restart. Every read and write goes through copy.deepcopy so callers can
never alias a stored document, which is the behaviour a hosted document
database gives you for free.

Watchers are awaited inline after each write, so a watcher has seen the
change by the time the write returns.

TEAM: The production adapter is FirestoreDocumentStore
(mahuru.hooks.firestore). Select it with DATABASE_BACKEND=firestore.

Tier 2 service module: imports from mahuru.hooks.interfaces (Tier 1)
and mahuru.errors (Tier 1).

Usage:
    from mahuru.hooks.database import InMemoryDocumentStore

    store = InMemoryDocumentStore()
    await store.set("users", "uid-1", {"name": "Ana"})
    await store.get("users", "uid-1")
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any

from mahuru.errors import AlreadyExistsError, NotFoundError
from mahuru.hooks.interfaces import DocumentChange, DocumentStore, StopWatching, WatchCallback

logger = logging.getLogger(__name__)


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Returns base with patch merged in; nested dicts merge key by key."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass(eq=False)
class _Watch:
    collection: str
    doc_id: str | None
    callback: WatchCallback

    def matches(self, collection: str, doc_id: str) -> bool:
        return self.collection == collection and self.doc_id in (None, doc_id)


class InMemoryDocumentStore(DocumentStore):
    """STUB — dict-backed collections, loses data on restart.

    Collections are created on first write. Query ordering uses a
    (missing, value) sort key so documents without the order field sort
    first instead of raising TypeError.
    """

    def __init__(self) -> None:
        """Initialises an empty store."""
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: list[_Watch] = []

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Returns a copy of the document, or None."""
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Replaces or deep-merges a document, creating it if needed."""
        docs = self._collections.setdefault(collection, {})
        incoming = copy.deepcopy(data)
        if merge and doc_id in docs:
            docs[doc_id] = deep_merge(docs[doc_id], incoming)
        else:
            docs[doc_id] = incoming
        await self._notify(collection, doc_id)

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Writes a new document.

        Raises:
            AlreadyExistsError: If doc_id is taken.
        """
        docs = self._collections.setdefault(collection, {})
        if doc_id in docs:
            raise AlreadyExistsError(f"Document {collection}/{doc_id} already exists.")
        docs[doc_id] = copy.deepcopy(data)
        await self._notify(collection, doc_id)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Overwrites top-level fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise NotFoundError(f"No document {collection}/{doc_id}.")
        docs[doc_id].update(copy.deepcopy(data))
        await self._notify(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        """Deletes a document. No-op if not found (idempotent)."""
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            await self._notify(collection, doc_id)

    async def query(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Filters, sorts and limits the documents of a collection."""
        docs = list(self._collections.get(collection, {}).values())
        if where:
            docs = [
                doc for doc in docs
                if all(doc.get(field) == value for field, value in where.items())
            ]
        if order_by is not None:
            docs.sort(
                key=lambda doc: (order_by in doc, doc.get(order_by)),
                reverse=descending,
            )
        if limit is not None:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    def watch(
        self,
        collection: str,
        callback: WatchCallback,
        *,
        doc_id: str | None = None,
    ) -> StopWatching:
        """Registers callback for later writes to a collection or document."""
        entry = _Watch(collection, doc_id, callback)
        self._watches.append(entry)

        def stop() -> None:
            if entry in self._watches:
                self._watches.remove(entry)

        return stop

    async def _notify(self, collection: str, doc_id: str) -> None:
        """Awaits every matching watcher; failures are logged, not raised."""
        watches = [w for w in self._watches if w.matches(collection, doc_id)]
        if not watches:
            return
        doc = self._collections.get(collection, {}).get(doc_id)
        for entry in watches:
            change = DocumentChange(
                collection, doc_id, copy.deepcopy(doc) if doc is not None else None
            )
            try:
                await entry.callback(change)
            except Exception:
                logger.exception("Watcher on %s/%s failed", collection, doc_id)
