"""Hook interfaces — abstract base classes for all swappable services.

These ABCs define the contracts between the Mahuru services and the
hosted infrastructure: the managed auth provider, the document database
and file storage. Each has an in-memory stub that lets the platform run
end-to-end without real infrastructure, and a production implementation
(Identity Toolkit, Firestore) selected by configuration.

Tier 1 leaf module: imports only the stdlib and mahuru.schemas (also
Tier 1). No project services, no orchestration.

TEAM: To implement a real service, subclass the relevant ABC and implement
every abstract method. Python will raise TypeError at instantiation if
any method is missing — you'll know immediately what's left to do.

Usage:
    from mahuru.hooks.interfaces import AuthProvider, DocumentStore, FileStorage
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mahuru.schemas import AuthSession, Identity


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthProvider(ABC):
    """The managed authentication provider.

    The platform never stores passwords. It asks the provider to create,
    authenticate and mutate accounts, and gets Identities back. Failures
    are raised as mahuru.errors.AuthError with a normalised code, never as
    provider-specific exceptions.
    """

    @abstractmethod
    async def create_account(
        self, email: str, password: str, display_name: str
    ) -> AuthSession:
        """Creates an account and signs it in.

        Raises:
            AuthError: ACCOUNT_EXISTS, WEAK_PASSWORD or INVALID_EMAIL.
        """
        ...

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Authenticates with email and password.

        Raises:
            AuthError: INVALID_CREDENTIALS, ACCOUNT_DISABLED or INVALID_EMAIL.
        """
        ...

    @abstractmethod
    async def sign_out(self, token: str) -> None:
        """Ends the session behind token. Idempotent."""
        ...

    @abstractmethod
    async def send_verification_email(self, token: str) -> None:
        """Sends an address verification email to the session's account.

        Raises:
            AuthError: NO_SESSION if the token is invalid or expired.
        """
        ...

    @abstractmethod
    async def send_password_reset(self, email: str) -> None:
        """Sends a password reset email.

        Raises:
            AuthError: UNKNOWN_ACCOUNT or INVALID_EMAIL.
        """
        ...

    @abstractmethod
    async def change_password(self, token: str, new_password: str) -> None:
        """Sets a new password for the session's account.

        Callers re-authenticate first; the provider only applies the change.

        Raises:
            AuthError: NO_SESSION or WEAK_PASSWORD.
        """
        ...

    @abstractmethod
    async def validate_token(self, token: str) -> Identity | None:
        """Resolves a bearer token to its Identity.

        Returns:
            The Identity if the token is valid and not expired, None otherwise.
        """
        ...

    async def aclose(self) -> None:
        """Releases connections held by the provider. Called on shutdown."""


# ---------------------------------------------------------------------------
# Document database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentChange:
    """One document written or deleted. data is None after a delete."""

    collection: str
    doc_id: str
    data: dict[str, Any] | None


WatchCallback = Callable[[DocumentChange], Awaitable[None]]
StopWatching = Callable[[], None]


class DocumentStore(ABC):
    """Hosted document database: collections of JSON-compatible dicts.

    Documents are addressed by (collection, doc_id). Reads return copies —
    mutating a returned dict never changes the stored document. There are
    no multi-document transactions; each write is atomic on its own
    document only. create() is the one conditional write: it fails if the
    document exists, which makes it usable as an idempotency guard across
    processes.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Returns the document, or None if it does not exist."""
        ...

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Writes a document.

        Args:
            merge: When False the document is replaced. When True, data is
                deep-merged into the existing document (nested maps merge
                key by key, every other value is overwritten). Creates the
                document if it does not exist either way.
        """
        ...

    @abstractmethod
    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Writes a document only if none exists under doc_id.

        Raises:
            AlreadyExistsError: If the document already exists. Nothing is
                written in that case.
        """
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merges top-level fields into an existing document.

        Raises:
            NotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Deletes a document. No-op if it does not exist (idempotent)."""
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Lists documents in a collection.

        Args:
            where: Equality filters, field -> value. All must match.
            order_by: Field to sort on. Documents missing the field sort first.
            descending: Reverse the sort order.
            limit: Maximum number of documents to return.
        """
        ...

    @abstractmethod
    def watch(
        self,
        collection: str,
        callback: WatchCallback,
        *,
        doc_id: str | None = None,
    ) -> StopWatching:
        """Calls back on every later write to a collection or one document.

        Sees every writer of the database, not only this process. The
        current contents are not replayed. Callbacks run on the event loop
        that was running when watch() was called; a failing callback is
        logged and does not affect the write or other watchers.

        Args:
            doc_id: Watch a single document instead of the whole collection.

        Returns:
            A function that stops the watch. Calling it twice is a no-op.
        """
        ...


# ---------------------------------------------------------------------------
# File storage (media uploads)
# ---------------------------------------------------------------------------


class FileStorage(ABC):
    """Storage for uploaded media files.

    Files are addressed by (asset_id, filename). The asset record itself
    lives in the media_assets collection; this interface only moves bytes.
    """

    @abstractmethod
    async def store(self, asset_id: str, filename: str, data: bytes) -> str:
        """Persists a file and returns a URL the frontend can load it from."""
        ...

    @abstractmethod
    async def read(self, asset_id: str, filename: str) -> bytes | None:
        """Returns the file's bytes, or None if it does not exist."""
        ...

    @abstractmethod
    async def delete(self, asset_id: str, filename: str) -> None:
        """Removes a file. No-op if it does not exist (idempotent)."""
        ...
