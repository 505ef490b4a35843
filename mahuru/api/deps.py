"""Shared FastAPI dependencies — services, identity and permission injection.

Module-level singletons for each service. Route handlers access them via
FastAPI's Depends() system — never by importing stores directly. The
singletons are built by configure_services(): once at import with the
in-memory stubs, again by main.py with the backends selected in
settings, and by tests that want fresh, isolated state.

TEAM: To wire a new backend, add it to create_backends(). The get_*
functions and all route handlers stay unchanged.

Tier 3 module: imports from hooks/*, services/*, admin_commands,
config, schemas.

Usage:
    from mahuru.api.deps import get_current_identity, get_profile_store

    @router.get("/something")
    async def do_thing(
        identity: Identity = Depends(get_current_identity),
        profiles: ProfileStore = Depends(get_profile_store),
    ): ...
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, Header, HTTPException

from mahuru.admin_commands import AdminCommands
from mahuru.config import PROJECT_ROOT, Settings, get_settings
from mahuru.hooks.auth import FakeAuthProvider
from mahuru.hooks.database import InMemoryDocumentStore
from mahuru.hooks.interfaces import AuthProvider, DocumentStore, FileStorage
from mahuru.hooks.storage import LocalFileStorage
from mahuru.schemas import AdminUser, ApiError, ApiResponse, Identity, Permission
from mahuru.services.admin import AdminDirectory
from mahuru.services.auth_gateway import AuthGateway
from mahuru.services.changes import ChangeFeed
from mahuru.services.content import ContentStore
from mahuru.services.profiles import ProfileStore

logger = logging.getLogger("mahuru")

# ---------------------------------------------------------------------------
# Service singletons — set by configure_services()
# ---------------------------------------------------------------------------

_auth_provider: AuthProvider
_document_store: DocumentStore
_file_storage: FileStorage
_change_feed: ChangeFeed
_content_store: ContentStore
_profile_store: ProfileStore
_admin_directory: AdminDirectory
_auth_gateway: AuthGateway
_admin_commands: AdminCommands


def configure_services(
    settings: Settings,
    *,
    auth_provider: AuthProvider | None = None,
    document_store: DocumentStore | None = None,
    file_storage: FileStorage | None = None,
) -> None:
    """(Re)builds every service singleton.

    Hooks not passed in default to the in-memory stubs.
    """
    global _auth_provider, _document_store, _file_storage, _change_feed
    global _content_store, _profile_store, _admin_directory, _auth_gateway
    global _admin_commands

    _auth_provider = auth_provider or FakeAuthProvider()
    _document_store = document_store or InMemoryDocumentStore()
    _file_storage = file_storage or LocalFileStorage(settings.media_path)
    _change_feed = ChangeFeed()
    _content_store = ContentStore(_document_store, _file_storage, _change_feed)
    _profile_store = ProfileStore(_document_store, _content_store, _change_feed)
    _admin_directory = AdminDirectory(_document_store, settings.admin_emails)
    _auth_gateway = AuthGateway(
        _auth_provider,
        _profile_store,
        password_min_length=settings.password_min_length,
        resolve_timeout=settings.session_resolve_timeout,
    )
    _admin_commands = AdminCommands(
        _content_store, _profile_store, _admin_directory, PROJECT_ROOT / "content"
    )


async def close_services() -> None:
    """Releases connections held by the configured hooks."""
    await _auth_provider.aclose()
    logger.info("Services closed")


# ---------------------------------------------------------------------------
# Backend factory
# ---------------------------------------------------------------------------


def create_backends(settings: Settings) -> dict[str, Any]:
    """Builds the hooks selected by AUTH_BACKEND / DATABASE_BACKEND.

    When a Firebase backend is selected but its settings are incomplete,
    development logs a warning and falls back to the in-memory stub;
    production refuses to start.

    Returns:
        Keyword arguments for configure_services().

    Raises:
        ValueError: Missing Firebase settings with APP_ENV=production.
    """
    backends: dict[str, Any] = {}
    wants_firebase = settings.auth_backend == "firebase" or settings.database_backend == "firestore"
    if not wants_firebase:
        return backends

    missing = settings.missing_firebase_settings()
    if missing:
        if settings.is_production:
            raise ValueError(
                f"Firebase backend selected but not configured. Missing: {', '.join(missing)}"
            )
        logger.warning(
            "Firebase backend selected but not configured (missing: %s). "
            "Falling back to in-memory stubs; data will not persist.",
            ", ".join(missing),
        )
        return backends

    # Local imports: the SDKs are only needed when actually selected.
    if settings.auth_backend == "firebase":
        from mahuru.hooks.identity_toolkit import IdentityToolkitAuthProvider

        backends["auth_provider"] = IdentityToolkitAuthProvider(settings.firebase_api_key)

    if settings.database_backend == "firestore":
        from mahuru.hooks.firestore import FirestoreDocumentStore

        backends["document_store"] = FirestoreDocumentStore(project=settings.firebase_project_id)

    return backends


configure_services(get_settings())


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


def get_auth_provider() -> AuthProvider:
    return _auth_provider


def get_document_store() -> DocumentStore:
    return _document_store


def get_change_feed() -> ChangeFeed:
    return _change_feed


def get_content_store() -> ContentStore:
    """Returns the content store singleton."""
    return _content_store


def get_profile_store() -> ProfileStore:
    """Returns the profile store singleton."""
    return _profile_store


def get_admin_directory() -> AdminDirectory:
    """Returns the admin directory singleton."""
    return _admin_directory


def get_auth_gateway() -> AuthGateway:
    """Returns the auth gateway singleton."""
    return _auth_gateway


def get_admin_commands() -> AdminCommands:
    return _admin_commands


# ---------------------------------------------------------------------------
# Auth dependencies — used by route handlers
# ---------------------------------------------------------------------------


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=ApiResponse(
            ok=False,
            error=ApiError(code="UNAUTHORIZED", message=message),
        ).model_dump(),
    )


def parse_bearer(authorization: str | None) -> str | None:
    """Extracts the token from "Bearer <token>"; None if absent or malformed."""
    if not authorization:
        return None
    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


async def get_optional_token(authorization: str | None = Header(default=None)) -> str | None:
    """The bearer token if one was sent. Never raises."""
    return parse_bearer(authorization)


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    """Returns the bearer token.

    Raises:
        HTTPException: 401 on a missing or malformed Authorization header.
    """
    if not authorization:
        raise _unauthorized("Missing authorization header.")
    token = parse_bearer(authorization)
    if token is None:
        raise _unauthorized("Invalid authorization header format.")
    return token


async def get_current_identity(
    token: str = Depends(get_bearer_token),
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> Identity:
    """Resolves the bearer token to the signed-in Identity.

    Raises:
        HTTPException: 401 with ApiResponse envelope on auth failure.
    """
    identity = await gateway.resolve_session(token)
    if identity is None:
        raise _unauthorized("Invalid or expired token.")
    return identity


def require_permission(permission: Permission) -> Callable[..., Awaitable[AdminUser]]:
    """Builds a dependency that admits admins holding permission.

    Usage:
        admin: AdminUser = Depends(require_permission("can_edit_content"))
    """

    async def dependency(
        identity: Identity = Depends(get_current_identity),
        admins: AdminDirectory = Depends(get_admin_directory),
    ) -> AdminUser:
        return await admins.require_permission(identity.uid, permission)

    return dependency


async def require_super_admin(
    identity: Identity = Depends(get_current_identity),
    admins: AdminDirectory = Depends(get_admin_directory),
) -> AdminUser:
    return await admins.require_super_admin(identity.uid)
