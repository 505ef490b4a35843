"""Shared test fixtures for the Mahuru test suite.

Factory-pattern fixtures that return callables accepting **overrides, plus
a fully wired in-memory service stack so service tests never share state.

Fixtures:
    make_identity: Factory for Identity instances
    make_activity: Factory for valid ActivityContent instances
    make_character: Factory for Character instances
    test_settings: Settings with a temp media path and an admin allow-list
    services: Fresh in-memory stack (store, feed, content, profiles, ...)
    api_services: Same stack installed as the app's dependency singletons
    api_client: httpx.AsyncClient over the app (needs api_services)
    auth_headers: Factory for (uid, bearer headers) of a fresh account
"""

from dataclasses import dataclass, replace
from uuid import uuid4

import httpx
import pytest
from httpx import ASGITransport

from mahuru.api import deps
from mahuru.config import Settings, get_settings
from mahuru.hooks.auth import FakeAuthProvider
from mahuru.hooks.database import InMemoryDocumentStore
from mahuru.hooks.storage import LocalFileStorage
from mahuru.schemas import ActivityContent, Character, Identity
from mahuru.services.admin import AdminDirectory
from mahuru.services.auth_gateway import AuthGateway
from mahuru.services.changes import ChangeFeed
from mahuru.services.content import ContentStore
from mahuru.services.profiles import ProfileStore

ADMIN_EMAIL = "kaiako@example.com"


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_identity():
    """Returns a factory for Identity instances with unique uids."""

    def _make(**overrides) -> Identity:
        suffix = uuid4().hex[:8]
        defaults = {
            "uid": f"uid-{suffix}",
            "email": f"akonga-{suffix}@example.com",
            "display_name": "Test Ākonga",
            "email_verified": False,
        }
        defaults.update(overrides)
        return Identity(**defaults)

    return _make


@pytest.fixture
def make_activity():
    """Returns a factory for ActivityContent instances.

    Defaults to a curated day-1 "learning" activity worth 10/15/20.
    """

    def _make(**overrides) -> ActivityContent:
        day = overrides.pop("day", 1)
        defaults = {
            "day": day,
            "beginner": f"Beginner task for day {day}",
            "intermediate": f"Intermediate task for day {day}",
            "advanced": f"Advanced task for day {day}",
            "points": {"beginner": 10, "intermediate": 15, "advanced": 20},
            "title": {"beginner": f"Day {day} basics"},
        }
        defaults.update(overrides)
        return ActivityContent.model_validate(defaults)

    return _make


@pytest.fixture
def make_character():
    def _make(**overrides) -> Character:
        defaults = {
            "id": "kiwi",
            "name": "Kiwi",
            "description": "A curious guardian of the forest floor.",
            "image_url": "/images/kiwi.png",
            "cultural_significance": "Taonga species of Aotearoa.",
        }
        defaults.update(overrides)
        return Character(**defaults)

    return _make


# ---------------------------------------------------------------------------
# Settings and service stacks
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Development settings with in-memory backends and a temp media dir."""
    return replace(
        get_settings(),
        app_env="development",
        auth_backend="memory",
        database_backend="memory",
        media_path=str(tmp_path / "media"),
        admin_emails=frozenset({ADMIN_EMAIL}),
        password_min_length=6,
        session_resolve_timeout=10.0,
    )


@dataclass
class Services:
    """A wired in-memory service stack."""

    store: InMemoryDocumentStore
    files: LocalFileStorage
    feed: ChangeFeed
    auth: FakeAuthProvider
    content: ContentStore
    profiles: ProfileStore
    admins: AdminDirectory
    gateway: AuthGateway


@pytest.fixture
def services(tmp_path) -> Services:
    """Fresh, isolated in-memory stack for service-level tests."""
    store = InMemoryDocumentStore()
    files = LocalFileStorage(tmp_path / "media")
    feed = ChangeFeed()
    auth = FakeAuthProvider()
    content = ContentStore(store, files, feed)
    profiles = ProfileStore(store, content, feed)
    return Services(
        store=store,
        files=files,
        feed=feed,
        auth=auth,
        content=content,
        profiles=profiles,
        admins=AdminDirectory(store, frozenset({ADMIN_EMAIL})),
        gateway=AuthGateway(auth, profiles, password_min_length=6),
    )


@pytest.fixture
def api_services(test_settings) -> Services:
    """Installs a fresh stack as the app's dependency singletons."""
    auth = FakeAuthProvider()
    store = InMemoryDocumentStore()
    files = LocalFileStorage(test_settings.media_path)
    deps.configure_services(
        test_settings, auth_provider=auth, document_store=store, file_storage=files
    )
    return Services(
        store=store,
        files=files,
        feed=deps.get_change_feed(),
        auth=auth,
        content=deps.get_content_store(),
        profiles=deps.get_profile_store(),
        admins=deps.get_admin_directory(),
        gateway=deps.get_auth_gateway(),
    )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client(api_services) -> httpx.AsyncClient:
    """Async client over the app, backed by the api_services stack."""
    from mahuru.main import app

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def auth_headers(api_services):
    """Factory: creates an account and returns (uid, Authorization headers)."""

    async def _make(email: str = "ana@example.com", name: str = "Ana") -> tuple[str, dict]:
        session = await api_services.auth.create_account(email, "kiaora123", name)
        return session.identity.uid, {"Authorization": f"Bearer {session.id_token}"}

    return _make
