"""Fixtures for contract tests — one parameterized fixture per hook interface.

Each fixture yields a fresh implementation instance. The stubs run
everywhere ("stub" param). The hosted implementations (Identity Toolkit,
Firestore) need real credentials and are exercised through mocks in
test_identity_toolkit.py / test_firestore.py instead.

TEAM: To test your implementation against the contracts:
    1. Add your param string (e.g., "emulator") to the params list.
    2. Add an elif branch that yields your implementation instance.
    3. Run: python -m pytest mahuru/tests/contracts/ -v
    All tests should pass. If any fail, your implementation doesn't satisfy
    the contract — read the failing test's docstring for what's expected.

Uses @pytest_asyncio.fixture (not @pytest.fixture) for async fixture support
in strict mode.
"""

import pytest_asyncio

from mahuru.hooks.auth import FakeAuthProvider
from mahuru.hooks.database import InMemoryDocumentStore
from mahuru.hooks.storage import LocalFileStorage


@pytest_asyncio.fixture(params=["stub"])
async def auth_provider(request):
    """Yields an AuthProvider implementation.

    TEAM: Add the Firebase Auth emulator here:
        @pytest_asyncio.fixture(params=["stub", "emulator"])
        async def auth_provider(request):
            if request.param == "stub":
                yield FakeAuthProvider()
            elif request.param == "emulator":
                yield IdentityToolkitAuthProvider("fake-key", client=emulator_client)
    """
    if request.param == "stub":
        yield FakeAuthProvider()


@pytest_asyncio.fixture(params=["stub"])
async def document_store(request):
    """Yields a DocumentStore implementation."""
    if request.param == "stub":
        yield InMemoryDocumentStore()


@pytest_asyncio.fixture(params=["stub"])
async def file_storage(request, tmp_path):
    """Yields a FileStorage implementation rooted in a temp directory."""
    if request.param == "stub":
        yield LocalFileStorage(base_path=tmp_path / "media")
