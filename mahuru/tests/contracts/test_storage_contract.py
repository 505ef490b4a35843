"""Contract tests for FileStorage — behavioral contract.

Verifies that any FileStorage implementation stores bytes, returns a
non-empty URL for them, reads them back, and deletes idempotently.

Run against registered implementations:
    python -m pytest mahuru/tests/contracts/test_storage_contract.py -v
"""

import pytest


class TestFileStorageContract:
    """Behavioral contract for FileStorage implementations."""

    @pytest.mark.asyncio
    async def test_store_returns_url_containing_names(self, file_storage) -> None:
        url = await file_storage.store("asset-1", "kiwi.png", b"\x89PNG")
        assert isinstance(url, str) and url
        assert "asset-1" in url
        assert url.endswith("kiwi.png")

    @pytest.mark.asyncio
    async def test_read_returns_stored_bytes(self, file_storage) -> None:
        await file_storage.store("asset-1", "kiwi.png", b"\x89PNG-data")
        assert await file_storage.read("asset-1", "kiwi.png") == b"\x89PNG-data"

    @pytest.mark.asyncio
    async def test_read_missing_returns_none(self, file_storage) -> None:
        assert await file_storage.read("asset-404", "missing.png") is None

    @pytest.mark.asyncio
    async def test_store_overwrites(self, file_storage) -> None:
        await file_storage.store("asset-1", "notes.pdf", b"v1")
        await file_storage.store("asset-1", "notes.pdf", b"v2")
        assert await file_storage.read("asset-1", "notes.pdf") == b"v2"

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, file_storage) -> None:
        await file_storage.store("asset-1", "kiwi.png", b"data")
        await file_storage.delete("asset-1", "kiwi.png")
        await file_storage.delete("asset-1", "kiwi.png")
        assert await file_storage.read("asset-1", "kiwi.png") is None

    @pytest.mark.asyncio
    async def test_path_components_reduced_to_base_names(self, file_storage) -> None:
        url = await file_storage.store("asset-1", "../../escape.txt", b"data")
        assert ".." not in url
        assert await file_storage.read("asset-1", "escape.txt") == b"data"
