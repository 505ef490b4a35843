"""Local file storage — development stub for FileStorage.

Writes uploaded media to the local filesystem. Returns URL paths that the
public media route (GET /api/v1/media/files/...) serves back. No cloud
storage, no CDN — just the local disk.

TEAM: Replace this with your cloud storage (Firebase Storage, GCS, S3).
Subclass FileStorage from mahuru.hooks.interfaces. Your store() might
return a signed CDN URL instead of a local API path.

Tier 2 service module: imports from mahuru.hooks.interfaces (Tier 1).

Usage:
    from mahuru.hooks.storage import LocalFileStorage

    storage = LocalFileStorage(base_path="/tmp/media")
    url = await storage.store("asset-1", "kiwi.png", image_bytes)
"""

from pathlib import Path, PurePosixPath

from mahuru.hooks.interfaces import FileStorage

MEDIA_URL_PREFIX = "/api/v1/media/files"


def safe_name(name: str) -> str:
    """Reduces a client-supplied name to its base name.

    Raises:
        ValueError: If nothing usable is left (empty, ".", "..").
    """
    base = PurePosixPath(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        raise ValueError(f"Unusable file name: {name!r}")
    return base


class LocalFileStorage(FileStorage):
    """STUB — stores media under {base_path}/{asset_id}/{filename}.

    Both path components go through safe_name, so a crafted name cannot
    escape base_path.
    """

    def __init__(self, base_path: str | Path = "media") -> None:
        """Initialises with a base directory for uploaded media.

        Args:
            base_path: Root directory for media files. Created lazily on
                the first store.
        """
        self._base_path = Path(base_path)

    def _path(self, asset_id: str, filename: str) -> Path:
        return self._base_path / safe_name(asset_id) / safe_name(filename)

    async def store(self, asset_id: str, filename: str, data: bytes) -> str:
        """Writes the file and returns its public URL path.

        Returns:
            A URL path like /api/v1/media/files/{asset_id}/{filename}.
        """
        target = self._path(asset_id, filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return f"{MEDIA_URL_PREFIX}/{target.parent.name}/{target.name}"

    async def read(self, asset_id: str, filename: str) -> bytes | None:
        target = self._path(asset_id, filename)
        if not target.is_file():
            return None
        return target.read_bytes()

    async def delete(self, asset_id: str, filename: str) -> None:
        """Removes the file and its asset directory when empty."""
        target = self._path(asset_id, filename)
        target.unlink(missing_ok=True)
        try:
            target.parent.rmdir()
        except OSError:
            pass  # not empty or already gone
