"""Content store — CMS copy, curriculum, layouts, settings, media, characters.

Everything the admin dashboard edits and the public site reads lives
here. Reads are validated into the Pydantic models in mahuru.schemas;
writes go through the same models, so hex colours, point values and day
ranges are enforced server-side no matter which client sent them.

Patches are expressed in the stored document shape (camelCase keys for
CMS documents). Top-level snake_case field names are accepted and
normalised. A patch is deep-merged over the current document and the
result is validated as a whole before anything is written.

Every successful write stamps last_updated / updated_by. Subscribers get
a fresh snapshot of the collection after each write, through a database
watch on the collection.

Tier 3 service: imports hooks (Tier 1/2), schemas, errors, curriculum.
"""

import logging
import mimetypes
import uuid
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from mahuru.errors import NotFoundError, ValidationFailedError
from mahuru.hooks.database import deep_merge
from mahuru.hooks.interfaces import DocumentChange, DocumentStore, FileStorage
from mahuru.hooks.storage import safe_name
from mahuru.schemas import (
    TOTAL_DAYS,
    ActivityContent,
    Character,
    CMSContent,
    CMSMetadata,
    GlobalSettings,
    LayoutSettings,
    MediaAsset,
    activity_doc_id,
    to_document,
    utc_now,
)
from mahuru.services.changes import Callback, ChangeFeed, Unsubscribe

logger = logging.getLogger(__name__)

CMS_CONTENT = "cms_content"
ACTIVITIES = "activities"
LAYOUT_SETTINGS = "layout_settings"
MEDIA_ASSETS = "media_assets"
GLOBAL_SETTINGS = "global_settings"
CHARACTERS = "characters"

PUBLIC_COLLECTIONS: tuple[str, ...] = (
    CMS_CONTENT,
    ACTIVITIES,
    LAYOUT_SETTINGS,
    MEDIA_ASSETS,
    GLOBAL_SETTINGS,
)

GLOBAL_SETTINGS_ID = "main"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _normalise_keys(model_cls: type[BaseModel], partial: dict[str, Any]) -> dict[str, Any]:
    """Rewrites top-level snake_case field names to their stored aliases."""
    aliases = {
        name: field.alias
        for name, field in model_cls.model_fields.items()
        if field.alias
    }
    return {aliases.get(key, key): value for key, value in partial.items()}


def _validate(model_cls: type[ModelT], data: dict[str, Any]) -> ModelT:
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailedError(
            f"Invalid {model_cls.__name__}: {exc.error_count()} error(s). {exc}"
        ) from exc


def media_type_for(mime_type: str) -> str:
    """Buckets a MIME type into the media library's asset types."""
    major = mime_type.split("/", 1)[0]
    if major in ("image", "video", "audio"):
        return major
    return "document"


class ContentStore:
    """Reads and writes the public, admin-editable collections.

    Args:
        store: The document store.
        files: File storage for uploaded media bytes.
        feed: Change feed that receives collection snapshots.
    """

    def __init__(self, store: DocumentStore, files: FileStorage, feed: ChangeFeed) -> None:
        self._store = store
        self._files = files
        self._feed = feed

    # ------------------------------------------------------------------
    # Snapshots and subscriptions
    # ------------------------------------------------------------------

    async def snapshot(self, collection: str) -> Any:
        """JSON-compatible snapshot of a public collection.

        Keyed collections (cms_content, layout_settings) are dicts keyed
        by key / component; global_settings is the single document; the
        rest are ordered lists.

        Raises:
            NotFoundError: For collections that are not public.
        """
        if collection == CMS_CONTENT:
            return {key: to_document(item) for key, item in (await self.all_content()).items()}
        if collection == LAYOUT_SETTINGS:
            return {name: to_document(item) for name, item in (await self.all_layouts()).items()}
        if collection == GLOBAL_SETTINGS:
            return to_document(await self.get_global_settings())
        if collection == ACTIVITIES:
            return [to_document(item) for item in await self.list_activities()]
        if collection == MEDIA_ASSETS:
            return [to_document(item) for item in await self.list_media()]
        raise NotFoundError(f"Unknown collection {collection!r}.")

    async def subscribe(self, collection: str, callback: Callback) -> Unsubscribe:
        """Subscribes to a public collection and pushes the current snapshot.

        A fresh snapshot follows every write to the collection, whichever
        process made it: the topic is fed by a database watch that runs
        while the collection has subscribers.

        Raises:
            NotFoundError: For collections that are not public.
        """
        if collection not in PUBLIC_COLLECTIONS:
            raise NotFoundError(f"Unknown collection {collection!r}.")

        async def on_change(_change: DocumentChange) -> None:
            await self._publish(collection)

        unsubscribe = self._feed.subscribe(
            collection,
            callback,
            source=lambda: self._store.watch(collection, on_change),
        )
        try:
            callback(await self.snapshot(collection))
        except Exception:
            unsubscribe()
            raise
        return unsubscribe

    async def _publish(self, collection: str) -> None:
        if self._feed.subscriber_count(collection):
            self._feed.publish(collection, await self.snapshot(collection))

    async def _load_all(self, collection: str, model_cls: type[ModelT], **query: Any) -> list[ModelT]:
        items = []
        for doc in await self._store.query(collection, **query):
            try:
                items.append(model_cls.model_validate(doc))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed %s document: %d error(s)",
                    collection,
                    exc.error_count(),
                )
        return items

    # ------------------------------------------------------------------
    # CMS content
    # ------------------------------------------------------------------

    async def all_content(self) -> dict[str, CMSContent]:
        return {item.key: item for item in await self._load_all(CMS_CONTENT, CMSContent)}

    async def get_content(self, key: str) -> CMSContent | None:
        doc = await self._store.get(CMS_CONTENT, key)
        return _validate(CMSContent, doc) if doc is not None else None

    async def get_value(self, key: str, default: Any = None) -> Any:
        """The plain value stored under key, or default when unset."""
        content = await self.get_content(key)
        return default if content is None else content.plain_value

    async def update_content(
        self,
        key: str,
        value: Any,
        *,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        updated_by: str,
    ) -> CMSContent:
        """Writes a CMS value. Last writer wins.

        Args:
            content_type: The content's type ("text", "image", ...). When
                omitted the stored type is kept; new keys default to "text".

        Raises:
            ValidationFailedError: If the value fits no CMS variant.
        """
        existing = await self._store.get(CMS_CONTENT, key) or {}
        current_meta = existing.get("metadata", {})
        meta = {
            **current_meta,
            **_normalise_keys(CMSMetadata, metadata or {}),
            "lastUpdated": utc_now().isoformat(),
            "updatedBy": updated_by,
        }
        content = _validate(
            CMSContent,
            {
                "key": key,
                "type": content_type or existing.get("type", "text"),
                "value": value,
                "metadata": meta,
            },
        )
        await self._store.set(CMS_CONTENT, key, to_document(content))
        logger.info("CMS content %s updated", key)
        return content

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def list_activities(self) -> list[ActivityContent]:
        return await self._load_all(ACTIVITIES, ActivityContent, order_by="day")

    async def get_activity(self, day: int) -> ActivityContent | None:
        if not 1 <= day <= TOTAL_DAYS:
            return None
        doc = await self._store.get(ACTIVITIES, activity_doc_id(day))
        return _validate(ActivityContent, doc) if doc is not None else None

    async def update_activity(
        self, day: int, partial: dict[str, Any], *, updated_by: str
    ) -> ActivityContent:
        """Merges partial into the day's activity, creating it if absent.

        Raises:
            ValidationFailedError: Day outside 1..30 or an invalid field.
        """
        if not 1 <= day <= TOTAL_DAYS:
            raise ValidationFailedError(f"Day must be between 1 and {TOTAL_DAYS}.")
        doc_id = activity_doc_id(day)
        current = await self._store.get(ACTIVITIES, doc_id) or {"day": day}
        merged = deep_merge(current, _normalise_keys(ActivityContent, partial))
        merged.update(day=day, lastUpdated=utc_now().isoformat(), updatedBy=updated_by)
        activity = _validate(ActivityContent, merged)
        await self._store.set(ACTIVITIES, doc_id, to_document(activity))
        logger.info("Activity %s updated", doc_id)
        return activity

    async def seed_activities(self, activities: list[ActivityContent]) -> int:
        for activity in activities:
            await self._store.set(ACTIVITIES, activity.id, to_document(activity))
        return len(activities)

    async def has_activities(self) -> bool:
        return bool(await self._store.query(ACTIVITIES, limit=1))

    # ------------------------------------------------------------------
    # Layouts
    # ------------------------------------------------------------------

    async def all_layouts(self) -> dict[str, LayoutSettings]:
        return {item.component: item for item in await self._load_all(LAYOUT_SETTINGS, LayoutSettings)}

    async def update_layout(
        self, component: str, partial: dict[str, Any], *, updated_by: str
    ) -> LayoutSettings:
        """Merges partial into a component's layout settings.

        Raises:
            ValidationFailedError: E.g. a non-hex colour in styles.colors.
        """
        current = await self._store.get(LAYOUT_SETTINGS, component) or {"component": component}
        merged = deep_merge(current, _normalise_keys(LayoutSettings, partial))
        merged.update(component=component, lastUpdated=utc_now().isoformat(), updatedBy=updated_by)
        layout = _validate(LayoutSettings, merged)
        await self._store.set(LAYOUT_SETTINGS, component, to_document(layout))
        return layout

    # ------------------------------------------------------------------
    # Global settings
    # ------------------------------------------------------------------

    async def get_global_settings(self) -> GlobalSettings:
        doc = await self._store.get(GLOBAL_SETTINGS, GLOBAL_SETTINGS_ID)
        return _validate(GlobalSettings, doc) if doc is not None else GlobalSettings()

    async def update_global_settings(
        self, partial: dict[str, Any], *, updated_by: str
    ) -> GlobalSettings:
        current = await self._store.get(GLOBAL_SETTINGS, GLOBAL_SETTINGS_ID) or {}
        merged = deep_merge(current, _normalise_keys(GlobalSettings, partial))
        merged.update(id=GLOBAL_SETTINGS_ID, lastUpdated=utc_now().isoformat(), updatedBy=updated_by)
        settings = _validate(GlobalSettings, merged)
        await self._store.set(GLOBAL_SETTINGS, GLOBAL_SETTINGS_ID, to_document(settings))
        return settings

    # ------------------------------------------------------------------
    # Site seed (CMS copy, settings, layouts)
    # ------------------------------------------------------------------

    async def seed_site(
        self,
        cms_content: list[CMSContent],
        global_settings: GlobalSettings | None,
        layouts: list[LayoutSettings],
    ) -> None:
        now = utc_now()
        for item in cms_content:
            item.metadata.last_updated = now
            item.metadata.updated_by = "system"
            await self._store.set(CMS_CONTENT, item.key, to_document(item))
        if global_settings is not None:
            global_settings.last_updated = now
            global_settings.updated_by = "system"
            await self._store.set(GLOBAL_SETTINGS, GLOBAL_SETTINGS_ID, to_document(global_settings))
        for layout in layouts:
            layout.last_updated = now
            layout.updated_by = "system"
            await self._store.set(LAYOUT_SETTINGS, layout.component, to_document(layout))

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def list_media(self) -> list[MediaAsset]:
        """Media assets, newest upload first."""
        return await self._load_all(MEDIA_ASSETS, MediaAsset, order_by="uploadedAt", descending=True)

    async def upload_media(
        self,
        filename: str,
        data: bytes,
        *,
        uploaded_by: str,
        mime_type: str | None = None,
        category: str | None = None,
        alt: str | None = None,
    ) -> MediaAsset:
        """Stores the bytes and records a media_assets document.

        Raises:
            ValidationFailedError: Empty upload or unusable file name.
        """
        if not data:
            raise ValidationFailedError("Uploaded file is empty.")
        try:
            name = safe_name(filename)
        except ValueError as exc:
            raise ValidationFailedError(str(exc)) from exc
        mime = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        asset_id = uuid.uuid4().hex
        url = await self._files.store(asset_id, name, data)
        asset = MediaAsset(
            id=asset_id,
            name=name,
            url=url,
            type=media_type_for(mime),
            size=len(data),
            mime_type=mime,
            alt=alt,
            category=category,
            uploaded_by=uploaded_by,
        )
        await self._store.set(MEDIA_ASSETS, asset_id, to_document(asset))
        logger.info("Media %s uploaded (%d bytes)", asset_id, len(data))
        return asset

    async def read_media(self, asset_id: str, filename: str) -> bytes | None:
        try:
            return await self._files.read(asset_id, filename)
        except ValueError:
            return None

    async def delete_media(self, asset_id: str) -> None:
        """Removes the file and its document.

        Raises:
            NotFoundError: If no such asset exists.
        """
        doc = await self._store.get(MEDIA_ASSETS, asset_id)
        if doc is None:
            raise NotFoundError(f"Media asset {asset_id} not found.")
        await self._files.delete(asset_id, doc["name"])
        await self._store.delete(MEDIA_ASSETS, asset_id)
        logger.info("Media %s deleted", asset_id)

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    async def list_characters(self) -> list[Character]:
        return await self._load_all(CHARACTERS, Character, order_by="created_at")

    async def get_character(self, character_id: str) -> Character | None:
        doc = await self._store.get(CHARACTERS, character_id)
        return _validate(Character, doc) if doc is not None else None

    async def seed_characters(self, characters: list[Character], *, replace: bool = False) -> int:
        """Writes the character catalogue.

        Args:
            replace: Delete every existing character first.
        """
        if replace:
            for doc in await self._store.query(CHARACTERS):
                await self._store.delete(CHARACTERS, doc["id"])
        for character in characters:
            await self._store.set(CHARACTERS, character.id, to_document(character))
        logger.info("Seeded %d characters (replace=%s)", len(characters), replace)
        return len(characters)
