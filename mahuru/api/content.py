"""Public content API routes — what the site renders before sign-in.

Read-only endpoints over the ContentStore: CMS copy, layouts, global
settings, the kaitiaki catalogue, the media library and uploaded files,
plus an SSE stream per public collection. No authentication.

Tier 3 orchestration module: imports from deps, services, streaming,
schemas.
"""

import functools
import mimetypes

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from starlette.responses import StreamingResponse

from mahuru.api.deps import get_content_store
from mahuru.errors import NotFoundError
from mahuru.hooks.storage import safe_name
from mahuru.schemas import ApiError, ApiResponse, to_document
from mahuru.services.content import PUBLIC_COLLECTIONS, ContentStore
from mahuru.streaming import create_sse_response, stream_topic

router = APIRouter()


@router.get("/content")
async def list_content(content: ContentStore = Depends(get_content_store)) -> dict:
    """Every CMS entry keyed by key, as stored."""
    entries = await content.all_content()
    return ApiResponse(
        ok=True,
        data={key: to_document(item) for key, item in entries.items()},
    ).model_dump()


@router.get("/content/{key}")
async def get_content_value(key: str, content: ContentStore = Depends(get_content_store)) -> dict:
    entry = await content.get_content(key)
    if entry is None:
        raise NotFoundError(f"No content for key {key!r}.")
    return ApiResponse(ok=True, data=to_document(entry)).model_dump()


@router.get("/content/{key}/value")
async def get_plain_value(key: str, content: ContentStore = Depends(get_content_store)) -> dict:
    """The bare value under key; null when unset so the site can fall back."""
    value = await content.get_value(key)
    return ApiResponse(ok=True, data={"key": key, "value": value}).model_dump()


@router.get("/layouts")
async def list_layouts(content: ContentStore = Depends(get_content_store)) -> dict:
    layouts = await content.all_layouts()
    return ApiResponse(
        ok=True,
        data={name: to_document(item) for name, item in layouts.items()},
    ).model_dump()


@router.get("/settings")
async def get_settings_document(content: ContentStore = Depends(get_content_store)) -> dict:
    settings = await content.get_global_settings()
    return ApiResponse(ok=True, data=to_document(settings)).model_dump()


@router.get("/characters")
async def list_characters(content: ContentStore = Depends(get_content_store)) -> dict:
    characters = await content.list_characters()
    return ApiResponse(
        ok=True,
        data={"characters": [to_document(c) for c in characters]},
    ).model_dump()


@router.get("/media")
async def list_media(content: ContentStore = Depends(get_content_store)) -> dict:
    assets = await content.list_media()
    return ApiResponse(
        ok=True,
        data={"media": [to_document(a) for a in assets]},
    ).model_dump()


@router.get("/media/files/{asset_id}/{filename}")
async def serve_media_file(
    asset_id: str,
    filename: str,
    content: ContentStore = Depends(get_content_store),
) -> Response:
    """Serves uploaded bytes. Names are reduced to base names first."""
    try:
        safe_asset, safe_file = safe_name(asset_id), safe_name(filename)
    except ValueError:
        safe_asset = safe_file = ""
    data = await content.read_media(safe_asset, safe_file) if safe_file else None
    if data is None:
        raise HTTPException(
            status_code=404,
            detail=ApiResponse(
                ok=False,
                error=ApiError(code="MEDIA_NOT_FOUND", message="Media file not found."),
            ).model_dump(),
        )
    media_type = mimetypes.guess_type(safe_file)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)


@router.get("/stream/{collection}")
async def stream_collection(
    collection: str,
    content: ContentStore = Depends(get_content_store),
) -> StreamingResponse:
    """SSE stream of a public collection's snapshots."""
    if collection not in PUBLIC_COLLECTIONS:
        raise NotFoundError(f"Unknown collection {collection!r}.")
    generator = stream_topic(functools.partial(content.subscribe, collection), collection)
    return create_sse_response(generator)
