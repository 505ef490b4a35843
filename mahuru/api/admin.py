"""Admin API routes — content management behind server-side permission checks.

Every write endpoint depends on require_permission(<flag>), which loads
the caller's admin_users document and refuses with 403 FORBIDDEN unless
the flag is set (or the role is super_admin). The browser never decides
who is an admin.

Permission per endpoint:
- content and global settings: can_edit_content
- activities: can_edit_activities
- layouts: can_edit_layout
- media: can_manage_media
- commands: super_admin only

Tier 3 orchestration module: imports from deps, services, schemas.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel

from mahuru.admin_commands import AdminCommands
from mahuru.api.deps import (
    get_admin_commands,
    get_admin_directory,
    get_content_store,
    get_current_identity,
    require_permission,
    require_super_admin,
)
from mahuru.errors import PermissionDeniedError
from mahuru.schemas import AdminUser, ApiResponse, Identity, Permission, to_document
from mahuru.services.admin import AdminDirectory
from mahuru.services.content import ContentStore

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies (API-boundary types, local to this module)
# ---------------------------------------------------------------------------


class ContentUpdateRequest(BaseModel):
    value: Any
    type: str | None = None
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


@router.get("/access")
async def check_access(
    permission: Permission | None = None,
    identity: Identity = Depends(get_current_identity),
    admins: AdminDirectory = Depends(get_admin_directory),
) -> dict:
    """Whether the caller has an admin record, and optionally one flag. Never 403s."""
    data: dict[str, Any] = {"is_admin": await admins.check_admin_access(identity.uid)}
    if permission is not None:
        data["permission"] = permission
        data["allowed"] = await admins.has_permission(identity.uid, permission)
    return ApiResponse(ok=True, data=data).model_dump()


@router.get("/me")
async def get_admin_record(
    identity: Identity = Depends(get_current_identity),
    admins: AdminDirectory = Depends(get_admin_directory),
) -> dict:
    """The caller's admin record; records the login time."""
    admin = await admins.get_admin(identity.uid)
    if admin is None:
        raise PermissionDeniedError("Admin access required.")
    await admins.record_login(identity.uid)
    return ApiResponse(ok=True, data=to_document(admin)).model_dump()


@router.post("/setup")
async def setup_first_admin(
    identity: Identity = Depends(get_current_identity),
    admins: AdminDirectory = Depends(get_admin_directory),
) -> dict:
    """Bootstraps a super admin for an allow-listed email."""
    admin = await admins.setup_first_admin(identity)
    return ApiResponse(ok=True, data=to_document(admin)).model_dump()


# ---------------------------------------------------------------------------
# Content, activities, layouts, settings
# ---------------------------------------------------------------------------


@router.put("/content/{key}")
async def update_content(
    key: str,
    body: ContentUpdateRequest,
    admin: AdminUser = Depends(require_permission("can_edit_content")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    item = await content.update_content(
        key,
        body.value,
        content_type=body.type,
        metadata=body.metadata,
        updated_by=admin.uid,
    )
    return ApiResponse(ok=True, data=to_document(item)).model_dump()


@router.get("/activities")
async def list_activities(
    admin: AdminUser = Depends(require_permission("can_edit_activities")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    """All activities with every level's text, ordered by day."""
    activities = await content.list_activities()
    return ApiResponse(
        ok=True,
        data={"activities": [to_document(a) for a in activities]},
    ).model_dump()


@router.put("/activities/{day}")
async def update_activity(
    day: int,
    body: dict[str, Any] = Body(...),
    admin: AdminUser = Depends(require_permission("can_edit_activities")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    activity = await content.update_activity(day, body, updated_by=admin.uid)
    return ApiResponse(ok=True, data=to_document(activity)).model_dump()


@router.put("/layouts/{component}")
async def update_layout(
    component: str,
    body: dict[str, Any] = Body(...),
    admin: AdminUser = Depends(require_permission("can_edit_layout")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    layout = await content.update_layout(component, body, updated_by=admin.uid)
    return ApiResponse(ok=True, data=to_document(layout)).model_dump()


@router.put("/settings")
async def update_settings(
    body: dict[str, Any] = Body(...),
    admin: AdminUser = Depends(require_permission("can_edit_content")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    settings = await content.update_global_settings(body, updated_by=admin.uid)
    return ApiResponse(ok=True, data=to_document(settings)).model_dump()


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


@router.post("/media/{filename}")
async def upload_media(
    filename: str,
    request: Request,
    category: str | None = None,
    alt: str | None = None,
    admin: AdminUser = Depends(require_permission("can_manage_media")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    """Uploads the raw request body as a media file."""
    data = await request.body()
    mime_type = request.headers.get("content-type")
    asset = await content.upload_media(
        filename,
        data,
        uploaded_by=admin.uid,
        mime_type=mime_type,
        category=category,
        alt=alt,
    )
    return ApiResponse(ok=True, data=to_document(asset)).model_dump()


@router.delete("/media/{asset_id}")
async def delete_media(
    asset_id: str,
    admin: AdminUser = Depends(require_permission("can_manage_media")),
    content: ContentStore = Depends(get_content_store),
) -> dict:
    await content.delete_media(asset_id)
    return ApiResponse(ok=True).model_dump()


# ---------------------------------------------------------------------------
# Administrative commands
# ---------------------------------------------------------------------------


@router.post("/commands/{name}")
async def run_command(
    name: str,
    params: dict[str, Any] | None = Body(default=None),
    admin: AdminUser = Depends(require_super_admin),
    commands: AdminCommands = Depends(get_admin_commands),
) -> dict:
    result = await commands.run(name, params)
    return ApiResponse(ok=True, data=result).model_dump()
