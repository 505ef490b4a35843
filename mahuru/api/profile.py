"""Learner API routes — profile, journey, activities and live updates.

Every endpoint requires a signed-in identity. The profile is created
lazily on first access, so accounts whose sign-up profile write failed
heal themselves here.

Activity completion fails open: if the store is unavailable, even for the
profile read, the error is logged and the learner gets an ok response
with credited=false, so the
activity screen never crashes mid-celebration. Retrying later is safe
because completion is idempotent per day.

Tier 3 orchestration module: imports from deps, services, streaming,
schemas.
"""

import functools
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import StreamingResponse

from mahuru.api.deps import get_current_identity, get_profile_store
from mahuru.errors import StoreError
from mahuru.schemas import (
    ApiResponse,
    CompletionResult,
    Difficulty,
    Identity,
    UserProfile,
    to_document,
)
from mahuru.services.changes import profile_topic
from mahuru.services.profiles import ProfileStore
from mahuru.streaming import create_sse_response, stream_topic

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies (API-boundary types, local to this module)
# ---------------------------------------------------------------------------


class ProfileUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class CharacterRequest(BaseModel):
    character_id: str


class DifficultyRequest(BaseModel):
    difficulty: Difficulty


class CompletionRequest(BaseModel):
    answer: int | None = None
    time_taken: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_current_profile(
    identity: Identity = Depends(get_current_identity),
    profiles: ProfileStore = Depends(get_profile_store),
) -> UserProfile:
    """The signed-in learner's profile, created on first access."""
    return await profiles.ensure(identity)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("")
async def get_profile(profile: UserProfile = Depends(get_current_profile)) -> dict:
    return ApiResponse(ok=True, data=to_document(profile)).model_dump()


@router.patch("")
async def update_profile(
    body: ProfileUpdateRequest,
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    """Renames the learner. Progress fields are not editable here."""
    updated = await profiles.update(profile.id, {"name": body.name.strip()})
    return ApiResponse(ok=True, data=to_document(updated)).model_dump()


@router.post("/character")
async def choose_character(
    body: CharacterRequest,
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    updated = await profiles.select_character(profile.id, body.character_id)
    return ApiResponse(ok=True, data=to_document(updated)).model_dump()


@router.post("/difficulty")
async def choose_difficulty(
    body: DifficultyRequest,
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    updated = await profiles.select_difficulty(profile.id, body.difficulty)
    return ApiResponse(ok=True, data=to_document(updated)).model_dump()


# ---------------------------------------------------------------------------
# Journey, achievements, progress
# ---------------------------------------------------------------------------


@router.get("/journey")
async def get_journey(
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    """The 30-day journey map with unlock and completion state."""
    days = await profiles.journey(profile.id)
    return ApiResponse(
        ok=True,
        data={
            "current_day": profile.current_day,
            "total_points": profile.total_points,
            "days": [day.model_dump() for day in days],
        },
    ).model_dump()


@router.get("/achievements")
async def get_achievements(
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    statuses = await profiles.achievements(profile.id)
    unlocks = {u.achievement_id: u for u in await profiles.achievement_unlocks(profile.id)}
    items = []
    for status in statuses:
        item = status.to_dict()
        unlock = unlocks.get(status.definition.id)
        item["unlocked_at"] = unlock.unlocked_at.isoformat() if unlock else None
        items.append(item)
    return ApiResponse(
        ok=True,
        data={
            "achievements": items,
            "unlocked_count": sum(1 for s in statuses if s.unlocked),
        },
    ).model_dump()


@router.get("/progress")
async def get_progress(
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    """Completion records, newest first."""
    records = await profiles.list_progress(profile.id)
    return ApiResponse(
        ok=True,
        data={"progress": [to_document(record) for record in records]},
    ).model_dump()


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


@router.get("/activities/{day}")
async def open_activity(
    day: int,
    profile: UserProfile = Depends(get_current_profile),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    """The day's activity; 403 DAY_LOCKED when not yet open."""
    view = await profiles.open_activity(profile.id, day)
    return ApiResponse(ok=True, data=view).model_dump()


@router.post("/activities/{day}/complete")
async def complete_activity(
    day: int,
    body: CompletionRequest | None = None,
    identity: Identity = Depends(get_current_identity),
    profiles: ProfileStore = Depends(get_profile_store),
) -> dict:
    body = body or CompletionRequest()
    profile: UserProfile | None = None
    try:
        profile = await profiles.ensure(identity)
        result = await profiles.complete_activity(
            identity.uid, day, answer=body.answer, time_taken=body.time_taken
        )
    except StoreError:
        logger.exception("Completion of day %d for %s was not recorded", day, identity.uid)
        result = CompletionResult(
            day=day,
            points_awarded=0,
            already_completed=False,
            current_day=profile.current_day if profile else None,
            total_points=profile.total_points if profile else None,
            credited=False,
        )
    return ApiResponse(ok=True, data=result.model_dump()).model_dump()


# ---------------------------------------------------------------------------
# Live updates
# ---------------------------------------------------------------------------


@router.get("/stream")
async def stream_profile(
    identity: Identity = Depends(get_current_identity),
    profiles: ProfileStore = Depends(get_profile_store),
) -> StreamingResponse:
    """SSE stream of the learner's profile document."""
    generator = stream_topic(
        functools.partial(profiles.listen, identity.uid),
        profile_topic(identity.uid),
    )
    return create_sse_response(generator)
