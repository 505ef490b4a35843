"""Core data models — shared Pydantic types for the Mahuru platform.

Every profile, activity, CMS document and API response flows through these
types. They are the shared vocabulary between the hooks, the services and
the API routes.

Two naming conventions live side by side because the stored documents use
them: learner-facing documents (users, characters, user_progress) are
snake_case, while the CMS collections (cms_content, activities,
layout_settings, media_assets, global_settings, admin_users) are
camelCase. CMS models inherit DocumentModel, which maps snake_case Python
attributes to camelCase keys. Always persist with to_document().

This is a Tier 1 leaf module: it imports only from pydantic and the stdlib.

Usage:
    from mahuru.schemas import UserProfile, CMSContent, ApiResponse, to_document
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

TOTAL_DAYS = 30

Difficulty = Literal["beginner", "intermediate", "advanced"]
ActivityType = Literal["quiz", "game", "story", "learning"]
AdminRole = Literal["super_admin", "admin", "editor"]
Permission = Literal[
    "can_edit_content",
    "can_edit_layout",
    "can_manage_users",
    "can_manage_media",
    "can_edit_activities",
    "can_view_analytics",
]

DIFFICULTIES: tuple[str, ...] = ("beginner", "intermediate", "advanced")

Primitive = Union[bool, int, float, str]

_HEX_COLOUR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def utc_now() -> datetime:
    """Current time in UTC. Every stored timestamp uses this."""
    return datetime.now(timezone.utc)


def to_document(model: BaseModel) -> dict[str, Any]:
    """Serialises a model into the JSON-compatible dict the stores persist."""
    return model.model_dump(mode="json", by_alias=True)


def _check_hex(value: str | None) -> str | None:
    if value and not _HEX_COLOUR.match(value):
        raise ValueError(f"{value!r} is not a hex colour like #10b981")
    return value


class DocumentModel(BaseModel):
    """Base for camelCase-keyed CMS documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """Identity resolved by the auth provider.

    Frozen — identities are snapshots of the provider's record.
    """

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str
    display_name: str = ""
    email_verified: bool = False


class AuthSession(BaseModel):
    """A signed-in identity plus the bearer token that proves it."""

    model_config = ConfigDict(frozen=True)

    identity: Identity
    id_token: str


# ---------------------------------------------------------------------------
# Learner documents
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """The learner's profile document, keyed by auth uid.

    current_day is the unlock frontier. Validation clamps it into
    [1, TOTAL_DAYS] and total_points to non-negative values, so a stored
    document can never describe day 31.
    """

    id: str
    email: str
    name: str
    character_id: str | None = None
    difficulty_level: Difficulty | None = None
    current_day: int = 1
    total_points: int = 0
    achievements: list[str] = Field(default_factory=list)
    completed_days: list[int] = Field(default_factory=list)
    email_verified: bool = False
    last_activity_date: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("current_day")
    @classmethod
    def _clamp_day(cls, value: int) -> int:
        return min(max(value, 1), TOTAL_DAYS)

    @field_validator("total_points")
    @classmethod
    def _non_negative_points(cls, value: int) -> int:
        return max(value, 0)

    @field_validator("completed_days")
    @classmethod
    def _valid_days(cls, value: list[int]) -> list[int]:
        return sorted({day for day in value if 1 <= day <= TOTAL_DAYS})


class Character(BaseModel):
    """A kaitiaki (guardian) the learner walks the journey with."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    image_url: str
    cultural_significance: str
    created_at: datetime = Field(default_factory=utc_now)


class UserProgress(BaseModel):
    """Completion record — one per (user_id, activity_id)."""

    id: str
    user_id: str
    activity_id: str
    day: int
    score: int
    time_taken: int = 0
    completed_at: datetime = Field(default_factory=utc_now)


class AchievementUnlock(BaseModel):
    """Recorded moment an achievement first became unlocked."""

    id: str
    user_id: str
    achievement_id: str
    unlocked_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Curriculum (activities collection)
# ---------------------------------------------------------------------------


class LevelText(DocumentModel):
    beginner: str | None = None
    intermediate: str | None = None
    advanced: str | None = None


class LevelPoints(DocumentModel):
    beginner: int | None = Field(default=None, ge=0)
    intermediate: int | None = Field(default=None, ge=0)
    advanced: int | None = Field(default=None, ge=0)


class Resource(DocumentModel):
    title: str
    url: str
    type: Literal["video", "article", "audio", "pdf"]


class QuizQuestion(DocumentModel):
    """Multiple-choice question; correct is an index into options."""

    question: str
    options: list[str]
    correct: int
    explanation: str = ""

    @model_validator(mode="after")
    def _correct_in_range(self) -> "QuizQuestion":
        if not 0 <= self.correct < len(self.options):
            raise ValueError("correct must index one of the options")
        return self


class ActivityContent(DocumentModel):
    """One day of the curriculum, with text for every difficulty.

    Document id is always "day-<day>". A quiz-type activity carries its
    question in quiz.
    """

    id: str = ""
    day: int = Field(ge=1, le=TOTAL_DAYS)
    beginner: str = ""
    intermediate: str = ""
    advanced: str = ""
    type: ActivityType = "learning"
    title: LevelText = Field(default_factory=LevelText)
    points: LevelPoints = Field(default_factory=LevelPoints)
    tips: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    quiz: QuizQuestion | None = None
    last_updated: datetime | None = None
    updated_by: str | None = None

    @model_validator(mode="after")
    def _derive_id(self) -> "ActivityContent":
        self.id = activity_doc_id(self.day)
        return self

    def text_for(self, difficulty: str | None) -> str:
        """Activity text for a difficulty; beginner when unknown."""
        if difficulty in ("intermediate", "advanced"):
            return getattr(self, difficulty)
        return self.beginner

    def title_for(self, difficulty: str | None) -> str:
        level = difficulty if difficulty in DIFFICULTIES else "beginner"
        return getattr(self.title, level) or f"Day {self.day}"


def activity_doc_id(day: int) -> str:
    """Document id of the activity for a day (also the progress activity_id)."""
    return f"day-{day}"


# ---------------------------------------------------------------------------
# CMS content — tagged values
# ---------------------------------------------------------------------------


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    value: int | float


class BooleanValue(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class RecordValue(BaseModel):
    kind: Literal["record"] = "record"
    value: dict[str, Primitive | list[Primitive] | dict[str, Primitive] | None]


CMSValue = Annotated[
    Union[TextValue, NumberValue, BooleanValue, RecordValue],
    Field(discriminator="kind"),
]


def tag_value(raw: Any) -> dict[str, Any]:
    """Wraps an untagged value in the {"kind", "value"} variant shape.

    Already-tagged dicts pass through unchanged.

    Raises:
        ValueError: For values that fit no variant (lists, None).
    """
    if isinstance(raw, dict) and "kind" in raw and "value" in raw:
        return raw
    if isinstance(raw, bool):
        return {"kind": "boolean", "value": raw}
    if isinstance(raw, (int, float)):
        return {"kind": "number", "value": raw}
    if isinstance(raw, str):
        return {"kind": "text", "value": raw}
    if isinstance(raw, dict):
        return {"kind": "record", "value": raw}
    raise ValueError(f"Unsupported CMS value of type {type(raw).__name__}")


class CMSMetadata(DocumentModel):
    description: str | None = None
    section: str | None = None
    component: str | None = None
    last_updated: datetime | None = None
    updated_by: str | None = None


class CMSContent(DocumentModel):
    """Editable site copy, keyed by key. Last writer wins."""

    key: str
    type: Literal["text", "image", "layout", "activity", "global"] = "text"
    value: CMSValue
    metadata: CMSMetadata = Field(default_factory=CMSMetadata)

    @model_validator(mode="before")
    @classmethod
    def _tag_legacy_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "value" in data:
            data = {**data, "value": tag_value(data["value"])}
        return data

    @property
    def plain_value(self) -> Any:
        return self.value.value


# ---------------------------------------------------------------------------
# Layout and global settings
# ---------------------------------------------------------------------------

StyleValue = Union[Primitive, dict[str, Union[Primitive, dict[str, Primitive]]]]


class LayoutSettings(DocumentModel):
    """Per-component styling and visibility switches."""

    id: str = ""
    component: str
    styles: dict[str, StyleValue] = Field(default_factory=dict)
    visibility: dict[str, bool] = Field(default_factory=dict)
    content: dict[str, Primitive] = Field(default_factory=dict)
    last_updated: datetime | None = None
    updated_by: str | None = None

    @field_validator("styles")
    @classmethod
    def _colours_are_hex(cls, value: dict[str, StyleValue]) -> dict[str, StyleValue]:
        colours = value.get("colors")
        if isinstance(colours, dict):
            for colour in colours.values():
                if isinstance(colour, str):
                    _check_hex(colour)
        return value

    @model_validator(mode="after")
    def _derive_id(self) -> "LayoutSettings":
        self.id = self.component
        return self


class SocialMedia(DocumentModel):
    facebook: str | None = None
    twitter: str | None = None
    instagram: str | None = None


class SeoSettings(DocumentModel):
    title: str | None = None
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    og_image: str | None = None


class FeatureFlags(DocumentModel):
    enable_email_signup: bool = True
    enable_social_login: bool = False
    enable_progress_tracking: bool = True
    enable_achievements: bool = True


class Branding(DocumentModel):
    logo: str | None = None
    favicon: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def _hex(cls, value: str | None) -> str | None:
        return _check_hex(value)


class GlobalSettings(DocumentModel):
    """Site-wide settings; a single document with id "main"."""

    id: str = "main"
    site_name: str = ""
    site_description: str = ""
    site_url: str = ""
    social_media: SocialMedia = Field(default_factory=SocialMedia)
    seo: SeoSettings = Field(default_factory=SeoSettings)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    branding: Branding = Field(default_factory=Branding)
    last_updated: datetime | None = None
    updated_by: str | None = None


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


class MediaAsset(DocumentModel):
    id: str
    name: str
    url: str
    type: Literal["image", "video", "audio", "document"]
    size: int = Field(ge=0)
    mime_type: str
    alt: str | None = None
    category: str | None = None
    uploaded_at: datetime = Field(default_factory=utc_now)
    uploaded_by: str


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class AdminPermissions(DocumentModel):
    can_edit_content: bool = False
    can_edit_layout: bool = False
    can_manage_users: bool = False
    can_manage_media: bool = False
    can_edit_activities: bool = False
    can_view_analytics: bool = False

    @classmethod
    def all_granted(cls) -> "AdminPermissions":
        return cls(**{name: True for name in cls.model_fields})


class AdminUser(DocumentModel):
    """Authorisation record in admin_users, keyed by auth uid."""

    uid: str
    email: str
    display_name: str | None = None
    role: AdminRole
    permissions: AdminPermissions = Field(default_factory=AdminPermissions)
    last_login: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def can(self, permission: Permission) -> bool:
        """Whether this admin holds a permission. super_admin holds all."""
        if self.role == "super_admin":
            return True
        return bool(getattr(self.permissions, permission))


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class JourneyDay(BaseModel):
    """One node on the 30-day journey map."""

    model_config = ConfigDict(frozen=True)

    day: int
    title: str
    unlocked: bool
    completed: bool
    is_current: bool
    activity_type: ActivityType
    points: int


class CompletionResult(BaseModel):
    """Outcome of completing a day's activity.

    already_completed means the day had been credited before and nothing
    was added. credited is False only when the write failed and the API
    answered anyway; current_day and total_points are then None when the
    profile itself could not be read.
    """

    model_config = ConfigDict(frozen=True)

    day: int
    points_awarded: int
    already_completed: bool
    current_day: int | None
    total_points: int | None
    new_achievements: list[str] = Field(default_factory=list)
    credited: bool = True


# ---------------------------------------------------------------------------
# API envelope
# ---------------------------------------------------------------------------


class ApiError(BaseModel):
    """Error detail inside ApiResponse.error.

    code is an uppercase string like "DAY_LOCKED", "ACCOUNT_EXISTS".
    Not an enum — error codes grow with features.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(BaseModel):
    """Universal response envelope — every API endpoint returns this shape."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Any | None = None
    error: ApiError | None = None


# ---------------------------------------------------------------------------
# SSE events
# ---------------------------------------------------------------------------


class ChangeEvent(BaseModel):
    """A pushed document or collection snapshot for a live subscription."""

    model_config = ConfigDict(frozen=True)

    topic: str
    data: Any | None = None
