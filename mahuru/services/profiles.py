"""Profile store — learner profiles, the journey, and activity completion.

The users document is the learner's whole game state: chosen kaitiaki,
difficulty, unlock frontier (current_day), points, completed days and
recorded achievements. update() is the only way to change it, and it
refuses to move any of the progress fields backwards: current_day and
total_points never decrease, achievements and completed_days only grow,
and a chosen character is final.

complete_activity() is the one path that awards points. The progress
record user_progress/<uid>_day-<d> is written create-only before anything
else, so of two requests for the same day, in this process or another,
exactly one claims it and credits the points. Within a process, a
learner's completions also queue on a per-learner asyncio.Lock.

Write order for a fresh completion:
1. user_progress/<uid>_day-<d>: the completion record, create-only.
2. users/<uid>: one merge-write of points, frontier, completed_days,
   achievements.
3. achievement_unlocks/<uid>_<achievement>: one per newly unlocked badge.

A repeat request finishes whatever a crash left undone: a missing record
is rewritten with score 0, and a record whose day never reached the
profile is credited with its score.

Live updates come from a database watch on users/<uid>, so writes from
any process or tool reach listeners.

Tier 3 service: imports hooks, schemas, errors, curriculum, services.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from mahuru.curriculum.achievements import (
    AchievementStatus,
    catalogue,
    evaluate_achievements,
    unlocked_ids,
)
from mahuru.curriculum.progress import (
    activity_points,
    activity_type_for,
    apply_completion,
    clamp_day,
    is_day_unlocked,
    score_activity,
)
from mahuru.errors import (
    AlreadyExistsError,
    ConflictError,
    DayLockedError,
    NotFoundError,
    ValidationFailedError,
)
from mahuru.hooks.interfaces import DocumentChange, DocumentStore
from mahuru.schemas import (
    DIFFICULTIES,
    TOTAL_DAYS,
    AchievementUnlock,
    ActivityContent,
    CompletionResult,
    Identity,
    JourneyDay,
    UserProfile,
    UserProgress,
    activity_doc_id,
    to_document,
    utc_now,
)
from mahuru.services.changes import Callback, ChangeFeed, Unsubscribe, profile_topic
from mahuru.services.content import ContentStore

logger = logging.getLogger(__name__)

USERS = "users"
USER_PROGRESS = "user_progress"
ACHIEVEMENT_UNLOCKS = "achievement_unlocks"

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})
_CREDIT_FIELDS = (
    "current_day",
    "total_points",
    "completed_days",
    "achievements",
    "last_activity_date",
    "updated_at",
)


def progress_doc_id(user_id: str, day: int) -> str:
    return f"{user_id}_{activity_doc_id(day)}"


def unlock_doc_id(user_id: str, achievement_id: str) -> str:
    return f"{user_id}_{achievement_id}"


def _default_name(identity: Identity) -> str:
    return identity.display_name or identity.email.split("@", 1)[0]


@dataclass
class _UserLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


def _merge_ordered(current: list[str], incoming: list[str]) -> list[str]:
    """Union that keeps current's order and appends unseen items."""
    merged = list(current)
    for item in incoming:
        if item not in merged:
            merged.append(item)
    return merged


class ProfileStore:
    """Learner profile persistence with monotonic progress rules.

    Args:
        store: The document store.
        content: Content store, for activities and the character catalogue.
        feed: Change feed that fans profile snapshots out to listeners.
    """

    def __init__(self, store: DocumentStore, content: ContentStore, feed: ChangeFeed) -> None:
        self._store = store
        self._content = content
        self._feed = feed
        self._locks: dict[str, _UserLock] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_or_none(self, user_id: str) -> UserProfile | None:
        doc = await self._store.get(USERS, user_id)
        if doc is None:
            return None
        return UserProfile.model_validate(doc)

    async def get(self, user_id: str) -> UserProfile:
        """Returns the profile.

        Raises:
            NotFoundError: If the user has no profile document.
        """
        profile = await self.get_or_none(user_id)
        if profile is None:
            raise NotFoundError("User profile not found.")
        return profile

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(self, identity: Identity, name: str | None = None) -> UserProfile:
        """Creates the profile for a new account.

        Returns the existing profile untouched if one is already stored,
        so a retried sign-up never resets progress.
        """
        existing = await self.get_or_none(identity.uid)
        if existing is not None:
            return existing
        profile = UserProfile(
            id=identity.uid,
            email=identity.email,
            name=name or _default_name(identity),
            email_verified=identity.email_verified,
        )
        await self._store.set(USERS, identity.uid, to_document(profile))
        logger.info("Profile created for %s", identity.uid)
        return profile

    async def ensure(self, identity: Identity) -> UserProfile:
        """Returns the profile, creating it lazily on first sign-in.

        Mirrors the provider's email_verified flag onto the document.
        """
        profile = await self.get_or_none(identity.uid)
        if profile is None:
            return await self.create(identity)
        if profile.email_verified != identity.email_verified:
            return await self.update(identity.uid, {"email_verified": identity.email_verified})
        return profile

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def _sanitise(self, current: UserProfile, partial: dict[str, Any]) -> dict[str, Any]:
        """Applies the monotonic-progress rules to a patch."""
        unknown = set(partial) - set(UserProfile.model_fields)
        if unknown:
            raise ValidationFailedError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        patch = {key: value for key, value in partial.items() if key not in _IMMUTABLE_FIELDS}

        if "character_id" in patch:
            wanted = patch["character_id"]
            if current.character_id is not None and wanted != current.character_id:
                raise ConflictError(
                    "Your kaitiaki has already been chosen.", code="CHARACTER_LOCKED"
                )
        try:
            if "current_day" in patch:
                patch["current_day"] = max(current.current_day, clamp_day(int(patch["current_day"])))
            if "total_points" in patch:
                patch["total_points"] = max(current.total_points, int(patch["total_points"]))
            if "achievements" in patch:
                patch["achievements"] = _merge_ordered(current.achievements, list(patch["achievements"]))
            if "completed_days" in patch:
                patch["completed_days"] = sorted(
                    set(current.completed_days) | {int(day) for day in patch["completed_days"]}
                )
        except (TypeError, ValueError) as exc:
            raise ValidationFailedError(f"Invalid profile update. {exc}") from exc
        return patch

    async def update(self, user_id: str, partial: dict[str, Any]) -> UserProfile:
        """Applies a partial update under the monotonic progress rules.

        Raises:
            NotFoundError: No profile for user_id.
            ConflictError: Attempt to replace a chosen character.
            ValidationFailedError: Unknown field or invalid value.
        """
        current = await self.get(user_id)
        patch = self._sanitise(current, partial)
        try:
            updated = UserProfile.model_validate(
                {**current.model_dump(), **patch, "updated_at": utc_now()}
            )
        except ValidationError as exc:
            raise ValidationFailedError(f"Invalid profile update. {exc}") from exc

        document = to_document(updated)
        changed = {key: document[key] for key in (*patch, "updated_at")}
        await self._store.set(USERS, user_id, changed, merge=True)
        return updated

    async def select_character(self, user_id: str, character_id: str) -> UserProfile:
        """Records the learner's kaitiaki. Choosing the same one again is a no-op.

        Raises:
            ValidationFailedError: Unknown character id.
            ConflictError: A different character was already chosen.
        """
        if await self._content.get_character(character_id) is None:
            raise ValidationFailedError(f"Unknown character {character_id!r}.")
        return await self.update(user_id, {"character_id": character_id})

    async def select_difficulty(self, user_id: str, difficulty: str) -> UserProfile:
        if difficulty not in DIFFICULTIES:
            raise ValidationFailedError(
                f"Difficulty must be one of {', '.join(DIFFICULTIES)}."
            )
        return await self.update(user_id, {"difficulty_level": difficulty})

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    async def listen(self, user_id: str, callback: Callback) -> Unsubscribe:
        """Pushes the profile document (or None) now and after every change.

        Changes come from a watch on users/<uid>, shared by every listener
        of that learner in this process. Deliveries stop as soon as the
        returned function is called, even for a change already in flight.
        """
        topic = profile_topic(user_id)
        active = True

        def deliver(payload: Any) -> None:
            if active:
                callback(payload)

        async def on_change(change: DocumentChange) -> None:
            self._feed.publish(topic, change.data)

        unsubscribe_feed = self._feed.subscribe(
            topic,
            deliver,
            source=lambda: self._store.watch(USERS, on_change, doc_id=user_id),
        )

        def unsubscribe() -> None:
            nonlocal active
            active = False
            unsubscribe_feed()

        try:
            deliver(await self._store.get(USERS, user_id))
        except Exception:
            unsubscribe()
            raise
        return unsubscribe

    # ------------------------------------------------------------------
    # Journey, gate and achievements
    # ------------------------------------------------------------------

    async def _activities_by_day(self) -> dict[int, ActivityContent]:
        return {activity.day: activity for activity in await self._content.list_activities()}

    async def journey(self, user_id: str) -> list[JourneyDay]:
        """The 30-node journey map for a learner."""
        profile = await self.get(user_id)
        activities = await self._activities_by_day()
        difficulty = profile.difficulty_level
        completed = set(profile.completed_days)
        days = []
        for day in range(1, TOTAL_DAYS + 1):
            activity = activities.get(day)
            days.append(
                JourneyDay(
                    day=day,
                    title=activity.title_for(difficulty) if activity else f"Day {day}",
                    unlocked=is_day_unlocked(day, profile.current_day, difficulty),
                    completed=day in completed,
                    is_current=day == profile.current_day,
                    activity_type=activity_type_for(activity, day),
                    points=activity_points(activity, day, difficulty),
                )
            )
        return days

    async def open_activity(self, user_id: str, day: int) -> dict[str, Any]:
        """The learner-facing view of a day's activity.

        The quiz answer is withheld; it is checked on completion.

        Raises:
            DayLockedError: The day is not open for this learner.
        """
        profile = await self.get(user_id)
        difficulty = profile.difficulty_level
        if not is_day_unlocked(day, profile.current_day, difficulty):
            raise DayLockedError(f"Day {day} is still locked.")
        activity = await self._content.get_activity(day)
        view: dict[str, Any] = {
            "day": day,
            "title": activity.title_for(difficulty) if activity else f"Day {day}",
            "text": activity.text_for(difficulty) if activity else "",
            "activity_type": activity_type_for(activity, day),
            "points": activity_points(activity, day, difficulty),
            "tips": list(activity.tips) if activity else [],
            "resources": [r.model_dump() for r in activity.resources] if activity else [],
            "quiz": None,
            "completed": day in profile.completed_days,
        }
        if activity is not None and activity.quiz is not None:
            view["quiz"] = {
                "question": activity.quiz.question,
                "options": list(activity.quiz.options),
            }
        return view

    async def achievements(self, user_id: str) -> list[AchievementStatus]:
        profile = await self.get(user_id)
        return evaluate_achievements(
            profile.current_day, profile.total_points, profile.difficulty_level
        )

    async def achievement_unlocks(self, user_id: str) -> list[AchievementUnlock]:
        docs = await self._store.query(
            ACHIEVEMENT_UNLOCKS, where={"user_id": user_id}, order_by="unlocked_at"
        )
        return [AchievementUnlock.model_validate(doc) for doc in docs]

    async def list_progress(self, user_id: str) -> list[UserProgress]:
        """Completion records, newest first."""
        docs = await self._store.query(
            USER_PROGRESS,
            where={"user_id": user_id},
            order_by="completed_at",
            descending=True,
        )
        return [UserProgress.model_validate(doc) for doc in docs]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialises one learner's completions; the entry goes with its last user."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[user_id]

    async def complete_activity(
        self,
        user_id: str,
        day: int,
        *,
        answer: int | None = None,
        time_taken: int = 0,
    ) -> CompletionResult:
        """Credits a day's activity exactly once.

        Args:
            answer: The learner's first quiz answer (option index). Ignored
                for activities without a quiz question.
            time_taken: Seconds spent, recorded on the progress document.

        Raises:
            NotFoundError: No profile for user_id.
            ConflictError: CHARACTER_REQUIRED, no kaitiaki chosen yet.
            DayLockedError: The day is not open for this learner.
        """
        async with self._user_lock(user_id):
            profile = await self.get(user_id)
            difficulty = profile.difficulty_level
            if profile.character_id is None:
                raise ConflictError(
                    "Choose your kaitiaki before starting activities.",
                    code="CHARACTER_REQUIRED",
                )
            if not is_day_unlocked(day, profile.current_day, difficulty):
                raise DayLockedError(f"Day {day} is still locked.")

            progress_id = progress_doc_id(user_id, day)
            if day in profile.completed_days:
                existing = await self._store.get(USER_PROGRESS, progress_id)
                return await self._repair_completion(profile, day, existing, time_taken)

            activity = await self._content.get_activity(day)
            points = activity_points(activity, day, difficulty)
            quiz = activity.quiz if activity is not None else None
            correct_first = quiz is None or answer == quiz.correct
            earned = score_activity(activity_type_for(activity, day), points, correct_first)

            record = UserProgress(
                id=progress_id,
                user_id=user_id,
                activity_id=activity_doc_id(day),
                day=day,
                score=earned,
                time_taken=max(time_taken, 0),
            )
            try:
                await self._store.create(USER_PROGRESS, progress_id, to_document(record))
            except AlreadyExistsError:
                # Claimed by another request, possibly in another process.
                existing = await self._store.get(USER_PROGRESS, progress_id)
                profile = await self.get(user_id)
                return await self._repair_completion(profile, day, existing, time_taken)

            updated, new_achievements = await self._credit(profile, day, earned)
            logger.info(
                "Day %d completed by %s: +%d points, frontier %d -> %d",
                day,
                user_id,
                earned,
                profile.current_day,
                updated.current_day,
            )
            return CompletionResult(
                day=day,
                points_awarded=earned,
                already_completed=False,
                current_day=updated.current_day,
                total_points=updated.total_points,
                new_achievements=new_achievements,
            )

    async def _credit(
        self, profile: UserProfile, day: int, earned: int
    ) -> tuple[UserProfile, list[str]]:
        """Applies a claimed day's score to the profile and records new badges.

        Writes absolute values computed from profile, so two processes
        crediting the same day from the same snapshot write the same thing.
        """
        difficulty = profile.difficulty_level
        outcome = apply_completion(profile, day, earned)
        unlocked = unlocked_ids(outcome.current_day, outcome.total_points, difficulty)
        new_achievements = [
            definition.id
            for definition in catalogue(difficulty)
            if definition.id in unlocked and definition.id not in profile.achievements
        ]
        now = utc_now()
        updated = profile.model_copy(
            update={
                "current_day": outcome.current_day,
                "total_points": outcome.total_points,
                "completed_days": outcome.completed_days,
                "achievements": profile.achievements + new_achievements,
                "last_activity_date": now,
                "updated_at": now,
            }
        )
        document = to_document(updated)
        await self._store.set(
            USERS,
            profile.id,
            {key: document[key] for key in _CREDIT_FIELDS},
            merge=True,
        )
        for achievement_id in new_achievements:
            unlock = AchievementUnlock(
                id=unlock_doc_id(profile.id, achievement_id),
                user_id=profile.id,
                achievement_id=achievement_id,
                unlocked_at=now,
            )
            await self._store.set(ACHIEVEMENT_UNLOCKS, unlock.id, to_document(unlock))
        return updated, new_achievements

    async def _repair_completion(
        self,
        profile: UserProfile,
        day: int,
        existing: dict[str, Any] | None,
        time_taken: int,
    ) -> CompletionResult:
        """Handles a repeat completion: nothing new awarded, missing writes finished.

        A progress record without its profile credit (a crash between the
        two writes) is credited now with the record's score.
        """
        progress_id = progress_doc_id(profile.id, day)
        score = 0
        if existing is None:
            record = UserProgress(
                id=progress_id,
                user_id=profile.id,
                activity_id=activity_doc_id(day),
                day=day,
                score=0,
                time_taken=max(time_taken, 0),
            )
            await self._store.set(USER_PROGRESS, progress_id, to_document(record))
            logger.warning("Rewrote missing progress record %s", progress_id)
        else:
            score = int(existing.get("score", 0))
        if day not in profile.completed_days:
            profile, _ = await self._credit(profile, day, score)
            logger.warning("Credited day %d for %s from its progress record", day, profile.id)
        return CompletionResult(
            day=day,
            points_awarded=0,
            already_completed=True,
            current_day=profile.current_day,
            total_points=profile.total_points,
        )
