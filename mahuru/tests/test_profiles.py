"""Tests for mahuru.services.profiles — profiles, journey and completion.

The completion tests walk the learner scenarios end to end against the
in-memory stack: first completion, double completion, locked days,
missing kaitiaki, quiz scoring, and repair of half-written completions.
"""

import asyncio

import pytest

from mahuru.errors import (
    ConflictError,
    DayLockedError,
    NotFoundError,
    ValidationFailedError,
)
from mahuru.services.changes import ChangeFeed
from mahuru.services.profiles import (
    ACHIEVEMENT_UNLOCKS,
    USER_PROGRESS,
    USERS,
    ProfileStore,
    progress_doc_id,
)


@pytest.fixture
def learner(services, make_identity, make_activity, make_character):
    """Factory: seeds curriculum + characters, then creates a ready learner."""

    async def _make(*, difficulty="beginner", character="kiwi", activities=None, **profile):
        await services.content.seed_characters([make_character()])
        await services.content.seed_activities(
            activities if activities is not None
            else [make_activity(day=d) for d in range(1, 31)]
        )
        identity = make_identity()
        await services.profiles.create(identity)
        patch = {"difficulty_level": difficulty, **profile}
        if character is not None:
            patch["character_id"] = character
        await services.profiles.update(identity.uid, patch)
        return identity.uid

    return _make


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreate:
    @pytest.mark.asyncio
    async def test_new_profile_starts_at_day_one(self, services, make_identity) -> None:
        identity = make_identity(display_name="")
        profile = await services.profiles.create(identity)
        assert profile.current_day == 1
        assert profile.total_points == 0
        assert profile.name == identity.email.split("@")[0]

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, services, make_identity) -> None:
        identity = make_identity()
        await services.profiles.create(identity, "Ana")
        await services.profiles.update(identity.uid, {"total_points": 40})
        again = await services.profiles.create(identity, "Someone else")
        assert again.name == "Ana"
        assert again.total_points == 40

    @pytest.mark.asyncio
    async def test_ensure_mirrors_verification(self, services, make_identity) -> None:
        identity = make_identity(email_verified=False)
        await services.profiles.create(identity)
        verified = identity.model_copy(update={"email_verified": True})
        assert (await services.profiles.ensure(verified)).email_verified is True

    @pytest.mark.asyncio
    async def test_get_missing_profile(self, services) -> None:
        with pytest.raises(NotFoundError, match="User profile not found"):
            await services.profiles.get("uid-nobody")


# ---------------------------------------------------------------------------
# Monotonic updates
# ---------------------------------------------------------------------------


class TestUpdate:
    @pytest.mark.asyncio
    async def test_progress_never_goes_backwards(self, services, learner) -> None:
        uid = await learner(current_day=10, total_points=200)
        profile = await services.profiles.update(uid, {"current_day": 3, "total_points": 5})
        assert profile.current_day == 10
        assert profile.total_points == 200

    @pytest.mark.asyncio
    async def test_current_day_clamped(self, services, learner) -> None:
        uid = await learner()
        assert (await services.profiles.update(uid, {"current_day": 45})).current_day == 30

    @pytest.mark.asyncio
    async def test_lists_only_grow(self, services, learner) -> None:
        uid = await learner(achievements=["first_step"], completed_days=[1, 2])
        profile = await services.profiles.update(
            uid, {"achievements": ["week_one"], "completed_days": [4]}
        )
        assert profile.achievements == ["first_step", "week_one"]
        assert profile.completed_days == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_character_is_final(self, services, learner) -> None:
        uid = await learner()
        with pytest.raises(ConflictError) as excinfo:
            await services.profiles.update(uid, {"character_id": "tui"})
        assert excinfo.value.code == "CHARACTER_LOCKED"

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, services, learner) -> None:
        uid = await learner()
        with pytest.raises(ValidationFailedError, match="favourite_colour"):
            await services.profiles.update(uid, {"favourite_colour": "red"})

    @pytest.mark.asyncio
    async def test_immutable_fields_ignored(self, services, learner) -> None:
        uid = await learner()
        profile = await services.profiles.update(uid, {"id": "someone-else", "name": "Hemi"})
        assert profile.id == uid
        assert profile.name == "Hemi"

    @pytest.mark.asyncio
    async def test_only_changed_keys_written(self, services, learner) -> None:
        uid = await learner()
        await services.store.set(USERS, uid, {"legacy_flag": True}, merge=True)
        await services.profiles.update(uid, {"name": "Hemi"})
        assert (await services.store.get(USERS, uid))["legacy_flag"] is True


class TestSelections:
    @pytest.mark.asyncio
    async def test_select_character(self, services, learner) -> None:
        uid = await learner(character=None)
        profile = await services.profiles.select_character(uid, "kiwi")
        assert profile.character_id == "kiwi"
        # Same choice again is fine.
        await services.profiles.select_character(uid, "kiwi")

    @pytest.mark.asyncio
    async def test_unknown_character_rejected(self, services, learner) -> None:
        uid = await learner(character=None)
        with pytest.raises(ValidationFailedError, match="moa"):
            await services.profiles.select_character(uid, "moa")

    @pytest.mark.asyncio
    async def test_select_difficulty_validates(self, services, learner) -> None:
        uid = await learner()
        assert (await services.profiles.select_difficulty(uid, "advanced")).difficulty_level == "advanced"
        with pytest.raises(ValidationFailedError):
            await services.profiles.select_difficulty(uid, "expert")


# ---------------------------------------------------------------------------
# Journey and activity gate
# ---------------------------------------------------------------------------


class TestJourney:
    @pytest.mark.asyncio
    async def test_beginner_journey(self, services, learner) -> None:
        uid = await learner(current_day=3, completed_days=[1, 2])
        days = await services.profiles.journey(uid)
        assert len(days) == 30
        assert [d.unlocked for d in days[:4]] == [True, True, True, False]
        assert days[0].completed and not days[2].completed
        assert days[2].is_current
        assert days[0].title == "Day 1 basics"

    @pytest.mark.asyncio
    async def test_advanced_sees_next_day(self, services, learner) -> None:
        uid = await learner(difficulty="advanced", current_day=3)
        days = await services.profiles.journey(uid)
        assert days[3].unlocked is True
        assert days[4].unlocked is False
        assert days[0].points == 20

    @pytest.mark.asyncio
    async def test_missing_activities_fall_back(self, services, learner) -> None:
        uid = await learner(activities=[])
        day = (await services.profiles.journey(uid))[0]
        assert day.title == "Day 1"
        assert day.activity_type == "quiz"
        assert day.points == 10

    @pytest.mark.asyncio
    async def test_open_locked_day(self, services, learner) -> None:
        uid = await learner()
        with pytest.raises(DayLockedError):
            await services.profiles.open_activity(uid, 2)

    @pytest.mark.asyncio
    async def test_open_activity_withholds_answer(self, services, learner, make_activity) -> None:
        quiz_day = make_activity(
            day=1,
            type="quiz",
            quiz={"question": "How do you say hello?", "options": ["Kia ora", "Ka kite"], "correct": 0},
        )
        uid = await learner(difficulty="intermediate", activities=[quiz_day])
        view = await services.profiles.open_activity(uid, 1)
        assert view["text"] == "Intermediate task for day 1"
        assert view["points"] == 15
        assert view["quiz"] == {"question": "How do you say hello?", "options": ["Kia ora", "Ka kite"]}
        assert view["completed"] is False


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:
    @pytest.mark.asyncio
    async def test_first_completion(self, services, learner) -> None:
        uid = await learner()
        result = await services.profiles.complete_activity(uid, 1, time_taken=120)

        assert result.points_awarded == 10
        assert result.already_completed is False
        assert result.current_day == 2
        assert result.total_points == 10
        assert result.new_achievements == ["first_step"]

        profile = await services.profiles.get(uid)
        assert profile.completed_days == [1]
        assert profile.achievements == ["first_step"]
        assert profile.last_activity_date is not None

        progress = await services.store.get(USER_PROGRESS, progress_doc_id(uid, 1))
        assert progress["score"] == 10
        assert progress["time_taken"] == 120
        assert progress["activity_id"] == "day-1"

        unlocks = await services.profiles.achievement_unlocks(uid)
        assert [u.achievement_id for u in unlocks] == ["first_step"]

    @pytest.mark.asyncio
    async def test_double_completion_awards_nothing(self, services, learner) -> None:
        uid = await learner()
        await services.profiles.complete_activity(uid, 1)
        again = await services.profiles.complete_activity(uid, 1)
        assert again.already_completed is True
        assert again.points_awarded == 0
        assert again.total_points == 10
        assert len(await services.profiles.list_progress(uid)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_completions_credit_once(self, services, learner) -> None:
        uid = await learner()
        results = await asyncio.gather(
            *(services.profiles.complete_activity(uid, 1) for _ in range(3))
        )
        assert sorted(r.already_completed for r in results) == [False, True, True]
        assert (await services.profiles.get(uid)).total_points == 10

    @pytest.mark.asyncio
    async def test_separate_processes_credit_once(self, services, learner, monkeypatch) -> None:
        uid = await learner()
        # Two stores over one database stand in for two server processes.
        other = ProfileStore(services.store, services.content, ChangeFeed())
        read = services.store.get

        async def slow_get(collection, doc_id):
            await asyncio.sleep(0)
            return await read(collection, doc_id)

        monkeypatch.setattr(services.store, "get", slow_get)
        results = await asyncio.gather(
            services.profiles.complete_activity(uid, 1),
            other.complete_activity(uid, 1),
        )
        assert sorted(r.already_completed for r in results) == [False, True]
        assert sum(r.points_awarded for r in results) == 10
        profile = await services.profiles.get(uid)
        assert profile.total_points == 10
        assert profile.completed_days == [1]

    @pytest.mark.asyncio
    async def test_lock_entries_released(self, services, learner) -> None:
        uid = await learner()
        await asyncio.gather(
            services.profiles.complete_activity(uid, 1),
            services.profiles.complete_activity(uid, 1),
        )
        assert services.profiles._locks == {}

    @pytest.mark.asyncio
    async def test_locked_day_refused(self, services, learner) -> None:
        uid = await learner()
        with pytest.raises(DayLockedError):
            await services.profiles.complete_activity(uid, 2)
        assert (await services.profiles.get(uid)).total_points == 0

    @pytest.mark.asyncio
    async def test_character_required(self, services, learner) -> None:
        uid = await learner(character=None)
        with pytest.raises(ConflictError) as excinfo:
            await services.profiles.complete_activity(uid, 1)
        assert excinfo.value.code == "CHARACTER_REQUIRED"

    @pytest.mark.asyncio
    async def test_earlier_day_keeps_frontier(self, services, learner) -> None:
        uid = await learner(current_day=5, total_points=40)
        result = await services.profiles.complete_activity(uid, 2)
        assert result.current_day == 5
        assert result.total_points == 50

    @pytest.mark.asyncio
    async def test_advanced_can_complete_lookahead_day(self, services, learner) -> None:
        uid = await learner(difficulty="advanced", current_day=3)
        result = await services.profiles.complete_activity(uid, 4)
        assert result.points_awarded == 20
        assert result.current_day == 3

    @pytest.mark.parametrize(("answer", "points"), [(0, 10), (1, 5), (None, 5)])
    @pytest.mark.asyncio
    async def test_quiz_scoring(self, services, learner, make_activity, answer, points) -> None:
        quiz_day = make_activity(
            day=1,
            type="quiz",
            quiz={"question": "Hello?", "options": ["Kia ora", "Ka kite"], "correct": 0},
        )
        uid = await learner(activities=[quiz_day])
        result = await services.profiles.complete_activity(uid, 1, answer=answer)
        assert result.points_awarded == points

    @pytest.mark.asyncio
    async def test_points_achievements_recorded(self, services, learner) -> None:
        uid = await learner(current_day=3, total_points=95, achievements=["first_step"])
        result = await services.profiles.complete_activity(uid, 3)
        assert result.new_achievements == ["first_greeting", "points_100"]
        unlock_ids = {doc["id"] for doc in await services.store.query(ACHIEVEMENT_UNLOCKS)}
        assert unlock_ids == {f"{uid}_first_greeting", f"{uid}_points_100"}


class TestRepair:
    @pytest.mark.asyncio
    async def test_missing_progress_record_rewritten(self, services, learner) -> None:
        uid = await learner(current_day=2, completed_days=[1], total_points=10)
        result = await services.profiles.complete_activity(uid, 1)
        assert result.already_completed is True
        record = await services.store.get(USER_PROGRESS, progress_doc_id(uid, 1))
        assert record["score"] == 0
        assert (await services.profiles.get(uid)).total_points == 10

    @pytest.mark.asyncio
    async def test_uncredited_record_credited(self, services, learner) -> None:
        uid = await learner()
        await services.store.set(
            USER_PROGRESS,
            progress_doc_id(uid, 1),
            {"id": progress_doc_id(uid, 1), "user_id": uid, "activity_id": "day-1",
             "day": 1, "score": 10},
        )
        result = await services.profiles.complete_activity(uid, 1)
        assert result.already_completed is True
        assert result.points_awarded == 0
        assert result.current_day == 2
        assert result.total_points == 10
        profile = await services.profiles.get(uid)
        assert profile.completed_days == [1]
        assert profile.current_day == 2
        assert profile.achievements == ["first_step"]
        unlocked = await services.profiles.open_activity(uid, 2)
        assert unlocked["day"] == 2


# ---------------------------------------------------------------------------
# Live profile updates
# ---------------------------------------------------------------------------


class TestListen:
    @pytest.mark.asyncio
    async def test_initial_none_then_updates(self, services, make_identity) -> None:
        identity = make_identity()
        seen: list = []
        unsubscribe = await services.profiles.listen(identity.uid, seen.append)
        assert seen == [None]

        await services.profiles.create(identity, "Ana")
        assert seen[-1]["name"] == "Ana"

        unsubscribe()
        await services.profiles.update(identity.uid, {"name": "Hemi"})
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_completion_pushes_snapshot(self, services, learner) -> None:
        uid = await learner()
        seen: list = []
        await services.profiles.listen(uid, seen.append)
        await services.profiles.complete_activity(uid, 1)
        assert seen[-1]["current_day"] == 2
        assert seen[-1]["total_points"] == 10

    @pytest.mark.asyncio
    async def test_direct_database_writes_reach_listener(self, services, learner) -> None:
        uid = await learner()
        seen: list = []
        unsubscribe = await services.profiles.listen(uid, seen.append)
        # Written straight to the database, as another process or tool would.
        await services.store.set(USERS, uid, {"total_points": 70}, merge=True)
        await services.store.delete(USERS, uid)
        assert seen[-2]["total_points"] == 70
        assert seen[-1] is None
        unsubscribe()
        assert services.feed.subscriber_count(f"users/{uid}") == 0
