"""Progress rules — day unlocking, points and the completion transition.

Pure functions over a profile snapshot and curriculum data. No I/O, no
clock, no randomness: the same inputs always give the same answer, which
is what lets the journey map and the activity gate share one predicate.

Canonical unlock rule: a day is open when it is on or before the learner's
frontier (current_day). Advanced learners additionally see one day ahead.
Days outside 1..30 are never open.

Tier 1 module: imports only from mahuru.schemas (Tier 1) and the stdlib.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from mahuru.schemas import TOTAL_DAYS, ActivityContent, UserProfile

DIFFICULTY_MULTIPLIERS: dict[str, float] = {
    "beginner": 1.0,
    "intermediate": 1.5,
    "advanced": 2.0,
}

# Journey map fallback when no curated activity exists for a day.
_ACTIVITY_TYPE_CYCLE: tuple[str, ...] = ("quiz", "game", "story", "learning")


def clamp_day(day: int) -> int:
    """Clamps a day index into [1, TOTAL_DAYS]."""
    return min(max(day, 1), TOTAL_DAYS)


def is_day_unlocked(day: int, current_day: int, difficulty: str | None) -> bool:
    """Whether a learner at current_day may open day.

    Total over every input: unknown difficulties behave like beginner,
    out-of-range days are simply locked.
    """
    if not 1 <= day <= TOTAL_DAYS:
        return False
    if day <= current_day:
        return True
    return difficulty == "advanced" and day == current_day + 1


def base_points_for_day(day: int) -> int:
    """Points tier by position in the journey: later days are worth more."""
    if day <= 10:
        return 10
    if day <= 20:
        return 15
    return 20


def points_for_day(day: int, difficulty: str | None) -> int:
    """Points for an uncurated day, scaled by difficulty and floored."""
    multiplier = DIFFICULTY_MULTIPLIERS.get(difficulty or "beginner", 1.0)
    return math.floor(base_points_for_day(day) * multiplier)


def activity_points(
    activity: ActivityContent | None, day: int, difficulty: str | None
) -> int:
    """Points on offer for a day: curated value first, formula otherwise."""
    if activity is not None:
        level = difficulty if difficulty in DIFFICULTY_MULTIPLIERS else "beginner"
        curated = getattr(activity.points, level)
        if curated is not None:
            return curated
    return points_for_day(day, difficulty)


def activity_type_for(activity: ActivityContent | None, day: int) -> str:
    if activity is not None:
        return activity.type
    return _ACTIVITY_TYPE_CYCLE[(day - 1) % len(_ACTIVITY_TYPE_CYCLE)]


def score_activity(activity_type: str, points: int, correct_first_answer: bool) -> int:
    """Score earned for finishing an activity.

    Quizzes pay in full for a correct first answer and half (floored)
    otherwise. Every other activity type pays in full on completion.
    """
    if activity_type != "quiz" or correct_first_answer:
        return points
    return points // 2


@dataclass(frozen=True)
class CompletionOutcome:
    """Profile fields after completing a day."""

    current_day: int
    total_points: int
    completed_days: list[int]
    advanced: bool


def apply_completion(profile: UserProfile, day: int, earned: int) -> CompletionOutcome:
    """Computes the profile transition for completing day.

    Completing the frontier day moves the frontier forward by one (clamped
    at TOTAL_DAYS). Completing any other day only adds points.
    """
    advanced = day == profile.current_day
    current_day = clamp_day(day + 1) if advanced else profile.current_day
    completed = sorted(set(profile.completed_days) | {day})
    return CompletionOutcome(
        current_day=current_day,
        total_points=profile.total_points + max(earned, 0),
        completed_days=completed,
        advanced=advanced,
    )
