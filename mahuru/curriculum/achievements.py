"""Achievement catalogue and evaluation.

An achievement is unlocked when its measure reaches its requirement. There
are two measures: days completed (current_day - 1) and total points. The
catalogue depends on difficulty only for the difficulty_master badge's
title, icon and reward, so evaluation is a pure function of
(current_day, total_points, difficulty).

Note the frontier is clamped at day 30, so the days measure tops out at
29 and the two 30-day badges stay locked. See DESIGN.md.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Measure = Literal["days", "points"]
AchievementKind = Literal["progress", "cultural", "completion", "special"]


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    title: str
    description: str
    icon: str
    type: AchievementKind
    measure: Measure
    requirement: int
    points_reward: int
    # Cultural badges show progress capped at the requirement.
    capped: bool = False


@dataclass(frozen=True)
class AchievementStatus:
    definition: AchievementDefinition
    progress: int
    unlocked: bool

    def to_dict(self) -> dict:
        d = self.definition
        return {
            "id": d.id,
            "title": d.title,
            "description": d.description,
            "icon": d.icon,
            "type": d.type,
            "requirement": d.requirement,
            "progress": self.progress,
            "unlocked": self.unlocked,
            "points_reward": d.points_reward,
        }


_DIFFICULTY_BADGES: dict[str, tuple[str, str, int]] = {
    "beginner": ("Kaiako - Teacher Spirit", "🌱", 200),
    "intermediate": ("Ākonga - Dedicated Learner", "🌿", 400),
    "advanced": ("Pouako - Master Guide", "🌳", 600),
}

_BASE_CATALOGUE: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "first_step", "Kia Timata - First Steps",
        "Complete your first cultural activity", "👣",
        "progress", "days", 1, 10,
    ),
    AchievementDefinition(
        "week_one", "Te Wiki Tuatahi - First Week",
        "Complete 7 days of cultural learning", "📅",
        "progress", "days", 7, 50,
    ),
    AchievementDefinition(
        "halfway", "Waenga - Halfway Journey",
        "Reach the midpoint of your cultural adventure", "🌉",
        "progress", "days", 15, 100,
    ),
    AchievementDefinition(
        "final_stretch", "Te Mutunga - Final Stretch",
        "Complete 25 days of cultural exploration", "🏔️",
        "progress", "days", 25, 150,
    ),
    AchievementDefinition(
        "journey_complete", "Rā Katoa - Complete Journey",
        "Complete all 30 days of cultural adventure", "🎯",
        "completion", "days", 30, 300,
    ),
    AchievementDefinition(
        "first_greeting", "Kia Ora Warrior",
        "Master the art of Māori greetings", "🤝",
        "cultural", "days", 3, 25, capped=True,
    ),
    AchievementDefinition(
        "language_learner", "Tumu Te Reo - Language Foundation",
        "Learn basic Māori vocabulary and phrases", "🗣️",
        "cultural", "days", 10, 75, capped=True,
    ),
    AchievementDefinition(
        "story_keeper", "Kaitiaki Kōrero - Story Keeper",
        "Learn traditional Māori stories and legends", "📖",
        "cultural", "days", 20, 125, capped=True,
    ),
    AchievementDefinition(
        "points_100", "Pounga Centum - First Century",
        "Earn your first 100 cultural points", "💯",
        "special", "points", 100, 20,
    ),
    AchievementDefinition(
        "points_500", "Māori Scholar",
        "Accumulate 500 cultural knowledge points", "🎓",
        "special", "points", 500, 100,
    ),
)


def catalogue(difficulty: str | None) -> tuple[AchievementDefinition, ...]:
    """The full achievement catalogue for a learner's difficulty."""
    level = difficulty or "beginner"
    title, icon, reward = _DIFFICULTY_BADGES.get(level, ("Cultural Explorer", "⭐", 200))
    master = AchievementDefinition(
        "difficulty_master", title,
        f"Complete journey at {level} level", icon,
        "special", "days", 30, reward,
    )
    return _BASE_CATALOGUE + (master,)


def evaluate_achievements(
    current_day: int, total_points: int, difficulty: str | None
) -> list[AchievementStatus]:
    """Evaluates every achievement against a profile's measures."""
    days_completed = max(0, current_day - 1)
    statuses = []
    for definition in catalogue(difficulty):
        measured = days_completed if definition.measure == "days" else total_points
        progress = min(measured, definition.requirement) if definition.capped else measured
        statuses.append(
            AchievementStatus(
                definition=definition,
                progress=progress,
                unlocked=measured >= definition.requirement,
            )
        )
    return statuses


def unlocked_ids(current_day: int, total_points: int, difficulty: str | None) -> frozenset[str]:
    """Ids of the achievements a profile has unlocked."""
    return frozenset(
        status.definition.id
        for status in evaluate_achievements(current_day, total_points, difficulty)
        if status.unlocked
    )
