"""Seed loader — reads the curriculum and site defaults from content/.

Three JSON files make up the seed set:
- ``activities.json``: the 30 days of Mahuru activities, one text per
  difficulty.
- ``characters.json``: the three kaitiaki guardians.
- ``site.json``: default CMS copy, global settings, layout settings and
  the per-activity defaults (points per level, tips).

Every record is validated through the Pydantic models before it is handed
to a store, so a malformed seed file fails loudly at load time instead of
producing half-written collections.

Tier 2 module: imports from ``mahuru.schemas`` (Tier 1) + stdlib.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from mahuru.schemas import (
    ActivityContent,
    Character,
    CMSContent,
    GlobalSettings,
    LayoutSettings,
    LevelText,
)

logger = logging.getLogger("mahuru.curriculum.loader")


class SeedLoadError(Exception):
    """A seed file is missing, unparsable, or fails validation.

    Attributes:
        path: The file that failed (as string).
        message: Human-readable description.
    """

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = str(path)
        self.message = message


@dataclass
class SeedData:
    """Validated seed content, ready to be written to the stores."""

    activities: list[ActivityContent] = field(default_factory=list)
    characters: list[Character] = field(default_factory=list)
    cms_content: list[CMSContent] = field(default_factory=list)
    global_settings: GlobalSettings | None = None
    layout_settings: list[LayoutSettings] = field(default_factory=list)


# Keyword → title, checked in order. First match wins.
_TITLE_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("pronunciation",), "Pronunciation Practice"),
    (("greet",), "Te Reo Greetings"),
    (("goodbye",), "Farewell Practice"),
    (("introduce",), "Self Introduction"),
    (("home", "objects"), "Home Vocabulary"),
    (("doing", "responses"), "Wellbeing Check"),
    (("work", "label"), "Workplace Te Reo"),
    (("email", "message"), "Digital Te Reo"),
    (("friend", "family"), "Introductions"),
    (("shopping", "supermarket"), "Shopping Te Reo"),
    (("weather",), "Weather Description"),
    (("pepeha",), "Pepeha Creation"),
    (("karakia",), "Karakia Practice"),
    (("hello",), "Greeting Varieties"),
    (("waiata",), "Waiata Learning"),
    (("walk", "surroundings"), "Environment Description"),
    (("count",), "Counting Practice"),
    (("days", "week"), "Days of Week"),
    (("marae",), "Marae Knowledge"),
    (("tour",), "Te Reo Tours"),
    (("history",), "Te Reo History"),
    (("coffee", "tea"), "Kai Orders"),
    (("Facebook", "continue"), "Future Learning"),
)


def generate_activity_title(text: str) -> str:
    """Derives a short title from an activity's text.

    Falls back to the first three words (with an ellipsis when truncated).
    """
    for keywords, title in _TITLE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return title
    words = text.split()
    return " ".join(words[:3]) + ("..." if len(words) > 3 else "")


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SeedLoadError(path, "file not found") from exc
    except json.JSONDecodeError as exc:
        raise SeedLoadError(path, f"invalid JSON: {exc}") from exc


class SeedLoader:
    """Loads and validates the seed set from a content directory.

    Args:
        content_dir: Directory holding activities.json, characters.json
            and site.json.
    """

    def __init__(self, content_dir: Path) -> None:
        self._content_dir = content_dir

    def load(self) -> SeedData:
        """Reads all three seed files.

        Raises:
            SeedLoadError: On the first file that cannot be loaded.
        """
        site = _read_json(self._content_dir / "site.json")
        data = SeedData(
            activities=self.load_activities(site.get("activity_defaults", {})),
            characters=self.load_characters(),
        )

        site_path = self._content_dir / "site.json"
        try:
            data.cms_content = [
                CMSContent.model_validate(item) for item in site.get("cms_content", [])
            ]
            if "global_settings" in site:
                data.global_settings = GlobalSettings.model_validate(site["global_settings"])
            data.layout_settings = [
                LayoutSettings.model_validate(item)
                for item in site.get("layout_settings", [])
            ]
        except ValidationError as exc:
            raise SeedLoadError(site_path, str(exc)) from exc

        logger.info(
            "Seed loaded: %d activities, %d characters, %d content keys",
            len(data.activities),
            len(data.characters),
            len(data.cms_content),
        )
        return data

    def load_activities(self, defaults: dict | None = None) -> list[ActivityContent]:
        """Builds ActivityContent records from activities.json.

        Titles are generated from each level's text. Points and tips come
        from the activity defaults in site.json.
        """
        path = self._content_dir / "activities.json"
        raw = _read_json(path)
        defaults = defaults or {}

        activities = []
        try:
            for item in raw.get("activities", []):
                activity = ActivityContent.model_validate(
                    {
                        **item,
                        "points": defaults.get("points", {}),
                        "tips": defaults.get("tips", []),
                        "updatedBy": "system",
                    }
                )
                activity.title = LevelText(
                    beginner=generate_activity_title(activity.beginner),
                    intermediate=generate_activity_title(activity.intermediate),
                    advanced=generate_activity_title(activity.advanced),
                )
                activities.append(activity)
        except ValidationError as exc:
            raise SeedLoadError(path, str(exc)) from exc

        days = [activity.day for activity in activities]
        if len(days) != len(set(days)):
            raise SeedLoadError(path, "duplicate day entries")
        return sorted(activities, key=lambda a: a.day)

    def load_characters(self) -> list[Character]:
        path = self._content_dir / "characters.json"
        raw = _read_json(path)
        try:
            return [Character.model_validate(item) for item in raw.get("characters", [])]
        except ValidationError as exc:
            raise SeedLoadError(path, str(exc)) from exc
