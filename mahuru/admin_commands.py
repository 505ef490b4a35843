"""Administrative commands — named maintenance operations.

A fixed registry of operator actions: seeding the curriculum and site
copy, (re)seeding the kaitiaki catalogue, bootstrapping the first super
admin and repairing a learner's missing profile. They are reachable in
two ways only: the super-admin route POST /api/v1/admin/commands/{name}
and this module's command line.

Run with:
    python -m mahuru.admin_commands initialize-system
    python -m mahuru.admin_commands create-first-admin --uid abc --email kaiako@example.com

Tier 3 orchestration module: imports services, curriculum.loader, errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from mahuru.curriculum.loader import SeedLoader
from mahuru.errors import MahuruError, UnknownCommandError, ValidationFailedError
from mahuru.schemas import Identity, to_document
from mahuru.services.admin import AdminDirectory
from mahuru.services.content import ContentStore
from mahuru.services.profiles import ProfileStore

logger = logging.getLogger(__name__)

CommandHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


def _require(params: dict[str, Any], *names: str) -> list[str]:
    missing = [name for name in names if not params.get(name)]
    if missing:
        raise ValidationFailedError(f"Missing parameter(s): {', '.join(missing)}")
    return [str(params[name]) for name in names]


class AdminCommands:
    """Registry of administrative commands.

    Args:
        content: Content store to seed.
        profiles: Profile store for ensure-profile.
        admins: Admin directory for create-first-admin.
        content_dir: Directory holding the seed JSON files.
    """

    # Command name -> handler method. The CLI offers exactly these names.
    COMMANDS: dict[str, str] = {
        "initialize-system": "_initialize_system",
        "seed-characters": "_seed_characters",
        "reseed-characters": "_reseed_characters",
        "create-first-admin": "_create_first_admin",
        "ensure-profile": "_ensure_profile",
    }

    def __init__(
        self,
        content: ContentStore,
        profiles: ProfileStore,
        admins: AdminDirectory,
        content_dir: Path,
    ) -> None:
        self._content = content
        self._profiles = profiles
        self._admins = admins
        self._loader = SeedLoader(content_dir)
        self._registry: dict[str, CommandHandler] = {
            name: getattr(self, method) for name, method in self.COMMANDS.items()
        }

    def names(self) -> list[str]:
        return sorted(self._registry)

    async def run(self, name: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Runs a command by name.

        Raises:
            UnknownCommandError: No command with that name.
            ValidationFailedError: A required parameter is missing.
        """
        handler = self._registry.get(name)
        if handler is None:
            raise UnknownCommandError(f"Unknown command {name!r}.")
        logger.info("Running admin command %s", name)
        return await handler(params or {})

    # -- commands -----------------------------------------------------------

    async def _initialize_system(self, params: dict[str, Any]) -> dict[str, Any]:
        """Seeds activities, site copy, settings and layouts once."""
        if await self._content.has_activities():
            return {"initialized": False, "reason": "Activities already exist."}
        seed = self._loader.load()
        activities = await self._content.seed_activities(seed.activities)
        await self._content.seed_site(seed.cms_content, seed.global_settings, seed.layout_settings)
        characters = 0
        if not await self._content.list_characters():
            characters = await self._content.seed_characters(seed.characters)
        return {
            "initialized": True,
            "activities": activities,
            "content_keys": len(seed.cms_content),
            "layouts": len(seed.layout_settings),
            "characters": characters,
        }

    async def _seed_characters(self, params: dict[str, Any]) -> dict[str, Any]:
        if await self._content.list_characters():
            return {"seeded": 0, "reason": "Characters already exist."}
        return {"seeded": await self._content.seed_characters(self._loader.load_characters())}

    async def _reseed_characters(self, params: dict[str, Any]) -> dict[str, Any]:
        count = await self._content.seed_characters(self._loader.load_characters(), replace=True)
        return {"seeded": count}

    async def _create_first_admin(self, params: dict[str, Any]) -> dict[str, Any]:
        uid, email = _require(params, "uid", "email")
        admin = await self._admins.grant_super_admin(uid, email, params.get("name"))
        return to_document(admin)

    async def _ensure_profile(self, params: dict[str, Any]) -> dict[str, Any]:
        uid, email = _require(params, "uid", "email")
        identity = Identity(uid=uid, email=email, display_name=params.get("name") or "")
        return to_document(await self._profiles.ensure(identity))


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m mahuru.admin_commands",
        description="Run a Mahuru administrative command against the configured backends.",
    )
    parser.add_argument("command", choices=sorted(AdminCommands.COMMANDS))
    parser.add_argument("--uid", help="Auth uid (create-first-admin, ensure-profile)")
    parser.add_argument("--email", help="Email address (create-first-admin, ensure-profile)")
    parser.add_argument("--name", help="Display name (optional)")
    return parser


async def _run_cli(command: str, params: dict[str, Any]) -> dict[str, Any]:
    from mahuru.api import deps
    from mahuru.config import get_settings

    settings = get_settings()
    deps.configure_services(settings, **deps.create_backends(settings))
    try:
        return await deps.get_admin_commands().run(command, params)
    finally:
        await deps.close_services()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    params = {key: value for key, value in vars(args).items() if key != "command" and value}
    try:
        result = asyncio.run(_run_cli(args.command, params))
    except MahuruError as exc:
        print(f"error: {exc.code}: {exc.message}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
