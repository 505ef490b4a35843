"""App configuration — environment variable loading with typed defaults.

Loads settings from .env file (via python-dotenv) and os.environ.
Real environment variables take precedence over .env file values.

The Firebase values are only required when a Firebase backend is selected
(AUTH_BACKEND=firebase or DATABASE_BACKEND=firestore). api/deps.create_backends() decides
what to do when they are missing: warn and fall back to the in-memory stubs in
development, refuse to start in production.

Usage:
    from mahuru.config import get_settings
    settings = get_settings()
    print(settings.admin_emails)  # frozenset({"kaiako@example.com"})
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Only load .env from the project root — don't traverse parent directories.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DOTENV_PATH = PROJECT_ROOT / ".env"

FIREBASE_ENV_VARS: tuple[str, ...] = (
    "FIREBASE_API_KEY",
    "FIREBASE_AUTH_DOMAIN",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_STORAGE_BUCKET",
    "FIREBASE_MESSAGING_SENDER_ID",
    "FIREBASE_APP_ID",
)


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the Mahuru platform.

    All fields have sensible defaults for local development. The
    in-memory backends need no provider credentials at all.
    """

    # App
    app_env: str
    app_port: int
    log_level: str
    cors_origins: list[str]
    site_url: str

    # Backends
    auth_backend: str
    database_backend: str
    media_path: str

    # Firebase
    firebase_api_key: str
    firebase_auth_domain: str
    firebase_project_id: str
    firebase_storage_bucket: str
    firebase_messaging_sender_id: str
    firebase_app_id: str

    # Access
    admin_emails: frozenset[str]
    password_min_length: int
    session_resolve_timeout: float

    @property
    def is_production(self) -> bool:
        """True when running with APP_ENV=production."""
        return self.app_env == "production"

    def missing_firebase_settings(self) -> list[str]:
        """Names of the Firebase environment variables that are unset."""
        values = {
            "FIREBASE_API_KEY": self.firebase_api_key,
            "FIREBASE_AUTH_DOMAIN": self.firebase_auth_domain,
            "FIREBASE_PROJECT_ID": self.firebase_project_id,
            "FIREBASE_STORAGE_BUCKET": self.firebase_storage_bucket,
            "FIREBASE_MESSAGING_SENDER_ID": self.firebase_messaging_sender_id,
            "FIREBASE_APP_ID": self.firebase_app_id,
        }
        return [name for name in FIREBASE_ENV_VARS if not values[name]]


def _split_csv(value: str) -> list[str]:
    """Splits a comma-separated string into a list of stripped, non-empty values."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_admin_emails(value: str) -> frozenset[str]:
    """Parses the admin allow-list into a set of lower-cased addresses."""
    return frozenset(email.lower() for email in _split_csv(value))


def _choice(env_var: str, value: str, options: tuple[str, ...]) -> str:
    """Validates an enumerated setting.

    Raises:
        ValueError: If the value is not one of the options.
    """
    if value in options:
        return value
    raise ValueError(
        f"Invalid value for {env_var}: {value!r}. "
        f"Valid options: {', '.join(options)}"
    )


def _load_settings() -> Settings:
    """Loads configuration from .env file and environment variables.

    Returns:
        A fully resolved Settings instance.
    """
    load_dotenv(_DOTENV_PATH)

    return Settings(
        # App
        app_env=os.environ.get("APP_ENV", "development"),
        app_port=int(os.environ.get("APP_PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        cors_origins=_split_csv(
            os.environ.get("CORS_ORIGINS", "http://localhost:3000")
        ),
        site_url=os.environ.get("SITE_URL", "http://localhost:3000"),
        # Backends
        auth_backend=_choice(
            "AUTH_BACKEND",
            os.environ.get("AUTH_BACKEND", "memory"),
            ("memory", "firebase"),
        ),
        database_backend=_choice(
            "DATABASE_BACKEND",
            os.environ.get("DATABASE_BACKEND", "memory"),
            ("memory", "firestore"),
        ),
        media_path=os.environ.get("MEDIA_PATH", str(PROJECT_ROOT / "media")),
        # Firebase
        firebase_api_key=os.environ.get("FIREBASE_API_KEY", ""),
        firebase_auth_domain=os.environ.get("FIREBASE_AUTH_DOMAIN", ""),
        firebase_project_id=os.environ.get("FIREBASE_PROJECT_ID", ""),
        firebase_storage_bucket=os.environ.get("FIREBASE_STORAGE_BUCKET", ""),
        firebase_messaging_sender_id=os.environ.get("FIREBASE_MESSAGING_SENDER_ID", ""),
        firebase_app_id=os.environ.get("FIREBASE_APP_ID", ""),
        # Access
        admin_emails=_parse_admin_emails(os.environ.get("ADMIN_EMAILS", "")),
        password_min_length=int(os.environ.get("PASSWORD_MIN_LENGTH", "6")),
        session_resolve_timeout=float(os.environ.get("SESSION_RESOLVE_TIMEOUT", "10")),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Returns the singleton Settings instance. Loads .env on first call."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings
