"""Domain errors — the normalised failures every service layer raises.

Store and gateway functions raise these instead of provider-specific
exceptions. main.py turns any MahuruError into the ApiResponse envelope
with the error's status_code and code, so route handlers rarely need to
catch them.

Tier 1 leaf module: stdlib only.

Usage:
    from mahuru.errors import AuthError, AuthErrorCode, NotFoundError

    raise AuthError(AuthErrorCode.WEAK_PASSWORD)
    raise NotFoundError("User profile not found.")
"""

from enum import Enum


class MahuruError(Exception):
    """Base class for all domain errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class AuthErrorCode(str, Enum):
    """Normalised auth failure kinds, independent of the auth provider."""

    ACCOUNT_EXISTS = "ACCOUNT_EXISTS"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    INVALID_EMAIL = "INVALID_EMAIL"
    UNKNOWN_ACCOUNT = "UNKNOWN_ACCOUNT"
    NO_SESSION = "NO_SESSION"
    WRONG_CURRENT_PASSWORD = "WRONG_CURRENT_PASSWORD"
    AUTH_PROVIDER_ERROR = "AUTH_PROVIDER_ERROR"


_AUTH_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.ACCOUNT_EXISTS: "An account with this email address already exists",
    AuthErrorCode.WEAK_PASSWORD: "Password is too weak",
    AuthErrorCode.INVALID_CREDENTIALS: "Incorrect email or password",
    AuthErrorCode.ACCOUNT_DISABLED: "This account has been disabled",
    AuthErrorCode.INVALID_EMAIL: "Invalid email address",
    AuthErrorCode.UNKNOWN_ACCOUNT: "No account found with this email address",
    AuthErrorCode.NO_SESSION: "No user signed in",
    AuthErrorCode.WRONG_CURRENT_PASSWORD: "Current password is incorrect",
    AuthErrorCode.AUTH_PROVIDER_ERROR: "Authentication service is unavailable",
}

_AUTH_STATUS: dict[AuthErrorCode, int] = {
    AuthErrorCode.ACCOUNT_EXISTS: 409,
    AuthErrorCode.WEAK_PASSWORD: 422,
    AuthErrorCode.INVALID_EMAIL: 422,
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.NO_SESSION: 401,
    AuthErrorCode.WRONG_CURRENT_PASSWORD: 401,
    AuthErrorCode.ACCOUNT_DISABLED: 403,
    AuthErrorCode.UNKNOWN_ACCOUNT: 404,
    AuthErrorCode.AUTH_PROVIDER_ERROR: 502,
}


class AuthError(MahuruError):
    """An auth provider failure mapped to a user-facing message."""

    def __init__(self, kind: AuthErrorCode, message: str | None = None) -> None:
        super().__init__(message or _AUTH_MESSAGES[kind], code=kind.value)
        self.kind = kind
        self.status_code = _AUTH_STATUS[kind]


class NotFoundError(MahuruError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(MahuruError):
    code = "CONFLICT"
    status_code = 409


class AlreadyExistsError(ConflictError):
    """A create-only write found the document already present."""

    code = "ALREADY_EXISTS"


class DayLockedError(MahuruError):
    code = "DAY_LOCKED"
    status_code = 403


class ValidationFailedError(MahuruError):
    code = "VALIDATION_ERROR"
    status_code = 422


class PermissionDeniedError(MahuruError):
    code = "FORBIDDEN"
    status_code = 403


class UnknownCommandError(MahuruError):
    code = "UNKNOWN_COMMAND"
    status_code = 404


class StoreError(MahuruError):
    """The document store or file storage failed to read or write."""

    code = "STORE_ERROR"
    status_code = 503
