"""Auth gateway — account flows on top of the auth provider.

Combines the AuthProvider hook with the ProfileStore so that signing up
creates a profile, signing in lazily creates one for older accounts, and
password changes re-authenticate first. Every failure surfaces as an
AuthError carrying a normalised code and a user-facing message.

resolve_session() is the only call in the platform with an explicit
deadline: a provider that hangs is treated as "no session" after
session_resolve_timeout seconds instead of blocking the request.

Tier 3 service: imports hooks, services.profiles, schemas, errors.
"""

import asyncio
import logging
from dataclasses import dataclass

from mahuru.errors import AuthError, AuthErrorCode, MahuruError
from mahuru.hooks.interfaces import AuthProvider
from mahuru.schemas import AuthSession, Identity, UserProfile
from mahuru.services.profiles import ProfileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignUpResult:
    session: AuthSession
    profile: UserProfile | None
    needs_verification: bool = True


class AuthGateway:
    """Sign-up, sign-in and password flows.

    Args:
        provider: The auth provider hook.
        profiles: Profile store for creating learner documents.
        password_min_length: Minimum password length checked before the
            provider is called.
        resolve_timeout: Seconds resolve_session waits for the provider.
    """

    def __init__(
        self,
        provider: AuthProvider,
        profiles: ProfileStore,
        *,
        password_min_length: int = 6,
        resolve_timeout: float = 10.0,
    ) -> None:
        self._provider = provider
        self._profiles = profiles
        self._password_min_length = password_min_length
        self._resolve_timeout = resolve_timeout

    def _check_password(self, password: str) -> None:
        if len(password) < self._password_min_length:
            raise AuthError(
                AuthErrorCode.WEAK_PASSWORD,
                f"Password must be at least {self._password_min_length} characters",
            )

    async def sign_up(self, email: str, password: str, name: str) -> SignUpResult:
        """Creates the account, sends verification and creates the profile.

        The profile write is best-effort: if it fails the account still
        exists and the profile is created lazily on first sign-in.

        Raises:
            AuthError: WEAK_PASSWORD, ACCOUNT_EXISTS, INVALID_EMAIL.
        """
        self._check_password(password)
        session = await self._provider.create_account(email, password, name)
        uid = session.identity.uid

        try:
            await self._provider.send_verification_email(session.id_token)
        except AuthError as exc:
            logger.warning("Verification email for %s not sent: %s", uid, exc.kind.value)

        profile: UserProfile | None = None
        try:
            profile = await self._profiles.create(session.identity, name)
        except MahuruError:
            logger.exception("Profile creation failed for %s; deferring to sign-in", uid)

        return SignUpResult(session=session, profile=profile)

    async def sign_in(self, email: str, password: str) -> tuple[AuthSession, UserProfile]:
        """Authenticates and returns the session with its (ensured) profile.

        Raises:
            AuthError: INVALID_CREDENTIALS, ACCOUNT_DISABLED, INVALID_EMAIL.
        """
        session = await self._provider.sign_in(email, password)
        profile = await self._profiles.ensure(session.identity)
        return session, profile

    async def sign_out(self, token: str | None) -> None:
        if token:
            await self._provider.sign_out(token)

    async def reset_password(self, email: str) -> None:
        await self._provider.send_password_reset(email)

    async def resend_verification(self, token: str | None) -> None:
        """Sends a fresh verification email to the signed-in account.

        Raises:
            AuthError: NO_SESSION when the token is missing or invalid.
        """
        if await self.resolve_session(token) is None:
            raise AuthError(AuthErrorCode.NO_SESSION)
        await self._provider.send_verification_email(token)

    async def update_password(
        self, token: str | None, current_password: str, new_password: str
    ) -> None:
        """Changes the password after re-authenticating with the current one.

        Raises:
            AuthError: NO_SESSION, WRONG_CURRENT_PASSWORD or WEAK_PASSWORD.
        """
        identity = await self.resolve_session(token)
        if identity is None:
            raise AuthError(AuthErrorCode.NO_SESSION)
        self._check_password(new_password)
        try:
            fresh = await self._provider.sign_in(identity.email, current_password)
        except AuthError as exc:
            if exc.kind is AuthErrorCode.INVALID_CREDENTIALS:
                raise AuthError(AuthErrorCode.WRONG_CURRENT_PASSWORD) from exc
            raise
        await self._provider.change_password(fresh.id_token, new_password)
        logger.info("Password changed for %s", identity.uid)

    async def resolve_session(self, token: str | None) -> Identity | None:
        """Resolves a bearer token, giving up after the configured timeout."""
        if not token:
            return None
        try:
            async with asyncio.timeout(self._resolve_timeout):
                return await self._provider.validate_token(token)
        except TimeoutError:
            logger.warning(
                "Session resolution timed out after %.1fs", self._resolve_timeout
            )
            return None

    async def current_profile(self, identity: Identity) -> UserProfile:
        return await self._profiles.ensure(identity)
