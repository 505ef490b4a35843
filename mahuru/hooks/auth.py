"""Fake auth provider — development stub for AuthProvider.

Keeps accounts in a dict and hands out opaque random tokens. Behaves like
the hosted provider where it matters to the rest of the platform: duplicate
emails, short passwords, wrong passwords and disabled accounts all fail
with the same AuthErrorCode the real provider maps to. Verification and
reset "emails" are appended to an outbox list instead of being sent.

TEAM: The production provider is IdentityToolkitAuthProvider
(mahuru.hooks.identity_toolkit). Select it with AUTH_BACKEND=firebase.
Passwords here are kept in plain text — never point this stub at real
users.

Tier 2 service module: imports from mahuru.hooks.interfaces (Tier 1),
mahuru.errors (Tier 1) and mahuru.schemas (Tier 1).

Usage:
    from mahuru.hooks.auth import FakeAuthProvider

    auth = FakeAuthProvider()
    session = await auth.create_account("ana@example.com", "secret1", "Ana")
    await auth.validate_token(session.id_token)
"""

import re
import secrets
from dataclasses import dataclass

from mahuru.errors import AuthError, AuthErrorCode
from mahuru.hooks.interfaces import AuthProvider
from mahuru.schemas import AuthSession, Identity

# The hosted provider's own floor; the gateway may enforce a stricter one.
PROVIDER_MIN_PASSWORD_LENGTH = 6

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class _Account:
    uid: str
    email: str
    password: str
    display_name: str
    email_verified: bool = False
    disabled: bool = False

    def identity(self) -> Identity:
        return Identity(
            uid=self.uid,
            email=self.email,
            display_name=self.display_name,
            email_verified=self.email_verified,
        )


@dataclass(frozen=True)
class SentMail:
    """An email the stub would have sent."""

    kind: str  # "verification" | "password_reset"
    email: str


class FakeAuthProvider(AuthProvider):
    """STUB — in-memory accounts with random bearer tokens.

    Emails are compared case-insensitively. A token stays valid until
    sign_out; there is no expiry.
    """

    def __init__(self) -> None:
        """Initialises with no accounts and an empty outbox."""
        self._accounts: dict[str, _Account] = {}  # lower-cased email -> account
        self._tokens: dict[str, str] = {}  # token -> lower-cased email
        self.outbox: list[SentMail] = []

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _normalise(email: str) -> str:
        email = email.strip().lower()
        if not _EMAIL.match(email):
            raise AuthError(AuthErrorCode.INVALID_EMAIL)
        return email

    def _issue(self, account: _Account) -> AuthSession:
        token = secrets.token_urlsafe(24)
        self._tokens[token] = account.email
        return AuthSession(identity=account.identity(), id_token=token)

    def _account_for(self, token: str) -> _Account:
        email = self._tokens.get(token)
        if email is None or email not in self._accounts:
            raise AuthError(AuthErrorCode.NO_SESSION)
        return self._accounts[email]

    # -- AuthProvider -------------------------------------------------------

    async def create_account(
        self, email: str, password: str, display_name: str
    ) -> AuthSession:
        key = self._normalise(email)
        if key in self._accounts:
            raise AuthError(AuthErrorCode.ACCOUNT_EXISTS)
        if len(password) < PROVIDER_MIN_PASSWORD_LENGTH:
            raise AuthError(AuthErrorCode.WEAK_PASSWORD)
        account = _Account(
            uid=f"uid-{secrets.token_hex(8)}",
            email=key,
            password=password,
            display_name=display_name,
        )
        self._accounts[key] = account
        return self._issue(account)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        key = self._normalise(email)
        account = self._accounts.get(key)
        if account is None or account.password != password:
            raise AuthError(AuthErrorCode.INVALID_CREDENTIALS)
        if account.disabled:
            raise AuthError(AuthErrorCode.ACCOUNT_DISABLED)
        return self._issue(account)

    async def sign_out(self, token: str) -> None:
        self._tokens.pop(token, None)

    async def send_verification_email(self, token: str) -> None:
        account = self._account_for(token)
        self.outbox.append(SentMail(kind="verification", email=account.email))

    async def send_password_reset(self, email: str) -> None:
        key = self._normalise(email)
        if key not in self._accounts:
            raise AuthError(AuthErrorCode.UNKNOWN_ACCOUNT)
        self.outbox.append(SentMail(kind="password_reset", email=key))

    async def change_password(self, token: str, new_password: str) -> None:
        account = self._account_for(token)
        if len(new_password) < PROVIDER_MIN_PASSWORD_LENGTH:
            raise AuthError(AuthErrorCode.WEAK_PASSWORD)
        account.password = new_password

    async def validate_token(self, token: str) -> Identity | None:
        if not token:
            return None
        email = self._tokens.get(token)
        account = self._accounts.get(email) if email else None
        if account is None or account.disabled:
            return None
        return account.identity()

    # -- stub conveniences --------------------------------------------------

    def mark_verified(self, email: str) -> None:
        """Simulates the user clicking the verification link."""
        self._accounts[self._normalise(email)].email_verified = True

    def disable(self, email: str) -> None:
        """Simulates an operator disabling the account."""
        self._accounts[self._normalise(email)].disabled = True
