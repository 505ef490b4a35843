"""Firebase Identity Toolkit auth provider over its v1 REST API.

Implements the AuthProvider contract with plain HTTPS calls through
httpx. Only the web API key is needed.

Provider errors come back as {"error": {"message": "EMAIL_EXISTS"}}; the
message's first token is mapped to an AuthErrorCode. Transient failures
(429, 5xx, connection errors) are retried with exponential backoff and
surface as AUTH_PROVIDER_ERROR once retries run out.

Tier 2 service — imports from mahuru.hooks.interfaces (Tier 1),
mahuru.errors, mahuru.schemas + httpx.

Usage:
    from mahuru.hooks.identity_toolkit import IdentityToolkitAuthProvider

    auth = IdentityToolkitAuthProvider(api_key=settings.firebase_api_key)
    session = await auth.sign_in("ana@example.com", "secret1")
"""

import asyncio
import logging
from typing import Any

import httpx

from mahuru.errors import AuthError, AuthErrorCode
from mahuru.hooks.interfaces import AuthProvider
from mahuru.schemas import AuthSession, Identity

logger = logging.getLogger(__name__)

BASE_URL = "https://identitytoolkit.googleapis.com/v1"

_TIMEOUT = 10.0  # seconds per request
_MAX_RETRIES = 2  # 3 total attempts
_BACKOFF_BASE = 0.5  # seconds — doubles each retry

_ERROR_CODES: dict[str, AuthErrorCode] = {
    "EMAIL_EXISTS": AuthErrorCode.ACCOUNT_EXISTS,
    "WEAK_PASSWORD": AuthErrorCode.WEAK_PASSWORD,
    "EMAIL_NOT_FOUND": AuthErrorCode.INVALID_CREDENTIALS,
    "INVALID_PASSWORD": AuthErrorCode.INVALID_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorCode.INVALID_CREDENTIALS,
    "USER_DISABLED": AuthErrorCode.ACCOUNT_DISABLED,
    "INVALID_EMAIL": AuthErrorCode.INVALID_EMAIL,
    "MISSING_EMAIL": AuthErrorCode.INVALID_EMAIL,
    "INVALID_ID_TOKEN": AuthErrorCode.NO_SESSION,
    "TOKEN_EXPIRED": AuthErrorCode.NO_SESSION,
    "USER_NOT_FOUND": AuthErrorCode.NO_SESSION,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": AuthErrorCode.NO_SESSION,
}


def map_error(message: str) -> AuthErrorCode:
    """Maps a provider error message to an AuthErrorCode.

    Messages look like "WEAK_PASSWORD : Password should be at least 6
    characters"; only the leading token matters.
    """
    token = message.split(" ", 1)[0].strip()
    return _ERROR_CODES.get(token, AuthErrorCode.AUTH_PROVIDER_ERROR)


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class IdentityToolkitAuthProvider(AuthProvider):
    """Auth provider backed by the Identity Toolkit REST API.

    Args:
        api_key: The project's web API key (FIREBASE_API_KEY).
        client: Optional preconfigured httpx client. Tests pass one built
            on httpx.MockTransport.
    """

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(base_url=BASE_URL, timeout=_TIMEOUT)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POSTs to accounts:<endpoint> and returns the decoded body.

        Raises:
            AuthError: Mapped provider error, or AUTH_PROVIDER_ERROR when
                the provider stays unreachable.
        """
        url = f"{BASE_URL}/accounts:{endpoint}"
        for attempt in range(_MAX_RETRIES + 1):
            if attempt > 0:
                backoff = _BACKOFF_BASE * (2 ** (attempt - 1))
                logger.warning(
                    "Identity Toolkit %s retry %d/%d after %.1fs backoff",
                    endpoint,
                    attempt,
                    _MAX_RETRIES,
                    backoff,
                )
                await asyncio.sleep(backoff)
            try:
                response = await self._client.post(
                    url, params={"key": self._api_key}, json=payload
                )
            except httpx.TransportError as exc:
                logger.warning("Identity Toolkit %s transport error: %s", endpoint, exc)
                continue

            if response.is_success:
                return response.json()
            if _is_retryable(response.status_code):
                continue

            try:
                message = response.json().get("error", {}).get("message", "")
            except ValueError:
                message = ""
            kind = map_error(message)
            if kind is AuthErrorCode.AUTH_PROVIDER_ERROR:
                logger.error(
                    "Identity Toolkit %s failed: status=%d message=%s",
                    endpoint,
                    response.status_code,
                    message or "<none>",
                )
            raise AuthError(kind)

        logger.error("Identity Toolkit %s unavailable after retries", endpoint)
        raise AuthError(AuthErrorCode.AUTH_PROVIDER_ERROR)

    async def _lookup(self, token: str) -> dict[str, Any]:
        body = await self._call("lookup", {"idToken": token})
        users = body.get("users") or []
        if not users:
            raise AuthError(AuthErrorCode.NO_SESSION)
        return users[0]

    @staticmethod
    def _identity(user: dict[str, Any]) -> Identity:
        return Identity(
            uid=user["localId"],
            email=user.get("email", ""),
            display_name=user.get("displayName", ""),
            email_verified=bool(user.get("emailVerified", False)),
        )

    # -- AuthProvider -------------------------------------------------------

    async def create_account(
        self, email: str, password: str, display_name: str
    ) -> AuthSession:
        body = await self._call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        token = body["idToken"]
        if display_name:
            await self._call(
                "update",
                {"idToken": token, "displayName": display_name, "returnSecureToken": False},
            )
        identity = Identity(
            uid=body["localId"],
            email=body.get("email", email),
            display_name=display_name,
            email_verified=False,
        )
        return AuthSession(identity=identity, id_token=token)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        body = await self._call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        token = body["idToken"]
        user = await self._lookup(token)
        return AuthSession(identity=self._identity(user), id_token=token)

    async def sign_out(self, token: str) -> None:
        """No-op: ID tokens are stateless and simply expire."""
        return None

    async def send_verification_email(self, token: str) -> None:
        await self._call("sendOobCode", {"requestType": "VERIFY_EMAIL", "idToken": token})

    async def send_password_reset(self, email: str) -> None:
        try:
            await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        except AuthError as exc:
            # EMAIL_NOT_FOUND means "unknown account" here, not bad credentials.
            if exc.kind is AuthErrorCode.INVALID_CREDENTIALS:
                raise AuthError(AuthErrorCode.UNKNOWN_ACCOUNT) from exc
            raise

    async def change_password(self, token: str, new_password: str) -> None:
        await self._call(
            "update",
            {"idToken": token, "password": new_password, "returnSecureToken": False},
        )

    async def validate_token(self, token: str) -> Identity | None:
        if not token:
            return None
        try:
            user = await self._lookup(token)
        except AuthError as exc:
            if exc.kind is AuthErrorCode.NO_SESSION:
                return None
            raise
        if user.get("disabled"):
            return None
        return self._identity(user)
