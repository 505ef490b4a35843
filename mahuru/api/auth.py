"""Account API routes — sign-up, sign-in and password flows.

Seven endpoints over the AuthGateway. Auth failures raise AuthError,
which main.py turns into the ApiResponse envelope with the normalised
code (ACCOUNT_EXISTS, WEAK_PASSWORD, ...) and the matching status.

The password reset endpoint always answers ok for well-formed addresses,
so it cannot reveal which emails have accounts.

Tier 3 orchestration module: imports from deps, services, schemas.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mahuru.api.deps import (
    get_auth_gateway,
    get_current_identity,
    get_optional_token,
)
from mahuru.errors import AuthError, AuthErrorCode
from mahuru.schemas import ApiResponse, Identity, to_document
from mahuru.services.auth_gateway import AuthGateway

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies (API-boundary types, local to this module)
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    email: str
    password: str
    name: str


class SignInRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/signup")
async def sign_up(
    body: SignUpRequest,
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    """Creates an account and sends the verification email."""
    result = await gateway.sign_up(body.email, body.password, body.name)
    return ApiResponse(
        ok=True,
        data={
            "user": result.session.identity.model_dump(),
            "token": result.session.id_token,
            "profile": to_document(result.profile) if result.profile else None,
            "needs_verification": result.needs_verification,
        },
    ).model_dump()


@router.post("/signin")
async def sign_in(
    body: SignInRequest,
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    session, profile = await gateway.sign_in(body.email, body.password)
    return ApiResponse(
        ok=True,
        data={
            "user": session.identity.model_dump(),
            "token": session.id_token,
            "profile": to_document(profile),
        },
    ).model_dump()


@router.post("/signout")
async def sign_out(
    token: str | None = Depends(get_optional_token),
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    """Ends the session. Succeeds even when nobody is signed in."""
    await gateway.sign_out(token)
    return ApiResponse(ok=True).model_dump()


@router.post("/password-reset")
async def request_password_reset(
    body: PasswordResetRequest,
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    try:
        await gateway.reset_password(body.email)
    except AuthError as exc:
        if exc.kind is not AuthErrorCode.UNKNOWN_ACCOUNT:
            raise
        logger.info("Password reset requested for an unknown account")
    return ApiResponse(
        ok=True,
        data={"message": "If an account exists for this address, a reset email is on its way."},
    ).model_dump()


@router.post("/verification")
async def resend_verification(
    token: str | None = Depends(get_optional_token),
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    """Re-sends the verification email; NO_SESSION when signed out."""
    await gateway.resend_verification(token)
    return ApiResponse(ok=True).model_dump()


@router.post("/password")
async def change_password(
    body: PasswordChangeRequest,
    token: str | None = Depends(get_optional_token),
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    """Changes the password after checking the current one."""
    await gateway.update_password(token, body.current_password, body.new_password)
    return ApiResponse(ok=True).model_dump()


@router.get("/me")
async def me(
    identity: Identity = Depends(get_current_identity),
    gateway: AuthGateway = Depends(get_auth_gateway),
) -> dict:
    """The signed-in identity with its profile (created lazily)."""
    profile = await gateway.current_profile(identity)
    return ApiResponse(
        ok=True,
        data={"user": identity.model_dump(), "profile": to_document(profile)},
    ).model_dump()
