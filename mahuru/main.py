"""FastAPI application for Mahuru Activation.

Assembles the /api/v1 surface from the auth, profile, content and admin
routers, wraps it in CORS and access logging, and installs handlers that
turn every failure into the ApiResponse envelope:

- MahuruError subclasses carry their own status and code
- request validation failures become 422 VALIDATION_ERROR
- HTTPException details pass through when already enveloped
- anything else is logged with its traceback and answered with a bland 500

On shutdown the hooks release their connections (deps.close_services).

Run with: uvicorn mahuru.main:app --reload

Tier 3 orchestration module: imports from config, deps, errors, schemas
and the api routers.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from mahuru.api import admin, auth, content, deps, profile
from mahuru.config import Settings, get_settings
from mahuru.errors import MahuruError
from mahuru.schemas import ApiError, ApiResponse

logger = logging.getLogger("mahuru")

API_PREFIX = "/api/v1"

# (router module, prefix under /api/v1, OpenAPI tag)
_ROUTERS = (
    (auth, "/auth", "auth"),
    (profile, "/profile", "profile"),
    (content, "", "content"),
    (admin, "/admin", "admin"),
)


# ---------------------------------------------------------------------------
# Access log
# ---------------------------------------------------------------------------


class AccessLogMiddleware:
    """One log line per HTTP request: method, path, status, elapsed time.

    Plain ASGI so SSE responses stream through unbuffered. Bodies, query
    strings and headers are never logged; they carry tokens and emails.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.monotonic()
        status = 0

        async def send_and_record(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        finally:
            elapsed = (time.monotonic() - started) * 1000
            level = logging.WARNING if status >= 500 or status == 0 else logging.INFO
            logger.log(
                level, "%s %s %d %.1fms", scope.get("method"), scope.get("path"), status, elapsed
            )


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------


def _envelope(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(ok=False, error=ApiError(code=code, message=message)).model_dump(),
    )


def _on_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Passes through details that are already envelopes (deps.py auth)."""
    if isinstance(exc.detail, dict) and "ok" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    return _envelope(exc.status_code, "HTTP_ERROR", str(exc.detail))


def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Summarises every failing field as "loc: msg", separated by "; "."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid")
        problems.append(f"{location}: {message}" if location else message)
    return _envelope(422, "VALIDATION_ERROR", "; ".join(problems) or "Request validation failed.")


def _on_domain_error(request: Request, exc: MahuruError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.code, exc.message)


def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    """Logs the traceback; the client only learns that something failed."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(500, "INTERNAL_ERROR", "Something went wrong. Please try again.")


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


def _build_api_router() -> APIRouter:
    v1 = APIRouter(prefix=API_PREFIX)

    @v1.get("/health")
    async def health() -> dict:
        return ApiResponse(ok=True, data={"status": "healthy"}).model_dump()

    for module, prefix, tag in _ROUTERS:
        v1.include_router(module.router, prefix=prefix, tags=[tag])
    return v1


def _wire_services(settings: Settings) -> None:
    """Installs the dependency singletons for the configured backends.

    Raises:
        ValueError: Firebase selected but unconfigured in production.
    """
    deps.configure_services(settings, **deps.create_backends(settings))
    logger.info(
        "Services ready: auth=%s database=%s env=%s",
        type(deps.get_auth_provider()).__name__,
        type(deps.get_document_store()).__name__,
        settings.app_env,
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    yield
    await deps.close_services()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Creates the FastAPI application for the given (or loaded) settings."""
    settings = settings or get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    application = FastAPI(
        title="Mahuru Activation",
        description="30-day te reo Māori activation journey",
        version="0.1.0",
        lifespan=_lifespan,
    )

    # Last added runs first: CORS must see preflights before anything else.
    application.add_middleware(AccessLogMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(StarletteHTTPException, _on_http_exception)
    application.add_exception_handler(RequestValidationError, _on_validation_error)
    application.add_exception_handler(MahuruError, _on_domain_error)
    application.add_exception_handler(Exception, _on_unhandled)

    application.include_router(_build_api_router())
    _wire_services(settings)
    return application


app = create_app()
