"""
api/main.py -- FastAPI application entry point for SoundHub.

Exposes the JSON endpoints used by the browser player script and owns the
application-wide concerns: lifespan, middleware, and exception handlers. The
server-rendered pages live in web/ and are mounted by asgi.py.

Run with:      uvicorn asgi:app --reload
               python main.py --reload

Middleware stack:
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. SessionMiddleware     -- signed cookie session (userId, guestLikes, OAuth state)
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (data files seeded, stores and OAuth adapters built)
and logs shutdown. JSON documents hold no open handles, so there is nothing to
close.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.likes import router as likes_router
from auth.oauth import build_providers
from auth.store import UserStore
from catalog.store import CatalogStore
from core.config import get_settings
from core.errors import (
    DuplicateEmail,
    Forbidden,
    InvalidInput,
    NotFound,
    OAuthProviderError,
    OAuthStateMismatch,
    SoundHubError,
    StorageError,
)
from likes.store import LikeStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("soundhub.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the stores and OAuth adapters and publish them on app.state.

    Startup order matters:
      1. Directories first -- stores write into data_dir, uploads into public_dir.
      2. Users and likes are seeded with the demo accounts on a fresh data_dir.
      3. OAuth adapters last -- they only depend on settings.
    """
    settings = get_settings()
    logger.info("SoundHub starting up (data_dir=%s)", settings.data_dir)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.upload_dir / "audio").mkdir(parents=True, exist_ok=True)
    (settings.upload_dir / "covers").mkdir(parents=True, exist_ok=True)

    app.state.user_store = UserStore(settings.users_file)
    app.state.user_store.seed_demo_accounts()
    app.state.like_store = LikeStore(settings.likes_file)
    app.state.like_store.seed()
    app.state.catalog = CatalogStore(settings.data_dir)
    app.state.oauth_providers = build_providers(settings)
    logger.info("OAuth providers enabled: %s", ", ".join(app.state.oauth_providers) or "none")

    yield

    logger.info("SoundHub shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SoundHub",
    description="Demo music-sharing site: tracks, playlists, likes and artist moderation.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(SlowAPIMiddleware)

# The session carries the logged-in user id, guest likes and the per-provider
# OAuth state/next values between the authorization redirect and the callback.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="soundhub_session",
    max_age=_settings.session_max_age,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(likes_router, prefix="/api", tags=["Likes"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so the player script can
# parse errors uniformly.
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: dict[type[SoundHubError], int] = {
    InvalidInput: 400,
    DuplicateEmail: 409,
    NotFound: 404,
    Forbidden: 403,
    OAuthStateMismatch: 400,
    OAuthProviderError: 500,
    StorageError: 500,
}


def _error_response(status_code: int, code: str, message: str, detail: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(SoundHubError)
async def domain_error_handler(request: Request, exc: SoundHubError) -> JSONResponse:
    """Map domain exceptions to status codes.

    Provider payloads are logged always but only echoed to the client in
    DEBUG mode; they can contain internal provider details.
    """
    status_code = next((s for cls, s in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    detail = None
    if isinstance(exc, OAuthProviderError):
        logger.warning("OAuth %s failed at %s: %r", exc.provider, exc.stage, exc.payload)
        if get_settings().debug:
            detail = exc.payload
    elif isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status_code, exc.code, str(exc), detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and whether the stores are up."""
    storage_ok = get_settings().data_dir.is_dir() and hasattr(request.app.state, "user_store")
    return HealthResponse(
        status="healthy",
        version=VERSION,
        components={"app": "ok", "storage": "ok" if storage_ok else "error"},
    )
