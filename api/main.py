"""
api/main.py -- FastAPI application entry point for Snapp Auth.

Exposes the authentication and RBAC core over HTTP. Everything else in the
product (worlds, campaigns, assets) lives in other services that call this
one only through the routes registered below.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for the web front end's origins
  2. log_requests   -- one log line per request with status and latency

Lifespan builds the user store (in-memory or SQL per DATABASE_URL), seeds it
from USERS_FILE when configured, and wires the AuthService into app.state.

Error handling:
  Domain code raises typed errors from auth/errors.py. _STATUS_BY_ERROR maps
  each class to a status code; lookup walks the exception's MRO so subclasses
  (NotAuthorized -> Forbidden, InvalidRole -> ValidationError) inherit their
  parent's status. Nothing here inspects message text.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.protected import router as protected_router
from api.routes.users import router as users_router
from auth.errors import (
    AuthenticationFailed,
    AuthError,
    DuplicateUser,
    Forbidden,
    InvalidToken,
    MissingToken,
    UserNotFound,
    ValidationError,
)
from auth.seed import seed_users
from auth.service import AuthService
from auth.store import build_user_store
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("snapp.api")

# ---------------------------------------------------------------------------
# Error kind -> HTTP status
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: dict[type[AuthError], int] = {
    ValidationError: 400,
    DuplicateUser: 400,
    AuthenticationFailed: 401,
    MissingToken: 401,
    InvalidToken: 401,
    Forbidden: 403,
    UserNotFound: 404,
}


def status_for(exc: AuthError) -> int:
    """Return the HTTP status for a domain error (500 for an unmapped kind)."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 500


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the store and auth service on startup; close the store on shutdown.

    Seeding hashes every password with bcrypt, so it runs in a worker thread.
    A missing or broken users file is logged and startup continues.
    """
    settings = get_settings()
    logger.info("Snapp Auth starting up")
    store = build_user_store(settings)
    if settings.users_file:
        await asyncio.to_thread(seed_users, store, settings.users_file, settings.bcrypt_rounds)
    app.state.user_store = store
    app.state.auth_service = AuthService.from_settings(store, settings)
    logger.info(
        "Auth initialized (users=%d, token_expire_seconds=%d)",
        store.count(),
        settings.token_expire_seconds,
    )

    yield

    store.close()
    logger.info("Snapp Auth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Snapp Auth",
    description="Authentication and role-based access control for Snapp.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# slowapi looks for app.state.limiter by convention.
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

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(protected_router, tags=["Protected"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map a domain error to its status and caller-safe message.

    The internal reason (str(exc)) goes to the log only. For
    AuthenticationFailed and Forbidden the caller sees a fixed message that
    reveals neither username existence nor the role structure.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Unmapped auth error on %s %s: %r", request.method, request.url.path, exc)
    elif status_code in (401, 403):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    response = _error_response(status_code, exc.code, exc.safe_message)
    if isinstance(exc, (MissingToken, InvalidToken)):
        response.headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, AuthenticationFailed):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body or parameters fail validation.

    Covers missing fields, wrong types, and role values outside the Role
    enumeration.
    """
    return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured envelope for framework-raised errors (unknown route, bad method)."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No auth and no rate limit -- load balancers and monitors must reach it.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return liveness and current version."""
    return HealthResponse(version=VERSION)
