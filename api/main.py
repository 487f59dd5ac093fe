"""
api/main.py -- FastAPI application entry point for the VRC CMS API.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- one log line per request with latency

Lifespan handles startup (stores, auth service, admin seed, token cleanup
task) and shutdown (cancel cleanup task, dispose engines) symmetrically.
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
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.comments import router as comments_router
from api.routes.v1.content import routers as content_routers
from api.routes.v1.password_reset import router as password_reset_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.settings import router as settings_router
from api.routes.v1.system import router as system_router
from api.routes.v1.users import router as users_router
from auth.delivery import LogResetDelivery, MemoryOutbox
from auth.service import AuthError, AuthService
from auth.store import UserStore
from content.store import ContentError, ContentStore
from core.config import get_settings
from core.logging import configure_logging

API_VERSION = "1.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

configure_logging()
logger = logging.getLogger("vrccms.api")

# ---------------------------------------------------------------------------
# Background token cleanup task
# ---------------------------------------------------------------------------


async def _cleanup_loop(app: FastAPI) -> None:
    """Purge expired tokens every TOKEN_CLEANUP_INTERVAL_SECONDS.

    Runs as a background asyncio task started in lifespan startup.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. A database error in one
    pass is logged and the loop carries on.
    """
    while True:
        await asyncio.sleep(_settings.token_cleanup_interval_seconds)
        try:
            await asyncio.to_thread(app.state.auth_service.cleanup_expired)
        except SQLAlchemyError:
            logger.exception("Token cleanup pass failed")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- they create their tables.
      2. Auth service second -- it needs the user store and delivery backend.
      3. Admin seed third -- goes through the service's create_account checks.
      4. Cleanup task last -- references app.state.auth_service.
    """
    logger.info("VRC CMS API starting up")
    app.state.user_store = UserStore()
    app.state.content_store = ContentStore()
    # DEBUG keeps reset tokens in memory so the admin debug endpoint can read them.
    app.state.reset_delivery = MemoryOutbox() if _settings.debug else LogResetDelivery()
    app.state.auth_service = AuthService(app.state.user_store, app.state.reset_delivery)
    if app.state.auth_service.ensure_default_admin() is None and not app.state.user_store.has_users():
        logger.warning("No users exist and DEFAULT_ADMIN_PASSWORD is not set -- run `python main.py create-admin`")
    logger.info("Stores initialized (%s)", app.state.user_store.engine.dialect.name)
    app.state.cleanup_task = asyncio.create_task(_cleanup_loop(app))

    yield

    app.state.cleanup_task.cancel()
    app.state.user_store.close()
    app.state.content_store.close()
    logger.info("VRC CMS API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="VRC CMS API",
    description="Content management backend: users, news, products, projects, services, events, comments and settings.",
    version=API_VERSION,
    lifespan=lifespan,
    # Interactive docs only in development.
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time is captured around call_next so latency is
# reported on every response.
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(password_reset_router, prefix="/api/v1", tags=["Password Reset"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
for _content_router in content_routers:
    app.include_router(_content_router, prefix="/api/v1", tags=["Content"])
app.include_router(comments_router, prefix="/api/v1", tags=["Comments"])
app.include_router(settings_router, prefix="/api/v1", tags=["Settings"])
app.include_router(system_router, prefix="/api/v1", tags=["System"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After is the length of the exceeded window in seconds.
    """
    retry_after = exc.limit.limit.get_expiry() if exc.limit is not None else 60
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when request body or query params fail validation."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    response = _error(exc.status_code, exc.code, exc.message, exc.detail)
    if exc.status_code == 401:
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(ContentError)
async def content_error_handler(request: Request, exc: ContentError) -> JSONResponse:
    return _error(exc.status_code, exc.code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail={"code": ..., "message": ...}.
    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it -- str(dict) produces a Python repr,
    not JSON.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if headers:
        response.headers.update(headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return API liveness, version and database reachability.

    503 when the database does not answer, so load balancers take the
    instance out of rotation.
    """
    try:
        db_ok = request.app.state.user_store.ping() and request.app.state.content_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        db_ok = False
    body = HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=body.model_dump())
