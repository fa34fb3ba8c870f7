"""
api/main.py -- FastAPI application entry point for the session auth service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost; Starlette runs the last-registered
middleware outermost):
  1. log_requests          -- one log line per request with latency, including
                              requests rejected further in
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the store, service, and gate on startup, starts the expired-
session purge task, and tears everything down symmetrically on shutdown.
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

from api.models import ErrorDetail, ErrorResponse, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError, StoreError, ValidationFailedError
from auth.gate import SessionGate
from auth.service import AuthService
from auth.store import SQLAuthStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired session rows every `interval` seconds.

    Expired rows are already rejected by the gate; this only reclaims space.
    A failed pass is logged and retried on the next tick. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(app.state.store.purge_expired_sessions)
        except StoreError:
            logger.warning("Expired session purge failed; will retry in %ds", interval)
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters: the store first, then the service and gate that
    receive it, then the purge task that references app.state.store.
    """
    logger.info("Session auth API starting up")
    store = SQLAuthStore(_settings.database_url, timeout=_settings.db_timeout_seconds)
    app.state.store = store
    app.state.auth_service = AuthService(store, session_days=_settings.session_expire_days)
    app.state.gate = SessionGate(store)
    logger.info("Auth store initialized")

    interval = _settings.session_purge_interval_seconds
    app.state.purge_task = asyncio.create_task(_purge_loop(app, interval)) if interval > 0 else None

    yield

    if app.state.purge_task is not None:
        app.state.purge_task.cancel()
    app.state.store.close()
    logger.info("Session auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Session Auth API",
    description="Credential signup/login with opaque, server-side bearer sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    # Browsers must send the session cookie on cross-origin calls.
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(exc: AuthError) -> JSONResponse:
    errors = None
    if isinstance(exc, ValidationFailedError):
        errors = [FieldError(**e) for e in exc.errors]
    body = ErrorResponse(
        message=exc.message,
        error=ErrorDetail(code=exc.code, message=exc.message),
        errors=errors,
    )
    return JSONResponse(status_code=int(exc.status), content=body.model_dump(exclude_none=True))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any AuthError with its own status and caller-safe message.

    Internal causes were logged where they were caught; only the generic
    message set on the AuthError reaches the client.
    """
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per invalid input field."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
    return _error_response(ValidationFailedError(errors))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            message="An unexpected error occurred.",
            error=ErrorDetail(code="internal_error", message="An unexpected error occurred."),
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok" if request.app.state.store.ping() else "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})
