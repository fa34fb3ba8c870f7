"""
auth/gate.py -- Per-request session check and its FastAPI dependency.

Token sources, in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "session_token" cookie -- set by signup/login for browser clients.
The header wins when both are present.

SessionGate.authenticate() maps a raw token to an Identity or raises:
  - no token                          -> UnauthenticatedError("Authentication required...")
  - unknown / expired / orphaned      -> UnauthenticatedError("Invalid or expired session...")
  - store failure                     -> InternalError("Authentication failed")
Unknown and expired tokens are indistinguishable to the caller: the store
returns None for both.

require_session() is the dependency routes attach with Depends(). It is an
explicit step (request -> Identity | error) that runs before the handler; a
handler that declares it never executes for an unauthenticated request.

Layer rule: auth/gate.py may import from fastapi (for Request) because this
module is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import Request

from auth.errors import InternalError, StoreError, UnauthenticatedError
from auth.models import Identity
from auth.store import AuthStore
from auth.tokens import SESSION_COOKIE_NAME

logger = logging.getLogger("sessionauth.auth.gate")

MISSING_TOKEN_MESSAGE = "Authentication required. Please login."
INVALID_SESSION_MESSAGE = "Invalid or expired session. Please login again."


def extract_token(authorization: str | None, cookie: str | None) -> str | None:
    """Pick the presented token: Bearer header first, then the session cookie.

    Blank values count as absent.
    """
    if authorization:
        scheme, _, credentials = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    if cookie and cookie.strip():
        return cookie.strip()
    return None


class SessionGate:
    """Resolves presented session tokens against an AuthStore."""

    def __init__(self, store: AuthStore) -> None:
        self.store = store

    def authenticate(self, token: str | None, now: datetime | None = None) -> Identity:
        if not token:
            raise UnauthenticatedError(MISSING_TOKEN_MESSAGE)
        try:
            resolved = self.store.find_session_with_user(token, now)
        except StoreError as exc:
            logger.error("Session lookup failed: %s", exc)
            raise InternalError("Authentication failed") from exc
        if resolved is None:
            raise UnauthenticatedError(INVALID_SESSION_MESSAGE)
        _session, user = resolved
        return Identity(id=user.id, name=user.name, email=user.email, token=token)

    def authenticate_request(self, request: Request) -> Identity:
        token = extract_token(
            request.headers.get("Authorization"),
            request.cookies.get(SESSION_COOKIE_NAME),
        )
        return self.authenticate(token)


def require_session(request: Request) -> Identity:
    """Require a valid session. Raises UnauthenticatedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(require_session)): ...

    The resolved identity is also attached to request.state.identity for
    middleware and handlers that do not declare the dependency.
    """
    gate: SessionGate = request.app.state.gate
    identity = gate.authenticate_request(request)
    request.state.identity = identity
    return identity
