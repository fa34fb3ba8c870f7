"""
auth/tokens.py -- Session token generation, expiry arithmetic, cookie helpers.

Security design decisions:
  Tokens: secrets.token_hex(32) draws 32 bytes from the OS CSPRNG (256 bits of
       entropy) and encodes them as a fixed-length 64-char hex string.
       Collisions are cryptographically negligible; the UNIQUE constraint on
       sessions.session_token is only a backstop.

  Tokens are opaque. They carry no claims -- validity lives in the store, so
       logout revokes immediately and expiry is decided server-side.

  Cookie: httponly (no JS access), samesite="strict" (never sent on
       cross-site requests), secure when SECURE_COOKIES=true. max_age matches
       the session horizon so cookie and server row expire together.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from core.config import get_settings

SESSION_COOKIE_NAME = "session_token"
DEFAULT_SESSION_DAYS = 7
TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2


def generate_session_token() -> str:
    """Return a new 64-char hex session token (256 bits from the OS CSPRNG)."""
    return secrets.token_hex(TOKEN_BYTES)


def session_expiration(now: datetime | None = None, days: int = DEFAULT_SESSION_DAYS) -> datetime:
    """Return now + days. Pure: pass now explicitly for deterministic results."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now + timedelta(days=days)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, days: int = DEFAULT_SESSION_DAYS) -> None:
    """Write the session token as an httpOnly, SameSite=Strict cookie on the response.

    Args:
        response: FastAPI/Starlette response object.
        token:    Session token issued by the service.
        days:     Cookie lifetime. Pass the same horizon used for the session
                  row so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=get_settings().secure_cookies,
        max_age=days * 24 * 60 * 60,
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie on the client."""
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        httponly=True,
        samesite="strict",
        secure=get_settings().secure_cookies,
    )
