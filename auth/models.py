"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; the store and service do
the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An identity record.

    email is always stored normalized (trimmed, lowercase). password_hash is a
    bcrypt modular-crypt string and the only credential artifact persisted.
    It must never leave the process -- API responses use public_dict().
    """

    name: str
    email: str
    password_hash: str
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def public_dict(self, include_updated: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": self.created_at,
        }
        if include_updated:
            data["updated_at"] = self.updated_at
        return data


@dataclass
class Session:
    """Proof of authenticated presence.

    user_id references the owning user; the user outlives any single session.
    Valid iff the row exists and expires_at is strictly in the future.
    """

    user_id: int
    token: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class Identity:
    """What the session gate attaches to a request for downstream handlers."""

    id: int
    name: str
    email: str
    token: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful signup or login."""

    user: User
    token: str
    expires_at: datetime
