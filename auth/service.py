"""
auth/service.py -- Signup, login, logout, and profile lookup.

AuthService receives its store through the constructor. There is no module-
level connection: the app lifespan builds one SQLAuthStore and passes it in,
and tests pass an in-memory fake.

Security:
  [E1] Login failures are undifferentiated. Unknown email and wrong password
       raise the same InvalidCredentialsError, and the unknown-email branch
       still runs one bcrypt verification (equalize_timing) so response time
       does not reveal which emails are registered.
  [E2] The password hash never leaves this module in a response; routes
       serialize User.public_dict().
  [E3] StoreError and CredentialHashError are logged here with detail and
       re-raised as InternalError with a generic message.

Partial writes:
  Signup creates the user and then the session in two independent writes.
  If the session write fails the user row stays, and the caller gets
  InternalError. A later login for that email succeeds.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.errors import (
    ConflictError,
    CredentialHashError,
    DuplicateRecordError,
    InternalError,
    InvalidCredentialsError,
    NotFoundError,
    StoreError,
)
from auth.models import AuthResult, User
from auth.passwords import equalize_timing, exceeds_bcrypt_limit, hash_password, verify_password
from auth.store import AuthStore
from auth.tokens import DEFAULT_SESSION_DAYS, generate_session_token, session_expiration

logger = logging.getLogger("sessionauth.auth")


def normalize_email(email: str) -> str:
    """Trim and lowercase an email so lookups and uniqueness are case-insensitive."""
    return email.strip().lower()


class AuthService:
    """Orchestrates credential checks and session issuance over an AuthStore."""

    def __init__(self, store: AuthStore, session_days: int = DEFAULT_SESSION_DAYS) -> None:
        self.store = store
        self.session_days = session_days

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def signup(self, name: str, email: str, password: str) -> AuthResult:
        """Register a new user and open their first session.

        Raises ConflictError if the normalized email is already registered,
        InternalError on any store or hashing failure.
        """
        email = normalize_email(email)
        try:
            if self.store.find_user_by_email(email) is not None:
                raise ConflictError()
            password_hash = hash_password(password)
            try:
                user = self.store.create_user(name.strip(), email, password_hash)
            except DuplicateRecordError as exc:
                # Lost a race with a concurrent signup for the same email.
                raise ConflictError() from exc
        except (StoreError, CredentialHashError) as exc:
            logger.error("Signup failed: %s", exc)
            raise InternalError("Failed to create user") from exc

        try:
            token, expires_at = self._issue_session(user)
        except StoreError as exc:
            logger.error("Session issuance failed after creating user id=%s: %s", user.id, exc)
            raise InternalError("Failed to create user") from exc

        logger.info("User registered id=%s", user.id)
        return AuthResult(user=user, token=token, expires_at=expires_at)

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and open a new session.

        Raises InvalidCredentialsError for an unknown email or a wrong password
        (same error either way [E1]). A password over bcrypt's 72-byte limit
        counts as wrong. InternalError on store failure or a malformed stored
        hash.
        """
        email = normalize_email(email)
        try:
            user = self.store.find_user_by_email(email)
            # No stored hash can match a password bcrypt refuses to process.
            if user is None or exceeds_bcrypt_limit(password):
                equalize_timing(password)
                matched = False
            else:
                matched = verify_password(password, user.password_hash)
            if not matched:
                logger.info("Login rejected")
                raise InvalidCredentialsError()
            token, expires_at = self._issue_session(user)
        except (StoreError, CredentialHashError) as exc:
            logger.error("Login failed: %s", exc)
            raise InternalError("Login failed") from exc

        logger.info("Login succeeded user id=%s", user.id)
        return AuthResult(user=user, token=token, expires_at=expires_at)

    def logout(self, token: str) -> None:
        """Revoke the session bound to token. Already-gone tokens are not an error."""
        try:
            deleted = self.store.delete_session(token)
        except StoreError as exc:
            logger.error("Logout failed: %s", exc)
            raise InternalError("Logout failed") from exc
        if not deleted:
            logger.debug("Logout for a session that no longer exists")

    def get_profile(self, user_id: int) -> User:
        """Return the current user record for an authenticated identity.

        Raises NotFoundError if the user was removed after the session was
        resolved.
        """
        try:
            user = self.store.get_user(user_id)
        except StoreError as exc:
            logger.error("Profile lookup failed: %s", exc)
            raise InternalError("Failed to get user information") from exc
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _issue_session(self, user: User) -> tuple[str, datetime]:
        token = generate_session_token()
        expires_at = session_expiration(datetime.now(timezone.utc), self.session_days)
        self.store.create_session(user.id, token, expires_at)
        return token, expires_at
