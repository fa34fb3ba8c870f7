"""
auth/errors.py -- Error taxonomy for the authentication core.

Two families:

  AuthError subclasses are boundary errors. Each carries a stable HTTP status,
  a machine-readable code, and a caller-safe message. api/main.py turns any
  AuthError into a JSON response without inspecting the subclass.

  StoreError / CredentialHashError are lower-layer failures. They carry
  internal detail (SQL text, bcrypt complaints) and must never reach a
  caller. The service and gate log them and re-raise InternalError.

Security:
  InvalidCredentialsError has exactly one message. Unknown email and wrong
  password both raise it with no arguments so the responses are byte-identical.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any


class AuthError(Exception):
    """Base class for every error the boundary translates into a response."""

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "error": {"code": self.code, "message": self.message},
        }


class ValidationFailedError(AuthError):
    """Malformed input. Carries field-level detail for the caller."""

    status = HTTPStatus.BAD_REQUEST
    code = "validation_failed"
    message = "Validation failed"

    def __init__(self, errors: list[dict[str, str]], message: str | None = None) -> None:
        self.errors = errors
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class ConflictError(AuthError):
    status = HTTPStatus.CONFLICT
    code = "conflict"
    message = "User with this email already exists"


class InvalidCredentialsError(AuthError):
    """Login failure. Deliberately identical for unknown email and wrong password."""

    status = HTTPStatus.UNAUTHORIZED
    code = "invalid_credentials"
    message = "Invalid email or password"

    def __init__(self) -> None:
        super().__init__()


class UnauthenticatedError(AuthError):
    status = HTTPStatus.UNAUTHORIZED
    code = "unauthenticated"
    message = "Authentication required. Please login."


class NotFoundError(AuthError):
    status = HTTPStatus.NOT_FOUND
    code = "not_found"
    message = "Resource not found"


class InternalError(AuthError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "internal_error"
    message = "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Lower-layer errors (never rendered to a caller)
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Persistence failure: connectivity, timeout, or constraint violation."""


class DuplicateRecordError(StoreError):
    """A UNIQUE constraint rejected the write (e.g. email already registered)."""


class CredentialHashError(Exception):
    """The stored hash is malformed or bcrypt failed internally.

    Distinct from a failed password match: verify_password() returns False for
    a wrong password and raises this for everything else.
    """
