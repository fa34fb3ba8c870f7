"""
API request and response models for the authentication endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

No response model has a password or password_hash field, so a hash cannot be
serialized by accident.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.passwords import MAX_PASSWORD_BYTES, exceeds_bcrypt_limit

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


def _check_password_bytes(value: str) -> str:
    if exceeds_bcrypt_limit(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    Email is lowercased after syntax validation so "A@Foo.com" and
    "a@foo.com" are the same account.
    """

    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    # Not stripped: leading/trailing spaces are part of the password.
    password: str = Field(min_length=6, json_schema_extra={"format": "password"})

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password", mode="before")
    @classmethod
    def password_fits_bcrypt(cls, value):
        if isinstance(value, str):
            return _check_password_bytes(value)
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password", mode="before")
    @classmethod
    def password_fits_bcrypt(cls, value):
        if isinstance(value, str):
            return _check_password_bytes(value)
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserPublic(BaseModel):
    """Public identity payload returned by signup and login."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    created_at: datetime


class UserProfile(UserPublic):
    """Full public profile returned by GET /auth/me."""

    updated_at: datetime


class SessionUser(BaseModel):
    """Identity attached by the session gate, echoed by GET /auth/verify."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str


class AuthResponse(BaseModel):
    """Response for signup and login. The token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    user: UserPublic
    session_token: str
    expires_at: datetime


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserProfile


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Session is valid"
    user: SessionUser


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class FieldError(BaseModel):
    """One field-level validation problem."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    error: ErrorDetail
    errors: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
