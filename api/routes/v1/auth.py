"""
api/routes/v1/auth.py -- Session authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup   -- create account, open session; sets cookie; 201
  POST /api/v1/auth/login    -- password login, open session; sets cookie
  POST /api/v1/auth/logout   -- revoke current session; clears cookie (requires session)
  GET  /api/v1/auth/me       -- current user profile (requires session)
  GET  /api/v1/auth/verify   -- echo the gate-resolved identity (requires session)

Security:
  [E1] Login failures are undifferentiated -- AuthService.login() raises one
       InvalidCredentialsError for unknown email and wrong password alike.
  [E2] Responses are built from response models with no hash field.
  Cache-Control: no-store on every response that carries a session token.

Handlers are plain def so FastAPI runs them in its thread pool; bcrypt and
blocking store calls never stall the event loop.

Errors raised here (AuthError subclasses) are rendered by the handlers in
api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    ErrorResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    SessionUser,
    SignupRequest,
    UserProfile,
    UserPublic,
    VerifyResponse,
)
from auth.gate import require_session
from auth.models import AuthResult, Identity
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST /api/v1/auth/signup:  public
# - POST /api/v1/auth/login:   public
# - POST /api/v1/auth/logout:  requires session (require_session)
# - GET  /api/v1/auth/me:      requires session (require_session)
# - GET  /api/v1/auth/verify:  requires session (require_session)
router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _auth_response(request: Request, result: AuthResult, message: str, status_code: int) -> JSONResponse:
    """Serialize a signup/login result and attach the session cookie."""
    service: AuthService = request.app.state.auth_service
    body = AuthResponse(
        message=message,
        user=UserPublic(**result.user.public_dict()),
        session_token=result.token,
        expires_at=result.expires_at,
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    set_session_cookie(resp, result.token, service.session_days)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/auth/signup",
    response_model=AuthResponse,
    status_code=201,
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new user and open a session.

    409 if the (lowercased) email is already registered.
    """
    service: AuthService = request.app.state.auth_service
    result = service.signup(body.name, body.email, body.password)
    return _auth_response(request, result, "User created successfully", 201)


@router.post("/auth/login", response_model=AuthResponse, responses=_ERRORS)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and open a new session.

    Each login creates an independent session; existing sessions for the
    same user stay valid.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password)
    return _auth_response(request, result, "Login successful", 200)


# ---------------------------------------------------------------------------
# Session-protected endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse, responses=_ERRORS)
def logout(request: Request, identity: Identity = Depends(require_session)) -> JSONResponse:
    """Revoke the session used for this request and clear the cookie."""
    service: AuthService = request.app.state.auth_service
    service.logout(identity.token)
    resp = JSONResponse(content=MessageResponse(message="Logout successful").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse, responses={**_ERRORS, 404: {"model": ErrorResponse}})
def me(request: Request, identity: Identity = Depends(require_session)) -> MeResponse:
    """Return the stored profile of the authenticated user (no credential hash)."""
    service: AuthService = request.app.state.auth_service
    user = service.get_profile(identity.id)
    return MeResponse(user=UserProfile(**user.public_dict(include_updated=True)))


@router.get("/auth/verify", response_model=VerifyResponse, responses=_ERRORS)
def verify(identity: Identity = Depends(require_session)) -> VerifyResponse:
    """Confirm the presented session is valid and echo its identity."""
    return VerifyResponse(user=SessionUser(id=identity.id, name=identity.name, email=identity.email))
