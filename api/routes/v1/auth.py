"""
api/routes/v1/auth.py -- Authentication and account REST endpoints.

Routes:
  POST  /api/v1/auth/register   -- create an account (only if SELF_REGISTRATION_ENABLED)
  POST  /api/v1/auth/login      -- password login; sets session cookie
  POST  /api/v1/auth/logout     -- destroys the session; clears cookie; idempotent
  GET   /api/v1/auth/me         -- current user + CSRF token (requires auth)
  PATCH /api/v1/auth/me         -- change email (requires auth)
  POST  /api/v1/auth/password   -- change password; revokes all sessions, re-issues one

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  auth.service.login() provides timing equalization -- use it, never inline
  check_password() + create_session().
  Cache-Control: no-store on every response that carries a CSRF token.
  POST/PATCH with a session must carry X-CSRF-Token (enforced by the auth
  middleware before these handlers run).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    SessionResponse,
    UserResponse,
)
from auth import service
from auth.dependencies import get_auth_context, get_current_user
from auth.models import User
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.limiter import LOGIN_RATE_LIMIT, limiter

# Auth policy:
# - POST  /auth/register: public, gated by SELF_REGISTRATION_ENABLED
# - POST  /auth/login:    public
# - POST  /auth/logout:   public -- destroying an absent session is a no-op
# - GET   /auth/me:       requires auth (get_current_user)
# - PATCH /auth/me:       requires auth (get_current_user)
# - POST  /auth/password: requires auth (get_current_user)
router = APIRouter()


def _session_json(result: service.LoginResult) -> JSONResponse:
    resp = JSONResponse(
        content=SessionResponse(
            user=UserResponse.from_user(result.user),
            csrf_token=result.csrf_token,
            expires_in=result.expires_in,
        ).model_dump(),
    )
    set_session_cookie(resp, result.token, result.expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new account. Does not log the new user in.

    Returns 409 with code duplicate_username or duplicate_email on collision.
    """
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Self-registration is disabled."},
        )
    service.validate_new_password(body.password)
    user_store: UserStore = request.app.state.user_store
    user = user_store.create_user(body.username, body.email, body.password)
    return UserResponse.from_user(user)


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(LOGIN_RATE_LIMIT)  # below @router so the route registers the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username-or-email and password; set the session cookie.

    Returns the same invalid_credentials error for an unknown identifier, a
    wrong password, and a deactivated account.
    """
    result = service.login(
        request.app.state.user_store,
        request.app.state.session_store,
        body.identifier,
        body.password,
        previous_token=get_auth_context(request).token,
    )
    return _session_json(result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Destroy the current session (if any) and clear the cookie."""
    session_store: SessionStore = request.app.state.session_store
    service.logout(session_store, get_auth_context(request).token)
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=SessionResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Return the current user and the session's CSRF token."""
    ctx = get_auth_context(request)
    resp = JSONResponse(
        content=SessionResponse(
            user=UserResponse.from_user(current_user),
            csrf_token=ctx.csrf_token,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.patch("/auth/me", response_model=UserResponse)
def update_me(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Change the current user's email. Returns 409 duplicate_email on collision."""
    user_store: UserStore = request.app.state.user_store
    updated = user_store.update_email(current_user.id, body.email)
    return UserResponse.from_user(updated)


@router.post("/auth/password", response_model=SessionResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change the password. Every existing session -- including this one -- is revoked.

    The response carries a fresh session cookie and CSRF token for the caller.
    """
    result = service.change_password(
        request.app.state.user_store,
        request.app.state.session_store,
        current_user,
        body.current_password,
        body.new_password,
    )
    return _session_json(result)
