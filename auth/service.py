"""
auth/service.py -- Login, logout, and password-change orchestration.

These functions sit between the routes (api/, web/, main.py) and the two
stores. Routes must use them rather than calling check_password() and
create_session() inline, so every entry point gets the same policy:

  - One generic InvalidCredentialsError for unknown identifier, wrong
    password, and deactivated account. Timing is equalized inside
    UserStore.check_password() (dummy hash for unknown identifiers).
  - Successful login stamps last_login.
  - A password change revokes every existing session in the same transaction
    as the hash update, then issues one fresh session to the caller.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.models import User
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.errors import InvalidCredentialsError, ValidationError

logger = logging.getLogger("webbase.auth")


@dataclass
class LoginResult:
    user: User
    token: str
    csrf_token: str
    expires_in: int


def validate_new_password(password: str) -> None:
    """Apply the configured length policy to a password chosen by a user."""
    settings = get_settings()
    if not password or len(password) < settings.password_min_length:
        raise ValidationError(f"Password must be at least {settings.password_min_length} characters.")
    if len(password) > settings.password_max_length:
        raise ValidationError(f"Password must be at most {settings.password_max_length} characters.")


def authenticate_user(store: UserStore, identifier: str, password: str) -> User:
    """Return the active user matching identifier/password or raise InvalidCredentialsError."""
    user = store.check_password(identifier, password)
    if user is None or not user.is_active:
        logger.info("Failed login for identifier=%r", (identifier or "")[:100])
        raise InvalidCredentialsError()
    return user


def start_session(user_store: UserStore, session_store: SessionStore, user: User, ttl: int = 0) -> LoginResult:
    """Create a session for an already-authenticated user and stamp last_login."""
    ttl = ttl if ttl > 0 else get_settings().session_ttl_seconds
    token = session_store.create_session(user.id, ttl)
    session = session_store.get(token)
    user_store.touch_last_login(user.id)
    refreshed = user_store.get_by_id(user.id) or user
    return LoginResult(user=refreshed, token=token, csrf_token=session.csrf_token, expires_in=ttl)


def login(
    user_store: UserStore,
    session_store: SessionStore,
    identifier: str,
    password: str,
    ttl: int = 0,
    previous_token: str | None = None,
) -> LoginResult:
    """Verify credentials and open a session. Raises InvalidCredentialsError on any failure.

    previous_token is the session the request arrived with, if any. It is
    destroyed on success so a pre-login token never survives into the new
    identity.
    """
    user = authenticate_user(user_store, identifier, password)
    logout(session_store, previous_token)
    result = start_session(user_store, session_store, user, ttl)
    logger.info("User id=%d logged in", user.id)
    return result


def logout(session_store: SessionStore, token: str | None) -> None:
    """Destroy the session behind token. Idempotent: a missing or unknown token is fine."""
    if token:
        session_store.destroy(token)


def change_password(
    user_store: UserStore,
    session_store: SessionStore,
    user: User,
    current_password: str,
    new_password: str,
    ttl: int = 0,
) -> LoginResult:
    """Verify the current password, set the new one, and re-issue a session.

    Every session of the user -- including the one making this request -- is
    revoked atomically with the hash update. The caller gets a fresh session
    in the returned LoginResult and must replace its cookie.
    """
    if user_store.check_password(user.username, current_password) is None:
        raise InvalidCredentialsError("Current password is incorrect.")
    validate_new_password(new_password)
    user_store.set_password(user.id, new_password, revoke_sessions=True)
    return start_session(user_store, session_store, user, ttl)
