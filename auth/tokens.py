"""
auth/tokens.py -- Session cookie transport.

The cookie carries the raw session token from auth/sessions.py. When
SIGN_SESSION_COOKIES is on (the default) the value is additionally signed
with itsdangerous.Signer keyed by SECRET_KEY. The server-side lookup is what
authenticates the request; the signature only lets the middleware drop forged
or mangled cookies before touching the database.

Cookie attributes:
  httponly=True: JS cannot read the cookie (XSS mitigation).
  samesite: "lax" by default (COOKIE_SAMESITE), "strict" if configured.
  secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
  max_age: the session TTL, re-issued whenever the session is extended.

Name and TTL are configuration (SESSION_COOKIE_NAME, SESSION_TTL_SECONDS).

Layer rule: no imports from api/, web/, or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

from typing import Optional

from itsdangerous import BadSignature, Signer

from core.config import get_settings

_settings = get_settings()

_SIGNER_SALT = "webbase.session"


def _signer() -> Signer:
    return Signer(_settings.secret_key, salt=_SIGNER_SALT)


def encode_cookie_value(token: str) -> str:
    if not _settings.sign_session_cookies:
        return token
    return _signer().sign(token).decode("utf-8")


def decode_cookie_value(value: Optional[str]) -> Optional[str]:
    """Return the raw token from a cookie value, or None if absent or tampered."""
    if not value:
        return None
    if not _settings.sign_session_cookies:
        return value
    try:
        return _signer().unsign(value).decode("utf-8")
    except BadSignature:
        return None


def set_session_cookie(response, token: str, max_age: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    Args:
        response: FastAPI/Starlette response object.
        token:    Raw session token from SessionStore.create_session().
        max_age:  Cookie lifetime in seconds. 0 (default) uses SESSION_TTL_SECONDS.
    """
    response.set_cookie(
        _settings.session_cookie_name,
        value=encode_cookie_value(token),
        httponly=True,
        samesite=_settings.cookie_samesite,
        secure=_settings.secure_cookies,
        max_age=max_age if max_age > 0 else _settings.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(
        _settings.session_cookie_name,
        path="/",
        httponly=True,
        samesite=_settings.cookie_samesite,
        secure=_settings.secure_cookies,
    )


def response_sets_session_cookie(response) -> bool:
    """True if the handler already wrote (or deleted) the session cookie on this response."""
    prefix = f"{_settings.session_cookie_name}=".encode("latin-1")
    return any(key == b"set-cookie" and value.startswith(prefix) for key, value in response.raw_headers)
