"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Identity is resolved once per request by auth/middleware.py and stored on
request.state.auth. These helpers only read it back:

  get_auth_context()     -- the AuthContext (anonymous if the middleware did not run).
  try_get_current_user() -- soft variant, returns None when unauthenticated.
  get_current_user()     -- raises HTTP 401 if unauthenticated.

The web UI does not use get_current_user(): HTML routes redirect to /login
instead of returning 401 (see web/routes.py::_require_auth).

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.middleware import AuthContext
from auth.models import User

_ANONYMOUS = AuthContext()


def get_auth_context(request: Request) -> AuthContext:
    return getattr(request.state, "auth", _ANONYMOUS)


def try_get_current_user(request: Request) -> User | None:
    """Return the authenticated User or None. Never raises."""
    return get_auth_context(request).user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
