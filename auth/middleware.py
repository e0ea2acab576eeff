"""
auth/middleware.py -- Per-request authentication pipeline.

Every request passes through an explicit, ordered tuple of stages. A stage is
a plain function:

    stage(request, ctx: AuthContext) -> AuthContext | Response

Returning a new AuthContext passes control to the next stage; returning a
Response short-circuits the request before any route handler runs. Stages
never mutate the context they receive (it is frozen) -- they return a
replaced copy.

Default order:
  1. resolve_session  -- cookie token -> live session -> user
  2. reject_inactive  -- deactivated user: destroy session, treat as anonymous
  3. refresh_session  -- sliding expiry, re-issue cookie near the end of the TTL
  4. enforce_csrf     -- unsafe method + session => matching CSRF token required

The resulting context is stored on request.state.auth. Identity is request
scoped and flows explicitly into handlers via auth/dependencies.py -- there
is no global or thread-local "current user".

Stores are synchronous, so auth_middleware runs the pipeline in Starlette's
threadpool rather than on the event loop.

Layer rule: no imports from api/, web/, or catalog/. This module may import
from fastapi/starlette because it is part of the HTTP integration.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Optional, Union
from urllib.parse import parse_qs

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response

from auth.models import Session, User
from auth.tokens import (
    clear_session_cookie,
    decode_cookie_value,
    response_sets_session_cookie,
    set_session_cookie,
)
from core.config import get_settings
from core.errors import AppError, ForbiddenError

logger = logging.getLogger("webbase.auth.middleware")

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class AuthContext:
    """Request-scoped authentication state.

    token is the raw session token from the cookie (None when absent or the
    signature failed). clear_cookie / refresh_cookie are directives the
    middleware applies to the outgoing response.
    """

    user: Optional[User] = None
    session: Optional[Session] = None
    token: Optional[str] = None
    submitted_csrf: Optional[str] = None
    clear_cookie: bool = False
    refresh_cookie: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def csrf_token(self) -> Optional[str]:
        return self.session.csrf_token if self.session is not None else None

    def anonymous(self) -> "AuthContext":
        """Drop identity and ask for the session cookie to be cleared."""
        return replace(self, user=None, session=None, token=None, clear_cookie=True, refresh_cookie=False)


Stage = Callable[[Request, AuthContext], Union[AuthContext, Response]]


def error_response(request: Request, exc: AppError) -> Response:
    """Render an AppError raised before routing: JSON envelope for /api, plain HTML otherwise."""
    if request.url.path.startswith("/api/"):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": exc.code, "message": exc.message, "detail": None}},
        )
    return HTMLResponse(f"<h1>{exc.status_code}</h1><p>{exc.message}</p>", status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def resolve_session(request: Request, ctx: AuthContext) -> AuthContext:
    if not ctx.token:
        return ctx
    session_store = request.app.state.session_store
    session = session_store.get(ctx.token)
    if session is None:
        return ctx.anonymous()
    user = request.app.state.user_store.get_by_id(session.user_id)
    if user is None:
        session_store.destroy(ctx.token)
        return ctx.anonymous()
    return replace(ctx, user=user, session=session)


def reject_inactive(request: Request, ctx: AuthContext) -> AuthContext:
    if ctx.user is None or ctx.user.is_active:
        return ctx
    request.app.state.session_store.destroy(ctx.token)
    logger.info("Rejected session of deactivated user id=%d", ctx.user.id)
    return ctx.anonymous()


def refresh_session(request: Request, ctx: AuthContext) -> AuthContext:
    if ctx.session is None:
        return ctx
    settings = get_settings()
    session_store = request.app.state.session_store
    remaining = ctx.session.expires_at - session_store.clock()
    if remaining >= settings.session_refresh_threshold:
        return ctx
    if session_store.extend(ctx.token, settings.session_ttl_seconds):
        return replace(ctx, refresh_cookie=True)
    return ctx


def enforce_csrf(request: Request, ctx: AuthContext) -> Union[AuthContext, Response]:
    if request.method not in UNSAFE_METHODS or ctx.session is None:
        return ctx
    submitted = (ctx.submitted_csrf or "").encode("utf-8")
    expected = ctx.session.csrf_token.encode("utf-8")
    if submitted and hmac.compare_digest(submitted, expected):
        return ctx
    logger.warning("CSRF check failed: %s %s", request.method, request.url.path)
    return error_response(request, ForbiddenError("CSRF token missing or invalid."))


DEFAULT_STAGES: tuple[Stage, ...] = (resolve_session, reject_inactive, refresh_session, enforce_csrf)


def run_pipeline(
    request: Request,
    ctx: AuthContext,
    stages: Sequence[Stage] = DEFAULT_STAGES,
) -> tuple[AuthContext, Optional[Response]]:
    """Run stages in order. Returns the final context and a short-circuit Response, if any."""
    for stage in stages:
        result = stage(request, ctx)
        if isinstance(result, Response):
            return ctx, result
        ctx = result
    return ctx, None


# ---------------------------------------------------------------------------
# HTTP middleware
# ---------------------------------------------------------------------------


async def _submitted_csrf(request: Request) -> Optional[str]:
    """Read the CSRF token from the header, or from an urlencoded form body.

    request.body() is cached by Starlette, so the route handler can still
    parse the same form afterwards.
    """
    if request.method not in UNSAFE_METHODS:
        return None
    settings = get_settings()
    header = request.headers.get(settings.csrf_header_name)
    if header:
        return header
    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        body = await request.body()
        values = parse_qs(body.decode("utf-8", errors="replace")).get(settings.csrf_form_field)
        return values[0] if values else None
    return None


def apply_cookie_directives(response: Response, ctx: AuthContext) -> Response:
    """Clear or re-issue the session cookie as ctx asks, unless a handler already set one."""
    if not response_sets_session_cookie(response):
        if ctx.clear_cookie:
            clear_session_cookie(response)
        elif ctx.refresh_cookie and ctx.token:
            set_session_cookie(response, ctx.token)
    return response


async def auth_middleware(request: Request, call_next):
    """Resolve identity for every request and enforce CSRF before routing.

    Register with app.middleware("http")(auth_middleware).
    """
    raw_cookie = request.cookies.get(get_settings().session_cookie_name)
    token = decode_cookie_value(raw_cookie)
    ctx = AuthContext(token=token, clear_cookie=bool(raw_cookie) and token is None)
    if token:
        ctx = replace(ctx, submitted_csrf=await _submitted_csrf(request))

    try:
        ctx, short_circuit = await run_in_threadpool(run_pipeline, request, ctx)
    except AppError as exc:
        logger.error("Auth pipeline failed: %s", exc.code)
        return error_response(request, exc)
    if short_circuit is not None:
        return apply_cookie_directives(short_circuit, ctx)

    request.state.auth = ctx
    response = await call_next(request)
    return apply_cookie_directives(response, ctx)
