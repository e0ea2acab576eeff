"""
web/routes.py -- Jinja2 template routes for the webbase UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user, session, and catalog stores) but return HTML and
redirects instead of JSON.

Every form rendered here carries the session's CSRF token as a hidden
csrf_token field. The auth middleware checks it before the handler runs, so
handlers never compare tokens themselves.

Route registration order matters. POST /items/{item_id}/delete is registered
after GET/POST /items so "items" itself is never captured as a path param.

Routes:
  GET  /                        -- public home page
  GET  /landing                 -- post-login landing page (auth required)
  GET  /login                   -- login form
  POST /login                   -- handle password login (rate-limited)
  POST /logout                  -- destroy session, redirect /login
  GET  /profile                 -- account page (auth required)
  POST /profile                 -- change email
  POST /profile/password        -- change password (revokes other sessions)
  GET  /items                   -- item list + create form
  POST /items                   -- create item (auth required)
  POST /items/{item_id}/delete  -- delete item (auth required)
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth import service
from auth.dependencies import get_auth_context, try_get_current_user
from auth.tokens import clear_session_cookie, set_session_cookie
from catalog.models import Item
from catalog.store import CatalogStore
from core.errors import AppError, InvalidCredentialsError
from core.limiter import LOGIN_RATE_LIMIT, limiter

logger = logging.getLogger("webbase.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Exposed as Jinja2 globals so layout.html can render the nav and hidden CSRF
# fields without every handler passing them in explicitly.
templates.env.globals["try_get_current_user"] = try_get_current_user
templates.env.globals["csrf_token"] = lambda request: get_auth_context(request).csrf_token or ""
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid username or password.",
    "session_expired": "Your session has ended. Please log in again.",
    "password_changed": "Password changed. Please log in again.",
}

# Same idea for ?msg= on /profile.
_PROFILE_MESSAGES: dict[str, str] = {
    "email_updated": "Email address updated.",
    "password_updated": "Password changed. All other sessions were signed out.",
}

_DEFAULT_NEXT = "/landing"


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative URLs ("//evil.example"), and
    backslash variants some browsers normalize to "//".
    """
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return _DEFAULT_NEXT


def _require_auth(request: Request) -> Optional[RedirectResponse]:
    """Check if the current request is authenticated.

    Returns a RedirectResponse to /login if not authenticated, None if OK.
    Call at the top of protected route handlers:
        if redirect := _require_auth(request):
            return redirect
    """
    user = try_get_current_user(request)
    if user is None:
        return RedirectResponse(f"/login?next={quote(request.url.path)}", status_code=302)
    return None


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "index.html", {})


@router.get("/landing", response_class=HTMLResponse)
def landing(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    catalog: CatalogStore = request.app.state.catalog
    return templates.TemplateResponse(
        request,
        "landing.html",
        {
            "user": try_get_current_user(request),
            "categories": catalog.list_categories(visible_only=True),
            "item_count": len(catalog.list_items(active_only=True)),
        },
    )


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form. Already-authenticated users go straight to next."""
    next_url = _safe_next(request.query_params.get("next"))
    if try_get_current_user(request) is not None:
        return RedirectResponse(next_url, status_code=302)

    # Map ?error= query param through whitelist
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "next_url": next_url},
    )


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login_post(
    request: Request,
    identifier: str = Form(...),
    password: str = Form(...),
    next_param: Optional[str] = Form(default=None, alias="next"),
) -> RedirectResponse:
    """Handle username/password login form submission."""
    next_url = _safe_next(next_param or request.query_params.get("next"))
    try:
        result = service.login(
            request.app.state.user_store,
            request.app.state.session_store,
            identifier,
            password,
            previous_token=get_auth_context(request).token,
        )
    except InvalidCredentialsError:
        return RedirectResponse(f"/login?error=bad_credentials&next={quote(next_url)}", status_code=302)

    resp = RedirectResponse(next_url, status_code=302)
    set_session_cookie(resp, result.token, result.expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Destroy the session and clear the cookie. Idempotent."""
    service.logout(request.app.state.session_store, get_auth_context(request).token)
    resp = RedirectResponse("/login", status_code=302)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def _render_profile(request: Request, error: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "profile.html",
        {
            "user": try_get_current_user(request),
            "error": error,
            "message": _PROFILE_MESSAGES.get(request.query_params.get("msg", ""), None),
        },
        status_code=status_code,
    )


@router.get("/profile", response_class=HTMLResponse)
def profile(request: Request) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    resp = _render_profile(request)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/profile", response_class=HTMLResponse)
def profile_update(request: Request, email: str = Form(...)) -> HTMLResponse:
    """Change the current user's email. Re-renders the form on a duplicate or bad address."""
    if redirect := _require_auth(request):
        return redirect
    user = try_get_current_user(request)
    try:
        request.app.state.user_store.update_email(user.id, email)
    except AppError as exc:
        return _render_profile(request, error=exc.message, status_code=exc.status_code)
    return RedirectResponse("/profile?msg=email_updated", status_code=303)


@router.post("/profile/password", response_class=HTMLResponse)
def profile_password(
    request: Request,
    current_password: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(...),
) -> HTMLResponse:
    """Change the password. The caller keeps a fresh session; every other one is revoked."""
    if redirect := _require_auth(request):
        return redirect
    if new_password != confirm_password:
        return _render_profile(request, error="New passwords do not match.", status_code=400)
    try:
        result = service.change_password(
            request.app.state.user_store,
            request.app.state.session_store,
            try_get_current_user(request),
            current_password,
            new_password,
        )
    except AppError as exc:
        return _render_profile(request, error=exc.message, status_code=exc.status_code)

    resp = RedirectResponse("/profile?msg=password_updated", status_code=303)
    set_session_cookie(resp, result.token, result.expires_in)
    return resp


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def _render_items(
    request: Request,
    error: Optional[str] = None,
    form_data: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    catalog: CatalogStore = request.app.state.catalog
    return templates.TemplateResponse(
        request,
        "items.html",
        {
            "items": catalog.list_items(),
            "categories": catalog.list_categories(visible_only=True),
            "error": error,
            "form_data": form_data or {},
        },
        status_code=status_code,
    )


@router.get("/items", response_class=HTMLResponse)
def items_page(request: Request) -> HTMLResponse:
    """List every item. The create form is only rendered for signed-in users."""
    return _render_items(request)


@router.post("/items", response_class=HTMLResponse)
def item_create(
    request: Request,
    title: str = Form(default=""),
    description: Optional[str] = Form(default=None),
    category_id: int = Form(...),
) -> HTMLResponse:
    """Handle the item creation form. Redirects back to /items on success."""
    if redirect := _require_auth(request):
        return redirect
    form_data = {"title": title, "description": description or "", "category_id": category_id}
    title_clean = title.strip()
    if not title_clean:
        return _render_items(request, error="Title is required.", form_data=form_data, status_code=400)
    if len(title_clean) > 255:
        return _render_items(
            request, error="Title must be 255 characters or fewer.", form_data=form_data, status_code=400
        )

    catalog: CatalogStore = request.app.state.catalog
    try:
        item = catalog.create_item(
            Item(title=title_clean, description=(description or "").strip() or None, category_id=category_id)
        )
    except AppError as exc:
        return _render_items(request, error=exc.message, form_data=form_data, status_code=exc.status_code)
    logger.info("Item id=%d created via web UI", item.id)
    return RedirectResponse("/items", status_code=303)


@router.post("/items/{item_id}/delete")
def item_delete(request: Request, item_id: int) -> HTMLResponse:
    if redirect := _require_auth(request):
        return redirect
    catalog: CatalogStore = request.app.state.catalog
    try:
        catalog.delete_item(item_id)
    except AppError as exc:
        return _render_items(request, error=exc.message, status_code=exc.status_code)
    return RedirectResponse("/items", status_code=303)
