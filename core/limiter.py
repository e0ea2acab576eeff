"""
core/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by the login routes in
api/routes/v1/auth.py and web/routes.py (per-route limits with
@limiter.limit(LOGIN_RATE_LIMIT)).

One shared instance means every route counts against the same in-memory
store. Separate instances per module would never trigger. It lives in core/
so api/ and web/ can both use it without importing each other.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

LOGIN_RATE_LIMIT = get_settings().login_rate_limit

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
