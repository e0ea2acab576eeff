"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores do the work;
these only describe the shape.

User deliberately has no password hash field. The hash is read and written
only inside auth/store.py, so no route, template, or log call can reach it
through a User instance.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class User:
    """An account in the credential store.

    username and email are stored in their normalized form (see
    UserStore._normalize_username / _normalize_email), so equality checks
    against a stored User are exact.

    Timestamps are ISO 8601 strings in UTC, set by the store.
    """

    username: str
    email: str
    id: Optional[int] = None
    email_verified: bool = False
    is_active: bool = True
    last_login: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Session:
    """A server-side session record.

    The raw token is never stored -- only its SHA-256 digest (token_hash). The
    session references the user; it does not own it. expires_at and the other
    times are epoch seconds, which keeps expiry checks a single float compare.
    """

    token_hash: str
    user_id: int
    csrf_token: str
    expires_at: float
    created_at: float = 0.0
    last_seen_at: float = 0.0
    data: dict = field(default_factory=dict)
