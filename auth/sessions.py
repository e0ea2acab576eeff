"""
auth/sessions.py -- Server-side session store.

Security design:
  Tokens come from secrets.token_urlsafe(32): 256 bits of entropy, URL-safe
  base64, safe in a cookie. The database keeps only SHA-256(token) as the
  primary key, so a read-only leak of the sessions table does not hand out
  live sessions. A plain hash (no key) is enough: the input is already
  high-entropy, which is the same reasoning that rules out a slow hash here.

  Each session carries its own CSRF token, generated the same way and
  compared by auth/middleware.py.

Expiry:
  expires_at is checked on every get()/resolve(). Expired rows are deleted
  lazily when touched; purge_expired() is the periodic sweep run from the app
  lifespan and the CLI. A missed sweep only costs disk space.

Concurrency:
  Every method is one statement (or one transaction). extend() is a single
  UPDATE, so two tabs refreshing the same token race harmlessly: last write
  wins and both writes carry a valid expiry.

The clock is injectable so tests can move time forward without sleeping.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
import time
from collections.abc import Callable
from typing import Optional

from sqlalchemy import select

from auth.models import Session
from auth.store import metadata, sessions
from core.db import Database

logger = logging.getLogger("webbase.auth.sessions")


def hash_token(token: str) -> str:
    """Return the storage key for a raw session token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _row_to_session(row) -> Session:
    return Session(
        token_hash=row.token_hash,
        user_id=row.user_id,
        csrf_token=row.csrf_token,
        expires_at=row.expires_at,
        created_at=row.created_at,
        last_seen_at=row.last_seen_at,
        data=json.loads(row.data) if row.data else {},
    )


class SessionStore:
    """Repository for Session records.

    Usage:
        store = SessionStore(db)
        token = store.create_session(user_id=1, ttl=3600)
        store.resolve(token)          # -> 1
        store.destroy(token)
        store.resolve(token)          # -> None
    """

    def __init__(self, db: Database, clock: Callable[[], float] = time.time) -> None:
        self.db = db
        self.clock = clock
        db.create_all(metadata)

    def create_session(self, user_id: int, ttl: int, data: Optional[dict] = None) -> str:
        """Create a session for user_id that expires ttl seconds from now. Returns the raw token."""
        token = secrets.token_urlsafe(32)
        now = self.clock()
        with self.db.begin() as conn:
            conn.execute(
                sessions.insert().values(
                    token_hash=hash_token(token),
                    user_id=user_id,
                    csrf_token=secrets.token_urlsafe(32),
                    data=json.dumps(data) if data else None,
                    created_at=now,
                    last_seen_at=now,
                    expires_at=now + ttl,
                )
            )
        logger.debug("Session created for user id=%d", user_id)
        return token

    def get(self, token: str) -> Session | None:
        """Return the live session for token, or None if absent or expired."""
        if not token:
            return None
        key = hash_token(token)
        with self.db.connect() as conn:
            row = conn.execute(sessions.select().where(sessions.c.token_hash == key)).fetchone()
        if row is None:
            return None
        if row.expires_at <= self.clock():
            self._delete(key)
            return None
        return _row_to_session(row)

    def resolve(self, token: str) -> int | None:
        """Return the user id owning token, or None if absent or expired."""
        session = self.get(token)
        return session.user_id if session is not None else None

    def extend(self, token: str, ttl: int) -> bool:
        """Push expiry to now + ttl. Returns False if the session is gone or already expired."""
        now = self.clock()
        with self.db.begin() as conn:
            result = conn.execute(
                sessions.update()
                .where(sessions.c.token_hash == hash_token(token))
                .where(sessions.c.expires_at > now)
                .values(expires_at=now + ttl, last_seen_at=now)
            )
        return result.rowcount > 0

    def destroy(self, token: str) -> None:
        """Delete the session. Destroying an unknown or already-deleted token is not an error."""
        if token:
            self._delete(hash_token(token))

    def destroy_all_for_user(self, user_id: int) -> int:
        with self.db.begin() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.user_id == user_id))
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        """Number of unexpired sessions held by user_id."""
        with self.db.connect() as conn:
            rows = conn.execute(
                select(sessions.c.token_hash)
                .where(sessions.c.user_id == user_id)
                .where(sessions.c.expires_at > self.clock())
            ).fetchall()
        return len(rows)

    def purge_expired(self) -> int:
        """Delete every expired session. Returns the number of rows removed."""
        with self.db.begin() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.expires_at <= self.clock()))
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount

    def _delete(self, key: str) -> None:
        with self.db.begin() as conn:
            conn.execute(sessions.delete().where(sessions.c.token_hash == key))
