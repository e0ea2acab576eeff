"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Both auth tables (users, sessions) live in one MetaData here. SessionStore in
auth/sessions.py imports the sessions table from this module; UserStore
touches it only to revoke sessions in the same transaction as a password
change or a deactivation, so a crash between the two steps cannot leave old
sessions alive.

Security:
  All queries use bound parameters. No f-strings in SQL.

  password_hash never leaves this module. check_password() verifies inside
  the store and returns a User (which has no hash field) or None. The store
  only accepts plaintext and hashes it itself -- there is no API that takes a
  pre-hashed value.

  Uniqueness of username and email is enforced by UNIQUE constraints. On an
  IntegrityError the store re-queries to find which column collided and raises
  DuplicateUsernameError or DuplicateEmailError.

Normalization:
  Email is always folded to lower case. Username is folded to lower case
  unless username_case_sensitive=True. Either way the policy is applied at
  creation and on every lookup, so stored values are already canonical.
  Usernames may not contain "@", which keeps find_by_username_or_email()
  unambiguous.

Layer rule: no imports from api/, web/, or catalog/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.passwords import DUMMY_HASH, hash_password, needs_rehash, verify_password
from core.db import Database
from core.errors import (
    DuplicateEmailError,
    DuplicateError,
    DuplicateUsernameError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger("webbase.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_login", String(32)),  # ISO 8601, NULL until first login
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("token_hash", String(64), primary_key=True),  # SHA-256 hex of the raw token
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("csrf_token", String(64), nullable=False),
    Column("data", Text),  # small JSON payload
    Column("created_at", Float, nullable=False),
    Column("last_seen_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        email_verified=bool(row.email_verified),
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# Every column except password_hash. Public lookups select only these.
_USER_COLUMNS = [c for c in users.c if c.name != "password_hash"]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(db)
        user = store.create_user("alice", "alice@example.com", "Secret123!")
        store.check_password("alice", "Secret123!")   # -> User
        store.set_password(user.id, "N3w-secret!")    # revokes all sessions
    """

    def __init__(self, db: Database, username_case_sensitive: bool = False) -> None:
        self.db = db
        self.username_case_sensitive = username_case_sensitive
        db.create_all(metadata)

    def _normalize_username(self, username: str) -> str:
        username = (username or "").strip()
        return username if self.username_case_sensitive else username.lower()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_user(self, username: str, email: str, password: str) -> User:
        """Hash the password and insert a new active user.

        Raises ValidationError for a blank username, a username containing
        "@", or an email without "@". Raises DuplicateUsernameError or
        DuplicateEmailError if either value is already taken.
        """
        username = self._normalize_username(username)
        email = _normalize_email(email)
        if not username:
            raise ValidationError("Username is required.")
        if "@" in username:
            raise ValidationError("Username must not contain '@'.")
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("A valid email address is required.")

        password_hash = hash_password(password)
        now = _now_iso()
        try:
            with self.db.begin() as conn:
                result = conn.execute(
                    users.insert().values(
                        username=username,
                        email=email,
                        password_hash=password_hash,
                        email_verified=False,
                        is_active=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise self._duplicate_error(username, email) from exc

        logger.info("Created user id=%d username=%s", user_id, username)
        return self.get_by_id(user_id)

    def _duplicate_error(self, username: str, email: str) -> DuplicateError:
        """Work out which unique column an IntegrityError came from."""
        if self.get_by_username(username) is not None:
            return DuplicateUsernameError()
        if self.get_by_email(email) is not None:
            return DuplicateEmailError()
        return DuplicateError()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.db.connect() as conn:
            count = conn.execute(select(func.count()).select_from(users)).scalar()
        return (count or 0) > 0

    def get_by_id(self, user_id: int) -> User | None:
        with self.db.connect() as conn:
            row = conn.execute(select(*_USER_COLUMNS).where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        with self.db.connect() as conn:
            row = conn.execute(
                select(*_USER_COLUMNS).where(users.c.username == self._normalize_username(username))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.db.connect() as conn:
            row = conn.execute(select(*_USER_COLUMNS).where(users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_username_or_email(self, identifier: str) -> User | None:
        """Look up by email when the identifier contains "@", by username otherwise."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        if "@" in identifier:
            return self.get_by_email(identifier)
        return self.get_by_username(identifier)

    def list_users(self) -> list[User]:
        with self.db.connect() as conn:
            rows = conn.execute(select(*_USER_COLUMNS).order_by(users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def check_password(self, identifier: str, plain: str) -> User | None:
        """Return the matching User if the password is correct, else None.

        Runs argon2 exactly once whether or not the identifier exists. Does
        not look at is_active -- that is the caller's policy decision.
        Upgrades the stored hash in place when cost parameters have changed.
        """
        identifier = (identifier or "").strip()
        if "@" in identifier:
            where = users.c.email == _normalize_email(identifier)
        else:
            where = users.c.username == self._normalize_username(identifier)

        row = None
        if identifier:
            with self.db.connect() as conn:
                row = conn.execute(users.select().where(where)).fetchone()

        if row is None:
            verify_password(plain, DUMMY_HASH)
            return None
        if not verify_password(plain, row.password_hash):
            return None
        if needs_rehash(row.password_hash):
            self._write_password(row.id, plain, revoke_sessions=False)
            logger.info("Upgraded password hash parameters for user id=%d", row.id)
        return _row_to_user(row)

    def set_password(self, user_id: int, new_plain: str, revoke_sessions: bool = True) -> None:
        """Re-hash and store a new password.

        With revoke_sessions=True (the default) every session of the user is
        deleted in the same transaction. Raises NotFoundError for an unknown id.
        """
        self._write_password(user_id, new_plain, revoke_sessions=revoke_sessions)
        logger.info("Password changed for user id=%d (sessions revoked=%s)", user_id, revoke_sessions)

    def _write_password(self, user_id: int, plain: str, revoke_sessions: bool) -> None:
        password_hash = hash_password(plain)
        with self.db.begin() as conn:
            result = conn.execute(
                users.update().where(users.c.id == user_id).values(password_hash=password_hash, updated_at=_now_iso())
            )
            if result.rowcount == 0:
                raise NotFoundError("User not found.")
            if revoke_sessions:
                conn.execute(sessions.delete().where(sessions.c.user_id == user_id))

    # ------------------------------------------------------------------
    # Profile and lifecycle
    # ------------------------------------------------------------------

    def touch_last_login(self, user_id: int) -> None:
        now = _now_iso()
        with self.db.begin() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login=now, updated_at=now))

    def update_email(self, user_id: int, email: str) -> User:
        """Change the email address. A new address starts unverified.

        Submitting the current address again is a no-op and keeps email_verified.
        """
        email = _normalize_email(email)
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("A valid email address is required.")
        current = self.get_by_id(user_id)
        if current is None:
            raise NotFoundError("User not found.")
        if current.email == email:
            return current
        try:
            with self.db.begin() as conn:
                result = conn.execute(
                    users.update()
                    .where(users.c.id == user_id)
                    .values(email=email, email_verified=False, updated_at=_now_iso())
                )
                if result.rowcount == 0:
                    raise NotFoundError("User not found.")
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        return self.get_by_id(user_id)

    def set_active(self, user_id: int, active: bool) -> None:
        """Soft-(de)activate a user. Deactivation also deletes their sessions."""
        with self.db.begin() as conn:
            result = conn.execute(
                users.update().where(users.c.id == user_id).values(is_active=active, updated_at=_now_iso())
            )
            if result.rowcount == 0:
                raise NotFoundError("User not found.")
            if not active:
                conn.execute(sessions.delete().where(sessions.c.user_id == user_id))
        logger.info("User id=%d is_active=%s", user_id, active)
