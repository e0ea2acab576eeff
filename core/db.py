"""
core/db.py -- Shared SQLAlchemy engine for every store.

One Database instance owns one Engine (and therefore one connection pool).
The auth and catalog stores receive the same instance, so a password change
and the matching session purge can run inside a single transaction.

SQLite vs. server databases:
  SQLite gets check_same_thread=False (route handlers run in a thread pool),
  a busy timeout equal to the query timeout, and per-connection PRAGMAs for
  WAL mode and foreign-key enforcement. PRAGMAs are not inherited by new
  pooled connections, hence the connect listener.

  Server databases get explicit pool sizing from settings (pool_size =
  min, max_overflow = max - min), pool_pre_ping, and pool_timeout. PostgreSQL
  additionally gets a server-side statement_timeout.

Failure translation:
  connect() and begin() convert driver connection/timeout failures into
  core.errors.StorageError. IntegrityError is left alone -- stores need it to
  detect unique-constraint collisions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from core.errors import StorageError

logger = logging.getLogger("webbase.db")


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement on a new SQLite connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine factory plus connection helpers with storage-error translation.

    Usage:
        db = Database("sqlite:///webbase.db")
        db.create_all(metadata)
        with db.begin() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(
        self,
        url: str,
        pool_min_size: int = 5,
        pool_max_size: int = 20,
        query_timeout: float = 8.0,
    ) -> None:
        self.url = url
        self.is_sqlite = url.startswith("sqlite")
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if self.is_sqlite:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = query_timeout
        else:
            engine_kwargs.update(
                pool_size=pool_min_size,
                max_overflow=max(pool_max_size - pool_min_size, 0),
                pool_timeout=query_timeout,
                pool_pre_ping=True,
            )
            if url.startswith("postgresql"):
                connect_args["options"] = f"-c statement_timeout={int(query_timeout * 1000)}"
        self.engine: Engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        if self.is_sqlite:
            event.listen(self.engine, "connect", _sqlite_pragmas)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
            query_timeout=settings.db_query_timeout_seconds,
        )

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a connection for reads or for writes the caller commits itself."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except (OperationalError, PoolTimeoutError) as exc:
            logger.error("Storage failure (%s)", exc.__class__.__name__)
            raise StorageError() from exc

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction: commit on success, rollback on error."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except (OperationalError, PoolTimeoutError) as exc:
            logger.error("Storage failure (%s)", exc.__class__.__name__)
            raise StorageError() from exc

    def create_all(self, metadata: MetaData) -> None:
        with self.begin() as conn:
            metadata.create_all(conn)

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Never raises."""
        try:
            with self.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except StorageError:
            return False

    def close(self) -> None:
        self.engine.dispose()
