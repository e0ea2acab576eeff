"""
tests/conftest.py -- Shared test fixtures for webbase integration tests.

This module provides:
  - make_db(): isolated named shared-memory SQLite Database per test module
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - FakeClock: a controllable clock for SessionStore expiry tests
  - api_env / api_client: stores + TestClient for JSON API tests
  - web_env / web_client: same, with follow_redirects=False for web route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any auth/core import:
  DEBUG=true            -- get_settings() auto-generates SECRET_KEY.
  ARGON2_*              -- cheap hash parameters so each login costs
                           milliseconds, not a quarter second.

The slowapi limiter keeps hit counts in process memory, so an autouse fixture
resets it before every test. Limits are the real defaults (LOGIN_RATE_LIMIT is
10/minute); no test comes near them except the ones that trip them on purpose.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set these before any auth/core import. Settings are cached on
# first use and the argon2 hasher is built at import time.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_PARALLELISM", "1")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.models import User
from auth.sessions import SessionStore
from auth.store import UserStore
from catalog.store import CatalogStore
from core.db import Database
from core.limiter import limiter

PASSWORD = "correct-horse-battery"

_db_counter = itertools.count()


def make_db(name: str) -> Database:
    """Return a Database on a fresh named in-memory SQLite instance.

    A counter suffix keeps repeated calls with the same name isolated.
    """
    url = f"sqlite:///file:test_{name}_{next(_db_counter)}?mode=memory&cache=shared&uri=true"
    return Database(url)


class FakeClock:
    """Callable clock for SessionStore(clock=...). Starts at a fixed epoch."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class AppEnv:
    db: Database
    user_store: UserStore
    session_store: SessionStore
    catalog: CatalogStore


def _make_env(name: str) -> AppEnv:
    db = make_db(name)
    user_store = UserStore(db)
    session_store = SessionStore(db)
    catalog = CatalogStore(db)
    catalog.seed_default_categories()
    return AppEnv(db=db, user_store=user_store, session_store=session_store, catalog=catalog)


def _patch_lifespan(env: AppEnv):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; a mock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = env.db
        app.state.user_store = env.user_store
        app.state.session_store = env.session_store
        app.state.catalog = env.catalog
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Generator[None, None, None]:
    limiter.reset()
    yield
    limiter.reset()


# ---------------------------------------------------------------------------
# Store-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db(request) -> Generator[Database, None, None]:
    database = make_db(request.node.name.replace("[", "_").replace("]", "_"))
    yield database
    database.close()


@pytest.fixture
def user_store(db: Database) -> UserStore:
    return UserStore(db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(db: Database, user_store: UserStore, clock: FakeClock) -> SessionStore:
    return SessionStore(db, clock=clock)


@pytest.fixture
def alice(user_store: UserStore) -> User:
    return user_store.create_user("alice", "alice@example.com", PASSWORD)


# ---------------------------------------------------------------------------
# HTTP fixtures -- stores are module-scoped, clients are per test so each
# test starts with an empty cookie jar.
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env() -> Generator[AppEnv, None, None]:
    env = _make_env("api")
    env.user_store.create_user("admin", "admin@example.com", PASSWORD)
    yield env
    env.db.close()


@pytest.fixture
def api_client(api_env: AppEnv) -> Generator[TestClient, None, None]:
    app.router.lifespan_context = _patch_lifespan(api_env)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(scope="module")
def web_env() -> Generator[AppEnv, None, None]:
    env = _make_env("web")
    env.user_store.create_user("webadmin", "webadmin@example.com", PASSWORD)
    yield env
    env.db.close()


@pytest.fixture
def web_client(web_env: AppEnv) -> Generator[TestClient, None, None]:
    """follow_redirects=False: tests assert on redirect Location headers."""
    app.router.lifespan_context = _patch_lifespan(web_env)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


def api_login(client: TestClient, identifier: str = "admin", password: str = PASSWORD) -> str:
    """Log in through the API and return the CSRF token. The cookie lands in the client jar."""
    resp = client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["csrf_token"]
