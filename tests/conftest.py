"""
tests/conftest.py -- Shared test fixtures for Beer Diary.

This module provides:
  - FakeClock: a settable clock for SessionManager expiry tests
  - engine / user_store / sessions / diary: unit-test stores on in-memory SQLite
  - _make_test_engine() / _patch_lifespan(): wire isolated stores into app.state
  - web_client: TestClient with follow_redirects=False for web route tests

Design: the web_client engine uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the process. Each test gets its own name, so state never
leaks between tests.

DEBUG, BCRYPT_ROUNDS and LOGIN_RATE_LIMIT must be set before any app import:
get_settings() is read at module load by auth.passwords, api.main and
web.routes. Rate-limit counters live in the shared limiter's memory storage,
so web_client resets them; no test may POST /login or /register more than
five times.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "5/minute")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from asgi import app
from auth.sessions import SessionManager
from auth.store import UserStore
from core.database import create_db_engine
from diary.store import DiaryStore

TEST_TTL = 3600


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(engine: Engine, clock: FakeClock) -> SessionManager:
    return SessionManager(engine, ttl_seconds=TEST_TTL, clock=clock)


@pytest.fixture
def diary(engine: Engine) -> DiaryStore:
    return DiaryStore(engine)


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------


def _make_test_engine(db_suffix: str) -> Engine:
    """Create an isolated named shared-memory SQLite engine."""
    return create_db_engine(f"sqlite:///file:beerdiary_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires stores built on the test engine into app.state so TestClient routes
    never touch the configured DATABASE_URL. The purge_task is a long-sleeping
    coroutine (a real asyncio.Task is required for .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = UserStore(engine)
        app.state.sessions = SessionManager(engine, ttl_seconds=TEST_TTL)
        app.state.diary = DiaryStore(engine)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def web_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with isolated stores.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows the redirect.
    """
    limiter.reset()
    engine = _make_test_engine(uuid.uuid4().hex)
    app.router.lifespan_context = _patch_lifespan(engine)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client

    engine.dispose()
