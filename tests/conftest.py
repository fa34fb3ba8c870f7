"""
tests/conftest.py -- Shared test fixtures for the session auth tests.

This module provides:
  - make_sql_store(): isolated in-memory SQLAuthStore
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - sql_store / fake_store / service / gate: unit-level fixtures
  - api_client: TestClient over the real app with an isolated store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import: DEBUG keeps
the cookie-security warning quiet, and the minimum bcrypt cost keeps the
suite fast (auth.passwords hashes a dummy password at import).
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.gate import SessionGate
from auth.service import AuthService
from auth.store import SQLAuthStore
from fakes import InMemoryAuthStore

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_sql_store(db_suffix: str | None = None) -> SQLAuthStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests don't share
                   state. A random one is used when omitted.
    """
    suffix = db_suffix or uuid.uuid4().hex
    return SQLAuthStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store):
    """Return an async context manager that replaces the real lifespan.

    Builds the service and gate around the given store exactly like the real
    lifespan does, but skips the purge task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.auth_service = AuthService(store)
        app.state.gate = SessionGate(store)
        app.state.purge_task = None
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_store() -> Generator[SQLAuthStore, None, None]:
    store = make_sql_store()
    yield store
    store.close()


@pytest.fixture
def fake_store() -> InMemoryAuthStore:
    return InMemoryAuthStore()


@pytest.fixture
def service(fake_store: InMemoryAuthStore) -> AuthService:
    return AuthService(fake_store)


@pytest.fixture
def gate(fake_store: InMemoryAuthStore) -> SessionGate:
    return SessionGate(fake_store)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SQLAuthStore], None, None]:
    """Yield (client, store) for HTTP integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, the real gate dependency, and a real SQL store.
    Tests use distinct emails because the store lives for the whole module.
    """
    store = make_sql_store()
    app.router.lifespan_context = _patch_lifespan(store)

    # localhost is in the default ALLOWED_HOSTS; TestClient's own "testserver" is not.
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, store

    store.close()
