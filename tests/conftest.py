"""
tests/conftest.py -- Shared test fixtures for AuthWarden.

This module provides:
  - store / hasher / issuer / service: unit-level engine objects backed by a
    private in-memory SQLite database per test
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient over the real FastAPI app for integration tests

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment overrides must be set before any api/core import so that the
cached get_settings() sees them:
  DEBUG=true               auto-generate SECRET_KEY instead of raising
  BCRYPT_ROUNDS=4          minimum bcrypt cost keeps the suite fast
  LOGIN_RATE_LIMIT         high enough that the per-IP limiter never interferes
  ALLOWED_HOSTS            admits TestClient's "testserver" Host header
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set these before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_components
from auth.hasher import CredentialHasher
from auth.service import AuthService
from auth.store import SessionStore
from auth.tokens import TokenIssuer
from core.config import get_settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"


# ---------------------------------------------------------------------------
# Engine fixtures (function-scoped: fresh database per test)
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[SessionStore, None, None]:
    s = SessionStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def hasher() -> Generator[CredentialHasher, None, None]:
    h = CredentialHasher(digest_key=TEST_SECRET, rounds=4, max_workers=2)
    yield h
    h.close()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture
def service(store: SessionStore, hasher: CredentialHasher, issuer: TokenIssuer) -> AuthService:
    return AuthService(store, hasher, issuer, lockout_threshold=5, lockout_window_minutes=15)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(components):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test components into app.state so TestClient routes use
    an isolated in-memory database instead of the configured DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.components = components
        app.state.auth_service = components.service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app backed by a module-private database.

    Module-scoped for speed: tests register their own accounts with unique
    emails so they do not interfere with each other.
    """
    db_name = f"test_auth_{uuid.uuid4().hex[:8]}"
    test_store = SessionStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    components = build_components(get_settings(), store=test_store)

    app.router.lifespan_context = _patch_lifespan(components)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    components.close()
