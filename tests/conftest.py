"""
tests/conftest.py -- Shared test fixtures for Snapp Auth.

This module provides:
  - TEST_SECRET / TEST_ROUNDS: fixed signing key and a cheap bcrypt cost
  - seeded_store: in-memory store with admin (admin123, [admin]) and
    alice (alice123, no roles)
  - service: AuthService over seeded_store
  - api_client: (client, store) -- TestClient on the real app with the
    lifespan patched to use seeded_store
  - login(): helper that posts to /auth/login and returns the token

The environment must be set before any app import: get_settings() is cached
on first call, and api/limiter.py reads RATE_LIMIT_ENABLED at import time.
Every test in the suite logs in from the same TestClient address, so the
login rate limit is switched off here.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

TEST_SECRET = "test-secret-key-for-snapp-auth-suite-0123456789"
TEST_ROUNDS = 4

# CRITICAL: set before any api/auth/core import.
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = TEST_SECRET
os.environ["BCRYPT_ROUNDS"] = str(TEST_ROUNDS)
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = ""
os.environ["USERS_FILE"] = ""

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role
from auth.service import AuthService
from auth.store import InMemoryUserStore
from auth.tokens import hash_password

# ---------------------------------------------------------------------------
# Store and service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded_store() -> InMemoryUserStore:
    store = InMemoryUserStore()
    store.create("admin", [Role.admin], hash_password("admin123", TEST_ROUNDS))
    store.create("alice", [], hash_password("alice123", TEST_ROUNDS))
    return store


@pytest.fixture
def service(seeded_store: InMemoryUserStore) -> AuthService:
    return AuthService(seeded_store, secret_key=TEST_SECRET, token_expire_seconds=60, bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: InMemoryUserStore):
    """Return a lifespan that wires the given store into app.state.

    Bypasses build_user_store() and seeding so each test sees exactly the
    users its fixture created.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.auth_service = AuthService(
            store,
            secret_key=TEST_SECRET,
            token_expire_seconds=60,
            bcrypt_rounds=TEST_ROUNDS,
        )
        yield

    return test_lifespan


@pytest.fixture
def api_client(seeded_store: InMemoryUserStore) -> Generator[tuple[TestClient, InMemoryUserStore], None, None]:
    """Yield (client, store) with a fresh seeded store per test.

    Function-scoped because most API tests mutate users or roles.
    """
    original = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(seeded_store)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, seeded_store
    app.router.lifespan_context = original


def login(client: TestClient, username: str, password: str) -> str:
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, f"login as {username} failed: {resp.status_code} {resp.text}"
    return resp.json()["token"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
