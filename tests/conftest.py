"""
tests/conftest.py -- Shared test fixtures for UserHub integration tests.

This module provides:
  - stores: isolated named shared-memory SQLite UserStore + InvitationStore
  - mailer / http_client: MagicMock collaborators (no SMTP, no network)
  - client: TestClient over the real app with a patched lifespan
  - make_user: factory that inserts a user with a bcrypt-hashed password
  - auth_header: factory returning a Bearer header for a user id

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format shares one in-memory instance across all
connections in the same process; a uuid suffix keeps tests isolated.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("GITHUB_CLIENT_ID", "test-client-id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-client-secret")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import DEFAULT_ROLE, InvitationStore, UserStore
from auth.tokens import create_access_token, hash_password
from cache.store import ResponseCache
from core.http import HttpResult

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, InvitationStore], None, None]:
    """Yield (user_store, invitation_store) sharing one in-memory database."""
    db_url = f"sqlite:///file:test_userhub_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=db_url)
    invitation_store = InvitationStore(db_url=db_url)
    yield user_store, invitation_store
    invitation_store.close()
    user_store.close()


@pytest.fixture
def user_store(stores) -> UserStore:
    return stores[0]


@pytest.fixture
def invitation_store(stores) -> InvitationStore:
    return stores[1]


@pytest.fixture
def cache() -> Generator[ResponseCache, None, None]:
    c = ResponseCache(db_path=":memory:", ttl=3600)
    yield c
    c.close()


@pytest.fixture
def mailer() -> MagicMock:
    return MagicMock()


@pytest.fixture
def http_client() -> MagicMock:
    client = MagicMock()
    client.request.return_value = HttpResult(
        status_code=200,
        data="access_token=gho_testtoken123&scope=user%3Aemail&token_type=bearer",
    )
    return client


def _patch_lifespan(user_store, invitation_store, cache, mailer, http_client):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine; a real asyncio.Task is
    required because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.invitation_store = invitation_store
        app.state.cache = cache
        app.state.mailer = mailer
        app.state.http_client = http_client
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(stores, cache, mailer, http_client) -> Generator[TestClient, None, None]:
    """TestClient over the real app, wired to the test collaborators."""
    user_store, invitation_store = stores
    app.router.lifespan_context = _patch_lifespan(user_store, invitation_store, cache, mailer, http_client)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def lenient_client(stores, cache, mailer, http_client) -> Generator[TestClient, None, None]:
    """Like client, but returns the 500 response instead of re-raising server errors."""
    user_store, invitation_store = stores
    app.router.lifespan_context = _patch_lifespan(user_store, invitation_store, cache, mailer, http_client)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(user_store) -> Callable[..., User]:
    """Insert a user and return the stored record (password is the bcrypt hash)."""

    def _make(email: str, password: str = "secret-pw", active: bool = True, **extra) -> User:
        return user_store.save(
            {
                "email": email,
                "password": hash_password(password),
                "active": active,
                "role": DEFAULT_ROLE,
                **extra,
            }
        )

    return _make


@pytest.fixture
def auth_header() -> Callable[[int], dict[str, str]]:
    def _header(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _header


@pytest.fixture
def invite(client, mailer) -> Callable[[str], str]:
    """POST an invitation for email and return the hash that was mailed."""

    def _invite(email: str) -> str:
        resp = client.post("/api/v1/auth/invite", json={"email": email})
        assert resp.status_code == 204, resp.text
        sent_email, sent_hash = mailer.send_user_invitation.call_args.args
        assert sent_email == email
        return sent_hash

    return _invite
