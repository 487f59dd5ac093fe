"""
tests/conftest.py -- Shared test fixtures for VRC CMS integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for auth + content
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - test_stores: (user_store, content_store, outbox) for one test module
  - api_client: TestClient with admin JWT for API integration tests
  - make_user: factory that inserts a user and returns (user_id, access token)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
test module gets its own names, so modules never see each other's rows.

Environment must be set before any api/auth/core import:
  DEBUG=true               -- auto-generated SECRET_KEY, MemoryOutbox delivery
  RATE_LIMIT_ENABLED=false -- logins from one module do not throttle another
  SELF_REGISTRATION_ENABLED=true -- /auth/register is open
  ALLOWED_HOSTS            -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Callable

# CRITICAL: Set these before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SELF_REGISTRATION_ENABLED", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost", "127.0.0.1"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.delivery import MemoryOutbox
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from content.store import ContentStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "Admin@12345"
USER_PASSWORD = "User@12345"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, ContentStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the module name is used).
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    content_url = f"sqlite:///file:test_content_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), ContentStore(db_url=content_url)


def _patch_lifespan(user_store: UserStore, content_store: ContentStore, outbox: MemoryOutbox):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database.

    The cleanup_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; a mock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.content_store = content_store
        app.state.reset_delivery = outbox
        app.state.auth_service = AuthService(user_store, outbox)
        app.state.cleanup_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.cleanup_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def test_stores(request) -> Generator[tuple[UserStore, ContentStore, MemoryOutbox], None, None]:
    """Yield (user_store, content_store, outbox) private to the requesting module."""
    suffix = request.module.__name__.replace(".", "_")
    user_store, content_store = _make_test_stores(suffix)
    outbox = MemoryOutbox()
    yield user_store, content_store, outbox
    user_store.close()
    content_store.close()


@pytest.fixture(scope="module")
def api_client(test_stores) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores.
    The admin user (testadmin / Admin@12345) is created before the client
    starts and a JWT is generated for use in Authorization headers.

    Never call logout-all or change-password with this token: both bump
    the admin's token_version and would invalidate it for the whole module.
    """
    user_store, content_store, outbox = test_stores

    admin = User(
        username=ADMIN_USERNAME,
        email="testadmin@example.com",
        hashed_password=hash_password(ADMIN_PASSWORD),
        role="admin",
    )
    uid = user_store.create_user(admin)

    token = create_access_token(user_id=uid, username=ADMIN_USERNAME, role="admin", expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, content_store, outbox)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid


@pytest.fixture(scope="module")
def make_user(test_stores) -> Callable[..., tuple[int, str]]:
    """Return a factory: make_user(username, role="customer") -> (user_id, token).

    The email is <username>@example.com and the password is USER_PASSWORD
    unless given. The token is a valid access token for the new user.
    """
    user_store = test_stores[0]

    def _make(
        username: str,
        role: str = "customer",
        password: str = USER_PASSWORD,
        is_active: bool = True,
    ) -> tuple[int, str]:
        user_id = user_store.create_user(
            User(
                username=username,
                email=f"{username}@example.com",
                hashed_password=hash_password(password),
                role=role,
                is_active=is_active,
            )
        )
        return user_id, create_access_token(user_id, username, role, expire_seconds=3600)

    return _make


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="session")
def auth_headers() -> Callable[[str], dict[str, str]]:
    """auth_headers(token) -> {"Authorization": "Bearer <token>"}."""
    return bearer
