"""
tests/conftest.py -- Shared test fixtures for Storefront tests.

This module provides:
  - settings / user_store / registry / authority: identity components on a
    private in-memory DB per test
  - catalog_engine / categories / products: catalog components on a private
    in-memory DB per test
  - failing_writes: makes a component's write transactions raise OperationalError
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient with an admin JWT for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment variables must be set before any api/ import: api/main.py reads
the settings at import time and refuses to load without SECRET_KEY.
"""

from __future__ import annotations

import os
import sqlite3
import tempfile
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/ or core/ import.
os.environ.setdefault("SECRET_KEY", "storefront-test-signing-key-0123456789abcdef")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["localhost", "127.0.0.1", "testserver"]')
os.environ.setdefault("PRODUCT_IMAGES_DIR", tempfile.mkdtemp(prefix="storefront_images_"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.main import app
from auth.models import User
from auth.registry import UserRegistry
from auth.store import UserStore
from auth.tokens import TokenAuthority, hash_password
from catalog.categories import CategoryDirectory
from catalog.products import ProductLedger
from catalog.store import create_catalog_engine
from core.config import Settings, get_settings

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "Adm1n!pass"

# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def registry(user_store: UserStore, settings: Settings) -> UserRegistry:
    return UserRegistry(user_store, settings)


@pytest.fixture
def authority(settings: Settings) -> TokenAuthority:
    return TokenAuthority(settings)


@pytest.fixture
def catalog_engine():
    engine = create_catalog_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def categories(catalog_engine) -> CategoryDirectory:
    return CategoryDirectory(catalog_engine)


@pytest.fixture
def products(catalog_engine, categories: CategoryDirectory) -> ProductLedger:
    return ProductLedger(catalog_engine, categories)


class _WriteFailingEngine:
    """Engine stand-in whose reads work and whose write transactions fail like a full disk."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def connect(self):
        return self._engine.connect()

    def begin(self):
        raise OperationalError("BEGIN", {}, Exception("disk I/O error"))


@pytest.fixture
def failing_writes(monkeypatch):
    """Return a callable that makes a component's write transactions fail until teardown."""

    def _break(component) -> None:
        monkeypatch.setattr(component, "engine", _WriteFailingEngine(component.engine))

    return _break


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, catalog_engine):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    isolated test DBs rather than the files configured in Settings.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        test_settings = get_settings()
        app.state.settings = test_settings
        app.state.user_store = user_store
        app.state.token_authority = TokenAuthority(test_settings)
        app.state.user_registry = UserRegistry(user_store, test_settings)
        app.state.catalog_engine = catalog_engine
        app.state.categories = CategoryDirectory(catalog_engine)
        app.state.products = ProductLedger(catalog_engine, app.state.categories)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    Each test module gets its own pair of named in-memory databases. The admin
    user is created before the client starts and holds the configured admin
    role, so the token passes require_admin().
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    auth_name = f"file:auth_{suffix}?mode=memory&cache=shared"
    catalog_name = f"file:catalog_{suffix}?mode=memory&cache=shared"
    # A shared-memory DB is dropped when its last connection closes. The pool
    # may recycle its per-thread connections, so hold one open for the module.
    keepalive = [sqlite3.connect(auth_name, uri=True), sqlite3.connect(catalog_name, uri=True)]
    user_store = UserStore(f"sqlite:///{auth_name}&uri=true")
    catalog_engine = create_catalog_engine(f"sqlite:///{catalog_name}&uri=true")

    test_settings = get_settings()
    uid = user_store.create_user(User(username=ADMIN_USERNAME, hashed_password=hash_password(ADMIN_PASSWORD)))
    user_store.create_role(test_settings.admin_role)
    user_store.assign_role(uid, test_settings.admin_role)
    token = TokenAuthority(test_settings).create_access_token(uid, ADMIN_USERNAME, test_settings.admin_role)

    app.router.lifespan_context = _patch_lifespan(user_store, catalog_engine)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
    catalog_engine.dispose()
    for conn in keepalive:
        conn.close()


@pytest.fixture
def auth_headers(api_client) -> dict[str, str]:
    _client, token, _uid = api_client
    return {"Authorization": f"Bearer {token}"}
