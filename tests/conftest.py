"""
tests/conftest.py -- Shared test fixtures for SensorHub unit and integration tests.

This module provides:
  - FakeClock: a settable clock injected into TokenIssuer and RevocationRegistry
  - accounts / telemetry: isolated in-memory stores, one pair per test
  - service: an AuthService wired to the stores and the fake clock
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin token and a user token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any auth/core import: get_settings()
is cached on first call, and auth/tokens.py reads it at import time.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: configure before importing anything that calls get_settings().
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-sensorhub-0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:test_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role
from auth.revocation import RevocationRegistry
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenIssuer, hash_password
from core.config import get_settings
from telemetry.store import TelemetryStore

START_TIME = 1_700_000_000.0
TTL = 86400

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "adminpass123"
USER_USERNAME = "testuser"
USER_PASSWORD = "userpass123"


class FakeClock:
    """Callable returning a controllable epoch-seconds value."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _memory_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, TelemetryStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so tests and test
                   modules never share state.
    """
    accounts = AccountStore(db_url=_memory_url(f"test_accounts_{db_suffix}"))
    telemetry = TelemetryStore(db_url=_memory_url(f"test_telemetry_{db_suffix}"))
    return accounts, telemetry


def _patch_lifespan(service: AuthService, telemetry: TelemetryStore):
    """Return an async context manager that replaces the real lifespan.

    The sweeper_task is a long-sleeping coroutine standing in for the real
    sweeper (a real asyncio.Task is required for .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.accounts = service.accounts
        app.state.telemetry = telemetry
        app.state.revocations = service.revocations
        app.state.auth_service = service
        app.state.sweeper_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweeper_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stores() -> Generator[tuple[AccountStore, TelemetryStore], None, None]:
    accounts, telemetry = _make_test_stores(uuid.uuid4().hex)
    yield accounts, telemetry
    accounts.close()
    telemetry.close()


@pytest.fixture
def accounts(stores) -> AccountStore:
    return stores[0]


@pytest.fixture
def telemetry(stores) -> TelemetryStore:
    return stores[1]


@pytest.fixture
def issuer(clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(get_settings().secret_key, ttl_seconds=TTL, clock=clock)


@pytest.fixture
def registry(clock: FakeClock) -> RevocationRegistry:
    return RevocationRegistry(clock=clock)


@pytest.fixture
def service(accounts, telemetry, issuer, registry) -> AuthService:
    return AuthService(accounts=accounts, tokens=issuer, revocations=registry, telemetry=telemetry)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, user_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. Tokens
    are signed with the real wall clock so they are valid for the run.
    """
    accounts, telemetry = _make_test_stores(f"api_{uuid.uuid4().hex}")
    service = AuthService(
        accounts=accounts,
        tokens=TokenIssuer(get_settings().secret_key, ttl_seconds=3600),
        revocations=RevocationRegistry(),
        telemetry=telemetry,
    )
    accounts.create_account(ADMIN_USERNAME, hash_password(ADMIN_PASSWORD), Role.ADMIN)
    accounts.create_account(USER_USERNAME, hash_password(USER_PASSWORD), Role.USER)
    admin_token = service.tokens.issue(ADMIN_USERNAME, Role.ADMIN)
    user_token = service.tokens.issue(USER_USERNAME, Role.USER)

    app.router.lifespan_context = _patch_lifespan(service, telemetry)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, admin_token, user_token

    accounts.close()
    telemetry.close()
