"""
tests/conftest.py -- Shared test fixtures for UpTrack unit and integration tests.

This module provides:
  - RecordingSink: a NotificationSink that keeps every code it is handed
  - FakeClock: a controllable clock for TokenIssuer expiry tests
  - account_store / project_store / manager: in-memory unit-test fixtures
  - api_client: TestClient wired to isolated stores via a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-test fixtures run on one thread, so plain :memory: is fine.

DEBUG must be set before any auth/core import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. BCRYPT_ROUNDS is lowered to keep the
suite fast; production keeps the default of 10.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.lifecycle import AccountManager
from auth.models import User
from auth.store import AccountStore
from auth.tokens import create_access_token, hash_password
from auth.verification import TokenIssuer
from notify.dispatch import NotificationDispatcher
from projects.store import ProjectStore

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class SentCode(NamedTuple):
    kind: str  # "confirmation" | "password_reset"
    email: str
    name: str
    token: str


class RecordingSink:
    """NotificationSink that records instead of sending. Set fail=True to make it raise."""

    def __init__(self) -> None:
        self.sent: list[SentCode] = []
        self.fail = False

    def send_confirmation(self, email: str, name: str, token: str) -> None:
        self._record("confirmation", email, name, token)

    def send_password_reset(self, email: str, name: str, token: str) -> None:
        self._record("password_reset", email, name, token)

    def _record(self, kind: str, email: str, name: str, token: str) -> None:
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append(SentCode(kind, email, name, token))

    def last(self, kind: str, email: str | None = None) -> str:
        """Return the most recent code of `kind` (optionally for `email`)."""
        for item in reversed(self.sent):
            if item.kind == kind and (email is None or item.email == email):
                return item.token
        raise AssertionError(f"no {kind} code recorded for {email!r}")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def project_store() -> Generator[ProjectStore, None, None]:
    store = ProjectStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(account_store: AccountStore, clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(account_store, ttl_seconds=600, clock=clock)


@pytest.fixture
def manager(account_store: AccountStore, issuer: TokenIssuer, sink: RecordingSink) -> AccountManager:
    """AccountManager with an inline dispatcher so sent codes are visible immediately."""
    return AccountManager(account_store, issuer, NotificationDispatcher(sink))


def _insert_user(store: AccountStore, email: str, password: str = "secret123", confirmed: bool = True) -> User:
    user = User(email=email, name=email.split("@")[0], hashed_password=hash_password(password), confirmed=confirmed)
    user.id = store.create_user(user)
    return user


@pytest.fixture
def make_user():
    """Factory: make_user(store, email, password="secret123", confirmed=True) -> User with ID set."""
    return _insert_user


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


class ApiHarness(NamedTuple):
    client: TestClient
    sink: RecordingSink
    account_store: AccountStore
    project_store: ProjectStore

    def login_headers(self, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def _patch_lifespan(account_store: AccountStore, project_store: ProjectStore, sink: RecordingSink):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores and an inline notification dispatcher into
    app.state. The purge_task is a long-sleeping coroutine so shutdown can
    cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.project_store = project_store
        app.state.notifier = NotificationDispatcher(sink)
        app.state.account_manager = AccountManager(account_store, TokenIssuer(account_store), app.state.notifier)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for HTTP integration tests.

    One TestClient per test module; each module gets its own named in-memory
    databases so modules never see each other's users or projects.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    account_store = AccountStore(f"sqlite:///file:test_accounts_{suffix}?mode=memory&cache=shared&uri=true")
    project_store = ProjectStore(f"sqlite:///file:test_projects_{suffix}?mode=memory&cache=shared&uri=true")
    sink = RecordingSink()

    app.router.lifespan_context = _patch_lifespan(account_store, project_store, sink)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client, sink, account_store, project_store)

    project_store.close()
    account_store.close()
