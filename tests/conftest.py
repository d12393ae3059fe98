"""
tests/conftest.py -- Shared test fixtures for Threadline auth tests.

This module provides:
  - store fixtures: UserStore / SessionStore / SQLTokenStore on private
    in-memory SQLite databases (unit tests run on one thread)
  - RecordingMailer: a Mailer that keeps what it was asked to send
  - service / ctx: an AuthService wired to those stores, plus a fresh session
  - api: a TestClient whose lifespan is patched to use isolated stores

Design: the API fixture uses named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any api/auth/core import: DEBUG=true keeps
cookies non-Secure so the TestClient (plain http) sends them back,
ALLOWED_HOSTS admits the TestClient's "testserver" host, and the rate limits
are raised so scenario tests are not throttled.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("FORGOT_PASSWORD_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import RequestContext
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import SQLTokenStore

_LINK_RE = re.compile(r"/change-password/([A-Za-z0-9_\-]+)")


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


@dataclass
class RecordingMailer:
    """Mailer double. Set fail=True to make send() raise like a dead SMTP server."""

    sent: list[tuple[str, str]] = field(default_factory=list)
    fail: bool = False

    def send(self, to_address: str, html_body: str) -> None:
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append((to_address, html_body))

    def last_token(self) -> str:
        """Pull the reset token out of the most recent reset link."""
        _to, body = self.sent[-1]
        match = _LINK_RE.search(body)
        assert match, f"no reset link in mail body: {body!r}"
        return match.group(1)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def users() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def sessions() -> Generator[SessionStore, None, None]:
    store = SessionStore("sqlite:///:memory:", max_age=3600)
    yield store
    store.close()


@pytest.fixture
def tokens() -> Generator[SQLTokenStore, None, None]:
    store = SQLTokenStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def service(users, tokens, sessions, mailer) -> AuthService:
    return AuthService(
        users=users,
        tokens=tokens,
        sessions=sessions,
        mailer=mailer,
        frontend_url="http://localhost:3000",
        reset_token_ttl=3600,
    )


@pytest.fixture
def ctx(sessions) -> RequestContext:
    """A fresh anonymous session, as the API dependency would hand out."""
    return RequestContext(session=sessions.create())


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    mailer: RecordingMailer
    users: UserStore
    sessions: SessionStore
    tokens: SQLTokenStore


def _shared_memory_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(users: UserStore, sessions: SessionStore, tokens: SQLTokenStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine because shutdown calls
    .cancel() on a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = users
        app.state.session_store = sessions
        app.state.token_store = tokens
        app.state.auth_service = AuthService(
            users=users,
            tokens=tokens,
            sessions=sessions,
            mailer=mailer,
            frontend_url="http://localhost:3000",
            reset_token_ttl=3600,
        )
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness with a TestClient over isolated shared-memory stores.

    Function-scoped: every test starts with an empty directory and an empty
    cookie jar.
    """
    users = UserStore(_shared_memory_url("users"))
    sessions = SessionStore(_shared_memory_url("sessions"))
    tokens = SQLTokenStore(_shared_memory_url("tokens"))
    mailer = RecordingMailer()

    app.router.lifespan_context = _patch_lifespan(users, sessions, tokens, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, mailer=mailer, users=users, sessions=sessions, tokens=tokens)

    tokens.close()
    sessions.close()
    users.close()
