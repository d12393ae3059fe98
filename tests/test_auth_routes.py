"""
tests/test_auth_routes.py -- Integration tests for the /api/v1/auth endpoints.

These tests exercise the full stack: FastAPI routing -> session dependency ->
AuthService -> stores -> response serialization -> session cookie. The
TestClient keeps a cookie jar, so consecutive requests in one test behave like
one browser tab.

Coverage:
  - Session cookie attributes (name, HttpOnly, SameSite=lax, rolling Max-Age)
  - Anonymous traffic gets no cookie and stores no session row
  - register / login / me / logout happy paths and field errors (HTTP 200)
  - Scenarios: short username, duplicate registration, wrong password,
    unknown forgot-password email, full reset flow, token reuse
  - Malformed bodies -> 422 envelope; store outage -> 503 envelope

Fixture used (from conftest.py):
  - api: ApiHarness(client, mailer, users, sessions, tokens), fresh per test
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from core.config import get_settings

COOKIE = get_settings().session_cookie_name


def _register(client, username="alice", email="alice@x.com", password="secret"):
    return client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": email, "password": password},
    )


def _login(client, username_or_email="alice", password="secret"):
    return client.post("/api/v1/auth/login", json={"usernameOrEmail": username_or_email, "password": password})


def _me(client):
    return client.get("/api/v1/auth/me").json()["user"]


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def _session_rows(api) -> int:
    with api.sessions.engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM sessions")).scalar_one()


class TestSessionCookie:
    def test_anonymous_requests_store_nothing(self, api) -> None:
        """Cookie-less traffic gets no cookie and leaves the sessions table empty."""
        for _ in range(50):
            resp = api.client.get("/api/v1/auth/me")
            assert resp.status_code == 200
            assert resp.json() == {"user": None}
            assert _set_cookie_headers(resp) == []
        assert api.client.cookies.get(COOKIE) is None
        assert _session_rows(api) == 0

    def test_failed_login_stores_nothing(self, api) -> None:
        resp = _login(api.client, username_or_email="nobody")
        assert resp.json()["errors"] is not None
        assert _set_cookie_headers(resp) == []
        assert _session_rows(api) == 0

    def test_login_stores_one_session(self, api) -> None:
        _register(api.client)
        assert _session_rows(api) == 1
        _me(api.client)
        assert _session_rows(api) == 1

    def test_cookie_attributes(self, api) -> None:
        resp = _register(api.client)
        headers = [h for h in _set_cookie_headers(resp) if h.startswith(f"{COOKIE}=")]
        assert len(headers) == 1
        header = headers[0].lower()
        assert "httponly" in header
        assert "samesite=lax" in header
        assert f"max-age={get_settings().session_max_age_seconds}" in header
        assert resp.headers["cache-control"] == "no-store"

    def test_same_cookie_is_renewed(self, api) -> None:
        _register(api.client)
        first = api.client.cookies.get(COOKIE)
        resp = api.client.get("/api/v1/auth/me")
        assert any(h.startswith(f"{COOKIE}={first}") for h in _set_cookie_headers(resp))


class TestRegisterAndLogin:
    def test_register_logs_in(self, api) -> None:
        resp = _register(api.client)
        assert resp.status_code == 200
        body = resp.json()
        assert body["errors"] is None
        assert body["user"]["username"] == "alice"
        assert body["user"]["email"] == "alice@x.com"
        assert "createdAt" in body["user"] and "updatedAt" in body["user"]
        assert "hashedPassword" not in body["user"] and "hashed_password" not in body["user"]
        assert _me(api.client)["username"] == "alice"

    def test_short_username_is_field_error(self, api) -> None:
        resp = _register(api.client, username="ab", email="a@b.com", password="pw")
        assert resp.status_code == 200
        errors = resp.json()["errors"]
        assert errors[0] == {"field": "username", "message": "username is too short"}
        assert resp.json()["user"] is None
        assert api.users.count_users() == 0

    def test_password_past_bcrypt_window_is_field_error(self, api) -> None:
        resp = _register(api.client, password="x" * 72 + "one")
        assert resp.status_code == 200
        assert resp.json()["errors"] == [{"field": "password", "message": "password is too long"}]
        assert api.users.count_users() == 0

    def test_duplicate_registration(self, api) -> None:
        assert _register(api.client, email="a@b.com").json()["user"] is not None
        api.client.post("/api/v1/auth/logout")
        resp = _register(api.client, email="a@b.com")
        assert resp.json()["errors"] == [{"field": "username", "message": "username already taken"}]
        assert api.users.count_users() == 1
        assert _me(api.client) is None

    def test_login_wrong_password(self, api) -> None:
        _register(api.client)
        api.client.post("/api/v1/auth/logout")
        resp = _login(api.client, password="wrongpass")
        assert resp.status_code == 200
        assert resp.json()["errors"] == [{"field": "password", "message": "password not correct"}]
        assert _me(api.client) is None

    def test_login_unknown_user(self, api) -> None:
        resp = _login(api.client, username_or_email="nobody@x.com")
        assert resp.json()["errors"] == [{"field": "usernameOrEmail", "message": "user not found"}]

    def test_login_by_email(self, api) -> None:
        _register(api.client)
        api.client.post("/api/v1/auth/logout")
        resp = _login(api.client, username_or_email="alice@x.com")
        assert resp.json()["user"]["username"] == "alice"
        assert _me(api.client)["username"] == "alice"

    def test_missing_field_is_422_envelope(self, api) -> None:
        resp = api.client.post("/api/v1/auth/login", json={"password": "secret"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogout:
    def test_logout_clears_session(self, api) -> None:
        _register(api.client)
        session_id = api.client.cookies.get(COOKIE)
        resp = api.client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert api.sessions.load(session_id) is None
        cleared = [h for h in _set_cookie_headers(resp) if h.startswith(f"{COOKIE}=")]
        assert cleared and "max-age=0" in cleared[-1].lower()
        assert _me(api.client) is None

    def test_logout_twice(self, api) -> None:
        _register(api.client)
        assert api.client.post("/api/v1/auth/logout").json() == {"ok": True}
        assert api.client.post("/api/v1/auth/logout").json() == {"ok": True}

    def test_logout_reports_destroy_failure(self, api) -> None:
        _register(api.client)
        with patch.object(api.sessions, "destroy", return_value=False):
            resp = api.client.post("/api/v1/auth/logout")
        assert resp.json() == {"ok": False}
        assert any(h.startswith(f"{COOKIE}=") for h in _set_cookie_headers(resp))


class TestPasswordReset:
    def test_unknown_email(self, api) -> None:
        resp = api.client.post("/api/v1/auth/forgot-password", json={"email": "unknown@x.com"})
        assert resp.json() == {"ok": True}
        assert api.mailer.sent == []

    def test_full_reset_flow(self, api) -> None:
        _register(api.client)
        api.client.post("/api/v1/auth/logout")

        resp = api.client.post("/api/v1/auth/forgot-password", json={"email": "alice@x.com"})
        assert resp.json() == {"ok": True}
        assert _me(api.client) is None
        token = api.mailer.last_token()

        resp = api.client.post("/api/v1/auth/change-password", json={"token": token, "newPassword": "newsecret"})
        assert resp.json()["user"]["username"] == "alice"
        assert _me(api.client)["username"] == "alice"

        api.client.post("/api/v1/auth/logout")
        assert _login(api.client, password="newsecret").json()["user"]["username"] == "alice"
        api.client.post("/api/v1/auth/logout")
        assert _login(api.client, password="secret").json()["errors"] == [
            {"field": "password", "message": "password not correct"}
        ]

    def test_token_reuse(self, api) -> None:
        _register(api.client)
        api.client.post("/api/v1/auth/forgot-password", json={"email": "alice@x.com"})
        token = api.mailer.last_token()
        body = {"token": token, "newPassword": "newsecret"}
        assert api.client.post("/api/v1/auth/change-password", json=body).json()["user"] is not None
        resp = api.client.post("/api/v1/auth/change-password", json=body)
        assert resp.json()["errors"] == [{"field": "token", "message": "token expired"}]

    def test_short_new_password(self, api) -> None:
        resp = api.client.post("/api/v1/auth/change-password", json={"token": "whatever", "newPassword": "ab"})
        assert resp.json()["errors"] == [{"field": "newPassword", "message": "password is too short"}]

    def test_store_outage_is_503(self, api) -> None:
        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(api.tokens, "take", side_effect=failure):
            resp = api.client.post(
                "/api/v1/auth/change-password", json={"token": "whatever", "newPassword": "newsecret"}
            )
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "store_unavailable"
