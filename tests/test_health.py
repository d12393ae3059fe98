"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against a live store, 'error' when it fails
  - No session or authentication required
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(api):
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_reports_database_error(api):
    failure = OperationalError("SELECT count(*)", {}, Exception("unable to open database file"))
    with patch.object(api.users, "count_users", side_effect=failure):
        data = api.client.get("/api/v1/health").json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"


def test_health_does_not_start_a_session(api):
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert "set-cookie" not in resp.headers
