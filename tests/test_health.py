"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' when both stores answer
  - No authentication required
  - 503 and 'unavailable' when a store ping fails
"""

from __future__ import annotations

from unittest.mock import patch

from api.main import APP_VERSION


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == APP_VERSION
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/api/health", headers={})
    assert resp.status_code == 200


def test_health_reports_database_failure(api_client):
    """A failing store ping turns into 503 with database=unavailable, not a 500."""
    client, _, _ = api_client
    telemetry = client.app.state.telemetry
    with patch.object(telemetry, "ping", side_effect=RuntimeError("db down")):
        resp = client.get("/api/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "unhealthy"
    assert data["components"]["database"] == "unavailable"
