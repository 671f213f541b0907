"""Tests for main application routes."""
import pytest
from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_root() -> None:
    """Root answers with the app name."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "vhc-dms-import"
    assert data["status"] == "running"


def test_security_headers() -> None:
    response = client.get("/")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_health_ok(monkeypatch) -> None:
    """Test health endpoint when DB is available."""
    from app.api.routes import health

    monkeypatch.setattr(health, "check_db_connection", lambda: True)

    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["db"] == "ok"


def test_health_degraded(monkeypatch) -> None:
    """Test health endpoint when DB is unavailable."""
    from app.api.routes import health

    monkeypatch.setattr(health, "check_db_connection", lambda: False)

    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["detail"]["db"] == "error"


@pytest.mark.parametrize("path", ["/api/dms/import-runs", "/api/dms/settings/org-1", "/api/dms/scheduler"])
def test_dms_routes_registered(path) -> None:
    paths = app.openapi()["paths"]
    assert path.replace("org-1", "{organization_id}") in paths
