"""Tests for the /api/dms endpoints."""
from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.connectors.dms.client import get_booking_adapter
from app.core.auth import rate_limit_admin
from app.db.session import get_db
from app.main import app
from app.models import HealthCheck, ImportRun, OrganizationImportSettings, Site
from app.core.security import decrypt
from tests.conftest import FakeAdapter, make_booking, seed_org

ADMIN = {"X-Admin-Key": "test-admin-key"}


@pytest.fixture()
def adapter():
    return FakeAdapter([make_booking("B1"), make_booking("B2", status="Cancelled")])


@pytest.fixture()
def client(db_engine, adapter):
    Session = sessionmaker(bind=db_engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_booking_adapter] = lambda: adapter
    app.dependency_overrides[rate_limit_admin] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def org_headers(organization_id: str) -> dict:
    return {**ADMIN, "X-Organization-Id": organization_id}


class TestAuth:
    def test_missing_admin_key(self, client):
        resp = client.get("/api/dms/import-runs", headers={"X-Organization-Id": "org-1"})
        assert resp.status_code == 401

    def test_wrong_admin_key(self, client):
        resp = client.get("/api/dms/import-runs", headers={"X-Admin-Key": "nope", "X-Organization-Id": "org-1"})
        assert resp.status_code == 403

    def test_missing_organization(self, client):
        resp = client.get("/api/dms/import-runs", headers=ADMIN)
        assert resp.status_code == 400


class TestTriggerImport:
    def test_runs_import_and_returns_camel_case_result(self, client, db, org, adapter):
        resp = client.post(
            "/api/dms/import",
            json={"date": "2026-01-15"},
            headers=org_headers(org["organization_id"]),
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["bookingsFound"] == 2
        assert data["bookingsImported"] == 1
        assert data["bookingsSkipped"] == 1
        assert data["importId"]
        assert adapter.calls[0]["date"] == "2026-01-15"

    def test_selective_import(self, client, org, adapter):
        resp = client.post(
            "/api/dms/import",
            json={"date": "2026-01-15", "booking_ids": ["B2"]},
            headers=org_headers(org["organization_id"]),
        )
        data = resp.json()
        assert data["bookingsImported"] == 0
        assert data["bookingsSkipped"] == 2

    def test_bad_date_rejected(self, client, org):
        resp = client.post(
            "/api/dms/import",
            json={"date": "15-01-2026"},
            headers=org_headers(org["organization_id"]),
        )
        assert resp.status_code == 422

    def test_end_before_start_rejected(self, client, org):
        resp = client.post(
            "/api/dms/import",
            json={"date": "2026-01-15", "end_date": "2026-01-14"},
            headers=org_headers(org["organization_id"]),
        )
        assert resp.status_code == 422

    def test_site_must_belong_to_organization(self, client, db, org):
        foreign = Site(organization_id="org-other", name="Elsewhere")
        closed = Site(organization_id=org["organization_id"], name="Closed", is_active=False)
        db.add_all([foreign, closed])
        db.commit()
        headers = org_headers(org["organization_id"])

        for site_id in ("no-such-site", foreign.id, closed.id):
            resp = client.post("/api/dms/import", json={"date": "2026-01-15", "site_id": site_id}, headers=headers)
            assert resp.status_code == 400
        assert db.query(ImportRun).count() == 0

    def test_active_site_is_stamped_on_health_checks(self, client, db, org):
        site = Site(organization_id=org["organization_id"], name="Main workshop")
        db.add(site)
        db.commit()

        resp = client.post(
            "/api/dms/import",
            json={"date": "2026-01-15", "site_id": site.id},
            headers=org_headers(org["organization_id"]),
        )

        assert resp.json()["bookingsImported"] == 1
        assert db.query(HealthCheck).one().site_id == site.id

    def test_unconfigured_org_returns_failed_result(self, client):
        resp = client.post("/api/dms/import", json={"date": "2026-01-15"}, headers=org_headers("no-such-org"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["status"] == "failed"
        assert data["errors"][0]["bookingId"] == "system"


class TestImportRuns:
    def test_history_latest_and_detail(self, client, org):
        headers = org_headers(org["organization_id"])
        import_id = client.post("/api/dms/import", json={"date": "2026-01-15"}, headers=headers).json()["importId"]

        listing = client.get("/api/dms/import-runs", headers=headers).json()
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == import_id

        latest = client.get("/api/dms/import-runs/latest", headers=headers).json()
        assert latest["id"] == import_id
        assert latest["status"] == "completed"

        detail = client.get(f"/api/dms/import-runs/{import_id}", headers=headers).json()
        assert detail["bookings_imported"] == 1
        assert [hc["external_id"] for hc in detail["health_checks"]] == ["B1"]

    def test_runs_are_scoped_to_organization(self, client, org):
        import_id = client.post(
            "/api/dms/import", json={"date": "2026-01-15"}, headers=org_headers(org["organization_id"]),
        ).json()["importId"]

        other = org_headers("org-other")
        assert client.get(f"/api/dms/import-runs/{import_id}", headers=other).status_code == 404
        assert client.get("/api/dms/import-runs", headers=other).json()["total"] == 0
        assert client.get("/api/dms/import-runs/latest", headers=other).status_code == 404


class TestWatchdogEndpoint:
    def test_sweep(self, client, db):
        db.add(ImportRun(
            organization_id="org-1",
            import_date=date(2026, 1, 15),
            status="running",
            started_at=datetime.utcnow() - timedelta(hours=3),
        ))
        db.commit()

        resp = client.post("/api/dms/watchdog/sweep", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json() == {"swept": 1}


class TestSettingsEndpoints:
    def test_unknown_org_returns_defaults(self, client):
        data = client.get("/api/dms/settings/org-new", headers=ADMIN).json()
        assert data["configured"] is False
        assert data["import_schedule_hours"] == [6, 10, 14, 20]
        assert data["import_schedule_days"] == [1, 2, 3, 4, 5, 6]

    def test_put_encrypts_and_masks_credentials(self, client, db):
        resp = client.put(
            "/api/dms/settings/org-new",
            json={
                "enabled": True,
                "api_url": "https://dms.example.com",
                "username": "workshop-user",
                "password": "hunter2",
                "import_schedule_hours": [14, 6, 6],
            },
            headers=ADMIN,
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["configured"] is True
        assert data["credentials_configured"] is True
        assert data["username_masked"].endswith("user")
        assert "hunter2" not in resp.text
        assert data["import_schedule_hours"] == [6, 14]

        row = db.query(OrganizationImportSettings).filter_by(organization_id="org-new").one()
        assert row.password_encrypted != "hunter2"
        assert decrypt(row.password_encrypted) == "hunter2"

    def test_partial_update_keeps_credentials(self, client, db, org):
        before = org["settings"].password_encrypted
        resp = client.put(
            f"/api/dms/settings/{org['organization_id']}",
            json={"auto_import_enabled": True},
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.json()["auto_import_enabled"] is True
        db.refresh(org["settings"])
        assert org["settings"].password_encrypted == before

    def test_invalid_hours_rejected(self, client):
        resp = client.put("/api/dms/settings/org-new", json={"import_schedule_hours": [25]}, headers=ADMIN)
        assert resp.status_code == 422

    def test_template_from_other_org_rejected(self, client, db):
        other = seed_org(db)
        resp = client.put(
            "/api/dms/settings/org-new",
            json={"default_template_id": other["template_id"]},
            headers=ADMIN,
        )
        assert resp.status_code == 400


class TestSchedulerEndpoint:
    def test_scheduler_status(self, client):
        resp = client.get("/api/dms/scheduler", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["enabled"] is False


class TestConnectionEndpoint:
    def test_uses_saved_credentials(self, client, org, adapter):
        resp = client.post(f"/api/dms/settings/{org['organization_id']}/test-connection", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert adapter.tested[0].username == "dms-user"
        assert adapter.tested[0].password == "dms-pass"

    def test_uses_credentials_from_body(self, client, adapter):
        resp = client.post(
            "/api/dms/settings/org-new/test-connection",
            json={"api_url": "https://other.example.com", "username": "u2", "password": "p2"},
            headers=ADMIN,
        )

        assert resp.status_code == 200
        assert adapter.tested[0].api_url == "https://other.example.com"
        assert adapter.tested[0].username == "u2"

    def test_failure_is_reported_not_raised(self, client, org, adapter):
        adapter.success = False
        adapter.error = "Authentication failed - check username and password"

        resp = client.post(f"/api/dms/settings/{org['organization_id']}/test-connection", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json() == {"success": False, "message": "Authentication failed - check username and password"}

    def test_nothing_saved(self, client, adapter):
        resp = client.post("/api/dms/settings/org-new/test-connection", json={"username": "u2"}, headers=ADMIN)
        assert resp.status_code == 400
        assert adapter.tested == []


class TestPreviewEndpoint:
    def test_categorizes_without_writing(self, client, db, org, adapter):
        adapter.bookings.append(make_booking("B3", vehicle_reg=""))

        resp = client.get(f"/api/dms/settings/{org['organization_id']}/preview?date=2026-01-15", headers=ADMIN)

        assert resp.status_code == 200
        data = resp.json()
        assert data["total_bookings"] == 3
        assert [b["booking_id"] for b in data["will_import"]] == ["B1"]
        assert data["will_import"][0]["customer_name"] == "Jane Doe"
        reasons = {b["booking_id"]: b["reason"] for b in data["will_skip"]}
        assert reasons == {"B2": "Status: Cancelled", "B3": "No vehicle registration"}
        assert db.query(HealthCheck).count() == 0
        assert db.query(ImportRun).count() == 0

    def test_flags_already_imported(self, client, org):
        headers = org_headers(org["organization_id"])
        client.post("/api/dms/import", json={"date": "2026-01-15"}, headers=headers)

        data = client.get(f"/api/dms/settings/{org['organization_id']}/preview?date=2026-01-15", headers=ADMIN).json()

        assert data["will_import"] == []
        assert {b["booking_id"]: b["reason"] for b in data["will_skip"]}["B1"] == "Already imported"

    def test_unconfigured_org(self, client):
        assert client.get("/api/dms/settings/org-new/preview", headers=ADMIN).status_code == 400

    def test_dms_failure(self, client, org, adapter):
        adapter.success = False
        adapter.error = "DMS server error: 503"

        resp = client.get(f"/api/dms/settings/{org['organization_id']}/preview", headers=ADMIN)

        assert resp.status_code == 502
        assert resp.json()["detail"] == "DMS server error: 503"

    def test_bad_date(self, client, org):
        resp = client.get(f"/api/dms/settings/{org['organization_id']}/preview?date=15-01-2026", headers=ADMIN)
        assert resp.status_code == 422


class TestRemoveCredentialsEndpoint:
    def test_clears_credentials_and_disables(self, client, db):
        seeded = seed_org(db, auto_import_enabled=True)
        organization_id = seeded["organization_id"]

        resp = client.delete(f"/api/dms/settings/{organization_id}/credentials", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        row = seeded["settings"]
        db.refresh(row)
        assert row.username_encrypted is None
        assert row.password_encrypted is None
        assert row.enabled is False
        assert row.auto_import_enabled is False
        assert row.api_url == "https://dms.example.com"

        view = client.get(f"/api/dms/settings/{organization_id}", headers=ADMIN).json()
        assert view["credentials_configured"] is False
        assert view["configured"] is False

    def test_unknown_org(self, client):
        assert client.delete("/api/dms/settings/org-new/credentials", headers=ADMIN).status_code == 404
