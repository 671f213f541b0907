"""Tests for the health check materializer and template resolution."""
from datetime import date, datetime

import pytest

from app.models import CheckTemplate, Customer, HealthCheck, ImportRun, Vehicle
from app.services.dms.errors import ConfigurationError, DuplicateBookingError
from app.services.dms.materializer import (
    HealthCheckMaterializer,
    parse_promise_time,
    resolve_template_id,
)
from tests.conftest import make_booking

ORG = "org-1"
SOURCE = "gemini_osi"


@pytest.fixture()
def graph(db):
    """Customer, vehicle, template and run that a health check hangs off."""
    customer = Customer(organization_id=ORG, first_name="Jane", last_name="Doe")
    db.add(customer)
    db.flush()
    vehicle = Vehicle(organization_id=ORG, customer_id=customer.id, registration="AB12CDE")
    template = CheckTemplate(organization_id=ORG, name="Full VHC")
    run = ImportRun(organization_id=ORG, import_date=date(2026, 1, 15))
    db.add_all([vehicle, template, run])
    db.commit()
    return {"customer_id": customer.id, "vehicle_id": vehicle.id, "template_id": template.id, "run_id": run.id}


def create(db, graph, booking):
    return HealthCheckMaterializer(db, ORG, SOURCE).create(
        booking,
        customer_id=graph["customer_id"],
        vehicle_id=graph["vehicle_id"],
        template_id=graph["template_id"],
        import_batch_id=graph["run_id"],
    )


class TestPromiseTime:
    """Booking date + time to promise_time."""

    def test_hours_minutes(self):
        assert parse_promise_time("2026-01-15", "09:30") == datetime(2026, 1, 15, 9, 30)

    def test_with_seconds(self):
        assert parse_promise_time("2026-01-15", "09:30:15") == datetime(2026, 1, 15, 9, 30, 15)

    @pytest.mark.parametrize("day,clock", [
        ("2026-01-15", "half past nine"),
        ("15/01/2026", "09:30"),
        ("2026-01-15", ""),
        (None, "09:30"),
    ])
    def test_malformed_is_none(self, day, clock):
        assert parse_promise_time(day, clock) is None


class TestTemplateResolution:
    """Configured template, else oldest active, else ConfigurationError."""

    def test_configured_template_wins(self, db):
        assert resolve_template_id(db, ORG, "tpl-configured") == "tpl-configured"

    def test_oldest_active_template(self, db):
        db.add_all([
            CheckTemplate(id="tpl-new", organization_id=ORG, name="New", created_at=datetime(2026, 1, 2)),
            CheckTemplate(id="tpl-old", organization_id=ORG, name="Old", created_at=datetime(2026, 1, 1)),
            CheckTemplate(
                id="tpl-older-inactive", organization_id=ORG, name="Retired",
                is_active=False, created_at=datetime(2025, 1, 1),
            ),
        ])
        db.commit()
        assert resolve_template_id(db, ORG, None) == "tpl-old"

    def test_no_active_template_is_configuration_error(self, db):
        with pytest.raises(ConfigurationError) as exc:
            resolve_template_id(db, ORG, None)
        assert exc.value.run_fatal is True


class TestMaterializer:
    """Idempotent creation keyed by (organization, source, booking id)."""

    def test_creates_health_check_with_lineage(self, db, graph):
        booking = make_booking("B1", vehicle_mileage=42000, description="Brakes squeal")
        hc_id = create(db, graph, booking)

        hc = db.get(HealthCheck, hc_id)
        assert hc.status == "created"
        assert hc.external_id == "B1"
        assert hc.external_source == SOURCE
        assert hc.import_batch_id == graph["run_id"]
        assert hc.mileage_in == 42000
        assert hc.notes == "Brakes squeal"
        assert hc.promise_time == datetime(2026, 1, 15, 9, 30)

    def test_exists_after_create(self, db, graph):
        materializer = HealthCheckMaterializer(db, ORG, SOURCE)
        assert materializer.exists("B1") is False
        create(db, graph, make_booking("B1"))
        assert materializer.exists("B1") is True

    def test_exists_is_scoped_to_organization(self, db, graph):
        create(db, graph, make_booking("B1"))
        assert HealthCheckMaterializer(db, "org-2", SOURCE).exists("B1") is False

    def test_soft_deleted_does_not_count_as_existing(self, db, graph):
        hc_id = create(db, graph, make_booking("B1"))
        db.get(HealthCheck, hc_id).deleted_at = datetime(2026, 1, 16)
        db.commit()

        assert HealthCheckMaterializer(db, ORG, SOURCE).exists("B1") is False

    def test_duplicate_insert_is_duplicate_booking_error(self, db, graph):
        create(db, graph, make_booking("B1"))
        with pytest.raises(DuplicateBookingError):
            create(db, graph, make_booking("B1"))
        assert db.query(HealthCheck).count() == 1
