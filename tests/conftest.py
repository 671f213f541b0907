"""Pytest configuration and shared fixtures.

Set DATABASE_URL before any app module imports to use SQLite for tests.
Provides reusable fixtures: db session, booking factory, org seeding, fake adapter.
"""
import base64
import os
import uuid
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Force SQLite before any app import
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///./test.db"
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ENCRYPTION_KEY", base64.urlsafe_b64encode(b"k" * 32).decode())
os.environ["SCHEDULER_ENABLED"] = "false"

from app.connectors.dms.booking import BookingFetchResult, ConnectionTestResult, DmsCredentials, ExternalBooking
from app.core.security import encrypt
from app.models import Base, CheckTemplate, OrganizationImportSettings


# ── Database fixtures ────────────────────────────────────────────────

@pytest.fixture()
def db_engine():
    """In-memory SQLite engine with all tables, shared across threads (TestClient)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(db_engine):
    """SQLAlchemy session bound to in-memory SQLite."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()


# ── Factories ────────────────────────────────────────────────────────

def make_booking(booking_id: Optional[str] = None, **kwargs) -> ExternalBooking:
    """Factory for ExternalBooking with a confirmed status and a full identity."""
    uid = uuid.uuid4().hex[:6].upper()
    defaults = {
        "booking_id": booking_id or f"B-{uid}",
        "status": "confirmed",
        "booking_date": "2026-01-15",
        "booking_time": "09:30",
        "description": "Annual service",
        "service_type": "service",
        "customer_id": f"C-{uid}",
        "customer_first_name": "Jane",
        "customer_last_name": "Doe",
        "customer_email": f"jane.{uid.lower()}@example.com",
        "customer_mobile": f"07700 {int(uid, 16) % 1000000:06d}",
        "vehicle_id": f"V-{uid}",
        "vehicle_reg": f"AB{uid} CDE",
        "vehicle_make": "Ford",
        "vehicle_model": "Focus",
    }
    defaults.update(kwargs)
    return ExternalBooking(**defaults)


def seed_org(
    db,
    organization_id: Optional[str] = None,
    enabled: bool = True,
    with_template: bool = True,
    with_credentials: bool = True,
    **settings_kwargs,
) -> dict:
    """Create a template and a DMS settings row for a fresh organization."""
    organization_id = organization_id or str(uuid.uuid4())
    template_id = None
    if with_template:
        template = CheckTemplate(organization_id=organization_id, name="Full VHC", is_active=True)
        db.add(template)
        db.flush()
        template_id = template.id

    row = OrganizationImportSettings(
        organization_id=organization_id,
        enabled=enabled,
        api_url="https://dms.example.com",
        username_encrypted=encrypt("dms-user") if with_credentials else None,
        password_encrypted=encrypt("dms-pass") if with_credentials else None,
        **settings_kwargs,
    )
    db.add(row)
    db.commit()
    return {"organization_id": organization_id, "template_id": template_id, "settings": row}


class FakeAdapter:
    """Booking adapter returning canned bookings; records every call."""

    def __init__(self, bookings=None, success: bool = True, error: Optional[str] = None):
        self.bookings = list(bookings or [])
        self.success = success
        self.error = error
        self.calls: list[dict] = []
        self.tested: list[DmsCredentials] = []

    def fetch_bookings(self, credentials, date, site_id=None, service_types=None, end_date=None):
        self.calls.append({
            "credentials": credentials,
            "date": date,
            "site_id": site_id,
            "service_types": service_types,
            "end_date": end_date,
        })
        if not self.success:
            return BookingFetchResult(success=False, error=self.error)
        return BookingFetchResult(success=True, bookings=list(self.bookings))

    def test_connection(self, credentials):
        self.tested.append(credentials)
        if not self.success:
            return ConnectionTestResult(False, self.error or "Connection failed")
        return ConnectionTestResult(True, f"Connection successful - found {len(self.bookings)} booking(s) for today")


@pytest.fixture()
def org(db):
    """An organization with credentials, an active template and DMS enabled."""
    return seed_org(db)


# ── Markers ──────────────────────────────────────────────────────────

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks slow tests")
    config.addinivalue_line("markers", "integration: marks integration tests")
    config.addinivalue_line("markers", "unit: marks unit tests")
