"""Dry run of an import: fetch bookings and say which would be imported, without writing."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.connectors.dms.booking import BookingAdapter, ExternalBooking
from app.core.config import settings
from app.models.health_check import HealthCheck
from app.services.dms.credentials import CredentialResolver
from app.services.dms.errors import AdapterError
from app.services.dms.identity import normalize_registration
from app.services.dms.orchestrator import SKIPPED_BOOKING_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class PreviewEntry:
    booking_id: str
    vehicle_reg: str
    customer_name: str
    booking_date: str
    scheduled_time: Optional[str] = None
    service_type: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class ImportPreview:
    date: str
    end_date: Optional[str] = None
    total_bookings: int = 0
    will_import: list[PreviewEntry] = field(default_factory=list)
    will_skip: list[PreviewEntry] = field(default_factory=list)


def _imported_booking_ids(db: Session, organization_id: str, external_source: str) -> set[str]:
    """External ids already holding a health check, soft-deleted ones included."""
    rows = (
        db.query(HealthCheck.external_id)
        .filter(
            HealthCheck.organization_id == organization_id,
            HealthCheck.external_source == external_source,
            HealthCheck.external_id.isnot(None),
        )
        .all()
    )
    return {r[0] for r in rows}


def _skip_reason(booking: ExternalBooking, imported: set[str]) -> Optional[str]:
    if booking.booking_id in imported:
        return "Already imported"
    if not normalize_registration(booking.vehicle_reg):
        return "No vehicle registration"
    if (booking.status or "").strip().lower() in SKIPPED_BOOKING_STATUSES:
        return f"Status: {booking.status}"
    return None


def preview_import(
    db: Session,
    adapter: BookingAdapter,
    organization_id: str,
    date: str,
    end_date: Optional[str] = None,
    external_source: Optional[str] = None,
) -> ImportPreview:
    """
    Categorize the bookings an import for `date` would see.

    Raises ConfigurationError when the organization cannot import and
    AdapterError when the DMS fetch fails.
    """
    external_source = external_source or settings.dms_external_source
    credentials, config = CredentialResolver(db).resolve(organization_id)

    fetch = adapter.fetch_bookings(
        credentials, date, service_types=config.service_types or None, end_date=end_date,
    )
    if not fetch.success:
        raise AdapterError(fetch.error or "Failed to fetch bookings from DMS")

    imported = _imported_booking_ids(db, organization_id, external_source)
    preview = ImportPreview(date=date, end_date=end_date, total_bookings=len(fetch.bookings))

    for booking in fetch.bookings:
        entry = PreviewEntry(
            booking_id=booking.booking_id,
            vehicle_reg=booking.vehicle_reg or "N/A",
            customer_name=f"{booking.customer_first_name} {booking.customer_last_name}".strip(),
            booking_date=booking.booking_date or date,
        )
        reason = _skip_reason(booking, imported)
        if reason:
            entry.reason = reason
            preview.will_skip.append(entry)
            continue
        entry.scheduled_time = booking.booking_time or "Not set"
        entry.service_type = booking.service_type or "Service"
        preview.will_import.append(entry)

    logger.info(
        "[DMS Import] Preview org=%s date=%s: %d to import, %d to skip",
        organization_id, date, len(preview.will_import), len(preview.will_skip),
    )
    return preview
