"""Health check materializer: idempotent creation of one HealthCheck per booking."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.connectors.dms.booking import ExternalBooking
from app.models.check_template import CheckTemplate
from app.models.health_check import HealthCheck
from app.services.dms.errors import ConfigurationError, DuplicateBookingError, EntityCreationError

logger = logging.getLogger(__name__)

_TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%H:%M:%S.%f")


def parse_promise_time(booking_date: Optional[str], booking_time: Optional[str]) -> Optional[datetime]:
    """Combine 'YYYY-MM-DD' and 'HH:MM[:SS]' into a datetime; anything malformed yields None."""
    if not booking_date or not booking_time:
        return None
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(f"{booking_date.strip()} {booking_time.strip()}", f"%Y-%m-%d {fmt}")
        except ValueError:
            continue
    logger.warning("[DMS Import] Unparseable promise time %r %r", booking_date, booking_time)
    return None


def resolve_template_id(db: Session, organization_id: str, configured_template_id: Optional[str]) -> str:
    """
    Configured default template, else the organization's oldest active one.
    No active template at all is a run-level ConfigurationError.
    """
    if configured_template_id:
        return configured_template_id

    template = (
        db.query(CheckTemplate)
        .filter(
            CheckTemplate.organization_id == organization_id,
            CheckTemplate.is_active.is_(True),
        )
        .order_by(CheckTemplate.created_at.asc())
        .first()
    )
    if template is None:
        raise ConfigurationError("No active template found for organization")
    return template.id


class HealthCheckMaterializer:
    """Turns a resolved (customer, vehicle, booking) triple into a HealthCheck."""

    def __init__(self, db: Session, organization_id: str, external_source: str):
        self.db = db
        self.organization_id = organization_id
        self.external_source = external_source

    def exists(self, external_id: str) -> bool:
        """True when a live (not soft-deleted) health check already exists for the booking."""
        row = (
            self.db.query(HealthCheck.id)
            .filter(
                HealthCheck.organization_id == self.organization_id,
                HealthCheck.external_source == self.external_source,
                HealthCheck.external_id == external_id,
                HealthCheck.deleted_at.is_(None),
            )
            .first()
        )
        return row is not None

    def create(
        self,
        booking: ExternalBooking,
        customer_id: str,
        vehicle_id: str,
        template_id: str,
        import_batch_id: str,
        site_id: Optional[str] = None,
    ) -> str:
        health_check = HealthCheck(
            organization_id=self.organization_id,
            site_id=site_id,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            template_id=template_id,
            status="created",
            mileage_in=booking.vehicle_mileage,
            promise_time=parse_promise_time(booking.booking_date, booking.booking_time),
            notes=booking.description or None,
            external_id=booking.booking_id,
            external_source=self.external_source,
            import_batch_id=import_batch_id,
        )
        self.db.add(health_check)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self._conflicts_with_existing(booking.booking_id):
                raise DuplicateBookingError(
                    f"Health check for booking {booking.booking_id} already exists"
                ) from e
            raise EntityCreationError("health check", str(e.orig or e)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EntityCreationError("health check", str(getattr(e, "orig", None) or e)) from e

        logger.info("[DMS Import] Created health check %s for booking %s", health_check.id, booking.booking_id)
        return health_check.id

    def _conflicts_with_existing(self, external_id: str) -> bool:
        """Any row (soft-deleted included) already holding this booking's external key."""
        return (
            self.db.query(HealthCheck.id)
            .filter(
                HealthCheck.organization_id == self.organization_id,
                HealthCheck.external_source == self.external_source,
                HealthCheck.external_id == external_id,
            )
            .first()
        ) is not None
