"""DMS import orchestrator: one run = fetch bookings, reconcile each, finalize.

    INIT -> FETCHING -> PROCESSING -> FINALIZING -> {COMPLETED | PARTIAL | FAILED}

Bookings are processed sequentially in adapter order. A failure inside one
booking is recorded against that booking and the loop moves on; only
run-fatal errors (configuration, adapter) end the run early. The caller
always gets an ImportResult back, never an exception.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.connectors.dms.booking import BookingAdapter, ExternalBooking
from app.core.config import settings
from app.models.import_run import ImportRun, ImportStatus, ImportType
from app.services.dms.credentials import CredentialResolver
from app.services.dms.errors import (
    AdapterError,
    BookingProcessingError,
    DmsImportError,
    DuplicateBookingError,
)
from app.services.dms.finalizer import RunFinalizer, derive_status
from app.services.dms.materializer import HealthCheckMaterializer
from app.services.dms.resolution import CustomerResolver, VehicleResolver

logger = logging.getLogger(__name__)

SYSTEM_BOOKING_ID = "system"
SKIPPED_BOOKING_STATUSES = frozenset({"cancelled", "completed"})


class RunPhase(str, enum.Enum):
    INIT = "init"
    FETCHING = "fetching"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ImportOptions:
    organization_id: str
    date: str  # YYYY-MM-DD
    import_type: str = ImportType.MANUAL.value
    site_id: Optional[str] = None
    triggered_by: Optional[str] = None
    end_date: Optional[str] = None
    booking_ids: Optional[list[str]] = None


@dataclass
class ImportResult:
    success: bool = False
    import_id: str = ""
    status: Optional[str] = None
    bookings_found: int = 0
    bookings_imported: int = 0
    bookings_skipped: int = 0
    bookings_failed: int = 0
    customers_created: int = 0
    vehicles_created: int = 0
    health_checks_created: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def counters(self) -> dict[str, int]:
        return {
            "bookings_found": self.bookings_found,
            "bookings_imported": self.bookings_imported,
            "bookings_skipped": self.bookings_skipped,
            "bookings_failed": self.bookings_failed,
            "customers_created": self.customers_created,
            "vehicles_created": self.vehicles_created,
            "health_checks_created": self.health_checks_created,
        }

    def to_dict(self) -> dict[str, Any]:
        """Wire format (camelCase) returned by the API and the cron script."""
        return {
            "success": self.success,
            "importId": self.import_id,
            "status": self.status,
            "bookingsFound": self.bookings_found,
            "bookingsImported": self.bookings_imported,
            "bookingsSkipped": self.bookings_skipped,
            "bookingsFailed": self.bookings_failed,
            "customersCreated": self.customers_created,
            "vehiclesCreated": self.vehicles_created,
            "healthChecksCreated": self.health_checks_created,
            "errors": list(self.errors),
        }


class ImportOrchestrator:
    """Runs one import. The session and the adapter are injected so tests can swap them."""

    def __init__(
        self,
        db: Session,
        adapter: Optional[BookingAdapter] = None,
        credential_resolver: Optional[CredentialResolver] = None,
        external_source: Optional[str] = None,
    ):
        if adapter is None:
            from app.connectors.dms.client import get_booking_adapter
            adapter = get_booking_adapter()
        self.db = db
        self.adapter = adapter
        self.credential_resolver = credential_resolver or CredentialResolver(db)
        self.external_source = external_source or settings.dms_external_source
        self.finalizer = RunFinalizer(db)
        self.phase = RunPhase.INIT

    def run(self, options: ImportOptions) -> ImportResult:
        log_ctx = (options.organization_id, options.date, options.import_type)
        logger.info("[DMS Import] Starting org=%s date=%s type=%s", *log_ctx)
        result = ImportResult()

        # ── INIT ──
        self.phase = RunPhase.INIT
        try:
            run = self._create_run(options)
        except (SQLAlchemyError, ValueError) as e:
            self.db.rollback()
            logger.error("[DMS Import] Failed to create import record org=%s: %s", options.organization_id, e)
            result.errors.append({"bookingId": SYSTEM_BOOKING_ID, "error": "Failed to create import record"})
            result.status = ImportStatus.FAILED.value
            self.phase = RunPhase.FAILED
            return result
        result.import_id = run.id

        try:
            # ── FETCHING ──
            self.phase = RunPhase.FETCHING
            credentials, config = self.credential_resolver.resolve(options.organization_id)
            fetch = self.adapter.fetch_bookings(
                credentials,
                options.date,
                site_id=options.site_id,
                service_types=config.service_types or None,
                end_date=options.end_date,
            )
            if not fetch.success:
                raise AdapterError(fetch.error or "Failed to fetch bookings from DMS")
            result.bookings_found = len(fetch.bookings)
            logger.info("[DMS Import] %d bookings found for org=%s", result.bookings_found, options.organization_id)

            # ── PROCESSING ──
            self.phase = RunPhase.PROCESSING
            materializer = HealthCheckMaterializer(self.db, options.organization_id, self.external_source)
            customers = CustomerResolver(self.db)
            vehicles = VehicleResolver(self.db)
            wanted = set(options.booking_ids) if options.booking_ids else None

            for booking in fetch.bookings:
                self._process_booking(
                    booking, options, result, materializer, customers, vehicles,
                    template_id=config.template_id, wanted=wanted,
                )
        except Exception as e:
            self.db.rollback()
            message = str(e) or e.__class__.__name__
            if isinstance(e, DmsImportError) and e.run_fatal:
                logger.error("[DMS Import] Run %s failed: %s", result.import_id, message)
            else:
                logger.exception("[DMS Import] Run %s failed unexpectedly", result.import_id)
            return self._fail(result, options, message)

        # ── FINALIZING ──
        self.phase = RunPhase.FINALIZING
        status = derive_status(result.bookings_failed)
        self.finalizer.finalize(result.import_id, options.organization_id, status, result.counters(), result.errors)
        self.finalizer.record_usage(options.organization_id, result.bookings_imported)

        result.success = True
        result.status = status.value
        self.phase = RunPhase(status.value)
        logger.info(
            "[DMS Import] Done org=%s run=%s status=%s found=%d imported=%d skipped=%d failed=%d",
            options.organization_id, result.import_id, status.value, result.bookings_found,
            result.bookings_imported, result.bookings_skipped, result.bookings_failed,
        )
        return result

    def _create_run(self, options: ImportOptions) -> ImportRun:
        import_type = ImportType(options.import_type)
        run = ImportRun(
            organization_id=options.organization_id,
            site_id=options.site_id,
            import_type=import_type.value,
            import_date=date_type.fromisoformat(options.date),
            end_date=date_type.fromisoformat(options.end_date) if options.end_date else None,
            booking_ids=list(options.booking_ids) if options.booking_ids else None,
            status=ImportStatus.RUNNING.value,
            triggered_by=options.triggered_by,
            errors=[],
        )
        self.db.add(run)
        self.db.commit()
        return run

    def _process_booking(
        self,
        booking: ExternalBooking,
        options: ImportOptions,
        result: ImportResult,
        materializer: HealthCheckMaterializer,
        customers: CustomerResolver,
        vehicles: VehicleResolver,
        template_id: str,
        wanted: Optional[set[str]],
    ) -> None:
        if wanted is not None and booking.booking_id not in wanted:
            result.bookings_skipped += 1
            return

        if (booking.status or "").strip().lower() in SKIPPED_BOOKING_STATUSES:
            logger.debug("[DMS Import] Skipping booking %s: status %s", booking.booking_id, booking.status)
            result.bookings_skipped += 1
            return

        try:
            if not booking.booking_id:
                raise BookingProcessingError("Booking has no id")

            if materializer.exists(booking.booking_id):
                logger.debug("[DMS Import] Skipping booking %s: already imported", booking.booking_id)
                result.bookings_skipped += 1
                return

            customer = customers.resolve(options.organization_id, self.external_source, booking)
            if customer.created:
                result.customers_created += 1

            vehicle = vehicles.resolve(options.organization_id, self.external_source, customer.entity_id, booking)
            if vehicle.created:
                result.vehicles_created += 1

            materializer.create(
                booking,
                customer_id=customer.entity_id,
                vehicle_id=vehicle.entity_id,
                template_id=template_id,
                import_batch_id=result.import_id,
                site_id=options.site_id,
            )
            result.bookings_imported += 1
            result.health_checks_created += 1
        except DuplicateBookingError:
            logger.info("[DMS Import] Booking %s imported concurrently, skipping", booking.booking_id)
            result.bookings_skipped += 1
        except DmsImportError as e:
            if e.run_fatal:
                raise
            self._record_booking_failure(result, booking, e)
        except Exception as e:
            self.db.rollback()
            self._record_booking_failure(result, booking, BookingProcessingError(str(e) or e.__class__.__name__))

    def _record_booking_failure(self, result: ImportResult, booking: ExternalBooking, error: DmsImportError) -> None:
        result.bookings_failed += 1
        result.errors.append({"bookingId": booking.booking_id, "error": str(error)})
        logger.warning(
            "[DMS Import] Booking %s failed (%s): %s", booking.booking_id, error.kind.value, error,
        )

    def _fail(self, result: ImportResult, options: ImportOptions, message: str) -> ImportResult:
        self.phase = RunPhase.FINALIZING
        # run-fatal error leads so it becomes the org's last_error
        result.errors = [{"bookingId": SYSTEM_BOOKING_ID, "error": message}] + result.errors
        self.finalizer.finalize(
            result.import_id, options.organization_id, ImportStatus.FAILED,
            result.counters(), result.errors,
        )
        result.status = ImportStatus.FAILED.value
        self.phase = RunPhase.FAILED
        return result


def run_dms_import(
    db: Session,
    options: ImportOptions,
    adapter: Optional[BookingAdapter] = None,
) -> ImportResult:
    """Run one DMS import synchronously and return its result."""
    return ImportOrchestrator(db, adapter=adapter).run(options)
