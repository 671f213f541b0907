"""Run finalizer: terminal ImportRun status, last-import cache, usage counters."""
import logging
import warnings
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.import_run import ImportRun, ImportStatus
from app.models.import_settings import OrganizationImportSettings
from app.models.usage import OrganizationUsage
from app.services.dms.errors import UsageTrackingWarning

logger = logging.getLogger(__name__)


def derive_status(bookings_failed: int) -> ImportStatus:
    return ImportStatus.PARTIAL if bookings_failed > 0 else ImportStatus.COMPLETED


def billing_period_start(today: Optional[date] = None) -> date:
    today = today or datetime.now(timezone.utc).date()
    return today.replace(day=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RunFinalizer:
    def __init__(self, db: Session):
        self.db = db

    def finalize(
        self,
        import_id: str,
        organization_id: str,
        status: ImportStatus,
        counters: dict[str, int],
        errors: list[dict[str, Any]],
    ) -> None:
        """Persist the terminal state. A run already in a terminal state is left untouched."""
        now = _utcnow()
        run = self.db.get(ImportRun, import_id)
        if run is None:
            logger.error("[DMS Import] Import run %s vanished before finalizing", import_id)
        elif ImportStatus(run.status).is_terminal:
            logger.warning(
                "[DMS Import] Import run %s already %s, not overwriting with %s",
                import_id, run.status, status.value,
            )
        else:
            run.status = status.value
            run.completed_at = now
            for key, value in counters.items():
                setattr(run, key, value)
            run.errors = list(errors)

        self._update_last_import(organization_id, status, errors, now)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("[DMS Import] Failed to persist final state of run %s", import_id)

    def _update_last_import(
        self,
        organization_id: str,
        status: ImportStatus,
        errors: list[dict[str, Any]],
        now: datetime,
    ) -> None:
        settings_row = (
            self.db.query(OrganizationImportSettings)
            .filter(OrganizationImportSettings.organization_id == organization_id)
            .first()
        )
        if settings_row is None:
            return
        settings_row.last_import_at = now
        settings_row.last_import_status = status.value
        settings_row.last_error = errors[0]["error"] if errors else None

    def record_usage(self, organization_id: str, bookings_imported: int, today: Optional[date] = None) -> bool:
        """Best-effort billing counter increment. Failure is warned and swallowed."""
        period = billing_period_start(today)
        try:
            usage = (
                self.db.query(OrganizationUsage)
                .filter(
                    OrganizationUsage.organization_id == organization_id,
                    OrganizationUsage.period_start == period,
                )
                .first()
            )
            if usage is None:
                usage = OrganizationUsage(
                    organization_id=organization_id,
                    period_start=period,
                    dms_imports=0,
                    dms_bookings_imported=0,
                )
                self.db.add(usage)
            usage.dms_imports += 1
            usage.dms_bookings_imported += bookings_imported
            self.db.commit()
            return True
        except Exception as e:
            self.db.rollback()
            warnings.warn(f"Usage tracking failed for {organization_id}: {e}", UsageTrackingWarning, stacklevel=2)
            logger.warning("[DMS Import] Usage tracking failed for org %s: %s", organization_id, e)
            return False
