"""Stale-run watchdog.

A run stuck in `running` (process killed mid-import, lost connection) would
otherwise stay open forever. The watchdog fails every running run started
before the cutoff with the system error "Import timed out".
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.import_run import ImportRun, ImportStatus

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Import timed out"


def sweep_stale_runs(
    db: Session,
    older_than_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Mark stale running runs as failed. Returns how many were swept."""
    minutes = older_than_minutes if older_than_minutes is not None else settings.import_stale_run_minutes
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = now - timedelta(minutes=minutes)

    stale = (
        db.query(ImportRun)
        .filter(
            ImportRun.status == ImportStatus.RUNNING.value,
            ImportRun.started_at < cutoff,
        )
        .all()
    )
    if not stale:
        return 0

    for run in stale:
        run.status = ImportStatus.FAILED.value
        run.completed_at = now
        run.errors = [{"bookingId": "system", "error": TIMEOUT_ERROR}]
        logger.warning(
            "[Watchdog] Import run %s (org=%s) running since %s, marked failed",
            run.id, run.organization_id, run.started_at,
        )

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Watchdog] Failed to sweep %d stale runs", len(stale))
        raise

    logger.info("[Watchdog] Swept %d stale import runs (cutoff %s)", len(stale), cutoff.isoformat())
    return len(stale)
