"""DMS import endpoints: manual trigger, run history, watchdog, scheduler status."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.schemas.dms import (
    ImportedHealthCheckRead,
    ImportRunDetail,
    ImportRunListResponse,
    ImportRunRead,
    ImportTriggerRequest,
)
from app.connectors.dms.client import get_booking_adapter
from app.core.auth import rate_limit_admin, require_admin_key, require_organization
from app.db.session import get_db
from app.models.health_check import HealthCheck
from app.models.import_run import ImportRun
from app.models.site import Site
from app.services.dms.orchestrator import ImportOptions, run_dms_import
from app.services.dms.watchdog import sweep_stale_runs

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/dms",
    tags=["dms"],
    dependencies=[Depends(require_admin_key), Depends(rate_limit_admin)],
)


# ── Manual import trigger ────────────────────────────────────────────


@router.post("/import")
def trigger_import(
    body: ImportTriggerRequest,
    organization_id: str = Depends(require_organization),
    adapter=Depends(get_booking_adapter),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """
    Run one import synchronously for the calling organization.
    A site_id must name an active site of the organization. Past that check
    the answer is always the ImportResult; a failed run has success=false.
    """
    if body.site_id:
        site = (
            db.query(Site)
            .filter(
                Site.id == body.site_id,
                Site.organization_id == organization_id,
                Site.is_active.is_(True),
            )
            .first()
        )
        if site is None:
            raise HTTPException(status_code=400, detail="Site not found for this organization")

    options = ImportOptions(
        organization_id=organization_id,
        date=body.date or datetime.now(timezone.utc).date().isoformat(),
        import_type=body.import_type.value,
        site_id=body.site_id,
        triggered_by=body.triggered_by,
        end_date=body.end_date,
        booking_ids=body.booking_ids,
    )
    result = run_dms_import(db, options, adapter=adapter)
    if not result.import_id:
        raise HTTPException(status_code=500, detail=result.to_dict())
    return result.to_dict()


# ── Run history ──────────────────────────────────────────────────────


@router.get("/import-runs", response_model=ImportRunListResponse)
def list_import_runs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[str] = Query(None, description="running, completed, partial or failed"),
    organization_id: str = Depends(require_organization),
    db: Session = Depends(get_db),
) -> ImportRunListResponse:
    """Import runs for the organization, newest first."""
    query = db.query(ImportRun).filter(ImportRun.organization_id == organization_id)
    if status:
        query = query.filter(ImportRun.status == status.lower())

    total = query.count()
    rows = query.order_by(ImportRun.started_at.desc()).offset(offset).limit(limit).all()
    return ImportRunListResponse(
        items=[ImportRunRead.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/import-runs/latest", response_model=ImportRunRead)
def latest_import_run(
    organization_id: str = Depends(require_organization),
    db: Session = Depends(get_db),
) -> ImportRunRead:
    run = (
        db.query(ImportRun)
        .filter(ImportRun.organization_id == organization_id)
        .order_by(ImportRun.started_at.desc())
        .first()
    )
    if run is None:
        raise HTTPException(status_code=404, detail="No import runs yet")
    return ImportRunRead.model_validate(run)


@router.get("/import-runs/{import_id}", response_model=ImportRunDetail)
def get_import_run(
    import_id: str,
    organization_id: str = Depends(require_organization),
    db: Session = Depends(get_db),
) -> ImportRunDetail:
    """One run plus the health checks it created."""
    run = (
        db.query(ImportRun)
        .filter(ImportRun.id == import_id, ImportRun.organization_id == organization_id)
        .first()
    )
    if run is None:
        raise HTTPException(status_code=404, detail="Import run not found")

    health_checks = (
        db.query(HealthCheck)
        .filter(HealthCheck.import_batch_id == run.id, HealthCheck.deleted_at.is_(None))
        .order_by(HealthCheck.created_at)
        .all()
    )
    detail = ImportRunDetail.model_validate(run)
    detail.health_checks = [ImportedHealthCheckRead.model_validate(hc) for hc in health_checks]
    return detail


# ── Maintenance ──────────────────────────────────────────────────────


@router.post("/watchdog/sweep")
def watchdog_sweep(
    older_than_minutes: Optional[int] = Query(None, ge=1, description="Defaults to IMPORT_STALE_RUN_MINUTES"),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Fail every run stuck in `running` for longer than the cutoff."""
    swept = sweep_stale_runs(db, older_than_minutes=older_than_minutes)
    return {"swept": swept}


@router.get("/scheduler")
def scheduler_status() -> dict[str, Any]:
    """Scheduler status: enabled, running, jobs, last runs."""
    from app.services.scheduler import get_scheduler_status
    return get_scheduler_status()
