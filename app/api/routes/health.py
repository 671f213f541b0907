"""Health check endpoints."""
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from app.db.session import check_db_connection, SessionLocal

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check with database connectivity and last DMS import info.
    Returns 503 if database is unreachable.
    """
    db_ok = check_db_connection()

    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "degraded", "db": "error"},
        )

    info: dict[str, Any] = {"status": "ok", "db": "ok"}

    try:
        db = SessionLocal()
        try:
            running = db.execute(
                text("SELECT COUNT(*) FROM dms_import_runs WHERE status = 'running'")
            ).scalar()
            info["running_imports"] = running or 0

            row = db.execute(
                text(
                    "SELECT organization_id, status, started_at, bookings_imported, bookings_failed "
                    "FROM dms_import_runs ORDER BY started_at DESC LIMIT 1"
                )
            ).mappings().first()
            if row:
                info["last_import"] = {
                    "organization_id": row["organization_id"],
                    "status": row["status"],
                    "at": str(row["started_at"]),
                    "imported": row["bookings_imported"],
                    "failed": row["bookings_failed"],
                }
        finally:
            db.close()
    except Exception:
        # dms_import_runs may not exist before the first migration
        pass

    return info
