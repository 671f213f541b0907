"""Scheduler service: per-organization scheduled DMS imports + stale-run watchdog.

Uses APScheduler to run background jobs within the FastAPI process.
Controlled entirely via environment variables; the per-organization
schedule (hours, weekdays) lives on OrganizationImportSettings.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_HOURS = [6, 10, 14, 20]
DEFAULT_IMPORT_DAYS = [1, 2, 3, 4, 5, 6]  # 0=Sunday ... 6=Saturday

# Module-level scheduler instance
_scheduler: Optional[BackgroundScheduler] = None
_last_run: dict[str, Any] = {}


def schedule_timezone() -> ZoneInfo:
    """Zone the per-organization hours and weekdays are expressed in."""
    try:
        return ZoneInfo(settings.import_schedule_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("[Scheduler] Unknown IMPORT_SCHEDULE_TIMEZONE %r, using UTC", settings.import_schedule_timezone)
        return ZoneInfo("UTC")


def to_schedule_time(moment: datetime) -> datetime:
    """Wall-clock time in the schedule zone. Naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(schedule_timezone())


def schedule_weekday(moment: datetime) -> int:
    """Weekday in the stored convention (0=Sunday), from a datetime."""
    return (moment.weekday() + 1) % 7


def is_due(hours: Optional[list[int]], days: Optional[list[int]], moment: datetime) -> bool:
    """True when `moment`, read in the schedule zone, falls on a scheduled hour of a scheduled day."""
    hours = hours if hours else DEFAULT_IMPORT_HOURS
    days = days if days else DEFAULT_IMPORT_DAYS
    moment = to_schedule_time(moment)
    return moment.hour in hours and schedule_weekday(moment) in days


def _due_organizations(db, now: datetime) -> list[str]:
    from app.models.import_settings import OrganizationImportSettings

    rows = (
        db.query(OrganizationImportSettings)
        .filter(
            OrganizationImportSettings.enabled.is_(True),
            OrganizationImportSettings.auto_import_enabled.is_(True),
        )
        .all()
    )
    return [
        row.organization_id
        for row in rows
        if is_due(row.import_schedule_hours, row.import_schedule_days, now)
    ]


def run_scheduled_imports(now: Optional[datetime] = None) -> dict[str, Any]:
    """Run a `scheduled` import for today for every organization due at `now`."""
    from app.db.session import SessionLocal
    from app.services.dms.orchestrator import ImportOptions, run_dms_import

    now = to_schedule_time(now or datetime.now(timezone.utc))
    result: dict[str, Any] = {"started_at": now.isoformat(), "status": "running", "organizations": {}}

    db = SessionLocal()
    try:
        due = _due_organizations(db, now)
    except Exception as e:
        result["status"] = "error"
        result["error"] = str(e)
        logger.exception("[Scheduler] Failed to load scheduled organizations")
        _last_run["dms_import"] = result
        return result
    finally:
        db.close()

    logger.info("[Scheduler] %d organizations due at %s", len(due), now.strftime("%a %H:00"))

    for organization_id in due:
        org_db = SessionLocal()
        try:
            outcome = run_dms_import(
                org_db,
                ImportOptions(
                    organization_id=organization_id,
                    date=now.date().isoformat(),
                    import_type="scheduled",
                ),
            )
            result["organizations"][organization_id] = {
                "status": outcome.status,
                "imported": outcome.bookings_imported,
                "failed": outcome.bookings_failed,
            }
        except Exception as e:
            result["organizations"][organization_id] = {"status": "error", "error": str(e)}
            logger.exception("[Scheduler] Scheduled import failed for org %s", organization_id)
        finally:
            org_db.close()

    result["status"] = "ok"
    _last_run["dms_import"] = result
    return result


def _run_watchdog() -> None:
    from app.db.session import SessionLocal
    from app.services.dms.watchdog import sweep_stale_runs

    db = SessionLocal()
    try:
        swept = sweep_stale_runs(db)
        _last_run["watchdog"] = {"at": datetime.now(timezone.utc).isoformat(), "swept": swept}
    finally:
        db.close()


def _on_job_event(event: JobEvent) -> None:
    """Log scheduler job events."""
    if event.exception:
        logger.error("[Scheduler] Job %s failed: %s", event.job_id, event.exception)
    else:
        logger.info("[Scheduler] Job %s executed OK", event.job_id)


def start_scheduler() -> Optional[BackgroundScheduler]:
    """Start the scheduler if enabled. Called from FastAPI lifespan."""
    global _scheduler

    if not settings.scheduler_enabled:
        logger.info("[Scheduler] Disabled (SCHEDULER_ENABLED=false)")
        return None

    if _scheduler and _scheduler.running:
        logger.warning("[Scheduler] Already running")
        return _scheduler

    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    _scheduler.add_job(
        run_scheduled_imports,
        trigger="cron",
        minute=0,
        id="dms_import",
        name="Scheduled DMS imports (hourly)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    interval = max(1, settings.watchdog_interval_minutes)
    _scheduler.add_job(
        _run_watchdog,
        trigger="interval",
        minutes=interval,
        id="import_watchdog",
        name=f"Stale import watchdog (every {interval}min)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info(
        "[Scheduler] Started, imports hourly, watchdog every %d min (stale after %d min)",
        interval, settings.import_stale_run_minutes,
    )
    return _scheduler


def stop_scheduler() -> None:
    """Gracefully stop the scheduler. Called from FastAPI lifespan."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("[Scheduler] Stopped")
    _scheduler = None


def get_scheduler_status() -> dict[str, Any]:
    """Return current scheduler status for admin endpoint."""
    if not settings.scheduler_enabled:
        return {"enabled": False, "message": "Set SCHEDULER_ENABLED=true to activate"}

    running = _scheduler is not None and _scheduler.running

    jobs = []
    if _scheduler and running:
        for job in _scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            })

    return {
        "enabled": True,
        "running": running,
        "config": {
            "watchdog_interval_minutes": settings.watchdog_interval_minutes,
            "import_stale_run_minutes": settings.import_stale_run_minutes,
            "dms_mode": settings.dms_mode,
            "import_schedule_timezone": settings.import_schedule_timezone,
        },
        "jobs": jobs,
        "last_run": _last_run.get("dms_import"),
        "last_watchdog": _last_run.get("watchdog"),
    }
