#!/usr/bin/env python3
"""Cron entry point for DMS booking imports.

Usage:
    python scripts/cron_import.py                          # every org due this hour
    python scripts/cron_import.py --org <id> --date 2026-10-19
    python scripts/cron_import.py --org <id1>,<id2> --import-type manual

Without --org the per-organization schedule (hours / weekdays on
organization_import_settings) decides who runs, exactly like the in-process
scheduler. With --org the listed organizations are imported unconditionally.

Exit code is 1 when any import ends `failed`.
"""
import argparse
import json
import logging
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path

# Project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.logging import setup_logging
from app.db.session import SessionLocal
from app.models.import_run import ImportType
from app.services.dms.orchestrator import ImportOptions, run_dms_import
from app.services.scheduler import run_scheduled_imports

logger = logging.getLogger("cron_import")


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Import DMS diary bookings as health checks.",
        epilog="Example: python scripts/cron_import.py --org 6f1c... --date 2026-10-19",
    )
    p.add_argument("--date", default=None, help="Diary date YYYY-MM-DD (default: today, UTC)")
    p.add_argument("--org", default=None, help="Comma-separated organization ids (default: all orgs due now)")
    p.add_argument(
        "--import-type",
        default=ImportType.SCHEDULED.value,
        choices=[t.value for t in ImportType],
        help="Recorded on the import run (default: scheduled)",
    )
    p.add_argument("--skip-migrations", action="store_true", help="Do not run alembic upgrade head first")
    return p.parse_args(argv)


def run_migrations() -> None:
    print("Running alembic upgrade head...")
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=PROJECT_ROOT,
    )
    if result.returncode != 0:
        print("WARNING: alembic upgrade failed, continuing anyway")


def import_organizations(org_ids: list[str], day: str, import_type: str) -> dict[str, dict]:
    results: dict[str, dict] = {}
    for organization_id in org_ids:
        db = SessionLocal()
        try:
            result = run_dms_import(
                db,
                ImportOptions(organization_id=organization_id, date=day, import_type=import_type),
            )
            results[organization_id] = result.to_dict()
        finally:
            db.close()
    return results


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    if not args.skip_migrations:
        run_migrations()

    if args.org:
        org_ids = [o.strip() for o in args.org.split(",") if o.strip()]
        day = args.date or datetime.now(timezone.utc).date().isoformat()
        results = import_organizations(org_ids, day, args.import_type)
        print(json.dumps(results, indent=2, default=str))
        failed = [o for o, r in results.items() if r.get("status") == "failed"]
    else:
        summary = run_scheduled_imports()
        print(json.dumps(summary, indent=2, default=str))
        failed = [
            o for o, r in summary.get("organizations", {}).items()
            if r.get("status") in ("failed", "error")
        ]
        if summary.get("status") == "error":
            return 1

    if failed:
        logger.error("[DMS Import] %d organization(s) failed: %s", len(failed), ", ".join(failed))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
