"""Tests for the scheduler service: per-org schedules, lifecycle, status."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import sessionmaker

from app.services.dms.orchestrator import ImportResult
from tests.conftest import seed_org

LONDON = ZoneInfo("Europe/London")

# 2026-10-19 is a Monday
MONDAY_10 = datetime(2026, 10, 19, 10, 0, tzinfo=LONDON)
SUNDAY_10 = datetime(2026, 10, 18, 10, 0, tzinfo=LONDON)


class TestScheduleMatching:
    """Hours / weekday matching with 0=Sunday."""

    def test_weekday_convention(self):
        from app.services.scheduler import schedule_weekday
        assert schedule_weekday(MONDAY_10) == 1
        assert schedule_weekday(SUNDAY_10) == 0

    def test_due_on_scheduled_hour_and_day(self):
        from app.services.scheduler import is_due
        assert is_due([10], [1], MONDAY_10) is True
        assert is_due([11], [1], MONDAY_10) is False
        assert is_due([10], [2, 3], MONDAY_10) is False

    def test_defaults_skip_sunday(self):
        from app.services.scheduler import is_due
        assert is_due(None, None, MONDAY_10) is True
        assert is_due(None, None, SUNDAY_10) is False


class TestScheduleTimezone:
    """Hours and weekdays are UK wall-clock times, across the BST switch."""

    def test_summer_utc_instant_matches_local_hour(self):
        from app.services.scheduler import is_due
        # 05:00 UTC on Wednesday 1 July is 06:00 BST
        moment = datetime(2026, 7, 1, 5, 0, tzinfo=timezone.utc)
        assert is_due([6], [3], moment) is True
        assert is_due([5], [3], moment) is False

    def test_winter_utc_equals_local(self):
        from app.services.scheduler import is_due
        assert is_due([6], [3], datetime(2026, 1, 7, 6, 0, tzinfo=timezone.utc)) is True

    def test_clocks_going_forward(self):
        from app.services.scheduler import is_due
        # BST starts 01:00 UTC on Sunday 29 March 2026
        assert is_due([6], [6], datetime(2026, 3, 28, 6, 0, tzinfo=timezone.utc)) is True
        assert is_due([6], [1], datetime(2026, 3, 30, 5, 0, tzinfo=timezone.utc)) is True
        assert is_due([6], [1], datetime(2026, 3, 30, 6, 0, tzinfo=timezone.utc)) is False

    def test_naive_datetimes_are_utc(self):
        from app.services.scheduler import to_schedule_time
        assert to_schedule_time(datetime(2026, 7, 1, 5, 0)).hour == 6

    def test_unknown_zone_falls_back_to_utc(self):
        import app.services.scheduler as sched_mod
        with patch.object(sched_mod, "settings") as mock_settings:
            mock_settings.import_schedule_timezone = "Mars/Olympus"
            assert sched_mod.to_schedule_time(datetime(2026, 7, 1, 5, 0, tzinfo=timezone.utc)).hour == 5


class TestRunScheduledImports:
    """run_scheduled_imports: who runs, and isolation between organizations."""

    @pytest.fixture()
    def session_factory(self, db_engine):
        return sessionmaker(bind=db_engine)

    def test_only_due_enabled_orgs_run(self, db, session_factory):
        due = seed_org(db, auto_import_enabled=True, import_schedule_hours=[10], import_schedule_days=[1])
        seed_org(db, auto_import_enabled=True, import_schedule_hours=[14], import_schedule_days=[1])
        seed_org(db, auto_import_enabled=False, import_schedule_hours=[10], import_schedule_days=[1])
        seed_org(db, enabled=False, auto_import_enabled=True, import_schedule_hours=[10])

        fake_result = ImportResult(success=True, import_id="run-1", status="completed")
        with patch("app.db.session.SessionLocal", session_factory), \
                patch("app.services.dms.orchestrator.run_dms_import", return_value=fake_result) as mock_run:
            from app.services.scheduler import run_scheduled_imports
            summary = run_scheduled_imports(MONDAY_10)

        assert mock_run.call_count == 1
        options = mock_run.call_args.args[1]
        assert options.organization_id == due["organization_id"]
        assert options.import_type == "scheduled"
        assert options.date == "2026-10-19"
        assert summary["organizations"][due["organization_id"]]["status"] == "completed"

    def test_import_date_is_the_local_day(self, db, session_factory):
        # 23:30 UTC on Wednesday 1 July is 00:30 BST on Thursday 2 July
        due = seed_org(db, auto_import_enabled=True, import_schedule_hours=[0], import_schedule_days=[4])

        fake_result = ImportResult(success=True, import_id="run-3", status="completed")
        with patch("app.db.session.SessionLocal", session_factory), \
                patch("app.services.dms.orchestrator.run_dms_import", return_value=fake_result) as mock_run:
            from app.services.scheduler import run_scheduled_imports
            run_scheduled_imports(datetime(2026, 7, 1, 23, 30, tzinfo=timezone.utc))

        options = mock_run.call_args.args[1]
        assert options.organization_id == due["organization_id"]
        assert options.date == "2026-07-02"

    def test_one_org_failure_does_not_stop_others(self, db, session_factory):
        first = seed_org(db, auto_import_enabled=True, import_schedule_hours=[10], import_schedule_days=[1])
        second = seed_org(db, auto_import_enabled=True, import_schedule_hours=[10], import_schedule_days=[1])

        ok = ImportResult(success=True, import_id="run-2", status="completed")
        with patch("app.db.session.SessionLocal", session_factory), \
                patch(
                    "app.services.dms.orchestrator.run_dms_import",
                    side_effect=[RuntimeError("boom"), ok],
                ) as mock_run:
            from app.services.scheduler import run_scheduled_imports
            summary = run_scheduled_imports(MONDAY_10)

        assert mock_run.call_count == 2
        statuses = {org_id: r["status"] for org_id, r in summary["organizations"].items()}
        assert sorted(statuses.values()) == ["completed", "error"]
        assert set(statuses) == {first["organization_id"], second["organization_id"]}
        assert summary["status"] == "ok"


class TestSchedulerStatus:
    """Test scheduler status reporting."""

    def test_status_when_disabled(self):
        with patch("app.services.scheduler.settings") as mock_settings:
            mock_settings.scheduler_enabled = False
            from app.services.scheduler import get_scheduler_status
            status = get_scheduler_status()
            assert status["enabled"] is False
            assert "SCHEDULER_ENABLED" in status["message"]

    def test_status_when_enabled_not_started(self):
        import app.services.scheduler as sched_mod
        orig_scheduler = sched_mod._scheduler
        sched_mod._scheduler = None
        try:
            with patch.object(sched_mod, "settings") as mock_settings:
                mock_settings.scheduler_enabled = True
                mock_settings.watchdog_interval_minutes = 15
                mock_settings.import_stale_run_minutes = 60
                mock_settings.dms_mode = "official"
                status = sched_mod.get_scheduler_status()
                assert status["enabled"] is True
                assert status["running"] is False
                assert status["config"]["import_stale_run_minutes"] == 60
                assert status["jobs"] == []
        finally:
            sched_mod._scheduler = orig_scheduler


class TestSchedulerLifecycle:
    """Test scheduler start/stop."""

    def test_start_when_disabled(self):
        with patch("app.services.scheduler.settings") as mock_settings:
            mock_settings.scheduler_enabled = False
            from app.services.scheduler import start_scheduler
            result = start_scheduler()
            assert result is None

    def test_start_registers_import_and_watchdog_jobs(self):
        import app.services.scheduler as sched_mod
        with patch.object(sched_mod, "settings") as mock_settings, \
                patch.object(sched_mod, "BackgroundScheduler") as mock_cls:
            mock_settings.scheduler_enabled = True
            mock_settings.watchdog_interval_minutes = 15
            mock_settings.import_stale_run_minutes = 60
            instance = MagicMock()
            instance.running = False
            mock_cls.return_value = instance
            sched_mod._scheduler = None

            result = sched_mod.start_scheduler()

            assert result is instance
            job_ids = [c.kwargs["id"] for c in instance.add_job.call_args_list]
            assert job_ids == ["dms_import", "import_watchdog"]
            assert instance.add_job.call_args_list[0].kwargs["trigger"] == "cron"
            assert instance.add_job.call_args_list[1].kwargs["minutes"] == 15
            instance.start.assert_called_once()
        sched_mod._scheduler = None

    def test_stop_when_not_started(self):
        import app.services.scheduler as sched_mod
        sched_mod._scheduler = None
        sched_mod.stop_scheduler()
        assert sched_mod._scheduler is None

    def test_job_event_logging(self):
        from app.services.scheduler import _on_job_event
        event = MagicMock()
        event.exception = None
        event.job_id = "dms_import"
        _on_job_event(event)

        event.exception = ValueError("boom")
        _on_job_event(event)
