"""Tests for the interval task scheduler."""

from unittest.mock import MagicMock

import pytest

from db.repositories.tasks import ScheduledTaskRepository
from error_handler import NotFoundError
from extensions import db
from scheduler import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCESS,
    Scheduler,
    TaskSpec,
    default_tasks,
)


def _boom():
    raise RuntimeError("indexers unreachable")


@pytest.fixture
def scheduler(app):
    sched = Scheduler(app, [
        TaskSpec("ok", 5, lambda: {"done": 1}, "always works"),
        TaskSpec("boom", 5, _boom),
        TaskSpec("off", 0, lambda: None),
    ])
    yield sched
    sched.stop()


def test_run_records_success(scheduler):
    result = scheduler.run_task("ok")
    assert result["status"] == STATUS_SUCCESS
    assert result["result"] == {"done": 1}

    db.session.expire_all()
    row = ScheduledTaskRepository().get_task("ok")
    assert row["last_status"] == "success"
    assert row["run_count"] == 1


def test_failure_is_recorded_not_raised(scheduler):
    scheduler.run_task("boom")
    result = scheduler.run_task("boom")
    assert result["status"] == STATUS_FAILED
    assert "unreachable" in result["error"]

    db.session.expire_all()
    row = ScheduledTaskRepository().get_task("boom")
    assert row["fail_count"] == 2
    assert row["last_error"] == "indexers unreachable"


def test_overlapping_run_is_skipped(app):
    nested = {}

    def reenter():
        nested["result"] = sched.run_task("slow")
        return "outer"

    sched = Scheduler(app, [TaskSpec("slow", 5, reenter)])
    assert sched.run_task("slow")["status"] == STATUS_SUCCESS
    assert nested["result"]["status"] == STATUS_SKIPPED


def test_trigger_unknown_task(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.trigger("nope")


def test_trigger_runs_inline(scheduler):
    assert scheduler.trigger("ok")["status"] == STATUS_SUCCESS


def test_start_arms_enabled_tasks(scheduler):
    scheduler.start()
    assert scheduler.running

    db.session.expire_all()
    tasks = {t["name"]: t for t in ScheduledTaskRepository().list_tasks()}
    assert tasks["ok"]["enabled"] and tasks["ok"]["next_run"]
    assert not tasks["off"]["enabled"]
    assert not tasks["off"]["next_run"]

    status = {s["name"]: s for s in scheduler.status()}
    assert status["ok"]["interval_minutes"] == 5
    assert status["ok"]["running"] is False

    scheduler.stop()
    assert not scheduler.running


def test_default_tasks(settings):
    engine, tracker, pipeline, blocklist = MagicMock(), MagicMock(), MagicMock(), MagicMock()
    tracker.poll_active.return_value = {"polled": 2}
    pipeline.import_completed.return_value = {"imported": 1}
    tasks = {t.name: t for t in default_tasks(settings, engine, tracker, pipeline, blocklist)}

    assert set(tasks) == {"search", "upgrade_search", "rss_sync", "pending_promotion", "download_poll",
                          "stalled_sweep", "blocklist_expiry", "recycle_bin_cleanup"}
    assert tasks["search"].interval_minutes == settings.search_interval_minutes
    assert tasks["download_poll"].func() == {"polled": 2, "imported": 1}
    tasks["blocklist_expiry"].func()
    blocklist.expire.assert_called_once()
    assert tasks["rss_sync"].interval_minutes == settings.rss_sync_interval_minutes
    assert tasks["rss_sync"].func is engine.rss_sync
    pipeline.clean_recycle_bin.return_value = 4
    assert tasks["recycle_bin_cleanup"].func() == {"removed": 4}
