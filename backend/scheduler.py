"""Task scheduler for the acquisition passes.

Each task runs on its own daemon ``threading.Timer`` inside the Flask app
context and reschedules itself after every run. A per-task lock makes
runs single-flight: a run that finds the previous one still executing is
skipped. Run metadata goes to ``scheduled_tasks``; a failing task is
logged and simply runs again on its next interval.

The scheduler is an explicit object created by ``create_app`` and stored
on ``app.extensions["scheduler"]``.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from db.repositories.tasks import ScheduledTaskRepository
from error_handler import NotFoundError
from events import emit_event

logger = logging.getLogger(__name__)

TASK_SEARCH = "search"
TASK_UPGRADE_SEARCH = "upgrade_search"
TASK_PENDING_PROMOTION = "pending_promotion"
TASK_DOWNLOAD_POLL = "download_poll"
TASK_STALLED_SWEEP = "stalled_sweep"
TASK_RSS_SYNC = "rss_sync"
TASK_BLOCKLIST_EXPIRY = "blocklist_expiry"
TASK_RECYCLE_BIN_CLEANUP = "recycle_bin_cleanup"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class TaskSpec:
    name: str
    interval_minutes: int
    func: Callable[[], object]
    description: str = ""


def default_tasks(settings, engine, tracker, pipeline, blocklist) -> list[TaskSpec]:
    """The standard acquisition tasks wired to their services."""

    def _poll_and_import():
        polled = tracker.poll_active()
        imported = pipeline.import_completed()
        return {**polled, **imported}

    return [
        TaskSpec(TASK_SEARCH, settings.search_interval_minutes, engine.search_due,
                 "Search indexers for monitored items that need a release"),
        TaskSpec(TASK_UPGRADE_SEARCH, settings.upgrade_search_interval_minutes, engine.search_upgrades,
                 "Search for better releases of items that already hold a file"),
        TaskSpec(TASK_RSS_SYNC, settings.rss_sync_interval_minutes, engine.rss_sync,
                 "Match the indexers' latest releases against wanted items"),
        TaskSpec(TASK_PENDING_PROMOTION, settings.pending_promotion_interval_minutes,
                 lambda: {"promoted": len(engine.promote_ready())},
                 "Grab pending releases whose delay has elapsed"),
        TaskSpec(TASK_DOWNLOAD_POLL, settings.download_poll_interval_minutes, _poll_and_import,
                 "Poll download clients and import completed downloads"),
        TaskSpec(TASK_STALLED_SWEEP, settings.stalled_sweep_interval_minutes,
                 lambda: {"failed": tracker.sweep_stalled()},
                 "Fail downloads that stopped making progress"),
        TaskSpec(TASK_BLOCKLIST_EXPIRY, settings.blocklist_expiry_interval_minutes,
                 lambda: {"purged": blocklist.expire()},
                 "Remove expired automatic blocklist entries"),
        TaskSpec(TASK_RECYCLE_BIN_CLEANUP, settings.recycle_bin_cleanup_interval_minutes,
                 lambda: {"removed": pipeline.clean_recycle_bin()},
                 "Delete recycle bin entries past their retention"),
    ]


class Scheduler:
    """Runs named tasks at fixed intervals, one run per task at a time."""

    def __init__(self, app, tasks: list[TaskSpec] | None = None):
        self._app = app
        self._tasks: dict[str, TaskSpec] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._timer_lock = threading.Lock()
        self._running = False
        self.repo = ScheduledTaskRepository()
        for spec in tasks or []:
            self.register(spec)

    def register(self, spec: TaskSpec) -> None:
        self._tasks[spec.name] = spec
        self._locks[spec.name] = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def task_names(self) -> list[str]:
        return list(self._tasks)

    def start(self) -> None:
        """Persist task rows and arm a timer for every enabled task."""
        with self._app.app_context():
            for spec in self._tasks.values():
                self.repo.ensure_task(spec.name, spec.interval_minutes, spec.description)
        self._running = True
        enabled = 0
        for spec in self._tasks.values():
            if spec.interval_minutes > 0:
                self._schedule_next(spec.name)
                enabled += 1
            else:
                logger.info("Task %s disabled (interval=0)", spec.name)
        logger.info("Scheduler started: %d of %d tasks enabled", enabled, len(self._tasks))

    def stop(self) -> None:
        """Cancel all timers. Runs already in progress finish on their own."""
        self._running = False
        with self._timer_lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
        logger.info("Scheduler stopped")

    def trigger(self, name: str, background: bool = False) -> dict:
        """Run a task now, subject to the same single-flight guard.

        Args:
            name: Task name.
            background: Run on a daemon thread and return immediately.

        Raises:
            NotFoundError: Unknown task name.
        """
        if name not in self._tasks:
            raise NotFoundError(f"Unknown task: {name}")
        if background:
            if self._locks[name].locked():
                return {"task": name, "status": STATUS_SKIPPED}
            thread = threading.Thread(target=self.run_task, args=(name,), daemon=True,
                                      name=f"task-{name}")
            thread.start()
            return {"task": name, "status": "started"}
        return self.run_task(name)

    def run_task(self, name: str) -> dict:
        """Execute one run of a task and record its outcome."""
        from extensions import db
        from metrics import record_task_run

        spec = self._tasks[name]
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            logger.info("Task %s still running, skipping this run", name)
            return {"task": name, "status": STATUS_SKIPPED}

        try:
            with self._app.app_context():
                started_at = datetime.now(UTC).isoformat()
                start = time.monotonic()
                error = None
                result = None
                try:
                    result = spec.func()
                except Exception as e:
                    db.session.rollback()
                    error = str(e) or e.__class__.__name__
                    logger.error("Task %s failed: %s", name, error, exc_info=True)
                duration = time.monotonic() - start
                duration_ms = int(duration * 1000)
                status = STATUS_SUCCESS if error is None else STATUS_FAILED

                self.repo.record_run(name, started_at, duration_ms, error)
                record_task_run(name, status, duration)
                emit_event("task_completed", {
                    "task": name,
                    "status": status,
                    "duration_ms": duration_ms,
                    "error": error or "",
                })
                logger.debug("Task %s finished in %dms: %s", name, duration_ms, result)
                return {"task": name, "status": status, "duration_ms": duration_ms,
                        "error": error or "", "result": result}
        finally:
            lock.release()

    def status(self) -> list[dict]:
        """Persisted run metadata plus whether each task is running now."""
        rows = {row["name"]: row for row in self.repo.list_tasks()}
        result = []
        for name, spec in self._tasks.items():
            row = dict(rows.get(name) or {"name": name})
            row["interval_minutes"] = spec.interval_minutes
            row["running"] = self._locks[name].locked()
            result.append(row)
        return result

    def _schedule_next(self, name: str) -> None:
        if not self._running:
            return
        interval = self._tasks[name].interval_minutes
        timer = threading.Timer(interval * 60, self._run_scheduled, args=(name,))
        timer.daemon = True
        with self._timer_lock:
            self._timers[name] = timer
        timer.start()
        next_run = (datetime.now(UTC) + timedelta(minutes=interval)).isoformat()
        with self._app.app_context():
            self.repo.set_next_run(name, next_run)

    def _run_scheduled(self, name: str) -> None:
        try:
            self.run_task(name)
        finally:
            self._schedule_next(name)
