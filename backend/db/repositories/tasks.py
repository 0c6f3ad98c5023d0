"""Scheduled task run-metadata repository."""

from sqlalchemy import select

from db.models.library import ScheduledTask
from db.repositories.base import BaseRepository


class ScheduledTaskRepository(BaseRepository):
    """Repository for scheduled_tasks table operations."""

    flag_columns = ("enabled",)

    def ensure_task(self, name: str, interval_minutes: int, description: str = "") -> dict:
        """Create the row for a task or refresh its interval/description."""
        row = self._get_row(name)
        if row is None:
            row = ScheduledTask(name=name, run_count=0, fail_count=0)
            self.session.add(row)
        row.interval_minutes = interval_minutes
        row.description = description
        row.enabled = 1 if interval_minutes > 0 else 0
        self._commit()
        return self._to_dict(row)

    def get_task(self, name: str) -> dict | None:
        return self._to_dict(self._get_row(name))

    def list_tasks(self) -> list[dict]:
        rows = self.session.execute(select(ScheduledTask).order_by(ScheduledTask.name)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def record_run(self, name: str, started_at: str, duration_ms: int, error: str | None = None) -> dict:
        """Persist the outcome of one run. error=None means success."""
        row = self._get_row(name)
        if row is None:
            row = ScheduledTask(name=name, interval_minutes=0, run_count=0, fail_count=0)
            self.session.add(row)
        row.last_run = started_at
        row.last_duration_ms = duration_ms
        row.run_count = (row.run_count or 0) + 1
        if error is None:
            row.last_status = "success"
            row.last_error = ""
        else:
            row.last_status = "failed"
            row.last_error = error
            row.fail_count = (row.fail_count or 0) + 1
        self._commit()
        return self._to_dict(row)

    def set_next_run(self, name: str, next_run: str) -> None:
        row = self._get_row(name)
        if row is None:
            return
        row.next_run = next_run
        self._commit()

    def _get_row(self, name: str) -> ScheduledTask | None:
        return self.session.execute(
            select(ScheduledTask).where(ScheduledTask.name == name)
        ).scalar_one_or_none()
