"""Download tracking repository with the state-machine transition table.

Status changes go through transition(), which rejects anything not in
ALLOWED_TRANSITIONS. The UPDATE is conditioned on the current status, so
two concurrent passes cannot both claim the same row.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select, update

from db.models.lifecycle import Download
from db.repositories.base import BaseRepository
from error_handler import InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DOWNLOADING = "downloading"
COMPLETED = "completed"
IMPORTING = "importing"
IMPORTED = "imported"
FAILED = "failed"
UNMATCHED = "unmatched"

TERMINAL_STATES = frozenset({IMPORTED, FAILED})
ACTIVE_STATES = frozenset({DOWNLOADING, COMPLETED, IMPORTING})

ALLOWED_TRANSITIONS = {
    DOWNLOADING: {COMPLETED, FAILED},
    COMPLETED: {IMPORTING, UNMATCHED},
    IMPORTING: {IMPORTED, FAILED},
    UNMATCHED: {IMPORTING},
    IMPORTED: set(),
    FAILED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class DownloadRepository(BaseRepository):
    """Repository for downloads table operations."""

    flag_columns = ("stalled_notified", "is_upgrade")

    def create_download(
        self,
        title: str,
        media_id: int | None,
        grab_id: int | None = None,
        download_client_id: int | None = None,
        size: int = 0,
        is_upgrade: bool = False,
        retry_count: int = 0,
    ) -> dict:
        now = self._now()
        row = Download(
            title=title,
            media_id=media_id,
            grab_id=grab_id,
            download_client_id=download_client_id,
            size=size,
            status=DOWNLOADING,
            progress=0.0,
            is_upgrade=1 if is_upgrade else 0,
            retry_count=retry_count,
            stalled_notified=0,
            last_progress_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def get_download(self, download_id: int) -> dict | None:
        return self._to_dict(self.session.get(Download, download_id))

    def set_client_job(self, download_id: int, download_client_id: int, external_id: str) -> None:
        row = self._get_or_raise(download_id)
        row.download_client_id = download_client_id
        row.external_id = external_id
        row.updated_at = self._now()
        self._commit()

    def transition(self, download_id: int, target: str, **fields) -> dict:
        """Move a download to a new status.

        Args:
            download_id: Row to update.
            target: Desired status.
            **fields: Extra columns to set in the same statement.

        Raises:
            InvalidTransitionError: Target not reachable from the current
                status, or the row changed status concurrently.
        """
        row = self._get_or_raise(download_id)
        current = row.status
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target)

        values = dict(fields)
        values["status"] = target
        values["updated_at"] = self._now()
        result = self.session.execute(
            update(Download)
            .where(Download.id == download_id, Download.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(current, target)
        self._commit()
        self.session.refresh(row)
        logger.debug("Download %d: %s -> %s", download_id, current, target)
        return self._to_dict(row)

    def update_progress(self, download_id: int, progress: float, download_path: str = "") -> bool:
        """Store a progress reading. Returns True when progress increased."""
        row = self._get_or_raise(download_id)
        progress = max(0.0, min(1.0, float(progress)))
        increased = progress > (row.progress or 0.0)
        now = self._now()
        row.progress = progress
        if increased:
            row.last_progress_at = now
        if download_path:
            row.download_path = download_path
        row.updated_at = now
        self._commit()
        return increased

    def link_media(self, download_id: int, media_id: int) -> dict:
        """Attach an unmatched download to a media item."""
        row = self._get_or_raise(download_id)
        if row.status != UNMATCHED:
            raise ValidationError(f"Only unmatched downloads can be linked (status is '{row.status}')")
        row.media_id = media_id
        row.updated_at = self._now()
        self._commit()
        return self._to_dict(row)

    def mark_stalled_notified(self, download_id: int) -> None:
        row = self._get_or_raise(download_id)
        row.stalled_notified = 1
        self._commit()

    def list_by_status(self, *statuses: str) -> list[dict]:
        rows = self.session.execute(
            select(Download).where(Download.status.in_(statuses)).order_by(Download.created_at)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def list_active(self) -> list[dict]:
        return self.list_by_status(DOWNLOADING)

    def get_active_for_media(self, media_id: int) -> list[dict]:
        """Non-terminal downloads for a media item (unmatched excluded)."""
        rows = self.session.execute(
            select(Download).where(
                Download.media_id == media_id,
                Download.status.in_(ACTIVE_STATES),
            )
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def has_active_download(self, media_id: int) -> bool:
        return self.session.execute(
            select(Download.id).where(
                Download.media_id == media_id,
                Download.status.in_(ACTIVE_STATES),
            ).limit(1)
        ).scalar_one_or_none() is not None

    def get_stalled(self, threshold_minutes: int) -> list[dict]:
        """Downloading rows whose progress has not moved within the threshold."""
        cutoff = (datetime.now(UTC) - timedelta(minutes=threshold_minutes)).isoformat()
        rows = self.session.execute(
            select(Download).where(
                Download.status == DOWNLOADING,
                Download.last_progress_at < cutoff,
            ).order_by(Download.last_progress_at)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def get_downloads(self, page: int = 1, per_page: int = 50, status: str | None = None) -> dict:
        """Get paginated downloads, newest first."""
        offset = (page - 1) * per_page
        count_stmt = select(func.count()).select_from(Download)
        stmt = select(Download).order_by(Download.created_at.desc())
        if status:
            count_stmt = count_stmt.where(Download.status == status)
            stmt = stmt.where(Download.status == status)
        count = self.session.execute(count_stmt).scalar() or 0
        rows = self.session.execute(stmt.limit(per_page).offset(offset)).scalars().all()
        return {
            "data": [self._to_dict(r) for r in rows],
            "page": page,
            "per_page": per_page,
            "total": count,
            "total_pages": max(1, (count + per_page - 1) // per_page),
        }

    def _get_or_raise(self, download_id: int) -> Download:
        row = self.session.get(Download, download_id)
        if row is None:
            raise NotFoundError(f"Download {download_id} not found")
        return row
