"""Grab and import history repository."""

import logging

from sqlalchemy import func, select

from db.models.lifecycle import GrabHistory, ImportHistory
from db.repositories.base import BaseRepository
from quality.model import CandidateRelease

logger = logging.getLogger(__name__)

GRAB_GRABBED = "grabbed"
GRAB_IMPORTED = "imported"
GRAB_FAILED = "failed"


class HistoryRepository(BaseRepository):
    """Repository for grab_history and import_history."""

    flag_columns = ("success",)

    def record_grab(self, media_id: int, candidate: CandidateRelease, score: int) -> dict:
        """Insert a grab_history row in 'grabbed' state."""
        quality = candidate.quality
        row = GrabHistory(
            media_id=media_id,
            release_title=candidate.title,
            indexer_id=candidate.indexer_id,
            indexer_name=candidate.indexer_name,
            quality_resolution=quality.resolution,
            quality_source=quality.source,
            quality_codec=quality.codec,
            quality_audio=",".join(sorted(quality.audio_formats)),
            quality_hdr=",".join(sorted(quality.hdr_formats)),
            release_group=quality.release_group,
            size=candidate.size,
            score=score,
            status=GRAB_GRABBED,
            grabbed_at=self._now(),
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def get_grab(self, grab_id: int) -> dict | None:
        return self._to_dict(self.session.get(GrabHistory, grab_id))

    def link_download(self, grab_id: int, download_id: int, download_client_id: int | None = None) -> None:
        row = self.session.get(GrabHistory, grab_id)
        if row is None:
            return
        row.download_id = download_id
        if download_client_id is not None:
            row.download_client_id = download_client_id
        self._commit()

    def mark_grab_imported(self, grab_id: int) -> None:
        row = self.session.get(GrabHistory, grab_id)
        if row is None:
            return
        row.status = GRAB_IMPORTED
        row.imported_at = self._now()
        self._commit()

    def mark_grab_failed(self, grab_id: int, error: str) -> None:
        row = self.session.get(GrabHistory, grab_id)
        if row is None:
            return
        row.status = GRAB_FAILED
        row.error_message = error
        self._commit()

    def get_grab_history(self, page: int = 1, per_page: int = 50, media_id: int | None = None) -> dict:
        """Get paginated grab history, newest first."""
        offset = (page - 1) * per_page
        count_stmt = select(func.count()).select_from(GrabHistory)
        stmt = select(GrabHistory).order_by(GrabHistory.grabbed_at.desc())
        if media_id is not None:
            count_stmt = count_stmt.where(GrabHistory.media_id == media_id)
            stmt = stmt.where(GrabHistory.media_id == media_id)
        count = self.session.execute(count_stmt).scalar() or 0
        rows = self.session.execute(stmt.limit(per_page).offset(offset)).scalars().all()
        return {
            "data": [self._to_dict(r) for r in rows],
            "page": page,
            "per_page": per_page,
            "total": count,
            "total_pages": max(1, (count + per_page - 1) // per_page),
        }

    def record_import(
        self,
        download_id: int,
        media_id: int | None,
        source_path: str,
        dest_path: str,
        success: bool,
        error: str = "",
    ) -> dict:
        row = ImportHistory(
            download_id=download_id,
            media_id=media_id,
            source_path=source_path,
            dest_path=dest_path,
            success=1 if success else 0,
            error=error,
            created_at=self._now(),
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def get_imports_for_download(self, download_id: int) -> list[dict]:
        rows = self.session.execute(
            select(ImportHistory)
            .where(ImportHistory.download_id == download_id)
            .order_by(ImportHistory.id)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]
