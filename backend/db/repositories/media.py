"""Library and monitored media repository.

Also hosts the operator query "items due for search", which combines the
media, quality status, override, exclusion and download tables.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import exists, func, or_, select

from db.models.decisions import Exclusion
from db.models.library import Library, MediaItem
from db.models.lifecycle import Download
from db.models.quality import MediaQualityOverride, MediaQualityStatus
from db.repositories.base import BaseRepository
from db.repositories.downloads import ACTIVE_STATES
from db.repositories.exclusions import EXCLUSION_MEDIA
from error_handler import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

VALID_LIBRARY_TYPES = ("movie", "tv", "anime")

_MEDIA_FIELDS = (
    "library_id",
    "media_type",
    "series_type",
    "title",
    "year",
    "season",
    "episode",
    "episode_title",
    "air_date",
    "imdb_id",
    "tvdb_id",
    "file_path",
)


class MediaRepository(BaseRepository):
    """Repository for libraries and media_items."""

    flag_columns = ("monitored",)

    # ---- Libraries --------------------------------------------------------------

    def create_library(self, name: str, root_path: str, media_type: str = "movie",
                       preset_id: int | None = None) -> dict:
        if media_type not in VALID_LIBRARY_TYPES:
            raise ValidationError(f"Invalid library media type: {media_type}")
        if not root_path:
            raise ValidationError("Library root path is required")
        row = Library(name=name, root_path=root_path, media_type=media_type, preset_id=preset_id)
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def get_library(self, library_id: int | None) -> dict | None:
        if library_id is None:
            return None
        return self._to_dict(self.session.get(Library, library_id))

    def list_libraries(self) -> list[dict]:
        rows = self.session.execute(select(Library).order_by(Library.name)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def set_library_preset(self, library_id: int, preset_id: int | None) -> dict:
        row = self.session.get(Library, library_id)
        if row is None:
            raise NotFoundError(f"Library {library_id} not found")
        row.preset_id = preset_id
        self._commit()
        return self._to_dict(row)

    # ---- Media items ------------------------------------------------------------

    def create_media(self, data: dict) -> dict:
        if not data.get("title"):
            raise ValidationError("Media title is required")
        row = MediaItem(monitored=1 if data.get("monitored", True) else 0, added_at=self._now())
        for key in _MEDIA_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def get_media(self, media_id: int) -> dict | None:
        return self._to_dict(self.session.get(MediaItem, media_id))

    def list_media(self, library_id: int | None = None) -> list[dict]:
        stmt = select(MediaItem).order_by(MediaItem.title, MediaItem.season, MediaItem.episode)
        if library_id is not None:
            stmt = stmt.where(MediaItem.library_id == library_id)
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def set_monitored(self, media_id: int, monitored: bool) -> None:
        row = self._get_or_raise(media_id)
        row.monitored = 1 if monitored else 0
        self._commit()

    def set_file_path(self, media_id: int, file_path: str) -> None:
        row = self._get_or_raise(media_id)
        row.file_path = file_path
        self._commit()

    # ---- Operator queries -------------------------------------------------------

    def get_due_for_search(self, interval_minutes: int, limit: int = 50) -> list[dict]:
        """Monitored items that need a search pass, least recently searched first.

        An item is due when it is monitored (and not opted out by an
        override), not excluded, has no active download, has not reached
        its target or has an upgrade available, and was not searched within
        interval_minutes.
        """
        cutoff = (datetime.now(UTC) - timedelta(minutes=interval_minutes)).isoformat()
        stmt = (
            self._monitored_query()
            .where(
                or_(
                    MediaQualityStatus.id.is_(None),
                    MediaQualityStatus.target_met == 0,
                    MediaQualityStatus.upgrade_available == 1,
                ),
                self._not_searched_since(cutoff),
            )
            .order_by(func.coalesce(MediaQualityStatus.last_search, ""), MediaItem.id)
            .limit(limit)
        )
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def get_wanted(self, limit: int = 500) -> list[dict]:
        """Monitored items still looking for a release, whatever their last search."""
        stmt = (
            self._monitored_query()
            .where(
                or_(
                    MediaQualityStatus.id.is_(None),
                    MediaQualityStatus.target_met == 0,
                    MediaQualityStatus.upgrade_available == 1,
                ),
            )
            .order_by(MediaItem.id)
            .limit(limit)
        )
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def get_upgrade_candidates(self, interval_minutes: int, limit: int = 50) -> list[dict]:
        """Monitored items that already hold a file, for the upgrade pass."""
        cutoff = (datetime.now(UTC) - timedelta(minutes=interval_minutes)).isoformat()
        stmt = (
            self._monitored_query()
            .where(
                MediaItem.file_path.is_not(None),
                MediaItem.file_path != "",
                self._not_searched_since(cutoff),
            )
            .order_by(func.coalesce(MediaQualityStatus.last_search, ""), MediaItem.id)
            .limit(limit)
        )
        return [self._to_dict(r) for r in self.session.execute(stmt).scalars().all()]

    def _monitored_query(self):
        active_download = exists().where(
            Download.media_id == MediaItem.id,
            Download.status.in_(ACTIVE_STATES),
        )
        excluded = exists().where(
            Exclusion.exclusion_type == EXCLUSION_MEDIA,
            Exclusion.media_id == MediaItem.id,
        )
        return (
            select(MediaItem)
            .outerjoin(MediaQualityStatus, MediaQualityStatus.media_id == MediaItem.id)
            .outerjoin(MediaQualityOverride, MediaQualityOverride.media_id == MediaItem.id)
            .where(
                MediaItem.monitored == 1,
                or_(MediaQualityOverride.id.is_(None), MediaQualityOverride.monitored == 1),
                ~active_download,
                ~excluded,
            )
        )

    @staticmethod
    def _not_searched_since(cutoff: str):
        return or_(
            MediaQualityStatus.id.is_(None),
            MediaQualityStatus.last_search.is_(None),
            MediaQualityStatus.last_search == "",
            MediaQualityStatus.last_search < cutoff,
        )

    def _get_or_raise(self, media_id: int) -> MediaItem:
        row = self.session.get(MediaItem, media_id)
        if row is None:
            raise NotFoundError(f"Media item {media_id} not found")
        return row
