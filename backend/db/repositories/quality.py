"""Per-media quality override and status repository."""

import logging

from sqlalchemy import select

from db.models.quality import MediaQualityOverride, MediaQualityStatus
from db.repositories.base import BaseRepository
from quality.model import ReleaseQuality

logger = logging.getLogger(__name__)


class MediaQualityRepository(BaseRepository):
    """Repository for media_quality_override and media_quality_status."""

    flag_columns = ("monitored", "target_met", "upgrade_available")
    json_columns = ("current_hdr", "current_audio")

    # ---- Overrides --------------------------------------------------------------

    def get_override(self, media_id: int) -> dict | None:
        row = self.session.execute(
            select(MediaQualityOverride).where(MediaQualityOverride.media_id == media_id)
        ).scalar_one_or_none()
        return self._to_dict(row)

    def set_override(self, media_id: int, preset_id: int | None = None, monitored: bool = True) -> dict:
        """Create or replace the override for one media item."""
        row = self.session.execute(
            select(MediaQualityOverride).where(MediaQualityOverride.media_id == media_id)
        ).scalar_one_or_none()
        if row is None:
            row = MediaQualityOverride(media_id=media_id)
            self.session.add(row)
        row.preset_id = preset_id
        row.monitored = 1 if monitored else 0
        self._commit()
        return self._to_dict(row)

    def delete_override(self, media_id: int) -> bool:
        deleted = self.session.query(MediaQualityOverride).filter(
            MediaQualityOverride.media_id == media_id
        ).delete()
        self._commit()
        return deleted > 0

    # ---- Status -----------------------------------------------------------------

    def get_status(self, media_id: int) -> dict | None:
        return self._to_dict(self._get_status_row(media_id))

    def get_held_quality(self, media_id: int) -> ReleaseQuality | None:
        """Quality of the file an item currently holds, None if nothing held."""
        row = self._get_status_row(media_id)
        if row is None or not row.current_resolution:
            return None
        data = self._to_dict(row)
        return ReleaseQuality(
            resolution=data["current_resolution"] or "",
            source=data["current_source"] or "",
            codec=data["current_codec"] or "",
            hdr_formats=set(data["current_hdr"]),
            audio_formats=set(data["current_audio"]),
            edition=data["current_edition"] or "",
        )

    def upsert_status(
        self,
        media_id: int,
        quality: ReleaseQuality,
        score: int,
        target_met: bool,
        upgrade_available: bool,
    ) -> dict:
        """Record the quality a media item now holds."""
        row = self._get_status_row(media_id)
        if row is None:
            row = MediaQualityStatus(media_id=media_id)
            self.session.add(row)
        row.current_resolution = quality.resolution
        row.current_source = quality.source
        row.current_codec = quality.codec
        row.current_hdr = self._dump_json(quality.hdr_formats)
        row.current_audio = self._dump_json(quality.audio_formats)
        row.current_edition = quality.edition
        row.current_score = score
        row.target_met = 1 if target_met else 0
        row.upgrade_available = 1 if upgrade_available else 0
        row.updated_at = self._now()
        self._commit()
        return self._to_dict(row)

    def set_upgrade_available(self, media_id: int, available: bool) -> None:
        row = self._get_status_row(media_id)
        if row is None:
            return
        row.upgrade_available = 1 if available else 0
        row.updated_at = self._now()
        self._commit()

    def touch_last_search(self, media_id: int) -> None:
        """Stamp last_search, creating an empty status row if needed."""
        row = self._get_status_row(media_id)
        now = self._now()
        if row is None:
            row = MediaQualityStatus(media_id=media_id, current_score=0, updated_at=now)
            self.session.add(row)
        row.last_search = now
        row.updated_at = now
        self._commit()

    def _get_status_row(self, media_id: int) -> MediaQualityStatus | None:
        return self.session.execute(
            select(MediaQualityStatus).where(MediaQualityStatus.media_id == media_id)
        ).scalar_one_or_none()
