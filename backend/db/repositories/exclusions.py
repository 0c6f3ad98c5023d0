"""Exclusion repository: media items and indexer-per-library rules."""

from sqlalchemy import select

from db.models.decisions import Exclusion
from db.repositories.base import BaseRepository
from error_handler import ValidationError

EXCLUSION_MEDIA = "media"
EXCLUSION_INDEXER_LIBRARY = "indexer_library"


class ExclusionRepository(BaseRepository):
    """Repository for exclusions table operations."""

    def add_media_exclusion(self, media_id: int, reason: str = "") -> dict:
        row = Exclusion(
            exclusion_type=EXCLUSION_MEDIA,
            media_id=media_id,
            reason=reason,
            created_at=self._now(),
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def add_indexer_exclusion(self, indexer_id: int, library_id: int, reason: str = "") -> dict:
        if indexer_id is None or library_id is None:
            raise ValidationError("indexer_id and library_id are required")
        row = Exclusion(
            exclusion_type=EXCLUSION_INDEXER_LIBRARY,
            indexer_id=indexer_id,
            library_id=library_id,
            reason=reason,
            created_at=self._now(),
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def remove(self, exclusion_id: int) -> bool:
        row = self.session.get(Exclusion, exclusion_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def list_exclusions(self) -> list[dict]:
        rows = self.session.execute(select(Exclusion).order_by(Exclusion.id)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def is_media_excluded(self, media_id: int) -> bool:
        return self.session.execute(
            select(Exclusion.id).where(
                Exclusion.exclusion_type == EXCLUSION_MEDIA,
                Exclusion.media_id == media_id,
            ).limit(1)
        ).scalar_one_or_none() is not None

    def is_indexer_excluded(self, indexer_id: int | None, library_id: int | None) -> bool:
        if indexer_id is None or library_id is None:
            return False
        return self.session.execute(
            select(Exclusion.id).where(
                Exclusion.exclusion_type == EXCLUSION_INDEXER_LIBRARY,
                Exclusion.indexer_id == indexer_id,
                Exclusion.library_id == library_id,
            ).limit(1)
        ).scalar_one_or_none() is not None
