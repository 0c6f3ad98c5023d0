"""Release blocklist repository.

Entries match on the normalized release title so that separator variants
of the same release (dots, dashes, spaces) are treated as one. Manual
entries never expire; automatic ones may carry an expires_at.
"""

import logging

from sqlalchemy import func, or_, select

from db.models.decisions import BlocklistEntry
from db.repositories.base import BaseRepository
from quality.parser import normalize_title, parse_release_group

logger = logging.getLogger(__name__)


class BlocklistRepository(BaseRepository):
    """Repository for blocklist table operations."""

    flag_columns = ("is_manual",)

    def add_entry(
        self,
        release_title: str,
        media_id: int | None = None,
        indexer_id: int | None = None,
        reason: str = "",
        error_message: str = "",
        expires_in_hours: int | None = None,
        is_manual: bool = False,
    ) -> dict:
        """Blocklist a release. Returns the new or existing entry.

        Args:
            expires_in_hours: Lifetime for automatic entries; None or 0 means
                permanent. Ignored for manual entries.
        """
        normalized = normalize_title(release_title)
        existing = self.session.execute(
            select(BlocklistEntry).where(
                BlocklistEntry.normalized_title == normalized,
                or_(BlocklistEntry.expires_at.is_(None), BlocklistEntry.expires_at > self._now()),
            ).limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            return self._to_dict(existing)

        expires_at = None
        if expires_in_hours and not is_manual:
            expires_at = self._from_now(hours=expires_in_hours)

        entry = BlocklistEntry(
            media_id=media_id,
            release_title=release_title,
            normalized_title=normalized,
            release_group=parse_release_group(release_title),
            indexer_id=indexer_id,
            reason=reason,
            error_message=error_message,
            is_manual=1 if is_manual else 0,
            expires_at=expires_at,
            created_at=self._now(),
        )
        self.session.add(entry)
        self._commit()
        logger.info("Blocklisted release %r (%s)", release_title, reason or "no reason")
        return self._to_dict(entry)

    def remove_entry(self, entry_id: int) -> bool:
        """Remove a blocklist entry by ID. Returns True if deleted."""
        entry = self.session.get(BlocklistEntry, entry_id)
        if entry is None:
            return False
        self.session.delete(entry)
        self._commit()
        return True

    def is_release_blocklisted(self, release_title: str) -> bool:
        """True when a non-expired entry matches the normalized title."""
        result = self.session.execute(
            select(BlocklistEntry.id).where(
                BlocklistEntry.normalized_title == normalize_title(release_title),
                or_(BlocklistEntry.expires_at.is_(None), BlocklistEntry.expires_at > self._now()),
            ).limit(1)
        ).scalar_one_or_none()
        return result is not None

    def purge_expired(self) -> int:
        """Delete expired automatic entries. Returns count deleted."""
        deleted = self.session.query(BlocklistEntry).filter(
            BlocklistEntry.is_manual == 0,
            BlocklistEntry.expires_at.is_not(None),
            BlocklistEntry.expires_at <= self._now(),
        ).delete(synchronize_session=False)
        self._commit()
        if deleted:
            logger.info("Purged %d expired blocklist entries", deleted)
        return deleted

    def get_entries(self, page: int = 1, per_page: int = 50, media_id: int | None = None) -> dict:
        """Get paginated blocklist entries.

        Returns:
            Dict with 'data', 'page', 'per_page', 'total', 'total_pages' keys.
        """
        offset = (page - 1) * per_page
        count_stmt = select(func.count()).select_from(BlocklistEntry)
        stmt = select(BlocklistEntry).order_by(BlocklistEntry.created_at.desc())
        if media_id is not None:
            count_stmt = count_stmt.where(BlocklistEntry.media_id == media_id)
            stmt = stmt.where(BlocklistEntry.media_id == media_id)

        count = self.session.execute(count_stmt).scalar() or 0
        entries = self.session.execute(stmt.limit(per_page).offset(offset)).scalars().all()

        total_pages = max(1, (count + per_page - 1) // per_page)
        return {
            "data": [self._to_dict(e) for e in entries],
            "page": page,
            "per_page": per_page,
            "total": count,
            "total_pages": total_pages,
        }

    def get_count(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(BlocklistEntry)
        ).scalar() or 0
