"""Release group trust repository: blocked and trusted groups.

Group names compare case-insensitively; they are stored lowercased.
A blocked_groups row with is_blocked=0 only tracks failures of a group
that has not yet crossed the auto-block threshold.
"""

import logging

from sqlalchemy import select

from db.models.decisions import BlockedGroup, TrustedGroup
from db.repositories.base import BaseRepository
from error_handler import ValidationError

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    return (name or "").strip().lower()


class GroupTrustRepository(BaseRepository):
    """Repository for blocked_groups and trusted_groups."""

    flag_columns = ("auto_blocked", "is_blocked")

    # ---- Blocked ----------------------------------------------------------------

    def block_group(self, name: str, reason: str = "") -> dict:
        """Manually block a group (never auto-removed)."""
        key = _key(name)
        if not key:
            raise ValidationError("Group name is required")
        row = self._get_blocked_row(key)
        if row is None:
            row = BlockedGroup(name=key, failure_count=0, created_at=self._now())
            self.session.add(row)
        row.is_blocked = 1
        row.auto_blocked = 0
        row.reason = reason
        self._commit()
        return self._to_dict(row)

    def unblock_group(self, name: str) -> bool:
        row = self._get_blocked_row(_key(name))
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def is_group_blocked(self, name: str) -> bool:
        key = _key(name)
        if not key:
            return False
        row = self._get_blocked_row(key)
        return row is not None and bool(row.is_blocked)

    def list_blocked(self) -> list[dict]:
        rows = self.session.execute(
            select(BlockedGroup).where(BlockedGroup.is_blocked == 1).order_by(BlockedGroup.name)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def record_group_failure(self, name: str, threshold: int) -> bool:
        """Count a failed release for a group.

        Returns:
            True when this failure crossed the threshold and auto-blocked
            the group. Already blocked or trusted groups never return True.
        """
        key = _key(name)
        if not key or self.is_group_trusted(key):
            return False
        row = self._get_blocked_row(key)
        if row is None:
            row = BlockedGroup(name=key, failure_count=0, is_blocked=0, auto_blocked=0,
                               created_at=self._now())
            self.session.add(row)
        row.failure_count = (row.failure_count or 0) + 1
        newly_blocked = False
        if not row.is_blocked and threshold > 0 and row.failure_count >= threshold:
            row.is_blocked = 1
            row.auto_blocked = 1
            row.reason = f"Auto-blocked after {row.failure_count} failed releases"
            newly_blocked = True
            logger.warning("Release group %r auto-blocked after %d failures", key, row.failure_count)
        self._commit()
        return newly_blocked

    def get_failure_count(self, name: str) -> int:
        row = self._get_blocked_row(_key(name))
        return row.failure_count if row is not None else 0

    # ---- Trusted ----------------------------------------------------------------

    def trust_group(self, name: str, category: str = "") -> dict:
        key = _key(name)
        if not key:
            raise ValidationError("Group name is required")
        row = self._get_trusted_row(key)
        if row is None:
            row = TrustedGroup(name=key, created_at=self._now())
            self.session.add(row)
        row.category = category
        self._commit()
        return self._to_dict(row)

    def untrust_group(self, name: str) -> bool:
        row = self._get_trusted_row(_key(name))
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def is_group_trusted(self, name: str) -> bool:
        key = _key(name)
        return bool(key) and self._get_trusted_row(key) is not None

    def list_trusted(self) -> list[dict]:
        rows = self.session.execute(select(TrustedGroup).order_by(TrustedGroup.name)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def _get_blocked_row(self, key: str) -> BlockedGroup | None:
        return self.session.execute(
            select(BlockedGroup).where(BlockedGroup.name == key)
        ).scalar_one_or_none()

    def _get_trusted_row(self, key: str) -> TrustedGroup | None:
        return self.session.execute(
            select(TrustedGroup).where(TrustedGroup.name == key)
        ).scalar_one_or_none()
