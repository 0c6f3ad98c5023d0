"""Delay profile and pending grab repositories."""

import json
import logging

from sqlalchemy import select

from db.models.decisions import DelayProfile, PendingGrab
from db.repositories.base import BaseRepository
from error_handler import NotFoundError, ValidationError
from quality.model import CandidateRelease

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = (
    "name",
    "delay_minutes",
    "bypass_if_resolution",
    "bypass_if_source",
    "bypass_if_score_above",
    "library_id",
)


class DelayProfileRepository(BaseRepository):
    """Repository for delay_profiles table operations."""

    flag_columns = ("enabled",)

    def list_profiles(self) -> list[dict]:
        rows = self.session.execute(select(DelayProfile).order_by(DelayProfile.id)).scalars().all()
        return [self._to_dict(r) for r in rows]

    def get_profile(self, profile_id: int) -> dict | None:
        return self._to_dict(self.session.get(DelayProfile, profile_id))

    def create_profile(self, data: dict) -> dict:
        if not data.get("name"):
            raise ValidationError("Delay profile name is required")
        if int(data.get("delay_minutes") or 0) < 0:
            raise ValidationError("delay_minutes must not be negative")
        row = DelayProfile(enabled=1 if data.get("enabled", True) else 0)
        for key in _PROFILE_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def update_profile(self, profile_id: int, data: dict) -> dict:
        row = self.session.get(DelayProfile, profile_id)
        if row is None:
            raise NotFoundError(f"Delay profile {profile_id} not found")
        for key in _PROFILE_FIELDS:
            if key in data:
                setattr(row, key, data[key])
        if "enabled" in data:
            row.enabled = 1 if data["enabled"] else 0
        self._commit()
        return self._to_dict(row)

    def delete_profile(self, profile_id: int) -> bool:
        row = self.session.get(DelayProfile, profile_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def get_for_library(self, library_id: int | None) -> dict | None:
        """First enabled profile scoped to the library, else the first global one."""
        if library_id is not None:
            scoped = self.session.execute(
                select(DelayProfile)
                .where(DelayProfile.enabled == 1, DelayProfile.library_id == library_id)
                .order_by(DelayProfile.id)
                .limit(1)
            ).scalar_one_or_none()
            if scoped is not None:
                return self._to_dict(scoped)
        row = self.session.execute(
            select(DelayProfile)
            .where(DelayProfile.enabled == 1, DelayProfile.library_id.is_(None))
            .order_by(DelayProfile.id)
            .limit(1)
        ).scalar_one_or_none()
        return self._to_dict(row)


class PendingGrabRepository(BaseRepository):
    """Repository for pending_grabs. One row per media item at most."""

    def get_for_media(self, media_id: int) -> dict | None:
        row = self.session.execute(
            select(PendingGrab).where(PendingGrab.media_id == media_id)
        ).scalar_one_or_none()
        return self._to_dict(row)

    def upsert_if_better(
        self,
        media_id: int,
        candidate: CandidateRelease,
        score: int,
        available_at: str,
    ) -> tuple[bool, dict]:
        """Store a deferred candidate unless a better one is already waiting.

        A higher score replaces the existing row and restarts its clock.

        Returns:
            (stored, row_dict). stored is False when the existing pending
            grab outscored (or tied) the new candidate.
        """
        row = self.session.execute(
            select(PendingGrab).where(PendingGrab.media_id == media_id)
        ).scalar_one_or_none()
        if row is not None and row.score >= score:
            return False, self._to_dict(row)

        if row is None:
            row = PendingGrab(media_id=media_id)
            self.session.add(row)
        row.release_title = candidate.title
        row.release_data = json.dumps(candidate.to_dict())
        row.score = score
        row.indexer_id = candidate.indexer_id
        row.available_at = available_at
        row.created_at = self._now()
        self._commit()
        return True, self._to_dict(row)

    def get_ready(self, now: str | None = None) -> list[dict]:
        """Pending grabs whose available_at has passed, oldest first."""
        now = now or self._now()
        rows = self.session.execute(
            select(PendingGrab)
            .where(PendingGrab.available_at <= now)
            .order_by(PendingGrab.available_at)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def list_pending(self) -> list[dict]:
        rows = self.session.execute(
            select(PendingGrab).order_by(PendingGrab.available_at)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def get_candidate(self, pending: dict) -> CandidateRelease:
        return CandidateRelease.from_dict(json.loads(pending["release_data"]))

    def delete(self, pending_id: int) -> bool:
        row = self.session.get(PendingGrab, pending_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def delete_for_media(self, media_id: int) -> None:
        self.session.query(PendingGrab).filter(PendingGrab.media_id == media_id).delete()
        self._commit()

