"""Delay gate: hold accepted candidates back so better releases can arrive.

The effective delay profile is the first enabled profile scoped to the
media item's library, else the first enabled global profile. Without a
profile, or with a zero-minute delay, the candidate is grabbed at once.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from db.repositories.delay import DelayProfileRepository, PendingGrabRepository
from events import emit_event
from quality.model import CandidateRelease, resolution_rank, source_rank
from transaction_manager import transaction

logger = logging.getLogger(__name__)

GRAB_NOW = "grab_now"
DEFERRED = "deferred"


@dataclass
class DelayDecision:
    action: str
    eligible_at: str = ""
    reason: str = ""
    replaced: bool = False

    @property
    def grab_now(self) -> bool:
        return self.action == GRAB_NOW


def bypass_reason(profile: dict, candidate: CandidateRelease, score: int) -> str:
    """Why a candidate skips the delay, "" when it does not."""
    quality = candidate.quality
    bypass_res = profile.get("bypass_if_resolution")
    if bypass_res and quality.resolution_rank and quality.resolution_rank >= resolution_rank(bypass_res):
        return f"resolution {quality.resolution} >= {bypass_res}"

    bypass_src = profile.get("bypass_if_source")
    if bypass_src and quality.source_rank and quality.source_rank >= source_rank(bypass_src):
        return f"source {quality.source} >= {bypass_src}"

    threshold = profile.get("bypass_if_score_above")
    if threshold is not None and score > threshold:
        return f"score {score} > {threshold}"
    return ""


class DelayGate:
    def __init__(self, profiles=None, pending=None):
        self.profiles = profiles or DelayProfileRepository()
        self.pending = pending or PendingGrabRepository()

    def evaluate(self, media: dict, candidate: CandidateRelease, score: int) -> DelayDecision:
        """Decide whether the winning candidate is grabbed now or deferred.

        A deferred candidate replaces an existing pending grab for the same
        item only when it scores higher; the replacement restarts the delay.
        """
        profile = self.profiles.get_for_library(media.get("library_id"))
        if profile is None:
            return DelayDecision(GRAB_NOW, reason="no delay profile")
        if not profile.get("delay_minutes"):
            return DelayDecision(GRAB_NOW, reason="zero delay")

        reason = bypass_reason(profile, candidate, score)
        if reason:
            logger.info("Delay bypassed for '%s': %s", candidate.title, reason)
            return DelayDecision(GRAB_NOW, reason=f"bypass: {reason}")

        available_at = (datetime.now(UTC) + timedelta(minutes=profile["delay_minutes"])).isoformat()
        with transaction():
            stored, row = self.pending.upsert_if_better(media["id"], candidate, score, available_at)

        if not stored:
            logger.debug("Pending grab for media %s kept: '%s' (%d) >= '%s' (%d)",
                         media["id"], row["release_title"], row["score"], candidate.title, score)
            return DelayDecision(DEFERRED, eligible_at=row["available_at"], reason="better candidate pending")

        logger.info("Deferred '%s' for media %s until %s", candidate.title, media["id"], available_at)
        emit_event("grab_deferred", {
            "media_id": media["id"],
            "release_title": candidate.title,
            "score": score,
            "available_at": available_at,
        })
        return DelayDecision(DEFERRED, eligible_at=available_at, reason=profile.get("name", ""), replaced=True)
