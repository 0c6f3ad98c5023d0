"""Trust and exclusion gate applied to every candidate before scoring.

Checks run in a fixed order and stop at the first rejection:

1. media exclusion, then indexer-per-library exclusion
2. blocked release group (skipped when the group is also trusted)
3. non-expired blocklist entry on the normalized release title

A trusted group is reported back so the scorer can add its bonus.
"""

import logging
from dataclasses import dataclass

from db.repositories.blocklist import BlocklistRepository
from db.repositories.exclusions import ExclusionRepository
from db.repositories.groups import GroupTrustRepository
from quality.model import CandidateRelease

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    admitted: bool
    reason: str = ""
    trusted: bool = False


class TrustGate:
    """Admit or reject candidates for one media item."""

    def __init__(self, exclusions=None, groups=None, blocklist=None):
        self.exclusions = exclusions or ExclusionRepository()
        self.groups = groups or GroupTrustRepository()
        self.blocklist = blocklist or BlocklistRepository()

    def admit(self, candidate: CandidateRelease, media: dict) -> GateDecision:
        media_id = media.get("id")
        if media_id is not None and self.exclusions.is_media_excluded(media_id):
            return GateDecision(False, "Media item is excluded")

        if self.exclusions.is_indexer_excluded(candidate.indexer_id, media.get("library_id")):
            return GateDecision(
                False, f"Indexer {candidate.indexer_name or candidate.indexer_id} excluded for this library"
            )

        group = candidate.release_group
        trusted = bool(group) and self.groups.is_group_trusted(group)
        if group and not trusted and self.groups.is_group_blocked(group):
            return GateDecision(False, f"Release group '{group}' is blocked")

        if self.blocklist.is_release_blocklisted(candidate.title):
            return GateDecision(False, "Release is blocklisted", trusted=trusted)

        return GateDecision(True, trusted=trusted)
