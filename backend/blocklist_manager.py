"""Failure accounting for grabbed releases.

A release that fails (client refusal, client error, stall) is blocklisted
and its release group is charged one failure. Groups are auto-blocked once
they reach ``auto_block_group_after`` failures; trusted groups are never
charged.
"""

import logging

from db.repositories.blocklist import BlocklistRepository
from db.repositories.groups import GroupTrustRepository
from events import emit_event
from quality.parser import parse_release_group

logger = logging.getLogger(__name__)


class BlocklistManager:
    def __init__(self, settings, blocklist=None, groups=None):
        self.settings = settings
        self.blocklist = blocklist or BlocklistRepository()
        self.groups = groups or GroupTrustRepository()

    def record_failed_release(self, release_title: str, media_id: int | None = None,
                              indexer_id: int | None = None, reason: str = "",
                              error: str = "") -> dict:
        """Blocklist a failed release and charge its group.

        Returns:
            The blocklist entry dict.
        """
        entry = self.blocklist.add_entry(
            release_title,
            media_id=media_id,
            indexer_id=indexer_id,
            reason=reason,
            error_message=error,
            expires_in_hours=self.settings.failed_blocklist_hours or None,
        )
        emit_event("release_blocklisted", {
            "release_title": release_title,
            "media_id": media_id,
            "reason": reason,
        })

        group = parse_release_group(release_title)
        if group and self.groups.record_group_failure(group, self.settings.auto_block_group_after):
            emit_event("group_auto_blocked", {
                "group": group,
                "failure_count": self.groups.get_failure_count(group),
            })
        return entry

    def expire(self) -> int:
        """Drop expired automatic entries. Manual entries are kept."""
        return self.blocklist.purge_expired()
