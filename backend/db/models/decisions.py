"""Decision-table ORM models: delay profiles, pending grabs, blocklist, trust lists, exclusions."""

from typing import Optional

from sqlalchemy import Index, Integer, Text, String
from sqlalchemy.orm import Mapped, mapped_column

from extensions import db


class DelayProfile(db.Model):
    """Holds admitted candidates back for a while unless a bypass applies."""

    __tablename__ = "delay_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bypass_if_resolution: Mapped[Optional[str]] = mapped_column(String(10), default="")
    bypass_if_source: Mapped[Optional[str]] = mapped_column(String(10), default="")
    bypass_if_score_above: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    library_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class PendingGrab(db.Model):
    """A scored, admitted candidate waiting for its delay to elapse."""

    __tablename__ = "pending_grabs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    release_title: Mapped[str] = mapped_column(Text, nullable=False)
    release_data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    indexer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    available_at: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_pending_grabs_available", "available_at"),)


class BlocklistEntry(db.Model):
    """A specific release that must not be grabbed again (until expiry)."""

    __tablename__ = "blocklist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    release_title: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_title: Mapped[str] = mapped_column(Text, nullable=False)
    release_group: Mapped[Optional[str]] = mapped_column(Text, default="")
    indexer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text, default="")
    is_manual: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_blocklist_normalized", "normalized_title"),
        Index("idx_blocklist_expires", "expires_at"),
    )


class BlockedGroup(db.Model):
    """Release group deny-list entry, manual or auto-blocked after failures."""

    __tablename__ = "blocked_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, default="")
    auto_blocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_blocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class TrustedGroup(db.Model):
    """Release group allow-list entry."""

    __tablename__ = "trusted_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    category: Mapped[Optional[str]] = mapped_column(Text, default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class Exclusion(db.Model):
    """Hard 'never consider' rule for a media item or an indexer within a library."""

    __tablename__ = "exclusions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exclusion_type: Mapped[str] = mapped_column(String(20), nullable=False)
    media_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    indexer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    library_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_exclusions_media", "media_id"),
        Index("idx_exclusions_indexer_library", "indexer_id", "library_id"),
    )


__all__ = [
    "DelayProfile",
    "PendingGrab",
    "BlocklistEntry",
    "BlockedGroup",
    "TrustedGroup",
    "Exclusion",
]
