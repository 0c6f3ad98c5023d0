"""Quality ORM models: presets, release filters, per-media overrides and status.

Set-valued columns (HDR formats, audio formats) are JSON text; the
repositories convert them to lists at the boundary. Flags are 0/1 integers
and timestamps are ISO-8601 text, like every other table.
"""

from typing import Optional

from sqlalchemy import Index, Integer, Text, String
from sqlalchemy.orm import Mapped, mapped_column

from extensions import db


class QualityPreset(db.Model):
    """Target quality descriptor applied to a library or a single media item."""

    __tablename__ = "quality_presets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    media_type: Mapped[str] = mapped_column(String(10), nullable=False, default="movie")
    is_default: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_built_in: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolution: Mapped[str] = mapped_column(String(10), nullable=False, default="1080p")
    min_resolution: Mapped[Optional[str]] = mapped_column(String(10), default="")
    source: Mapped[str] = mapped_column(String(10), nullable=False, default="any")
    hdr_formats: Mapped[Optional[str]] = mapped_column(Text, default="[]")
    codec: Mapped[str] = mapped_column(String(10), nullable=False, default="any")
    audio_formats: Mapped[Optional[str]] = mapped_column(Text, default="[]")
    preferred_edition: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    min_seeders: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    prefer_season_packs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_upgrade: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    upgrade_delete_old: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    prefer_dual_audio: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prefer_dubbed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    preferred_language: Mapped[Optional[str]] = mapped_column(String(10), default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_quality_presets_default", "is_default"),)


class ReleaseFilter(db.Model):
    """must_contain / must_not_contain rule attached to a preset."""

    __tablename__ = "release_filters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    preset_id: Mapped[int] = mapped_column(Integer, nullable=False)
    filter_type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    is_regex: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("idx_release_filters_preset", "preset_id"),)


class MediaQualityOverride(db.Model):
    """Per-media opt-out of the library/global preset."""

    __tablename__ = "media_quality_override"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    preset_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    monitored: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class MediaQualityStatus(db.Model):
    """Quality currently held by a media item versus its target."""

    __tablename__ = "media_quality_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    current_resolution: Mapped[Optional[str]] = mapped_column(String(10), default="")
    current_source: Mapped[Optional[str]] = mapped_column(String(10), default="")
    current_codec: Mapped[Optional[str]] = mapped_column(String(10), default="")
    current_hdr: Mapped[Optional[str]] = mapped_column(Text, default="[]")
    current_audio: Mapped[Optional[str]] = mapped_column(Text, default="[]")
    current_edition: Mapped[Optional[str]] = mapped_column(String(20), default="")
    current_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_met: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    upgrade_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_search: Mapped[Optional[str]] = mapped_column(Text, default="")
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_media_quality_status_search", "last_search"),)


__all__ = [
    "QualityPreset",
    "ReleaseFilter",
    "MediaQualityOverride",
    "MediaQualityStatus",
]
