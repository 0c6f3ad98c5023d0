"""Acquisition lifecycle ORM models: grab history, downloads, import history.

References run forward only: media -> grab -> download -> import.
"""

from typing import Optional

from sqlalchemy import BigInteger, Float, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from extensions import db

_ACTIVE_SQL = "status IN ('downloading', 'completed', 'importing')"


class GrabHistory(db.Model):
    """Audit record of one grab attempt."""

    __tablename__ = "grab_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False)
    release_title: Mapped[str] = mapped_column(Text, nullable=False)
    indexer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    indexer_name: Mapped[Optional[str]] = mapped_column(Text, default="")
    quality_resolution: Mapped[Optional[str]] = mapped_column(String(10), default="")
    quality_source: Mapped[Optional[str]] = mapped_column(String(10), default="")
    quality_codec: Mapped[Optional[str]] = mapped_column(String(10), default="")
    quality_audio: Mapped[Optional[str]] = mapped_column(Text, default="")
    quality_hdr: Mapped[Optional[str]] = mapped_column(Text, default="")
    release_group: Mapped[Optional[str]] = mapped_column(Text, default="")
    size: Mapped[Optional[int]] = mapped_column(BigInteger, default=0)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_client_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    download_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="grabbed")
    error_message: Mapped[Optional[str]] = mapped_column(Text, default="")
    grabbed_at: Mapped[str] = mapped_column(Text, nullable=False)
    imported_at: Mapped[Optional[str]] = mapped_column(Text, default="")

    __table_args__ = (
        Index("idx_grab_history_media", "media_id"),
        Index("idx_grab_history_grabbed", "grabbed_at"),
    )


class Download(db.Model):
    """Tracking row for one in-flight or finished acquisition."""

    __tablename__ = "downloads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    download_client_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(Text, default="")
    media_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grab_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[Optional[int]] = mapped_column(BigInteger, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="downloading")
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    download_path: Mapped[Optional[str]] = mapped_column(Text, default="")
    imported_path: Mapped[Optional[str]] = mapped_column(Text, default="")
    error: Mapped[Optional[str]] = mapped_column(Text, default="")
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stalled_notified: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_upgrade: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_progress_at: Mapped[Optional[str]] = mapped_column(Text, default="")
    failed_at: Mapped[Optional[str]] = mapped_column(Text, default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_downloads_status", "status"),
        Index("idx_downloads_media", "media_id"),
        Index("idx_downloads_external", "download_client_id", "external_id"),
        # One non-terminal download per media item
        Index(
            "uq_downloads_active_media", "media_id", unique=True,
            sqlite_where=text(_ACTIVE_SQL), postgresql_where=text(_ACTIVE_SQL),
        ),
    )


class ImportHistory(db.Model):
    """Record of one file-move attempt."""

    __tablename__ = "import_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    download_id: Mapped[int] = mapped_column(Integer, nullable=False)
    media_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source_path: Mapped[Optional[str]] = mapped_column(Text, default="")
    dest_path: Mapped[Optional[str]] = mapped_column(Text, default="")
    success: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text, default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_import_history_download", "download_id"),)


__all__ = [
    "GrabHistory",
    "Download",
    "ImportHistory",
]
