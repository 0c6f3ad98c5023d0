"""Library-side ORM models: libraries, monitored media, sources, naming, scheduled tasks.

Media rows are written by the external discovery layer; the engine only
reads them and updates ``file_path`` after a successful import.
"""

from typing import Optional

from sqlalchemy import Index, Integer, Text, String
from sqlalchemy.orm import Mapped, mapped_column

from extensions import db


class Library(db.Model):
    """Root folder for one media type with an optional preset."""

    __tablename__ = "libraries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    root_path: Mapped[str] = mapped_column(Text, nullable=False)
    media_type: Mapped[str] = mapped_column(String(10), nullable=False, default="movie")
    preset_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class MediaItem(db.Model):
    """A monitored movie or episode."""

    __tablename__ = "media_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    library_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    media_type: Mapped[str] = mapped_column(String(10), nullable=False, default="movie")
    series_type: Mapped[Optional[str]] = mapped_column(String(10), default="standard")
    title: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    season: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    episode: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    episode_title: Mapped[Optional[str]] = mapped_column(Text, default="")
    air_date: Mapped[Optional[str]] = mapped_column(Text, default="")
    imdb_id: Mapped[Optional[str]] = mapped_column(Text, default="")
    tvdb_id: Mapped[Optional[str]] = mapped_column(Text, default="")
    monitored: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    file_path: Mapped[Optional[str]] = mapped_column(Text, default="")
    added_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_media_items_library", "library_id"),
        Index("idx_media_items_monitored", "monitored"),
    )


class Indexer(db.Model):
    """Configured torznab/newznab endpoint."""

    __tablename__ = "indexers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    protocol: Mapped[str] = mapped_column(String(20), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    api_key: Mapped[Optional[str]] = mapped_column(Text, default="")
    categories: Mapped[Optional[str]] = mapped_column(Text, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class DownloadClientConfig(db.Model):
    """Configured download client instance."""

    __tablename__ = "download_clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    client_type: Mapped[str] = mapped_column(String(20), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(Text, default="")
    password: Mapped[Optional[str]] = mapped_column(Text, default="")
    api_key: Mapped[Optional[str]] = mapped_column(Text, default="")
    category: Mapped[Optional[str]] = mapped_column(Text, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class NamingTemplate(db.Model):
    """Folder and file templates for one media layout (movie/tv/daily)."""

    __tablename__ = "naming_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_type: Mapped[str] = mapped_column(String(10), nullable=False)
    folder_template: Mapped[str] = mapped_column(Text, nullable=False)
    file_template: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ScheduledTask(db.Model):
    """Persisted run metadata for one named scheduler task."""

    __tablename__ = "scheduled_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    last_run: Mapped[Optional[str]] = mapped_column(Text, default="")
    next_run: Mapped[Optional[str]] = mapped_column(Text, default="")
    last_duration_ms: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    last_status: Mapped[Optional[str]] = mapped_column(String(20), default="")
    last_error: Mapped[Optional[str]] = mapped_column(Text, default="")
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


__all__ = [
    "Library",
    "MediaItem",
    "Indexer",
    "DownloadClientConfig",
    "NamingTemplate",
    "ScheduledTask",
]
