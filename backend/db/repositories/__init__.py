"""Repository pattern for Grabarr database operations using SQLAlchemy ORM.

Each repository wraps the queries for one area of the schema and returns
plain dicts (or quality model objects) so callers never hold ORM rows
across sessions or threads.
"""

from db.repositories.base import BaseRepository
from db.repositories.blocklist import BlocklistRepository
from db.repositories.delay import DelayProfileRepository, PendingGrabRepository
from db.repositories.downloads import DownloadRepository
from db.repositories.exclusions import ExclusionRepository
from db.repositories.groups import GroupTrustRepository
from db.repositories.history import HistoryRepository
from db.repositories.media import MediaRepository
from db.repositories.naming import NamingTemplateRepository
from db.repositories.presets import QualityPresetRepository
from db.repositories.quality import MediaQualityRepository
from db.repositories.sources import SourceRepository
from db.repositories.tasks import ScheduledTaskRepository

__all__ = [
    "BaseRepository",
    # Quality
    "QualityPresetRepository",
    "MediaQualityRepository",
    # Decision gates
    "BlocklistRepository",
    "DelayProfileRepository",
    "ExclusionRepository",
    "GroupTrustRepository",
    "PendingGrabRepository",
    # Lifecycle
    "DownloadRepository",
    "HistoryRepository",
    # Library and sources
    "MediaRepository",
    "NamingTemplateRepository",
    "ScheduledTaskRepository",
    "SourceRepository",
]
