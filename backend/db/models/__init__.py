"""SQLAlchemy ORM models for the Grabarr database.

All models use Flask-SQLAlchemy's db.Model as the base class.
Import all models from here to ensure Alembic autogenerate detects them.
"""

from db.models.decisions import (
    BlockedGroup,
    BlocklistEntry,
    DelayProfile,
    Exclusion,
    PendingGrab,
    TrustedGroup,
)
from db.models.library import (
    DownloadClientConfig,
    Indexer,
    Library,
    MediaItem,
    NamingTemplate,
    ScheduledTask,
)
from db.models.lifecycle import (
    Download,
    GrabHistory,
    ImportHistory,
)
from db.models.quality import (
    MediaQualityOverride,
    MediaQualityStatus,
    QualityPreset,
    ReleaseFilter,
)

__all__ = [
    # decisions
    "BlockedGroup",
    "BlocklistEntry",
    "DelayProfile",
    "Exclusion",
    "PendingGrab",
    "TrustedGroup",
    # library
    "DownloadClientConfig",
    "Indexer",
    "Library",
    "MediaItem",
    "NamingTemplate",
    "ScheduledTask",
    # lifecycle
    "Download",
    "GrabHistory",
    "ImportHistory",
    # quality
    "MediaQualityOverride",
    "MediaQualityStatus",
    "QualityPreset",
    "ReleaseFilter",
]
