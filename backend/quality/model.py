"""Quality value objects shared by the parser, scorer and decision gates.

Ranked enums give resolution and source a total order; everything else is
a plain set or string compared for overlap/equality. These objects never
touch the database: repositories convert rows to and from them.
"""

from dataclasses import asdict, dataclass, field
from enum import StrEnum


class Resolution(StrEnum):
    SD = "480p"
    HD = "720p"
    FHD = "1080p"
    UHD = "2160p"
    UNKNOWN = ""


class Source(StrEnum):
    """Preset source floor. Detected sources map onto these tiers."""

    ANY = "any"
    WEB = "web"
    BLURAY = "bluray"
    REMUX = "remux"


class Protocol(StrEnum):
    TORRENT = "torrent"
    USENET = "usenet"


RESOLUTION_RANK = {
    "480p": 1,
    "sd": 1,
    "720p": 2,
    "1080p": 3,
    "2160p": 4,
    "4k": 4,
    "uhd": 4,
}

# Detected source -> preset tier rank
SOURCE_RANK = {
    "any": 0,
    "dvd": 0,
    "cam": 0,
    "hdtv": 1,
    "web": 1,
    "webrip": 1,
    "webdl": 1,
    "bluray": 2,
    "remux": 3,
}


def resolution_rank(value: str | None) -> int:
    """Rank of a resolution label, 0 when unknown."""
    if not value:
        return 0
    return RESOLUTION_RANK.get(value.lower(), 0)


def source_rank(value: str | None) -> int:
    if not value:
        return 0
    return SOURCE_RANK.get(value.lower(), 0)


def normalize_resolution(value: str | None) -> str:
    """Canonical label for a resolution alias ("4k" -> "2160p")."""
    rank = resolution_rank(value)
    for res in (Resolution.SD, Resolution.HD, Resolution.FHD, Resolution.UHD):
        if RESOLUTION_RANK[res.value] == rank:
            return res.value
    return Resolution.UNKNOWN.value


@dataclass
class ReleaseFilterRule:
    """must_contain / must_not_contain rule."""

    filter_type: str
    value: str
    is_regex: bool = False


@dataclass
class QualityTarget:
    """What a preset asks for. Built from a quality_presets row."""

    name: str = ""
    id: int | None = None
    media_type: str = "movie"
    resolution: str = "1080p"
    min_resolution: str = ""
    source: str = "any"
    hdr_formats: set[str] = field(default_factory=set)
    codec: str = "any"
    audio_formats: set[str] = field(default_factory=set)
    preferred_edition: str = "any"
    min_seeders: int = 3
    prefer_season_packs: bool = False
    auto_upgrade: bool = True
    upgrade_delete_old: bool = True
    prefer_dual_audio: bool = False
    prefer_dubbed: bool = False
    preferred_language: str = ""
    is_default: bool = False
    is_built_in: bool = False

    @property
    def floor_resolution(self) -> str:
        """Lowest acceptable resolution (defaults to the target itself)."""
        return self.min_resolution or self.resolution

    @classmethod
    def from_dict(cls, data: dict) -> "QualityTarget":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            media_type=data.get("media_type", "movie"),
            resolution=data.get("resolution", "1080p"),
            min_resolution=data.get("min_resolution") or "",
            source=data.get("source", "any"),
            hdr_formats=set(data.get("hdr_formats") or []),
            codec=data.get("codec", "any"),
            audio_formats=set(data.get("audio_formats") or []),
            preferred_edition=data.get("preferred_edition", "any"),
            min_seeders=int(data.get("min_seeders", 3) or 0),
            prefer_season_packs=bool(data.get("prefer_season_packs")),
            auto_upgrade=bool(data.get("auto_upgrade", True)),
            upgrade_delete_old=bool(data.get("upgrade_delete_old", True)),
            prefer_dual_audio=bool(data.get("prefer_dual_audio")),
            prefer_dubbed=bool(data.get("prefer_dubbed")),
            preferred_language=data.get("preferred_language") or "",
            is_default=bool(data.get("is_default")),
            is_built_in=bool(data.get("is_built_in")),
        )


@dataclass
class ReleaseQuality:
    """Attributes detected from a release name."""

    resolution: str = ""
    source: str = ""
    codec: str = ""
    hdr_formats: set[str] = field(default_factory=set)
    audio_formats: set[str] = field(default_factory=set)
    edition: str = ""
    release_group: str = ""
    season: int | None = None
    episode: int | None = None
    season_pack: bool = False
    proper: bool = False
    repack: bool = False
    dual_audio: bool = False
    dubbed: bool = False

    @property
    def resolution_rank(self) -> int:
        return resolution_rank(self.resolution)

    @property
    def source_rank(self) -> int:
        return source_rank(self.source)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["hdr_formats"] = sorted(self.hdr_formats)
        data["audio_formats"] = sorted(self.audio_formats)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ReleaseQuality":
        data = dict(data or {})
        data["hdr_formats"] = set(data.get("hdr_formats") or [])
        data["audio_formats"] = set(data.get("audio_formats") or [])
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class CandidateRelease:
    """A single indexer search result."""

    title: str
    size: int = 0
    seeders: int = 0
    protocol: Protocol = Protocol.TORRENT
    indexer_id: int | None = None
    indexer_name: str = ""
    indexer_priority: int = 25
    download_url: str = ""
    guid: str = ""
    published_at: str = ""
    quality: ReleaseQuality = field(default_factory=ReleaseQuality)

    @property
    def release_group(self) -> str:
        return self.quality.release_group

    @property
    def is_torrent(self) -> bool:
        return self.protocol == Protocol.TORRENT

    def to_dict(self) -> dict:
        """Serializable form stored in pending_grabs.release_data."""
        return {
            "title": self.title,
            "size": self.size,
            "seeders": self.seeders,
            "protocol": self.protocol.value,
            "indexer_id": self.indexer_id,
            "indexer_name": self.indexer_name,
            "indexer_priority": self.indexer_priority,
            "download_url": self.download_url,
            "guid": self.guid,
            "published_at": self.published_at,
            "quality": self.quality.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateRelease":
        return cls(
            title=data["title"],
            size=int(data.get("size") or 0),
            seeders=int(data.get("seeders") or 0),
            protocol=Protocol(data.get("protocol", Protocol.TORRENT.value)),
            indexer_id=data.get("indexer_id"),
            indexer_name=data.get("indexer_name", ""),
            indexer_priority=int(data.get("indexer_priority", 25)),
            download_url=data.get("download_url", ""),
            guid=data.get("guid", ""),
            published_at=data.get("published_at", ""),
            quality=ReleaseQuality.from_dict(data.get("quality") or {}),
        )
