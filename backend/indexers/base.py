"""Abstract indexer interface and the search query model.

Every indexer protocol returns the same CandidateRelease shape. The grab
engine depends on ``Indexer.search``, the RSS sync pass on
``Indexer.fetch_rss``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from quality.model import CandidateRelease, Protocol


@dataclass
class SearchQuery:
    """What to search for, built from a media_items row."""

    title: str = ""
    year: int | None = None
    season: int | None = None
    episode: int | None = None
    air_date: str = ""
    imdb_id: str = ""
    tvdb_id: str = ""
    media_type: str = "movie"
    categories: list[int] = field(default_factory=list)

    @property
    def is_episode(self) -> bool:
        return self.media_type != "movie"

    @property
    def display_name(self) -> str:
        if self.is_episode and self.season is not None and self.episode is not None:
            return f"{self.title} S{self.season:02d}E{self.episode:02d}"
        return f"{self.title} ({self.year})" if self.year else self.title

    @classmethod
    def from_media(cls, media: dict) -> "SearchQuery":
        return cls(
            title=media.get("title") or "",
            year=media.get("year"),
            season=media.get("season"),
            episode=media.get("episode"),
            air_date=media.get("air_date") or "",
            imdb_id=media.get("imdb_id") or "",
            tvdb_id=media.get("tvdb_id") or "",
            media_type=media.get("media_type") or "movie",
        )


class Indexer(ABC):
    """Base class for indexer adapters.

    Class attributes:
        name: Registry key, matches indexers.protocol.
        protocol: Transfer protocol of the releases this indexer lists.
    """

    name: str = "unknown"
    protocol: Protocol = Protocol.TORRENT

    def __init__(self, indexer_id: int | None, display_name: str, url: str,
                 api_key: str = "", priority: int = 25, categories: list[int] | None = None,
                 timeout: int = 30):
        self.indexer_id = indexer_id
        self.display_name = display_name
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.priority = priority
        self.categories = categories or []
        self.timeout = timeout

    @abstractmethod
    def search(self, query: SearchQuery, categories: list[int] | None = None) -> list[CandidateRelease]:
        """Search the indexer.

        Raises:
            IndexerError: The indexer could not be reached or its response
                could not be parsed.
        """

    def fetch_rss(self) -> list[CandidateRelease]:
        """Latest releases from the indexer's feed, without a query.

        Adapters without a recent-releases feed return nothing.
        """
        return []

    def test_connection(self) -> bool:
        """Check reachability. Override for protocols with a cheap probe."""
        self.search(SearchQuery(title="test"))
        return True
