"""Torznab indexer adapter (Jackett, Prowlarr and native torznab feeds).

The API is an RSS 2.0 feed; release metadata is carried in ``enclosure``
and in ``torznab:attr name=... value=...`` elements.
"""

import logging
from lxml import etree

from error_handler import IndexerError
from http_session import create_session
from indexers import register_indexer
from indexers.base import Indexer, SearchQuery
from quality.model import CandidateRelease, Protocol
from quality.parser import parse_release

logger = logging.getLogger(__name__)

TORZNAB_NS = "http://torznab.com/schemas/2015/feed"

# Standard newznab category ranges
MOVIE_CATEGORIES = [2000]
TV_CATEGORIES = [5000]

# Items requested from the latest-releases feed
RSS_LIMIT = 100


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@register_indexer
class TorznabIndexer(Indexer):
    """Torrent indexer speaking the torznab API."""

    name = "torznab"
    protocol = Protocol.TORRENT
    attr_namespace = TORZNAB_NS

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = create_session(IndexerError, timeout=self.timeout)

    def build_params(self, query: SearchQuery, categories: list[int] | None) -> dict:
        """Query-string parameters for an API search call."""
        params = {"apikey": self.api_key}
        cats = categories or self.categories or (
            TV_CATEGORIES if query.is_episode else MOVIE_CATEGORIES
        )
        params["cat"] = ",".join(str(c) for c in cats)

        if query.is_episode:
            params["t"] = "tvsearch"
            params["q"] = query.title
            if query.tvdb_id:
                params["tvdbid"] = query.tvdb_id
            if query.air_date:
                # Daily shows search by date: season=YYYY, ep=MM/DD
                year, _, month_day = query.air_date.partition("-")
                params["season"] = year
                params["ep"] = month_day.replace("-", "/")
            else:
                if query.season is not None:
                    params["season"] = query.season
                if query.episode is not None:
                    params["ep"] = query.episode
        else:
            params["t"] = "movie"
            if query.imdb_id:
                params["imdbid"] = query.imdb_id.removeprefix("tt")
            else:
                params["q"] = f"{query.title} {query.year}" if query.year else query.title
        return params

    def rss_params(self) -> dict:
        """Query-string parameters for the latest-releases feed."""
        params = {"apikey": self.api_key, "t": "search", "limit": RSS_LIMIT}
        if self.categories:
            params["cat"] = ",".join(str(c) for c in self.categories)
        return params

    def search(self, query: SearchQuery, categories: list[int] | None = None) -> list[CandidateRelease]:
        results = self._fetch(self.build_params(query, categories))
        logger.debug("%s: %d results for %s", self.display_name, len(results), query.display_name)
        return results

    def fetch_rss(self) -> list[CandidateRelease]:
        # A search call without a query returns the newest releases
        results = self._fetch(self.rss_params())
        logger.debug("%s: %d releases in feed", self.display_name, len(results))
        return results

    def _fetch(self, params: dict) -> list[CandidateRelease]:
        resp = self.session.get(f"{self.url}/api", params=params)
        if resp.status_code != 200:
            raise IndexerError(
                f"{self.display_name} returned HTTP {resp.status_code}",
                context={"indexer": self.display_name, "status_code": resp.status_code},
            )
        return self.parse_feed(resp.content)

    def parse_feed(self, xml_bytes: bytes) -> list[CandidateRelease]:
        """Parse an RSS response body into candidates.

        Raises:
            IndexerError: Malformed XML or a torznab ``<error>`` document.
        """
        try:
            parser = etree.XMLParser(resolve_entities=False, no_network=True)
            root = etree.fromstring(xml_bytes, parser)
        except etree.XMLSyntaxError as exc:
            raise IndexerError(f"{self.display_name}: invalid XML response: {exc}") from exc

        if root.tag == "error":
            raise IndexerError(
                f"{self.display_name}: {root.get('description') or 'indexer error'}",
                context={"indexer": self.display_name, "error_code": root.get("code")},
            )

        channel = root.find("channel")
        if channel is None:
            return []

        results = []
        for item in channel.findall("item"):
            candidate = self._parse_item(item)
            if candidate is not None:
                results.append(candidate)
        return results

    def _attrs(self, item: etree._Element) -> dict[str, str]:
        attrs = {}
        for el in item.findall(f"{{{self.attr_namespace}}}attr"):
            name = el.get("name")
            if name:
                attrs[name.lower()] = el.get("value", "")
        return attrs

    def _parse_item(self, item: etree._Element) -> CandidateRelease | None:
        title = (item.findtext("title") or "").strip()
        if not title:
            return None
        attrs = self._attrs(item)

        enclosure = item.find("enclosure")
        enclosure_url = enclosure.get("url", "") if enclosure is not None else ""
        size = _int(enclosure.get("length")) if enclosure is not None else 0
        if not size:
            size = _int(attrs.get("size")) or _int(item.findtext("size"))

        download_url = attrs.get("magneturl") or enclosure_url or (item.findtext("link") or "")
        return CandidateRelease(
            title=title,
            size=size,
            seeders=self._seeders(attrs),
            protocol=self.protocol,
            indexer_id=self.indexer_id,
            indexer_name=self.display_name,
            indexer_priority=self.priority,
            download_url=download_url,
            guid=item.findtext("guid") or download_url,
            published_at=item.findtext("pubDate") or "",
            quality=parse_release(title),
        )

    def _seeders(self, attrs: dict[str, str]) -> int:
        return _int(attrs.get("seeders"))
