"""Indexer system: search every enabled indexer concurrently.

Adapters register themselves by protocol name; the IndexerManager builds
instances from the ``indexers`` table on each pass so configuration
changes apply without a restart.

Usage:
    manager = IndexerManager(settings, breakers)
    candidates = manager.search(SearchQuery.from_media(media))
    latest = manager.fetch_rss()
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError

from circuit_breaker import BreakerRegistry
from indexers.base import Indexer, SearchQuery
from quality.model import CandidateRelease

logger = logging.getLogger(__name__)

_INDEXER_CLASSES: dict[str, type[Indexer]] = {}


def register_indexer(cls: type[Indexer]) -> type[Indexer]:
    """Decorator to register an indexer class under its protocol name."""
    if cls.name in _INDEXER_CLASSES:
        logger.warning("Indexer name collision: '%s' already registered, skipping %s",
                       cls.name, cls.__name__)
        return cls
    _INDEXER_CLASSES[cls.name] = cls
    return cls


def _load_builtin_indexers() -> None:
    from indexers import newznab, torznab  # noqa: F401


def get_indexer_class(name: str) -> type[Indexer] | None:
    _load_builtin_indexers()
    return _INDEXER_CLASSES.get(name)


def _parse_categories(raw: str | None) -> list[int]:
    cats = []
    for part in (raw or "").split(","):
        part = part.strip()
        if part.isdigit():
            cats.append(int(part))
    return cats


def build_indexer(row: dict, timeout: int = 30) -> Indexer | None:
    """Instantiate an adapter for an ``indexers`` row."""
    cls = get_indexer_class(row["protocol"])
    if cls is None:
        logger.warning("Unknown indexer protocol '%s' for %s", row["protocol"], row["name"])
        return None
    return cls(
        row["id"],
        row["name"],
        row["url"],
        api_key=row.get("api_key") or "",
        priority=row.get("priority", 25),
        categories=_parse_categories(row.get("categories")),
        timeout=timeout,
    )


class IndexerManager:
    """Fans a search out to every enabled indexer.

    A slow or failing indexer contributes nothing to the pass; failures and
    timeouts are counted on the indexer's circuit breaker, and open
    breakers skip the indexer entirely.
    """

    def __init__(self, settings, breakers: BreakerRegistry):
        self.settings = settings
        self.breakers = breakers

    def _breaker_name(self, indexer: Indexer) -> str:
        return f"indexer:{indexer.display_name}"

    def load_indexers(self) -> list[Indexer]:
        from db.repositories.sources import SourceRepository

        indexers = []
        for row in SourceRepository().list_indexers(enabled_only=True):
            indexer = build_indexer(row, timeout=self.settings.indexer_timeout_seconds)
            if indexer is not None:
                indexers.append(indexer)
        return indexers

    def _available(self, indexers: list[Indexer] | None, exclude_ids: set[int] | None) -> list[Indexer]:
        from metrics import record_indexer_search

        if indexers is None:
            indexers = self.load_indexers()
        exclude_ids = exclude_ids or set()

        active = []
        for indexer in indexers:
            if indexer.indexer_id in exclude_ids:
                continue
            if not self.breakers.get(self._breaker_name(indexer)).allow_request():
                logger.debug("Skipping indexer %s: circuit open", indexer.display_name)
                record_indexer_search(indexer.display_name, "skipped")
                continue
            active.append(indexer)
        return active

    def search(self, query: SearchQuery, indexers: list[Indexer] | None = None,
               exclude_ids: set[int] | None = None) -> list[CandidateRelease]:
        """Search all indexers in parallel and merge their candidates.

        Args:
            query: What to search for.
            indexers: Pre-built adapters (defaults to the enabled rows).
            exclude_ids: Indexer ids to skip (indexer-per-library exclusions).
        """
        active = self._available(indexers, exclude_ids)
        if not active:
            return []
        candidates = self._gather(active, lambda ix: ix.search(query), "search")
        logger.info("Search for %s: %d candidates from %d indexers",
                    query.display_name, len(candidates), len(active))
        return candidates

    def fetch_rss(self, indexers: list[Indexer] | None = None) -> list[CandidateRelease]:
        """Fetch every indexer's latest-releases feed in parallel."""
        active = self._available(indexers, None)
        if not active:
            return []
        releases = self._gather(active, lambda ix: ix.fetch_rss(), "RSS fetch")
        logger.info("RSS fetch: %d releases from %d indexers", len(releases), len(active))
        return releases

    def _gather(self, active: list[Indexer], call: Callable[[Indexer], list[CandidateRelease]],
                label: str) -> list[CandidateRelease]:
        from metrics import record_indexer_search

        candidates: list[CandidateRelease] = []
        timeout = self.settings.indexer_timeout_seconds + 3
        executor = ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="indexer")
        futures = {executor.submit(self._timed, call, ix): ix for ix in active}
        try:
            for future in as_completed(futures, timeout=timeout):
                indexer = futures[future]
                breaker = self.breakers.get(self._breaker_name(indexer))
                try:
                    results, elapsed = future.result()
                except Exception as e:
                    logger.warning("Indexer %s %s failed: %s", indexer.display_name, label, e)
                    breaker.record_failure()
                    record_indexer_search(indexer.display_name, "error")
                    continue
                # An empty result list is a healthy response
                breaker.record_success()
                record_indexer_search(indexer.display_name, "ok", elapsed)
                candidates.extend(results)
        except FutureTimeoutError:
            for future, indexer in futures.items():
                if not future.done():
                    logger.warning("Indexer %s %s timed out", indexer.display_name, label)
                    self.breakers.get(self._breaker_name(indexer)).record_failure()
                    record_indexer_search(indexer.display_name, "timeout")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return candidates

    @staticmethod
    def _timed(call, indexer: Indexer) -> tuple[list[CandidateRelease], float]:
        start = time.monotonic()
        results = call(indexer)
        return results, time.monotonic() - start

    def circuit_status(self) -> list[dict]:
        return [s for s in self.breakers.statuses() if s["name"].startswith("indexer:")]
