"""Download client system: hand grabs to torrent and usenet clients.

Adapters register themselves by client type; the DownloadClientManager
builds them from the ``download_clients`` table and routes each release to
the first healthy client, by priority, that accepts its protocol.

Usage:
    manager = DownloadClientManager(settings, breakers)
    client_id, external_id = manager.submit(candidate)
    status = manager.poll(download)
"""

import logging
import threading

from circuit_breaker import BreakerRegistry
from download_clients.base import ClientStatus, DownloadClient
from error_handler import DownloadClientError
from quality.model import CandidateRelease

logger = logging.getLogger(__name__)

_CLIENT_CLASSES: dict[str, type[DownloadClient]] = {}


def register_client(cls: type[DownloadClient]) -> type[DownloadClient]:
    """Decorator to register a download client class under its type name."""
    if cls.name in _CLIENT_CLASSES:
        logger.warning("Client name collision: '%s' already registered, skipping %s",
                       cls.name, cls.__name__)
        return cls
    _CLIENT_CLASSES[cls.name] = cls
    return cls


def _load_builtin_clients() -> None:
    from download_clients import nzbget, qbittorrent, sabnzbd, transmission  # noqa: F401


def get_client_class(name: str) -> type[DownloadClient] | None:
    _load_builtin_clients()
    return _CLIENT_CLASSES.get(name)


def build_client(row: dict, timeout: int = 15) -> DownloadClient | None:
    """Instantiate an adapter for a ``download_clients`` row."""
    cls = get_client_class(row["client_type"])
    if cls is None:
        logger.warning("Unknown client type '%s' for %s", row["client_type"], row["name"])
        return None
    return cls(
        row["id"],
        row["name"],
        row["url"],
        username=row.get("username") or "",
        password=row.get("password") or "",
        api_key=row.get("api_key") or "",
        category=row.get("category") or "",
        priority=row.get("priority", 1),
        timeout=timeout,
    )


class DownloadClientManager:
    """Routes submissions and polls to configured download clients.

    Adapters are cached per client id so that login cookies and session ids
    survive between polls; a changed configuration row rebuilds the adapter.
    """

    def __init__(self, settings, breakers: BreakerRegistry):
        self.settings = settings
        self.breakers = breakers
        self._cache: dict[int, tuple[dict, DownloadClient]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _breaker_name(client: DownloadClient) -> str:
        return f"client:{client.display_name}"

    def _adapter(self, row: dict) -> DownloadClient | None:
        with self._lock:
            cached = self._cache.get(row["id"])
            if cached is not None and cached[0] == row:
                return cached[1]
            client = build_client(row, timeout=self.settings.client_timeout_seconds)
            if client is not None:
                self._cache[row["id"]] = (row, client)
            return client

    def load_clients(self) -> list[DownloadClient]:
        """Enabled clients ordered by priority (lower first)."""
        from db.repositories.sources import SourceRepository

        clients = []
        for row in SourceRepository().list_clients(enabled_only=True):
            client = self._adapter(row)
            if client is not None:
                clients.append(client)
        return clients

    def get_client(self, client_id: int | None) -> DownloadClient | None:
        from db.repositories.sources import SourceRepository

        if client_id is None:
            return None
        row = SourceRepository().get_client(client_id)
        if row is None:
            return None
        return self._adapter(row)

    def client_for(self, candidate: CandidateRelease) -> DownloadClient | None:
        """First client by priority that accepts the protocol and is not circuit-open."""
        for client in self.load_clients():
            if not client.supports(candidate):
                continue
            if not self.breakers.get(self._breaker_name(client)).allow_request():
                logger.debug("Skipping client %s: circuit open", client.display_name)
                continue
            return client
        return None

    def submit(self, candidate: CandidateRelease, client: DownloadClient | None = None) -> tuple[int, str]:
        """Submit a release, to ``client`` when given, else to client_for().

        Returns:
            (download_client_id, external_id)

        Raises:
            DownloadClientError: No client accepts the protocol, or the
                chosen client refused the job.
        """
        client = client or self.client_for(candidate)
        if client is None:
            raise DownloadClientError(
                f"No available {candidate.protocol.value} download client",
                context={"protocol": candidate.protocol.value},
            )
        breaker = self.breakers.get(self._breaker_name(client))
        try:
            external_id = client.submit(candidate)
        except DownloadClientError:
            breaker.record_failure()
            raise
        breaker.record_success()
        logger.info("Submitted '%s' to %s (%s)", candidate.title, client.display_name, external_id)
        return client.client_id, external_id

    def poll(self, download: dict) -> ClientStatus | None:
        """Client status for a downloads row, None when it cannot be asked."""
        client = self.get_client(download.get("download_client_id"))
        if client is None or not download.get("external_id"):
            return None
        return self.poll_job(client, download["external_id"])

    def poll_job(self, client: DownloadClient, external_id: str) -> ClientStatus | None:
        """Poll one job without touching the database (safe in worker threads)."""
        breaker = self.breakers.get(self._breaker_name(client))
        if not breaker.allow_request():
            return None
        try:
            status = client.poll(external_id)
        except DownloadClientError:
            breaker.record_failure()
            raise
        breaker.record_success()
        return status

    def cancel(self, download: dict) -> None:
        client = self.get_client(download.get("download_client_id"))
        if client is None or not download.get("external_id"):
            return
        client.cancel(download["external_id"])

    def circuit_status(self) -> list[dict]:
        return [s for s in self.breakers.statuses() if s["name"].startswith("client:")]
