"""Transmission RPC adapter.

Every call is a JSON POST to ``/transmission/rpc``. The daemon answers the
first call with HTTP 409 and an ``X-Transmission-Session-Id`` header that
must be echoed on subsequent calls.
"""

import logging
import os

from download_clients import register_client
from download_clients.base import (
    STATE_COMPLETED,
    STATE_DOWNLOADING,
    STATE_ERROR,
    ClientStatus,
    DownloadClient,
)
from error_handler import DownloadClientError
from http_session import create_session
from quality.model import CandidateRelease, Protocol

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Transmission-Session-Id"

# torrent-get status values: 5 = queued to seed, 6 = seeding
_SEEDING_STATUSES = {5, 6}

_TORRENT_FIELDS = ["hashString", "name", "percentDone", "status", "downloadDir", "error", "errorString"]


@register_client
class TransmissionClient(DownloadClient):
    """Torrent client speaking the Transmission RPC protocol."""

    name = "transmission"
    protocol = Protocol.TORRENT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = create_session(DownloadClientError, timeout=self.timeout)
        if self.username:
            self.session.auth = (self.username, self.password)
        self._session_id = ""

    def _rpc(self, method: str, arguments: dict | None = None) -> dict:
        payload = {"method": method, "arguments": arguments or {}}
        rpc_url = f"{self.url}/transmission/rpc"
        resp = self.session.post(rpc_url, json=payload, headers={SESSION_HEADER: self._session_id})
        if resp.status_code == 409:
            self._session_id = resp.headers.get(SESSION_HEADER, "")
            resp = self.session.post(rpc_url, json=payload, headers={SESSION_HEADER: self._session_id})

        if resp.status_code != 200:
            raise DownloadClientError(
                f"{self.display_name}: {method} returned HTTP {resp.status_code}",
                context={"client": self.display_name, "status_code": resp.status_code},
            )
        body = resp.json()
        if body.get("result") != "success":
            raise DownloadClientError(
                f"{self.display_name}: {method} failed: {body.get('result')}",
                context={"client": self.display_name},
            )
        return body.get("arguments") or {}

    def submit(self, candidate: CandidateRelease) -> str:
        args = self._rpc("torrent-add", {"filename": candidate.download_url, "labels": [self.category]})
        added = args.get("torrent-added") or args.get("torrent-duplicate")
        if not added or not added.get("hashString"):
            raise DownloadClientError(
                f"{self.display_name} refused '{candidate.title}'",
                context={"client": self.display_name},
            )
        if "torrent-duplicate" in args:
            logger.info("%s: '%s' already present", self.display_name, candidate.title)
        return added["hashString"]

    def poll(self, external_id: str) -> ClientStatus:
        args = self._rpc("torrent-get", {"ids": [external_id], "fields": _TORRENT_FIELDS})
        torrents = args.get("torrents") or []
        if not torrents:
            return ClientStatus(state=STATE_ERROR, error="Torrent not found in client")
        torrent = torrents[0]
        progress = float(torrent.get("percentDone") or 0.0)

        if torrent.get("error"):
            state = STATE_ERROR
        elif torrent.get("status") in _SEEDING_STATUSES or progress >= 1.0:
            state = STATE_COMPLETED
        else:
            state = STATE_DOWNLOADING

        path = ""
        if torrent.get("downloadDir") and torrent.get("name"):
            path = os.path.join(torrent["downloadDir"], torrent["name"])
        return ClientStatus(
            progress=progress,
            state=state,
            path=path,
            error=torrent.get("errorString") or "",
        )

    def cancel(self, external_id: str) -> None:
        self._rpc("torrent-remove", {"ids": [external_id], "delete-local-data": False})

    def test_connection(self) -> bool:
        self._rpc("session-get")
        return True
