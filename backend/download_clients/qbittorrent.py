"""qBittorrent Web API v2 adapter.

Authentication is cookie based: ``/api/v2/auth/login`` answers ``Ok.`` and
sets the SID cookie on the session. An expired SID surfaces as HTTP 403, in
which case the adapter logs in again once and repeats the call.
"""

import base64
import logging
import re
import uuid

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

_BTIH_RE = re.compile(r"xt=urn:btih:([A-Za-z0-9]+)", re.IGNORECASE)
_HASH_RE = re.compile(r"^[0-9a-f]{40}$")

_DOWNLOADING_STATES = {
    "downloading", "forcedDL", "metaDL", "stalledDL", "queuedDL",
    "pausedDL", "checkingDL", "allocating", "checkingResumeData", "moving",
}
_COMPLETED_STATES = {"uploading", "stalledUP", "forcedUP", "pausedUP", "queuedUP", "checkingUP"}
_ERROR_STATES = {"error", "missingFiles", "unknown"}


def magnet_hash(url: str) -> str:
    """Lowercase hex info-hash from a magnet URI, "" when absent.

    Base32 hashes (32 chars) are converted to hex.
    """
    match = _BTIH_RE.search(url or "")
    if not match:
        return ""
    value = match.group(1)
    if len(value) == 32:
        try:
            return base64.b32decode(value.upper()).hex()
        except ValueError:
            return ""
    return value.lower()


def map_state(state: str) -> str:
    if state in _COMPLETED_STATES:
        return STATE_COMPLETED
    if state in _ERROR_STATES:
        return STATE_ERROR
    return STATE_DOWNLOADING


@register_client
class QBittorrentClient(DownloadClient):
    """Torrent client speaking the qBittorrent Web API."""

    name = "qbittorrent"
    protocol = Protocol.TORRENT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = create_session(DownloadClientError, timeout=self.timeout)
        self._authenticated = False

    def _login(self) -> None:
        resp = self.session.post(
            f"{self.url}/api/v2/auth/login",
            data={"username": self.username, "password": self.password},
        )
        if resp.status_code != 200 or resp.text.strip() != "Ok.":
            raise DownloadClientError(
                f"{self.display_name}: login failed",
                context={"client": self.display_name, "status_code": resp.status_code},
            )
        self._authenticated = True

    def _request(self, method: str, path: str, **kwargs):
        if not self._authenticated:
            self._login()
        try:
            return self.session.request(method, f"{self.url}{path}", **kwargs)
        except DownloadClientError as e:
            if e.context.get("status_code") != 403:
                raise
            logger.debug("%s: session expired, logging in again", self.display_name)
            self._authenticated = False
            self._login()
            return self.session.request(method, f"{self.url}{path}", **kwargs)

    def _info(self, external_id: str) -> list[dict]:
        if _HASH_RE.match(external_id):
            params = {"hashes": external_id}
        else:
            params = {"tag": external_id}
        resp = self._request("GET", "/api/v2/torrents/info", params=params)
        if resp.status_code != 200:
            raise DownloadClientError(
                f"{self.display_name}: torrents/info returned HTTP {resp.status_code}",
                context={"client": self.display_name, "status_code": resp.status_code},
            )
        return resp.json() or []

    def submit(self, candidate: CandidateRelease) -> str:
        tag = f"grabarr-{uuid.uuid4().hex[:12]}"
        resp = self._request(
            "POST",
            "/api/v2/torrents/add",
            data={"urls": candidate.download_url, "category": self.category, "tags": tag},
        )
        if resp.status_code != 200 or resp.text.strip() == "Fails.":
            raise DownloadClientError(
                f"{self.display_name} refused '{candidate.title}'",
                context={"client": self.display_name, "status_code": resp.status_code},
            )

        info_hash = magnet_hash(candidate.download_url)
        if info_hash:
            return info_hash
        # .torrent URLs: the hash is only known once qBittorrent has fetched the file
        torrents = self._info(tag)
        if torrents:
            return torrents[0]["hash"]
        return tag

    def poll(self, external_id: str) -> ClientStatus:
        torrents = self._info(external_id)
        if not torrents:
            return ClientStatus(state=STATE_ERROR, error="Torrent not found in client")
        torrent = torrents[0]
        return ClientStatus(
            progress=float(torrent.get("progress") or 0.0),
            state=map_state(torrent.get("state", "")),
            path=torrent.get("content_path") or torrent.get("save_path") or "",
            error=torrent.get("state", "") if torrent.get("state") in _ERROR_STATES else "",
        )

    def cancel(self, external_id: str) -> None:
        if not _HASH_RE.match(external_id):
            torrents = self._info(external_id)
            if not torrents:
                return
            external_id = torrents[0]["hash"]
        self._request(
            "POST", "/api/v2/torrents/delete",
            data={"hashes": external_id, "deleteFiles": "false"},
        )

    def test_connection(self) -> bool:
        self._login()
        resp = self._request("GET", "/api/v2/app/version")
        if resp.status_code != 200:
            raise DownloadClientError(f"{self.display_name}: version check failed")
        return True
