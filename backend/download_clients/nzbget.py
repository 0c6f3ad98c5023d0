"""NZBGet JSON-RPC adapter.

Calls POST to ``/jsonrpc`` with HTTP basic auth. ``append`` answers the new
NZBID (0 or negative on refusal); finished jobs leave ``listgroups`` and
show up in ``history`` with a ``STATUS/DETAIL`` status string.
"""

import logging

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

_FAILED_HISTORY = {"FAILURE", "DELETED"}


@register_client
class NZBGetClient(DownloadClient):
    """Usenet client speaking the NZBGet JSON-RPC API."""

    name = "nzbget"
    protocol = Protocol.USENET

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = create_session(DownloadClientError, timeout=self.timeout)
        self.session.auth = (self.username or "nzbget", self.password or self.api_key)

    def _rpc(self, method: str, *params):
        resp = self.session.post(
            f"{self.url}/jsonrpc",
            json={"method": method, "params": list(params), "id": 1},
        )
        if resp.status_code != 200:
            raise DownloadClientError(
                f"{self.display_name}: {method} returned HTTP {resp.status_code}",
                context={"client": self.display_name, "status_code": resp.status_code},
            )
        body = resp.json()
        if body.get("error"):
            message = body["error"].get("message") if isinstance(body["error"], dict) else body["error"]
            raise DownloadClientError(
                f"{self.display_name}: {method} failed: {message}",
                context={"client": self.display_name},
            )
        return body.get("result")

    def submit(self, candidate: CandidateRelease) -> str:
        nzb_id = self._rpc(
            "append",
            f"{candidate.title}.nzb",  # NZBFilename
            candidate.download_url,    # Content: URL to fetch
            self.category,
            0,                         # Priority
            False,                     # AddToTop
            False,                     # AddPaused
            "",                        # DupeKey
            0,                         # DupeScore
            "SCORE",                   # DupeMode
        )
        if not isinstance(nzb_id, int) or nzb_id <= 0:
            raise DownloadClientError(
                f"{self.display_name} refused '{candidate.title}'",
                context={"client": self.display_name},
            )
        return str(nzb_id)

    def poll(self, external_id: str) -> ClientStatus:
        nzb_id = int(external_id)
        for group in self._rpc("listgroups", 0) or []:
            if group.get("NZBID") != nzb_id:
                continue
            size = group.get("FileSizeMB") or 0
            done = group.get("DownloadedSizeMB") or 0
            progress = done / size if size else 0.0
            return ClientStatus(progress=min(progress, 1.0), state=STATE_DOWNLOADING)

        for item in self._rpc("history", False) or []:
            if item.get("NZBID") != nzb_id:
                continue
            status = (item.get("Status") or "").split("/")[0]
            if status in _FAILED_HISTORY:
                return ClientStatus(progress=1.0, state=STATE_ERROR, error=item.get("Status", ""))
            return ClientStatus(progress=1.0, state=STATE_COMPLETED, path=item.get("DestDir") or "")

        return ClientStatus(state=STATE_ERROR, error="Job not found in client")

    def cancel(self, external_id: str) -> None:
        self._rpc("editqueue", "GroupDelete", "", [int(external_id)])

    def test_connection(self) -> bool:
        self._rpc("version")
        return True
