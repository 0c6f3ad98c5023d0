"""SABnzbd API adapter.

All calls are GETs against ``/api`` with ``mode``, ``apikey`` and
``output=json``. A job lives in the queue while downloading and moves to
the history once post-processing starts.
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


def _percentage(value) -> float:
    try:
        return float(value) / 100.0
    except (TypeError, ValueError):
        return 0.0


@register_client
class SABnzbdClient(DownloadClient):
    """Usenet client speaking the SABnzbd API."""

    name = "sabnzbd"
    protocol = Protocol.USENET

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = create_session(DownloadClientError, timeout=self.timeout)

    def _api(self, mode: str, **params) -> dict:
        params.update({"mode": mode, "apikey": self.api_key, "output": "json"})
        resp = self.session.get(f"{self.url}/api", params=params)
        if resp.status_code != 200:
            raise DownloadClientError(
                f"{self.display_name}: mode={mode} returned HTTP {resp.status_code}",
                context={"client": self.display_name, "status_code": resp.status_code},
            )
        body = resp.json()
        if isinstance(body, dict) and body.get("error"):
            raise DownloadClientError(
                f"{self.display_name}: {body['error']}",
                context={"client": self.display_name},
            )
        return body

    def submit(self, candidate: CandidateRelease) -> str:
        body = self._api("addurl", name=candidate.download_url, nzbname=candidate.title, cat=self.category)
        nzo_ids = body.get("nzo_ids") or []
        if not body.get("status") or not nzo_ids:
            raise DownloadClientError(
                f"{self.display_name} refused '{candidate.title}'",
                context={"client": self.display_name},
            )
        return nzo_ids[0]

    def poll(self, external_id: str) -> ClientStatus:
        queue = self._api("queue", nzo_ids=external_id).get("queue") or {}
        for slot in queue.get("slots") or []:
            if slot.get("nzo_id") == external_id:
                return ClientStatus(progress=_percentage(slot.get("percentage")), state=STATE_DOWNLOADING)

        history = self._api("history", nzo_ids=external_id).get("history") or {}
        for slot in history.get("slots") or []:
            if slot.get("nzo_id") != external_id:
                continue
            status = slot.get("status", "")
            if status == "Completed":
                return ClientStatus(progress=1.0, state=STATE_COMPLETED, path=slot.get("storage") or "")
            if status == "Failed":
                return ClientStatus(progress=1.0, state=STATE_ERROR, error=slot.get("fail_message") or "Failed")
            # Verifying, Repairing, Extracting, Moving ...
            return ClientStatus(progress=1.0, state=STATE_DOWNLOADING)

        return ClientStatus(state=STATE_ERROR, error="Job not found in client")

    def cancel(self, external_id: str) -> None:
        self._api("queue", name="delete", value=external_id, del_files=0)

    def test_connection(self) -> bool:
        if "version" not in self._api("version"):
            raise DownloadClientError(f"{self.display_name}: invalid response from SABnzbd")
        return True
