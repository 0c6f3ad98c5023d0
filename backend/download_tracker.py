"""Download lifecycle tracker.

Polls every downloading job at its client, records progress, moves
finished jobs to ``completed`` and failed or stalled ones to ``failed``.
A failure blocklists the release, charges its release group and, while
the retry budget lasts, sends the media item back through the grab
engine (which will now skip the blocklisted release).
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import UTC, datetime

from blocklist_manager import BlocklistManager
from db.repositories.downloads import COMPLETED, FAILED, UNMATCHED, DownloadRepository
from db.repositories.history import HistoryRepository
from error_handler import DownloadClientError, GrabarrError, NotFoundError
from events import emit_event
from transaction_manager import transaction

logger = logging.getLogger(__name__)

MAX_POLL_WORKERS = 8


class DownloadTracker:
    """Drives downloads from ``downloading`` to ``completed`` or ``failed``.

    Args:
        settings: Settings instance.
        clients: DownloadClientManager.
        engine: GrabEngine used for retries (optional, retries are skipped
            without one).
    """

    def __init__(self, settings, clients, engine=None):
        self.settings = settings
        self.clients = clients
        self.engine = engine
        self.downloads = DownloadRepository()
        self.history = HistoryRepository()
        self.blocklist = BlocklistManager(settings)

    def poll_active(self) -> dict:
        """Poll all downloading jobs concurrently and apply the results.

        Client lookups and database writes stay on the calling thread; only
        the HTTP calls run in the pool.
        """
        summary = {"polled": 0, "progressed": 0, "completed": 0, "failed": 0, "unreachable": 0}
        jobs = []
        for download in self.downloads.list_active():
            client = self.clients.get_client(download.get("download_client_id"))
            if client is None or not download.get("external_id"):
                continue
            jobs.append((download, client))
        if not jobs:
            return summary

        results = []
        timeout = self.settings.client_timeout_seconds + 3
        executor = ThreadPoolExecutor(max_workers=min(len(jobs), MAX_POLL_WORKERS),
                                      thread_name_prefix="client-poll")
        futures = {
            executor.submit(self.clients.poll_job, client, download["external_id"]): download
            for download, client in jobs
        }
        try:
            for future in as_completed(futures, timeout=timeout):
                download = futures[future]
                try:
                    status = future.result()
                except DownloadClientError as e:
                    logger.warning("Polling download %d failed: %s", download["id"], e)
                    summary["unreachable"] += 1
                    continue
                if status is not None:
                    results.append((download, status))
        except FutureTimeoutError:
            pending = sum(1 for f in futures if not f.done())
            logger.warning("%d download polls timed out", pending)
            summary["unreachable"] += pending
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for download, status in results:
            summary["polled"] += 1
            try:
                outcome = self.apply_status(download, status)
            except GrabarrError as e:
                # Another pass moved the row first
                logger.debug("Skipping status for download %d: %s", download["id"], e)
                continue
            if outcome:
                summary[outcome] += 1
        return summary

    def apply_status(self, download: dict, status) -> str:
        """Apply one ClientStatus to a download row.

        Returns:
            "completed", "failed", "progressed" or "" (nothing changed).
        """
        if status.is_error:
            self.fail_download(download["id"], status.error or "Client reported an error", reason="client_error")
            return "failed"

        progressed = self.downloads.update_progress(download["id"], status.progress, status.path)
        if not status.is_completed:
            return "progressed" if progressed else ""

        with transaction():
            self.downloads.transition(download["id"], COMPLETED, progress=1.0,
                                      download_path=status.path or download.get("download_path") or "")
        logger.info("Download %d completed: %s", download["id"], download["title"])
        emit_event("download_completed", {
            "download_id": download["id"],
            "media_id": download.get("media_id"),
            "title": download["title"],
        })
        if download.get("media_id") is None:
            self.mark_unmatched(download["id"])
        return "completed"

    def sweep_stalled(self) -> int:
        """Fail downloads whose progress has not increased within the threshold."""
        threshold = self.settings.stalled_threshold_minutes
        count = 0
        for download in self.downloads.get_stalled(threshold):
            if not download.get("stalled_notified"):
                self.downloads.mark_stalled_notified(download["id"])
            try:
                self.clients.cancel(download)
            except DownloadClientError as e:
                logger.warning("Could not remove stalled download %d from client: %s", download["id"], e)
            try:
                self.fail_download(download["id"], f"Stalled: no progress for {threshold} minutes",
                                   reason="stalled")
            except GrabarrError as e:
                logger.debug("Stalled download %d already moved: %s", download["id"], e)
                continue
            count += 1
        if count:
            logger.info("Stalled sweep failed %d downloads", count)
        return count

    def fail_download(self, download_id: int, error: str, reason: str = "failed") -> dict:
        """Fail a download, blocklist its release and retry within budget.

        Raises:
            NotFoundError: Unknown download id.
            InvalidTransitionError: The download is not in a failable state.
        """
        from metrics import record_download_failure

        download = self.downloads.get_download(download_id)
        if download is None:
            raise NotFoundError(f"Download {download_id} not found")
        grab = self.history.get_grab(download["grab_id"]) if download.get("grab_id") else None

        with transaction():
            download = self.downloads.transition(
                download_id, FAILED, error=error, failed_at=datetime.now(UTC).isoformat(),
            )
            if grab:
                self.history.mark_grab_failed(grab["id"], error)

        self.blocklist.record_failed_release(
            download["title"],
            media_id=download.get("media_id"),
            indexer_id=grab.get("indexer_id") if grab else None,
            reason=reason,
            error=error,
        )
        record_download_failure(reason)

        media_id = download.get("media_id")
        retry_count = download.get("retry_count") or 0
        will_retry = (
            media_id is not None and self.engine is not None
            and retry_count + 1 < self.settings.max_retries
        )
        logger.warning("Download %d failed (%s): %s%s", download_id, reason, error,
                       ", retrying" if will_retry else "")
        emit_event("download_failed", {
            "download_id": download_id,
            "media_id": media_id,
            "title": download["title"],
            "error": error,
            "retry_count": retry_count,
            "will_retry": will_retry,
        })

        if will_retry:
            try:
                self.engine.retry(media_id, retry_count + 1)
            except GrabarrError as e:
                logger.warning("Retry for media %d failed: %s", media_id, e)
        return download

    def mark_unmatched(self, download_id: int) -> dict:
        """Park a completed download that has no media item to import into."""
        with transaction():
            download = self.downloads.transition(download_id, UNMATCHED)
        logger.info("Download %d has no media link, marked unmatched", download_id)
        return download
