"""Grab decision engine: search, gate, score, select, delay and grab.

One ``decide()`` call takes a media item from "needs work" to one of:

- grabbed: a Download row exists and the release was handed to a client
- pending: the winner is parked behind a delay profile
- no_candidate: nothing acceptable was found
- suppressed: the item must not be grabbed right now (unmonitored,
  excluded, an active download, no client for the protocol)
- failed: the chosen client refused the job (the release is blocklisted
  and, within max_retries, the next best release is tried)

The scheduled search passes call ``decide()`` per item; the RSS sync pass
hands it the indexers' latest releases for each wanted item they name.

At most one active download exists per media item. The only exception is
an explicit upgrade: the preset allows auto-upgrade, the item holds a file,
and the new score beats the held score by ``upgrade_min_score_delta``. The
superseded in-flight download is then failed and cancelled at its client.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

from blocklist_manager import BlocklistManager
from db.repositories.delay import PendingGrabRepository
from db.repositories.downloads import DOWNLOADING, FAILED, DownloadRepository
from db.repositories.exclusions import EXCLUSION_INDEXER_LIBRARY, ExclusionRepository
from db.repositories.history import HistoryRepository
from db.repositories.media import MediaRepository
from db.repositories.presets import QualityPresetRepository
from db.repositories.quality import MediaQualityRepository
from delay_gate import DelayGate
from error_handler import DatabaseError, DownloadClientError, GrabarrError, NotFoundError
from events import emit_event
from indexers.base import SearchQuery
from quality.model import CandidateRelease, QualityTarget
from quality.parser import release_matches_media
from quality.scorer import ScoredCandidate, pick_best, score_release
from transaction_manager import INTEGRITY_CODE, transaction
from trust_gate import TrustGate

logger = logging.getLogger(__name__)

GRABBED = "grabbed"
PENDING = "pending"
NO_CANDIDATE = "no_candidate"
SUPPRESSED = "suppressed"
FAILED_OUTCOME = "failed"


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Decision:
    outcome: str
    media_id: int
    release_title: str = ""
    score: int = 0
    download_id: int | None = None
    is_upgrade: bool = False
    eligible_at: str = ""
    reason: str = ""
    rejections: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class GrabEngine:
    """Turns media items into grabs.

    Args:
        settings: Settings instance (retry, upgrade and blocklist knobs).
        indexers: IndexerManager used for searches.
        clients: DownloadClientManager used for submissions.
    """

    def __init__(self, settings, indexers, clients):
        self.settings = settings
        self.indexers = indexers
        self.clients = clients
        self.media = MediaRepository()
        self.presets = QualityPresetRepository()
        self.quality = MediaQualityRepository()
        self.downloads = DownloadRepository()
        self.history = HistoryRepository()
        self.pending = PendingGrabRepository()
        self.exclusions = ExclusionRepository()
        self.trust_gate = TrustGate(exclusions=self.exclusions)
        self.delay_gate = DelayGate(pending=self.pending)
        self.blocklist = BlocklistManager(settings)

    # ---- Preset resolution ------------------------------------------------------

    def _target_and_filters(self, media: dict) -> tuple[QualityTarget, list]:
        preset = self.presets.resolve_for_media(media)
        if preset is None:
            return QualityTarget(), []
        return QualityTarget.from_dict(preset), self.presets.get_filter_rules(preset["id"])

    def _excluded_indexer_ids(self, library_id: int | None) -> set[int]:
        if library_id is None:
            return set()
        return {
            e["indexer_id"] for e in self.exclusions.list_exclusions()
            if e["exclusion_type"] == EXCLUSION_INDEXER_LIBRARY and e["library_id"] == library_id
        }

    def _held_score(self, media_id: int) -> int | None:
        """Score of the file the item holds, None when it holds nothing."""
        status = self.quality.get_status(media_id)
        if not status or not status.get("current_resolution"):
            return None
        return status["current_score"]

    def _is_monitored(self, media: dict) -> bool:
        if not media.get("monitored"):
            return False
        override = self.quality.get_override(media["id"])
        return override is None or bool(override.get("monitored"))

    # ---- Decisions --------------------------------------------------------------

    def decide(self, media_id: int, retry_count: int = 0,
               candidates: list[CandidateRelease] | None = None) -> Decision:
        """Run one full decision pass for a media item.

        Args:
            media_id: Item to decide for.
            retry_count: Attempts already spent on this item.
            candidates: Releases to choose from instead of searching the
                indexers (the RSS sync pass).

        Raises:
            NotFoundError: Unknown media id.
        """
        from metrics import record_decision

        decision = self._decide(media_id, retry_count, candidates)
        record_decision(decision.outcome)
        logger.info("Decision for media %d: %s%s", media_id, decision.outcome,
                    f" ({decision.reason})" if decision.reason else "")
        return decision

    def _decide(self, media_id: int, retry_count: int,
                candidates: list[CandidateRelease] | None) -> Decision:
        media = self.media.get_media(media_id)
        if media is None:
            raise NotFoundError(f"Media item {media_id} not found")

        if not self._is_monitored(media):
            return Decision(SUPPRESSED, media_id, reason="not monitored")
        if self.exclusions.is_media_excluded(media_id):
            return Decision(SUPPRESSED, media_id, reason="media excluded")

        target, filters = self._target_and_filters(media)
        held_score = self._held_score(media_id)
        can_upgrade = held_score is not None and target.auto_upgrade
        if held_score is not None and not target.auto_upgrade:
            return Decision(SUPPRESSED, media_id, reason="file held and auto-upgrade disabled")

        active = self.downloads.get_active_for_media(media_id)
        if active and not can_upgrade:
            return Decision(SUPPRESSED, media_id, reason="active download in progress")

        excluded = self._excluded_indexer_ids(media.get("library_id"))
        if candidates is None:
            candidates = self.indexers.search(SearchQuery.from_media(media), exclude_ids=excluded)
            self.quality.touch_last_search(media_id)
        else:
            candidates = [c for c in candidates if c.indexer_id not in excluded]

        scored, rejections = self.evaluate(media, candidates, target, filters)
        best = pick_best(scored)
        if best is None:
            return Decision(NO_CANDIDATE, media_id, reason="no acceptable release", rejections=rejections)

        if held_score is not None:
            required = held_score + self.settings.upgrade_min_score_delta
            if best.score < required:
                return Decision(
                    NO_CANDIDATE, media_id, release_title=best.candidate.title, score=best.score,
                    reason=f"best score {best.score} below upgrade threshold {required}",
                    rejections=rejections,
                )
        if active and best.score <= self._best_active_score(active):
            return Decision(SUPPRESSED, media_id, release_title=best.candidate.title, score=best.score,
                            reason="active download is at least as good")

        delay = self.delay_gate.evaluate(media, best.candidate, best.score)
        if not delay.grab_now:
            return Decision(
                PENDING, media_id, release_title=best.candidate.title, score=best.score,
                is_upgrade=held_score is not None, eligible_at=delay.eligible_at, reason=delay.reason,
            )

        return self.grab(media, best.candidate, best.score,
                         is_upgrade=held_score is not None, retry_count=retry_count)

    def evaluate(self, media: dict, candidates: list[CandidateRelease], target: QualityTarget,
                 filters: list) -> tuple[list[ScoredCandidate], list[str]]:
        """Trust gate then scorer for every candidate.

        Returns:
            (accepted scored candidates, human-readable rejection reasons)
        """
        scored = []
        rejections = []
        for candidate in candidates:
            gate = self.trust_gate.admit(candidate, media)
            if not gate.admitted:
                rejections.append(f"{candidate.title}: {gate.reason}")
                continue
            result = score_release(target, filters, candidate, trusted=gate.trusted)
            if not result.accepted:
                rejections.append(f"{candidate.title}: {'; '.join(result.reasons)}")
                continue
            scored.append(ScoredCandidate(candidate, result))
        return scored, rejections

    def _best_active_score(self, active: list[dict]) -> int:
        best = 0
        for download in active:
            grab = self.history.get_grab(download["grab_id"]) if download.get("grab_id") else None
            if grab:
                best = max(best, grab["score"])
        return best

    # ---- Grabbing ---------------------------------------------------------------

    def grab(self, media: dict, candidate: CandidateRelease, score: int,
             is_upgrade: bool = False, retry_count: int = 0) -> Decision:
        """Record a grab and hand it to a download client."""
        from metrics import record_download_failure, record_grab

        media_id = media["id"]
        client = self.clients.client_for(candidate)
        if client is None:
            return Decision(SUPPRESSED, media_id, release_title=candidate.title, score=score,
                            reason=f"no available {candidate.protocol.value} download client")

        superseded = []
        try:
            with transaction():
                active = self.downloads.get_active_for_media(media_id)
                if active and not is_upgrade:
                    return Decision(SUPPRESSED, media_id, release_title=candidate.title, score=score,
                                    reason="active download in progress")
                if any(d["status"] != DOWNLOADING for d in active):
                    return Decision(SUPPRESSED, media_id, release_title=candidate.title, score=score,
                                    reason="an earlier download is being imported")
                for download in active:
                    self.downloads.transition(download["id"], FAILED, error="Superseded by upgrade",
                                              failed_at=_utcnow())
                    if download.get("grab_id"):
                        self.history.mark_grab_failed(download["grab_id"], "Superseded by upgrade")
                    superseded.append(download)

                grab_row = self.history.record_grab(media_id, candidate, score)
                download = self.downloads.create_download(
                    candidate.title, media_id, grab_id=grab_row["id"], size=candidate.size,
                    is_upgrade=is_upgrade, retry_count=retry_count,
                )
                self.history.link_download(grab_row["id"], download["id"])
                self.quality.touch_last_search(media_id)
                self.pending.delete_for_media(media_id)
        except DatabaseError as e:
            if e.code != INTEGRITY_CODE:
                raise
            # A concurrent pass created the active download first
            logger.info("Grab of '%s' for media %d lost to a concurrent grab", candidate.title, media_id)
            return Decision(SUPPRESSED, media_id, release_title=candidate.title, score=score,
                            reason="active download in progress")

        for old in superseded:
            try:
                self.clients.cancel(old)
            except DownloadClientError as e:
                logger.warning("Could not cancel superseded download %d: %s", old["id"], e)

        try:
            client_id, external_id = self.clients.submit(candidate, client=client)
        except DownloadClientError as e:
            logger.warning("Client refused '%s' for media %d: %s", candidate.title, media_id, e)
            with transaction():
                self.downloads.transition(download["id"], FAILED, error=str(e),
                                          failed_at=_utcnow())
                self.history.mark_grab_failed(grab_row["id"], str(e))
            self.blocklist.record_failed_release(
                candidate.title, media_id=media_id, indexer_id=candidate.indexer_id,
                reason="client_refused", error=str(e),
            )
            record_download_failure("client_refused")
            will_retry = retry_count + 1 < self.settings.max_retries
            emit_event("download_failed", {
                "download_id": download["id"],
                "media_id": media_id,
                "title": candidate.title,
                "error": str(e),
                "retry_count": retry_count,
                "will_retry": will_retry,
            })
            if will_retry:
                return self.retry(media_id, retry_count + 1)
            return Decision(FAILED_OUTCOME, media_id, release_title=candidate.title, score=score,
                            download_id=download["id"], is_upgrade=is_upgrade, reason=str(e))

        self.downloads.set_client_job(download["id"], client_id, external_id)
        self.history.link_download(grab_row["id"], download["id"], client_id)
        record_grab(candidate.protocol.value, is_upgrade)
        emit_event("release_grabbed", {
            "media_id": media_id,
            "download_id": download["id"],
            "release_title": candidate.title,
            "indexer_name": candidate.indexer_name,
            "score": score,
            "is_upgrade": is_upgrade,
        })
        logger.info("Grabbed '%s' (score %d) for media %d", candidate.title, score, media_id)
        return Decision(GRABBED, media_id, release_title=candidate.title, score=score,
                        download_id=download["id"], is_upgrade=is_upgrade)

    def retry(self, media_id: int, retry_count: int) -> Decision:
        """Re-run the decision after a failed grab; the failed release is blocklisted by now."""
        logger.info("Retrying media %d (attempt %d of %d)", media_id, retry_count, self.settings.max_retries)
        return self.decide(media_id, retry_count=retry_count)

    # ---- Batch passes -----------------------------------------------------------

    def promote_ready(self) -> list[Decision]:
        """Grab pending candidates whose delay has elapsed.

        The trust gate runs again so a release blocklisted while it waited
        is dropped instead of grabbed.
        """
        decisions = []
        for pending in self.pending.get_ready():
            media = self.media.get_media(pending["media_id"])
            if media is None:
                self.pending.delete(pending["id"])
                continue
            candidate = self.pending.get_candidate(pending)
            gate = self.trust_gate.admit(candidate, media)
            if not gate.admitted:
                logger.info("Dropping pending grab '%s': %s", candidate.title, gate.reason)
                self.pending.delete(pending["id"])
                decisions.append(Decision(NO_CANDIDATE, media["id"], release_title=candidate.title,
                                          reason=gate.reason))
                continue

            decision = self.grab(media, candidate, pending["score"],
                                 is_upgrade=self._held_score(media["id"]) is not None)
            if decision.outcome == SUPPRESSED:
                self.pending.delete(pending["id"])
            decisions.append(decision)
        return decisions

    def search_due(self, limit: int | None = None) -> dict:
        """Decision pass over monitored items that are due for a search."""
        limit = limit or self.settings.search_max_items_per_run
        items = self.media.get_due_for_search(self.settings.search_interval_minutes, limit)
        return self._run_pass(items, "search")

    def search_upgrades(self, limit: int | None = None) -> dict:
        """Decision pass over auto-upgrade items that already hold a file."""
        limit = limit or self.settings.search_max_items_per_run
        items = []
        for media in self.media.get_upgrade_candidates(self.settings.upgrade_search_interval_minutes, limit):
            target, _ = self._target_and_filters(media)
            if target.auto_upgrade:
                items.append(media)
        return self._run_pass(items, "upgrade search")

    def rss_sync(self, limit: int | None = None) -> dict:
        """Match the indexers' latest releases against wanted items.

        Items with at least one matching release get a decision pass over
        those releases instead of a fresh search, so the gates, scorer,
        delay profiles and grab rules all apply unchanged.
        """
        releases = self.indexers.fetch_rss()
        summary = {"releases": len(releases), "items": 0, GRABBED: 0, PENDING: 0, NO_CANDIDATE: 0,
                   SUPPRESSED: 0, FAILED_OUTCOME: 0, "errors": 0}
        if not releases:
            logger.info("RSS sync: no releases in feeds")
            return summary

        limit = limit or self.settings.rss_max_items_per_run
        for media in self.media.get_wanted(limit):
            matches = [r for r in releases if release_matches_media(r.title, media, r.quality)]
            if not matches:
                continue
            summary["items"] += 1
            try:
                decision = self.decide(media["id"], candidates=matches)
            except GrabarrError as e:
                logger.warning("RSS sync failed for media %d: %s", media["id"], e)
                summary["errors"] += 1
                continue
            summary[decision.outcome] += 1
        logger.info("RSS sync: %s", summary)
        return summary

    def _run_pass(self, items: list[dict], label: str) -> dict:
        summary = {"items": len(items), GRABBED: 0, PENDING: 0, NO_CANDIDATE: 0,
                   SUPPRESSED: 0, FAILED_OUTCOME: 0, "errors": 0}
        # Each pass starts a fresh retry budget; releases that failed stay blocklisted
        for media in items:
            try:
                decision = self.decide(media["id"])
            except GrabarrError as e:
                logger.warning("%s failed for media %d: %s", label.capitalize(), media["id"], e)
                summary["errors"] += 1
                continue
            summary[decision.outcome] += 1
        logger.info("%s pass: %s", label.capitalize(), summary)
        return summary
