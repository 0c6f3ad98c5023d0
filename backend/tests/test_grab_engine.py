"""Tests for the grab decision engine."""

import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from db.repositories.blocklist import BlocklistRepository
from db.repositories.delay import DelayProfileRepository, PendingGrabRepository
from db.repositories.downloads import DOWNLOADING, FAILED, DownloadRepository
from db.repositories.history import HistoryRepository
from db.repositories.media import MediaRepository
from db.repositories.presets import QualityPresetRepository
from db.repositories.quality import MediaQualityRepository
from error_handler import DownloadClientError, NotFoundError
from extensions import db
from grab_engine import FAILED_OUTCOME, GRABBED, NO_CANDIDATE, PENDING, SUPPRESSED, GrabEngine
from quality.parser import parse_release


@pytest.fixture
def indexers():
    manager = MagicMock()
    manager.search.return_value = []
    manager.fetch_rss.return_value = []
    return manager


@pytest.fixture
def clients():
    manager = MagicMock()
    manager.client_for.return_value = MagicMock(name="qbittorrent")
    manager.submit.return_value = (1, "abc123")
    return manager


@pytest.fixture
def engine(settings, indexers, clients):
    return GrabEngine(settings, indexers, clients)


def test_grab_creates_download_and_history(engine, indexers, clients, movie, candidate_factory):
    indexers.search.return_value = [
        candidate_factory("Arrival.2016.720p.WEB-DL-LOW"),
        candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"),
    ]
    decision = engine.decide(movie["id"])

    assert decision.outcome == GRABBED
    assert decision.release_title == "Arrival.2016.1080p.WEB-DL-GRP"
    download = DownloadRepository().get_download(decision.download_id)
    assert download["status"] == DOWNLOADING
    assert download["external_id"] == "abc123"
    assert download["download_client_id"] == 1
    grabs = HistoryRepository().get_grab_history(media_id=movie["id"])
    assert grabs["total"] == 1
    clients.submit.assert_called_once()


def test_unknown_media(engine):
    with pytest.raises(NotFoundError):
        engine.decide(4242)


def test_unmonitored_is_suppressed(engine, indexers, movie):
    MediaRepository().set_monitored(movie["id"], False)
    decision = engine.decide(movie["id"])
    assert decision.outcome == SUPPRESSED
    indexers.search.assert_not_called()


def test_override_can_unmonitor(engine, movie):
    MediaQualityRepository().set_override(movie["id"], monitored=False)
    assert engine.decide(movie["id"]).outcome == SUPPRESSED


def test_active_download_blocks_second_grab(engine, indexers, movie, candidate_factory):
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]
    assert engine.decide(movie["id"]).outcome == GRABBED

    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-OTHER")]
    decision = engine.decide(movie["id"])
    assert decision.outcome == SUPPRESSED
    assert len(DownloadRepository().get_active_for_media(movie["id"])) == 1


def test_no_candidate_lists_rejections(engine, indexers, movie, candidate_factory):
    indexers.search.return_value = [candidate_factory("Arrival.2016.480p.DVDRip-GRP")]
    decision = engine.decide(movie["id"])
    assert decision.outcome == NO_CANDIDATE
    assert decision.rejections
    assert MediaQualityRepository().get_status(movie["id"])["last_search"]


def test_delay_profile_defers(engine, indexers, clients, movie, candidate_factory):
    DelayProfileRepository().create_profile({"name": "Hour", "delay_minutes": 60})
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]

    decision = engine.decide(movie["id"])
    assert decision.outcome == PENDING
    assert decision.eligible_at
    clients.submit.assert_not_called()
    assert PendingGrabRepository().get_for_media(movie["id"]) is not None


def test_no_client_suppresses(engine, indexers, clients, movie, candidate_factory):
    clients.client_for.return_value = None
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]
    decision = engine.decide(movie["id"])
    assert decision.outcome == SUPPRESSED
    assert DownloadRepository().get_active_for_media(movie["id"]) == []


def test_refusal_blocklists_and_retries_next_best(engine, indexers, clients, movie, candidate_factory):
    indexers.search.return_value = [
        candidate_factory("Arrival.2016.1080p.WEB-DL-GRP", seeders=100),
        candidate_factory("Arrival.2016.1080p.WEB-DL-ALT", seeders=10),
    ]
    clients.submit.side_effect = [DownloadClientError("torrent rejected"), (1, "def456")]

    decision = engine.decide(movie["id"])

    assert decision.outcome == GRABBED
    assert decision.release_title == "Arrival.2016.1080p.WEB-DL-ALT"
    assert BlocklistRepository().is_release_blocklisted("Arrival.2016.1080p.WEB-DL-GRP")
    failed = DownloadRepository().list_by_status(FAILED)
    assert [d["title"] for d in failed] == ["Arrival.2016.1080p.WEB-DL-GRP"]
    assert DownloadRepository().get_download(decision.download_id)["retry_count"] == 1


def test_refusal_without_retries_fails(engine, settings, indexers, clients, movie, candidate_factory):
    settings.max_retries = 0
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]
    clients.submit.side_effect = DownloadClientError("refused")

    decision = engine.decide(movie["id"])
    assert decision.outcome == FAILED_OUTCOME
    assert DownloadRepository().get_download(decision.download_id)["status"] == FAILED
    assert clients.submit.call_count == 1


def test_refusals_stop_after_max_attempts(engine, settings, indexers, clients, movie, candidate_factory):
    assert settings.max_retries == 3
    indexers.search.return_value = [
        candidate_factory("Arrival.2016.1080p.WEB-DL-AAA", seeders=100),
        candidate_factory("Arrival.2016.1080p.WEB-DL-BBB", seeders=50),
        candidate_factory("Arrival.2016.1080p.WEB-DL-CCC", seeders=20),
        candidate_factory("Arrival.2016.1080p.WEB-DL-DDD", seeders=10),
    ]
    clients.submit.side_effect = DownloadClientError("refused")

    decision = engine.decide(movie["id"])

    assert decision.outcome == FAILED_OUTCOME
    assert decision.release_title == "Arrival.2016.1080p.WEB-DL-CCC"
    assert clients.submit.call_count == 3
    assert DownloadRepository().get_download(decision.download_id)["retry_count"] == 2
    assert not BlocklistRepository().is_release_blocklisted("Arrival.2016.1080p.WEB-DL-DDD")


def test_concurrent_grabs_create_one_download(app, engine, movie, candidate_factory):
    candidate = candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")
    both_checked = threading.Barrier(2)
    read_active = DownloadRepository.get_active_for_media

    def read_then_wait(repo, media_id):
        rows = read_active(repo, media_id)
        both_checked.wait(timeout=10)
        return rows

    outcomes, errors = [], []

    def worker():
        with app.app_context():
            try:
                outcomes.append(engine.grab(movie, candidate, 300000).outcome)
            except Exception as e:
                errors.append(e)
            finally:
                db.session.remove()

    with patch.object(DownloadRepository, "get_active_for_media", read_then_wait):
        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

    assert errors == []
    assert sorted(outcomes) == sorted([GRABBED, SUPPRESSED])
    db.session.expire_all()
    assert len(DownloadRepository().get_active_for_media(movie["id"])) == 1


def test_upgrade_supersedes_downloading(engine, indexers, clients, movie, candidate_factory):
    open_preset = QualityPresetRepository().create_preset(
        {"name": "Open", "resolution": "1080p", "source": "any", "min_seeders": 0})
    quality = MediaQualityRepository()
    quality.set_override(movie["id"], preset_id=open_preset["id"])
    quality.upsert_status(movie["id"], parse_release("Arrival.2016.1080p.WEB-DL-OLD"), 300000,
                          target_met=True, upgrade_available=True)

    old_candidate = candidate_factory("Arrival.2016.1080p.WEB-DL-MID")
    grab = HistoryRepository().record_grab(movie["id"], old_candidate, 300000)
    old = DownloadRepository().create_download(old_candidate.title, movie["id"], grab_id=grab["id"])

    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.BluRay-TOP")]
    decision = engine.decide(movie["id"])

    assert decision.outcome == GRABBED
    assert decision.is_upgrade
    assert DownloadRepository().get_download(old["id"])["status"] == FAILED
    cancelled = clients.cancel.call_args[0][0]
    assert cancelled["id"] == old["id"]
    assert [d["id"] for d in DownloadRepository().get_active_for_media(movie["id"])] == [decision.download_id]


def test_upgrade_needs_minimum_delta(engine, indexers, movie, candidate_factory):
    MediaQualityRepository().upsert_status(
        movie["id"], parse_release("Arrival.2016.1080p.WEB-DL-OLD"), 310000,
        target_met=True, upgrade_available=False)
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]
    decision = engine.decide(movie["id"])
    assert decision.outcome == NO_CANDIDATE
    assert "upgrade threshold" in decision.reason


def test_promote_ready_grabs_only_ready(engine, clients, library, movie, candidate_factory):
    other = MediaRepository().create_media(
        {"library_id": library["id"], "media_type": "movie", "title": "Sicario", "year": 2015})
    pending = PendingGrabRepository()
    past = (datetime.now(UTC) - timedelta(minutes=1)).isoformat()
    future = (datetime.now(UTC) + timedelta(minutes=30)).isoformat()
    pending.upsert_if_better(movie["id"], candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), 310000, past)
    pending.upsert_if_better(other["id"], candidate_factory("Sicario.2015.1080p.WEB-DL-GRP"), 310000, future)

    decisions = engine.promote_ready()

    assert [(d.media_id, d.outcome) for d in decisions] == [(movie["id"], GRABBED)]
    assert pending.get_for_media(movie["id"]) is None
    assert pending.get_for_media(other["id"]) is not None


def test_promote_drops_blocklisted_pending(engine, clients, movie, candidate_factory):
    past = (datetime.now(UTC) - timedelta(minutes=1)).isoformat()
    PendingGrabRepository().upsert_if_better(
        movie["id"], candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), 310000, past)
    BlocklistRepository().add_entry("Arrival.2016.1080p.WEB-DL-GRP")

    decisions = engine.promote_ready()

    assert decisions[0].outcome == NO_CANDIDATE
    clients.submit.assert_not_called()
    assert PendingGrabRepository().get_for_media(movie["id"]) is None


def test_scheduled_search_skips_failed_release_with_fresh_budget(engine, settings, indexers, clients,
                                                                 movie, candidate_factory):
    settings.max_retries = 1
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-AAA", seeders=100)]
    clients.submit.side_effect = DownloadClientError("refused")
    assert engine.decide(movie["id"]).outcome == FAILED_OUTCOME

    indexers.search.return_value = [
        candidate_factory("Arrival.2016.1080p.WEB-DL-AAA", seeders=100),
        candidate_factory("Arrival.2016.1080p.WEB-DL-BBB", seeders=10),
    ]
    clients.submit.side_effect = None
    with patch.object(engine.media, "get_due_for_search", return_value=[movie]):
        summary = engine.search_due()

    assert summary[GRABBED] == 1
    grabbed = DownloadRepository().get_active_for_media(movie["id"])
    assert [d["title"] for d in grabbed] == ["Arrival.2016.1080p.WEB-DL-BBB"]
    assert grabbed[0]["retry_count"] == 0


def test_rss_sync_grabs_release_for_wanted_item(engine, indexers, clients, movie, candidate_factory):
    indexers.fetch_rss.return_value = [
        candidate_factory("Sicario.2015.1080p.WEB-DL-GRP", seeders=500),
        candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"),
    ]

    summary = engine.rss_sync()

    assert (summary["releases"], summary["items"], summary[GRABBED]) == (2, 1, 1)
    indexers.search.assert_not_called()
    grabbed = DownloadRepository().get_active_for_media(movie["id"])
    assert [d["title"] for d in grabbed] == ["Arrival.2016.1080p.WEB-DL-GRP"]


def test_rss_sync_ignores_unmatched_releases(engine, indexers, clients, movie, candidate_factory):
    indexers.fetch_rss.return_value = [candidate_factory("Arrival.2017.1080p.WEB-DL-GRP")]

    summary = engine.rss_sync()

    assert summary["items"] == 0
    clients.submit.assert_not_called()


def test_rss_sync_skips_items_with_active_download(engine, indexers, clients, movie, candidate_factory):
    indexers.search.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-AAA")]
    assert engine.decide(movie["id"]).outcome == GRABBED
    indexers.fetch_rss.return_value = [candidate_factory("Arrival.2016.1080p.WEB-DL-GRP")]

    summary = engine.rss_sync()

    assert summary["items"] == 0
    assert clients.submit.call_count == 1
