"""Tests for the download lifecycle tracker."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from db.models.lifecycle import Download
from db.repositories.blocklist import BlocklistRepository
from db.repositories.downloads import (
    COMPLETED,
    DOWNLOADING,
    FAILED,
    IMPORTED,
    UNMATCHED,
    DownloadRepository,
)
from db.repositories.groups import GroupTrustRepository
from download_clients.base import STATE_COMPLETED, STATE_DOWNLOADING, STATE_ERROR, ClientStatus
from download_tracker import DownloadTracker
from error_handler import InvalidTransitionError
from extensions import db


@pytest.fixture
def clients():
    return MagicMock()


@pytest.fixture
def engine():
    return MagicMock()


@pytest.fixture
def tracker(settings, clients, engine):
    return DownloadTracker(settings, clients, engine=engine)


@pytest.fixture
def download(movie):
    row = DownloadRepository().create_download("Arrival.2016.1080p.WEB-DL-GRP", movie["id"])
    DownloadRepository().set_client_job(row["id"], 1, "abc123")
    return DownloadRepository().get_download(row["id"])


def test_progress_is_recorded(tracker, download):
    outcome = tracker.apply_status(download, ClientStatus(progress=0.4, state=STATE_DOWNLOADING))
    assert outcome == "progressed"
    assert DownloadRepository().get_download(download["id"])["progress"] == pytest.approx(0.4)
    assert tracker.apply_status(download, ClientStatus(progress=0.4)) == ""


def test_completed_status(tracker, download):
    outcome = tracker.apply_status(download, ClientStatus(progress=1.0, state=STATE_COMPLETED,
                                                          path="/downloads/Arrival"))
    assert outcome == "completed"
    row = DownloadRepository().get_download(download["id"])
    assert row["status"] == COMPLETED
    assert row["download_path"] == "/downloads/Arrival"


def test_completed_without_media_is_unmatched(tracker):
    row = DownloadRepository().create_download("Mystery.Release.1080p-GRP", None)
    tracker.apply_status(row, ClientStatus(progress=1.0, state=STATE_COMPLETED, path="/dl/x"))
    assert DownloadRepository().get_download(row["id"])["status"] == UNMATCHED


def test_error_status_fails_blocklists_and_retries(tracker, engine, download, movie):
    outcome = tracker.apply_status(download, ClientStatus(state=STATE_ERROR, error="tracker down"))

    assert outcome == "failed"
    row = DownloadRepository().get_download(download["id"])
    assert row["status"] == FAILED
    assert row["error"] == "tracker down"
    assert BlocklistRepository().is_release_blocklisted(download["title"])
    engine.retry.assert_called_once_with(movie["id"], 1)


def test_third_failure_is_not_retried(tracker, engine, settings, movie):
    assert settings.max_retries == 3
    # retry_count 2 is the third attempt
    row = DownloadRepository().create_download("Arrival.2016.1080p.WEB-DL-GRP", movie["id"], retry_count=2)
    tracker.fail_download(row["id"], "broken")
    engine.retry.assert_not_called()


def test_second_failure_is_retried(tracker, engine, movie):
    row = DownloadRepository().create_download("Arrival.2016.1080p.WEB-DL-GRP", movie["id"], retry_count=1)
    tracker.fail_download(row["id"], "broken")
    engine.retry.assert_called_once_with(movie["id"], 2)


def test_terminal_download_cannot_fail_again(tracker, download):
    tracker.fail_download(download["id"], "first")
    with pytest.raises(InvalidTransitionError):
        tracker.fail_download(download["id"], "second")


def test_group_auto_blocked_after_threshold(tracker, settings, movie):
    repo = DownloadRepository()
    groups = GroupTrustRepository()
    for n in range(settings.auto_block_group_after):
        assert not groups.is_group_blocked("GRP")
        row = repo.create_download(f"Arrival.2016.1080p.WEB-DL.v{n}-GRP", movie["id"], retry_count=3)
        tracker.fail_download(row["id"], "bad")
    assert groups.is_group_blocked("GRP")
    assert groups.get_failure_count("GRP") == settings.auto_block_group_after


def test_trusted_group_never_charged(tracker, movie):
    GroupTrustRepository().trust_group("GRP")
    row = DownloadRepository().create_download("Arrival.2016.1080p.WEB-DL-GRP", movie["id"], retry_count=3)
    tracker.fail_download(row["id"], "bad")
    assert GroupTrustRepository().get_failure_count("GRP") == 0


def test_sweep_stalled(tracker, clients, settings, download):
    row = db.session.get(Download, download["id"])
    old = datetime.now(UTC) - timedelta(minutes=settings.stalled_threshold_minutes + 5)
    row.last_progress_at = old.isoformat()
    db.session.commit()

    assert tracker.sweep_stalled() == 1
    failed = DownloadRepository().get_download(download["id"])
    assert failed["status"] == FAILED
    assert failed["stalled_notified"]
    assert "Stalled" in failed["error"]
    clients.cancel.assert_called_once()


def test_sweep_ignores_fresh_downloads(tracker, download):
    assert tracker.sweep_stalled() == 0
    assert DownloadRepository().get_download(download["id"])["status"] == DOWNLOADING


def test_poll_active_applies_results(tracker, clients, download):
    client = MagicMock()
    clients.get_client.return_value = client
    clients.poll_job.return_value = ClientStatus(progress=1.0, state=STATE_COMPLETED, path="/dl/Arrival")

    summary = tracker.poll_active()

    assert summary["polled"] == 1
    assert summary["completed"] == 1
    clients.poll_job.assert_called_once_with(client, "abc123")
    assert DownloadRepository().get_download(download["id"])["status"] == COMPLETED


def test_invalid_transition_rejected(download):
    with pytest.raises(InvalidTransitionError):
        DownloadRepository().transition(download["id"], IMPORTED)
