"""Shared pytest fixtures for all tests."""

import pytest

from config import get_settings, reload_settings
from db.repositories.media import MediaRepository
from quality.model import CandidateRelease, Protocol
from quality.parser import parse_release


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Flask app against a temporary SQLite file, scheduler not started."""
    monkeypatch.setenv("GRABARR_DB_PATH", str(tmp_path / "grabarr.db"))
    monkeypatch.setenv("GRABARR_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("GRABARR_LOG_FILE", "")
    monkeypatch.setenv("GRABARR_SCHEDULER_ENABLED", "false")
    reload_settings()

    from app import create_app
    from extensions import db

    application = create_app(testing=True)
    application.config["TESTING"] = True

    with application.app_context():
        yield application
        db.session.remove()

    monkeypatch.undo()
    reload_settings()


@pytest.fixture
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def settings(app):
    return get_settings()


@pytest.fixture
def library(app, tmp_path):
    root = tmp_path / "library"
    root.mkdir()
    return MediaRepository().create_library("Movies", str(root), media_type="movie")


@pytest.fixture
def movie(library):
    return MediaRepository().create_media({
        "library_id": library["id"],
        "media_type": "movie",
        "title": "Arrival",
        "year": 2016,
    })


def make_candidate(title: str, seeders: int = 20, indexer_id: int | None = 1,
                   indexer_priority: int = 25, size: int = 4_000_000_000,
                   protocol: Protocol = Protocol.TORRENT) -> CandidateRelease:
    """Build a candidate with its quality parsed from the title."""
    return CandidateRelease(
        title=title,
        size=size,
        seeders=seeders,
        protocol=protocol,
        indexer_id=indexer_id,
        indexer_name=f"indexer-{indexer_id}",
        indexer_priority=indexer_priority,
        download_url=f"magnet:?xt=urn:btih:{'a' * 40}",
        quality=parse_release(title),
    )


@pytest.fixture
def candidate_factory():
    return make_candidate
