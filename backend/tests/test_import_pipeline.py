"""Tests for importing completed downloads into the library."""

import os
import time

import pytest

from db.repositories.downloads import COMPLETED, FAILED, IMPORTED, DownloadRepository
from db.repositories.history import HistoryRepository
from db.repositories.media import MediaRepository
from db.repositories.quality import MediaQualityRepository
from import_pipeline import ImportPipeline, find_main_video, subtitle_destination


def _write(path, size=10):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(b"\0" * size)
    return str(path)


@pytest.fixture
def pipeline(settings):
    return ImportPipeline(settings)


@pytest.fixture
def release_dir(tmp_path):
    root = tmp_path / "downloads" / "Arrival.2016.1080p.WEB-DL-GRP"
    _write(str(root / "Arrival.2016.1080p.WEB-DL-GRP.mkv"), size=5000)
    _write(str(root / "Sample" / "arrival-sample.mkv"), size=100)
    _write(str(root / "Subs" / "Arrival.en.srt"))
    return str(root)


def _completed(movie, title, path, is_upgrade=False):
    repo = DownloadRepository()
    row = repo.create_download(title, movie["id"], is_upgrade=is_upgrade)
    return repo.transition(row["id"], COMPLETED, download_path=path, progress=1.0)


def _dest(library, ext=".mkv"):
    return os.path.join(library["root_path"], "Arrival (2016)", "Arrival (2016)" + ext)


def test_successful_import(pipeline, library, movie, release_dir):
    download = _completed(movie, "Arrival.2016.1080p.WEB-DL-GRP", release_dir)

    record = pipeline.import_download(download["id"])

    dest = _dest(library)
    assert record["success"]
    assert record["dest_path"] == dest
    assert os.path.getsize(dest) == 5000
    assert os.path.exists(_dest(library, ".en.srt"))
    assert not os.path.exists(os.path.join(release_dir, "Arrival.2016.1080p.WEB-DL-GRP.mkv"))

    row = DownloadRepository().get_download(download["id"])
    assert row["status"] == IMPORTED
    assert row["imported_path"] == dest
    assert MediaRepository().get_media(movie["id"])["file_path"] == dest
    status = MediaQualityRepository().get_status(movie["id"])
    assert status["current_resolution"] == "1080p"
    assert status["target_met"]
    assert HistoryRepository().get_imports_for_download(download["id"])[0]["success"]


def test_collision_without_upgrade_fails(pipeline, library, movie, release_dir):
    existing = _write(_dest(library), size=42)
    download = _completed(movie, "Arrival.2016.1080p.WEB-DL-GRP", release_dir)

    record = pipeline.import_download(download["id"])

    assert not record["success"]
    assert DownloadRepository().get_download(download["id"])["status"] == FAILED
    assert os.path.getsize(existing) == 42
    assert os.path.exists(os.path.join(release_dir, "Arrival.2016.1080p.WEB-DL-GRP.mkv"))


def test_upgrade_replaces_and_recycles(pipeline, settings, tmp_path, library, movie, release_dir):
    recycle = tmp_path / "recycle"
    settings.recycle_bin_path = str(recycle)
    old = _write(_dest(library), size=42)
    MediaRepository().set_file_path(movie["id"], old)
    download = _completed(movie, "Arrival.2016.1080p.WEB-DL-GRP", release_dir, is_upgrade=True)

    record = pipeline.import_download(download["id"])

    assert record["success"]
    assert os.path.getsize(_dest(library)) == 5000
    recycled = os.listdir(recycle)
    assert len(recycled) == 1
    assert recycled[0].endswith("Arrival (2016).mkv")
    assert not os.path.exists(_dest(library) + ".grabarr-old")


def test_missing_video_fails(pipeline, tmp_path, movie):
    empty = tmp_path / "downloads" / "empty"
    empty.mkdir(parents=True)
    download = _completed(movie, "Arrival.2016.1080p.WEB-DL-GRP", str(empty))
    record = pipeline.import_download(download["id"])
    assert not record["success"]
    assert "No video file" in record["error"]


def test_import_completed_skips_unlinked(pipeline, movie, release_dir):
    _completed(movie, "Arrival.2016.1080p.WEB-DL-GRP", release_dir)
    DownloadRepository().create_download("Orphan.2020.1080p-GRP", None)
    assert pipeline.import_completed() == {"imported": 1, "failed": 0}


def test_find_main_video_skips_samples(release_dir):
    assert find_main_video(release_dir).endswith("Arrival.2016.1080p.WEB-DL-GRP.mkv")


def test_find_main_video_single_file(tmp_path):
    video = _write(str(tmp_path / "movie.mp4"))
    assert find_main_video(video) == video
    assert find_main_video(_write(str(tmp_path / "notes.txt"))) is None


def test_find_main_video_picks_episode_from_season_pack(tmp_path):
    pack = tmp_path / "The.Office.S03.1080p.WEB-DL-GRP"
    _write(str(pack / "The.Office.S03E06.1080p.WEB-DL-GRP.mkv"), size=9000)
    wanted = _write(str(pack / "The.Office.S03E07.1080p.WEB-DL-GRP.mkv"), size=4000)
    assert find_main_video(str(pack), season=3, episode=7) == wanted
    assert find_main_video(str(pack)).endswith("S03E06.1080p.WEB-DL-GRP.mkv")


def test_subtitle_destination_keeps_language():
    assert subtitle_destination("/dl/Arrival.en.srt", "/lib/Arrival (2016).mkv") == "/lib/Arrival (2016).en.srt"
    assert subtitle_destination("/dl/Arrival.srt", "/lib/Arrival (2016).mkv") == "/lib/Arrival (2016).srt"


def test_recycle_bin_cleanup_removes_old_entries(pipeline, settings, tmp_path):
    recycle = tmp_path / "recycle"
    settings.recycle_bin_path = str(recycle)
    settings.recycle_bin_retention_days = 7
    stale = _write(str(recycle / "2020-01-01_00-00-00_Old (2010).mkv"))
    stale_dir = recycle / "2020-01-01_00-00-00_Show"
    _write(str(stale_dir / "S01E01.mkv"))
    fresh = _write(str(recycle / "Fresh (2024).mkv"))
    eight_days_ago = time.time() - 8 * 86400
    for path in (stale, str(stale_dir)):
        os.utime(path, (eight_days_ago, eight_days_ago))

    assert pipeline.clean_recycle_bin() == 2
    assert os.listdir(recycle) == [os.path.basename(fresh)]


def test_recycle_bin_cleanup_disabled_keeps_everything(pipeline, settings, tmp_path):
    recycle = tmp_path / "recycle"
    settings.recycle_bin_path = str(recycle)
    settings.recycle_bin_retention_days = 0
    old = _write(str(recycle / "Old (2010).mkv"))
    os.utime(old, (0, 0))

    assert pipeline.clean_recycle_bin() == 0
    assert os.path.exists(old)
