"""Import pipeline: move a completed download into its library.

The main video file (largest non-sample video) is renamed through the
naming templates and moved under the library root. Subtitles shipped with
the release follow it. An existing file at the destination is only
replaced for an upgrade whose preset has ``upgrade_delete_old`` set;
anything else is a collision and the import fails with the source left
where it was.

Superseded files go to the recycle bin when one is configured; a
scheduled cleanup deletes entries past their retention.
"""

import logging
import os
import shutil
import time
from datetime import UTC, datetime

import naming
from db.repositories.downloads import COMPLETED, FAILED, IMPORTED, IMPORTING, DownloadRepository
from db.repositories.history import HistoryRepository
from db.repositories.media import MediaRepository
from db.repositories.naming import NamingTemplateRepository
from db.repositories.presets import QualityPresetRepository
from db.repositories.quality import MediaQualityRepository
from error_handler import ImportCollisionError, ImportFailedError, NotFoundError
from events import emit_event
from quality.model import QualityTarget
from quality.parser import guess_file, parse_release
from quality.scorer import meets_target, score_quality
from transaction_manager import transaction

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mkv", ".mp4", ".avi", ".m4v", ".wmv", ".mov", ".ts", ".m2ts", ".webm"}
SUBTITLE_EXTENSIONS = {".srt", ".sub", ".idx", ".ass", ".ssa", ".vtt"}
SAMPLE_MARKERS = ("sample", "trailer", "preview", "teaser")

_BACKUP_SUFFIX = ".grabarr-old"


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


def _is_sample(path: str) -> bool:
    name = os.path.basename(path).lower()
    parent = os.path.basename(os.path.dirname(path)).lower()
    return any(marker in name for marker in SAMPLE_MARKERS) or parent == "sample"


def find_main_video(download_path: str, season: int | None = None, episode: int | None = None) -> str | None:
    """Largest non-sample video file under a path (or the path itself).

    With season and episode given (a season pack imported for a single
    episode), files guessit identifies as that episode win over larger ones.
    """
    if os.path.isfile(download_path):
        ext = os.path.splitext(download_path)[1].lower()
        return download_path if ext in VIDEO_EXTENSIONS else None

    videos = []
    for root, _dirs, files in os.walk(download_path):
        for name in files:
            path = os.path.join(root, name)
            if os.path.splitext(name)[1].lower() not in VIDEO_EXTENSIONS or _is_sample(path):
                continue
            videos.append((os.path.getsize(path), path))
    if not videos:
        return None

    if episode is not None and len(videos) > 1:
        matching = []
        for size, path in videos:
            guess = guess_file(path)
            if guess["episode"] == episode and (season is None or guess["season"] in (None, season)):
                matching.append((size, path))
        if matching:
            videos = matching
        else:
            logger.warning("No file in %s matches S%sE%s, using the largest", download_path, season, episode)
    return max(videos)[1]


def find_subtitles(download_path: str) -> list[str]:
    if not os.path.isdir(download_path):
        return []
    found = []
    for root, _dirs, files in os.walk(download_path):
        for name in files:
            if os.path.splitext(name)[1].lower() in SUBTITLE_EXTENSIONS:
                found.append(os.path.join(root, name))
    return sorted(found)


def subtitle_destination(subtitle: str, dest_video: str) -> str:
    """Destination for a subtitle next to the imported video.

    A language tag in the subtitle name is kept: ``Movie.en.srt`` next to
    ``Title (2020).mkv`` becomes ``Title (2020).en.srt``.
    """
    stem, ext = os.path.splitext(os.path.basename(subtitle))
    _, _, tag = stem.rpartition(".")
    dest_stem = os.path.splitext(dest_video)[0]
    if tag and tag != stem and 2 <= len(tag) <= 3 and tag.isalpha():
        return f"{dest_stem}.{tag.lower()}{ext.lower()}"
    return f"{dest_stem}{ext.lower()}"


def _remove_empty_dirs(path: str) -> None:
    """Remove empty directories below and including path."""
    if not os.path.isdir(path):
        return
    for root, _dirs, _files in os.walk(path, topdown=False):
        if not os.listdir(root):
            os.rmdir(root)


class ImportPipeline:
    """Imports completed downloads.

    Args:
        settings: Settings instance (recycle bin path and retention).
    """

    def __init__(self, settings):
        self.settings = settings
        self.downloads = DownloadRepository()
        self.history = HistoryRepository()
        self.media = MediaRepository()
        self.presets = QualityPresetRepository()
        self.quality = MediaQualityRepository()
        self.templates = NamingTemplateRepository()

    def import_completed(self) -> dict:
        """Import every completed download that is linked to a media item."""
        summary = {"imported": 0, "failed": 0}
        for download in self.downloads.list_by_status(COMPLETED):
            if download.get("media_id") is None:
                continue
            result = self.import_download(download["id"])
            summary["imported" if result["success"] else "failed"] += 1
        return summary

    def destination_for(self, media: dict, library: dict, quality, ext: str) -> str:
        template_type = naming.template_type_for(media)
        templates = {template_type: self.templates.get_template(template_type)}
        relative = naming.render(template_type, naming.tokens_for(media, quality), templates=templates)
        return os.path.join(library["root_path"], *relative.split("/")) + ext

    def import_download(self, download_id: int) -> dict:
        """Import one download.

        Returns:
            The import_history row (success is False on a failed import).

        Raises:
            NotFoundError: Unknown download id.
            InvalidTransitionError: The download cannot be claimed for
                import (not completed/unmatched, or claimed concurrently).
        """
        from metrics import record_import

        download = self.downloads.get_download(download_id)
        if download is None:
            raise NotFoundError(f"Download {download_id} not found")

        with transaction():
            self.downloads.transition(download_id, IMPORTING)

        source_path = download.get("download_path") or ""
        dest_path = ""
        try:
            media = self.media.get_media(download["media_id"]) if download.get("media_id") else None
            if media is None:
                raise ImportFailedError("Download is not linked to a media item")
            library = self.media.get_library(media.get("library_id"))
            if library is None:
                raise ImportFailedError(f"Media item {media['id']} has no library")

            video = None
            if source_path:
                video = find_main_video(source_path, media.get("season"), media.get("episode"))
            if video is None:
                raise ImportFailedError(f"No video file found in '{source_path}'")
            source_path = video

            quality = parse_release(download["title"])
            if not quality.resolution:
                quality = parse_release(os.path.basename(video))

            preset = self.presets.resolve_for_media(media)
            target = QualityTarget.from_dict(preset) if preset else QualityTarget()
            dest_path = self.destination_for(media, library, quality, os.path.splitext(video)[1].lower())
            self._place_file(video, dest_path, media, download, target)
        except (ImportCollisionError, ImportFailedError, OSError) as e:
            return self._record_failure(download, source_path, dest_path, str(e))

        self._move_subtitles(download.get("download_path") or "", dest_path)
        if os.path.isdir(download.get("download_path") or ""):
            try:
                _remove_empty_dirs(download["download_path"])
            except OSError as e:
                logger.debug("Could not clean up %s: %s", download["download_path"], e)

        score, _ = score_quality(target, quality)
        target_met = meets_target(target, quality)
        with transaction():
            self.quality.upsert_status(
                media["id"], quality, score,
                target_met=target_met,
                upgrade_available=target.auto_upgrade and not target_met,
            )
            if download.get("grab_id"):
                self.history.mark_grab_imported(download["grab_id"])
            self.downloads.transition(download_id, IMPORTED, imported_path=dest_path)
            self.media.set_file_path(media["id"], dest_path)
            record = self.history.record_import(download_id, media["id"], source_path, dest_path, success=True)

        record_import("success")
        emit_event("import_completed", {
            "download_id": download_id,
            "media_id": media["id"],
            "target_met": target_met,
            "is_upgrade": bool(download.get("is_upgrade")),
        })
        logger.info("Imported download %d to %s", download_id, dest_path)
        return record

    # ---- Filesystem -------------------------------------------------------------

    def _place_file(self, source: str, dest: str, media: dict, download: dict, target: QualityTarget) -> None:
        """Move source to dest, displacing an older file only for upgrades.

        The displaced file is set aside first and restored if the move
        fails, so a failed import never loses the held file.
        """
        replace_allowed = bool(download.get("is_upgrade")) and target.upgrade_delete_old
        old_file = media.get("file_path") or ""

        if os.path.exists(dest) and not replace_allowed:
            raise ImportCollisionError(dest)

        displaced = []
        for path in {dest, old_file}:
            if path and os.path.exists(path) and (path == dest or replace_allowed):
                backup = path + _BACKUP_SUFFIX
                os.replace(path, backup)
                displaced.append((path, backup))

        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.move(source, dest)
        except OSError as e:
            for original, backup in displaced:
                os.replace(backup, original)
            raise ImportFailedError(f"Moving '{source}' to '{dest}' failed: {e}") from e

        for original, backup in displaced:
            self._discard(backup, original)

    def _discard(self, backup: str, original: str) -> None:
        """Delete a superseded file, or move it to the recycle bin."""
        try:
            if self.settings.recycle_bin_path:
                os.makedirs(self.settings.recycle_bin_path, exist_ok=True)
                stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
                target = os.path.join(self.settings.recycle_bin_path, f"{stamp}_{os.path.basename(original)}")
                shutil.move(backup, target)
                logger.info("Moved superseded file to recycle bin: %s", target)
            else:
                os.remove(backup)
                logger.info("Deleted superseded file: %s", original)
        except OSError as e:
            logger.warning("Could not remove superseded file %s: %s", backup, e)

    def clean_recycle_bin(self) -> int:
        """Delete recycle bin entries older than the retention period.

        Entries are aged by modification time. Returns the number removed.
        """
        bin_path = self.settings.recycle_bin_path
        days = self.settings.recycle_bin_retention_days
        if not bin_path or days <= 0 or not os.path.isdir(bin_path):
            return 0

        cutoff = time.time() - days * 86400
        removed = 0
        with os.scandir(bin_path) as entries:
            for entry in entries:
                try:
                    if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        shutil.rmtree(entry.path)
                    else:
                        os.remove(entry.path)
                except OSError as e:
                    logger.warning("Could not clean recycle bin entry %s: %s", entry.path, e)
                    continue
                logger.info("Removed old recycle bin entry: %s", entry.path)
                removed += 1
        return removed

    def _move_subtitles(self, download_path: str, dest_video: str) -> None:
        for subtitle in find_subtitles(download_path):
            target = subtitle_destination(subtitle, dest_video)
            if os.path.exists(target):
                continue
            try:
                shutil.move(subtitle, target)
            except OSError as e:
                logger.warning("Could not move subtitle %s: %s", subtitle, e)

    def _record_failure(self, download: dict, source_path: str, dest_path: str, error: str) -> dict:
        from metrics import record_import

        with transaction():
            record = self.history.record_import(
                download["id"], download.get("media_id"), source_path, dest_path, success=False, error=error,
            )
            self.downloads.transition(
                download["id"], FAILED, error=error, failed_at=_utcnow(),
                retry_count=(download.get("retry_count") or 0) + 1,
            )
        record_import("failed")
        emit_event("import_failed", {
            "download_id": download["id"],
            "media_id": download.get("media_id"),
            "error": error,
        })
        logger.warning("Import of download %d failed: %s", download["id"], error)
        return record
