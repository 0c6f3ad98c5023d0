"""Download lifecycle routes: /downloads/*, /pending/*, /history/*."""

import logging

from flask import Blueprint, current_app, jsonify, request

from error_handler import NotFoundError

bp = Blueprint("downloads", __name__, url_prefix="/api/v1")
logger = logging.getLogger(__name__)


def _pagination():
    page = max(request.args.get("page", 1, type=int), 1)
    per_page = min(request.args.get("per_page", 50, type=int), 200)
    return page, per_page


@bp.route("/downloads", methods=["GET"])
def list_downloads():
    """Paginated downloads, newest first. Optional ?status= filter."""
    from db.repositories.downloads import DownloadRepository

    page, per_page = _pagination()
    status = request.args.get("status") or None
    return jsonify(DownloadRepository().get_downloads(page=page, per_page=per_page, status=status))


@bp.route("/downloads/<int:download_id>", methods=["GET"])
def get_download(download_id):
    """One download with its import attempts."""
    from db.repositories.downloads import DownloadRepository
    from db.repositories.history import HistoryRepository

    download = DownloadRepository().get_download(download_id)
    if download is None:
        raise NotFoundError(f"Download {download_id} not found")
    download["imports"] = HistoryRepository().get_imports_for_download(download_id)
    return jsonify(download)


@bp.route("/downloads/stalled", methods=["GET"])
def list_stalled():
    """Downloading jobs without progress for ?minutes= (default: configured threshold)."""
    from config import get_settings
    from db.repositories.downloads import DownloadRepository

    minutes = request.args.get("minutes", get_settings().stalled_threshold_minutes, type=int)
    return jsonify(DownloadRepository().get_stalled(minutes))


@bp.route("/downloads/<int:download_id>/fail", methods=["POST"])
def fail_download(download_id):
    """Mark a download failed by hand: blocklists the release and retries within budget."""
    data = request.get_json(silent=True) or {}
    tracker = current_app.extensions["tracker"]
    download = tracker.fail_download(download_id, data.get("error") or "Marked failed by user", reason="manual")
    return jsonify(download)


@bp.route("/downloads/<int:download_id>/import", methods=["POST"])
def import_download(download_id):
    """Import a completed (or unmatched, once linked) download now."""
    pipeline = current_app.extensions["import_pipeline"]
    record = pipeline.import_download(download_id)
    return jsonify(record), 200 if record.get("success") else 422


@bp.route("/downloads/<int:download_id>/unmatched", methods=["POST"])
def mark_unmatched(download_id):
    return jsonify(current_app.extensions["tracker"].mark_unmatched(download_id))


@bp.route("/downloads/<int:download_id>/link", methods=["POST"])
def link_download(download_id):
    """Attach an unmatched download to a media item so it can be imported."""
    from db.repositories.downloads import DownloadRepository
    from db.repositories.media import MediaRepository
    from error_handler import ValidationError

    data = request.get_json() or {}
    media_id = data.get("media_id")
    if media_id is None:
        raise ValidationError("media_id is required")
    if MediaRepository().get_media(media_id) is None:
        raise NotFoundError(f"Media {media_id} not found")
    return jsonify(DownloadRepository().link_media(download_id, media_id))


@bp.route("/pending", methods=["GET"])
def list_pending():
    """Deferred grabs. ?ready=true limits to those whose delay has elapsed."""
    from db.repositories.delay import PendingGrabRepository

    repo = PendingGrabRepository()
    ready = request.args.get("ready", "false").lower() in ("true", "1", "yes")
    return jsonify(repo.get_ready() if ready else repo.list_pending())


@bp.route("/pending/<int:pending_id>", methods=["DELETE"])
def delete_pending(pending_id):
    from db.repositories.delay import PendingGrabRepository

    if not PendingGrabRepository().delete(pending_id):
        raise NotFoundError(f"Pending grab {pending_id} not found")
    return jsonify({"status": "deleted"})


@bp.route("/history/grabs", methods=["GET"])
def grab_history():
    """Paginated grab history. Optional ?media_id= filter."""
    from db.repositories.history import HistoryRepository

    page, per_page = _pagination()
    media_id = request.args.get("media_id", type=int)
    return jsonify(HistoryRepository().get_grab_history(page=page, per_page=per_page, media_id=media_id))
