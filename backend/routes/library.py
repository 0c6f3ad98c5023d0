"""Library and source routes: /libraries/*, /media/*, /indexers/*, /download-clients/*."""

import logging

from flask import Blueprint, current_app, jsonify, request

from error_handler import GrabarrError, NotFoundError, ValidationError

bp = Blueprint("library", __name__, url_prefix="/api/v1")
logger = logging.getLogger(__name__)


# ─── Libraries ────────────────────────────────────────────────────────────────


@bp.route("/libraries", methods=["GET"])
def list_libraries():
    from db.repositories.media import MediaRepository

    return jsonify(MediaRepository().list_libraries())


@bp.route("/libraries", methods=["POST"])
def create_library():
    from db.repositories.media import MediaRepository

    data = request.get_json() or {}
    if not data.get("name"):
        raise ValidationError("Library name is required")
    library = MediaRepository().create_library(
        data["name"],
        data.get("root_path", ""),
        media_type=data.get("media_type", "movie"),
        preset_id=data.get("preset_id"),
    )
    return jsonify(library), 201


@bp.route("/libraries/<int:library_id>/preset", methods=["PUT"])
def set_library_preset(library_id):
    """Assign a preset to a library (null falls back to the global default)."""
    from db.repositories.media import MediaRepository

    data = request.get_json() or {}
    return jsonify(MediaRepository().set_library_preset(library_id, data.get("preset_id")))


# ─── Media items ──────────────────────────────────────────────────────────────


@bp.route("/media", methods=["GET"])
def list_media():
    from db.repositories.media import MediaRepository

    library_id = request.args.get("library_id", type=int)
    return jsonify(MediaRepository().list_media(library_id))


@bp.route("/media", methods=["POST"])
def create_media():
    """Register a monitored item handed over by the discovery layer."""
    from db.repositories.media import MediaRepository

    data = request.get_json() or {}
    repo = MediaRepository()
    if repo.get_library(data.get("library_id")) is None:
        raise ValidationError("A valid library_id is required")
    return jsonify(repo.create_media(data)), 201


@bp.route("/media/<int:media_id>", methods=["GET"])
def get_media(media_id):
    from db.repositories.media import MediaRepository
    from db.repositories.quality import MediaQualityRepository

    media = MediaRepository().get_media(media_id)
    if media is None:
        raise NotFoundError(f"Media {media_id} not found")
    media["quality"] = MediaQualityRepository().get_status(media_id)
    return jsonify(media)


@bp.route("/media/<int:media_id>/monitored", methods=["PUT"])
def set_monitored(media_id):
    from db.repositories.media import MediaRepository

    data = request.get_json() or {}
    repo = MediaRepository()
    repo.set_monitored(media_id, bool(data.get("monitored", True)))
    return jsonify(repo.get_media(media_id))


@bp.route("/media/<int:media_id>/search", methods=["POST"])
def search_media(media_id):
    """Run the grab decision for one item now and return the decision."""
    engine = current_app.extensions["engine"]
    return jsonify(engine.decide(media_id).to_dict())


@bp.route("/media/due", methods=["GET"])
def due_for_search():
    """Items the next search pass would pick up."""
    from config import get_settings
    from db.repositories.media import MediaRepository

    settings = get_settings()
    limit = min(request.args.get("limit", settings.search_max_items_per_run, type=int), 500)
    return jsonify(MediaRepository().get_due_for_search(settings.search_interval_minutes, limit=limit))


# ─── Indexers ─────────────────────────────────────────────────────────────────


def _redact(row: dict, *fields: str) -> dict:
    for field in fields:
        if row.get(field):
            row[field] = "***configured***"
    return row


@bp.route("/indexers", methods=["GET"])
def list_indexers():
    from db.repositories.sources import SourceRepository

    return jsonify([_redact(r, "api_key") for r in SourceRepository().list_indexers()])


@bp.route("/indexers", methods=["POST"])
def create_indexer():
    from db.repositories.sources import SourceRepository

    data = request.get_json() or {}
    return jsonify(_redact(SourceRepository().save_indexer(data), "api_key")), 201


@bp.route("/indexers/<int:indexer_id>", methods=["PUT"])
def update_indexer(indexer_id):
    from db.repositories.sources import SourceRepository

    data = request.get_json() or {}
    return jsonify(_redact(SourceRepository().save_indexer(data, indexer_id), "api_key"))


@bp.route("/indexers/<int:indexer_id>", methods=["DELETE"])
def delete_indexer(indexer_id):
    from db.repositories.sources import SourceRepository

    if not SourceRepository().delete_indexer(indexer_id):
        raise NotFoundError(f"Indexer {indexer_id} not found")
    return jsonify({"status": "deleted"})


@bp.route("/indexers/<int:indexer_id>/test", methods=["POST"])
def test_indexer(indexer_id):
    """Probe an indexer. Returns {"healthy": bool, "message": str}."""
    from config import get_settings
    from db.repositories.sources import SourceRepository
    from indexers import build_indexer

    row = SourceRepository().get_indexer(indexer_id)
    if row is None:
        raise NotFoundError(f"Indexer {indexer_id} not found")
    indexer = build_indexer(row, timeout=get_settings().indexer_timeout_seconds)
    if indexer is None:
        raise ValidationError(f"Unsupported indexer protocol: {row['protocol']}")
    try:
        indexer.test_connection()
    except GrabarrError as e:
        return jsonify({"healthy": False, "message": str(e)})
    return jsonify({"healthy": True, "message": "OK"})


# ─── Download clients ─────────────────────────────────────────────────────────


@bp.route("/download-clients", methods=["GET"])
def list_download_clients():
    from db.repositories.sources import SourceRepository

    return jsonify([_redact(r, "password", "api_key") for r in SourceRepository().list_clients()])


@bp.route("/download-clients", methods=["POST"])
def create_download_client():
    from db.repositories.sources import SourceRepository

    data = request.get_json() or {}
    return jsonify(_redact(SourceRepository().save_client(data), "password", "api_key")), 201


@bp.route("/download-clients/<int:client_id>", methods=["PUT"])
def update_download_client(client_id):
    from db.repositories.sources import SourceRepository

    data = request.get_json() or {}
    return jsonify(_redact(SourceRepository().save_client(data, client_id), "password", "api_key"))


@bp.route("/download-clients/<int:client_id>", methods=["DELETE"])
def delete_download_client(client_id):
    from db.repositories.sources import SourceRepository

    if not SourceRepository().delete_client(client_id):
        raise NotFoundError(f"Download client {client_id} not found")
    return jsonify({"status": "deleted"})


@bp.route("/download-clients/<int:client_id>/test", methods=["POST"])
def test_download_client(client_id):
    """Check that the client answers and accepts our credentials."""
    clients = current_app.extensions["download_clients"]
    client = clients.get_client(client_id)
    if client is None:
        raise NotFoundError(f"Download client {client_id} not found")
    try:
        client.test_connection()
    except GrabarrError as e:
        return jsonify({"healthy": False, "message": str(e)})
    return jsonify({"healthy": True, "message": "OK"})
