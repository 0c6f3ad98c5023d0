"""Blocklist and trust routes: /blocklist/*, /groups/*, /exclusions/*."""

import logging

from flask import Blueprint, current_app, jsonify, request

from error_handler import NotFoundError, ValidationError

bp = Blueprint("blocklist", __name__, url_prefix="/api/v1")
logger = logging.getLogger(__name__)


# ─── Blocklist ────────────────────────────────────────────────────────────────


@bp.route("/blocklist", methods=["GET"])
def list_blocklist():
    """Paginated blocklist entries, newest first.

    Query: page (default 1), per_page (default 50, max 200), media_id.
    """
    from db.repositories.blocklist import BlocklistRepository

    page = max(request.args.get("page", 1, type=int), 1)
    per_page = min(request.args.get("per_page", 50, type=int), 200)
    media_id = request.args.get("media_id", type=int)
    return jsonify(BlocklistRepository().get_entries(page=page, per_page=per_page, media_id=media_id))


@bp.route("/blocklist", methods=["POST"])
def add_to_blocklist():
    """Manually blocklist a release title. Manual entries never expire."""
    from db.repositories.blocklist import BlocklistRepository

    data = request.get_json() or {}
    release_title = (data.get("release_title") or "").strip()
    if not release_title:
        raise ValidationError("release_title is required")

    entry = BlocklistRepository().add_entry(
        release_title,
        media_id=data.get("media_id"),
        indexer_id=data.get("indexer_id"),
        reason=data.get("reason", "manual"),
        is_manual=True,
    )
    return jsonify(entry), 201


@bp.route("/blocklist/<int:entry_id>", methods=["DELETE"])
def remove_from_blocklist(entry_id):
    from db.repositories.blocklist import BlocklistRepository

    if not BlocklistRepository().remove_entry(entry_id):
        raise NotFoundError(f"Blocklist entry {entry_id} not found")
    return jsonify({"status": "removed"})


@bp.route("/blocklist/expire", methods=["POST"])
def expire_blocklist():
    """Drop expired automatic entries now."""
    purged = current_app.extensions["blocklist_manager"].expire()
    return jsonify({"purged": purged})


# ─── Release groups ───────────────────────────────────────────────────────────


@bp.route("/groups/blocked", methods=["GET"])
def list_blocked_groups():
    from db.repositories.groups import GroupTrustRepository

    return jsonify(GroupTrustRepository().list_blocked())


@bp.route("/groups/blocked", methods=["POST"])
def block_group():
    from db.repositories.groups import GroupTrustRepository

    data = request.get_json() or {}
    return jsonify(GroupTrustRepository().block_group(data.get("name", ""), data.get("reason", ""))), 201


@bp.route("/groups/blocked/<name>", methods=["DELETE"])
def unblock_group(name):
    """Unblock a group and reset its failure count."""
    from db.repositories.groups import GroupTrustRepository

    if not GroupTrustRepository().unblock_group(name):
        raise NotFoundError(f"Group '{name}' is not blocked")
    return jsonify({"status": "unblocked"})


@bp.route("/groups/trusted", methods=["GET"])
def list_trusted_groups():
    from db.repositories.groups import GroupTrustRepository

    return jsonify(GroupTrustRepository().list_trusted())


@bp.route("/groups/trusted", methods=["POST"])
def trust_group():
    """Trust a group: it bypasses group blocks and earns a score bonus."""
    from db.repositories.groups import GroupTrustRepository

    data = request.get_json() or {}
    return jsonify(GroupTrustRepository().trust_group(data.get("name", ""), data.get("category", ""))), 201


@bp.route("/groups/trusted/<name>", methods=["DELETE"])
def untrust_group(name):
    from db.repositories.groups import GroupTrustRepository

    if not GroupTrustRepository().untrust_group(name):
        raise NotFoundError(f"Group '{name}' is not trusted")
    return jsonify({"status": "removed"})


# ─── Exclusions ───────────────────────────────────────────────────────────────


@bp.route("/exclusions", methods=["GET"])
def list_exclusions():
    from db.repositories.exclusions import ExclusionRepository

    return jsonify(ExclusionRepository().list_exclusions())


@bp.route("/exclusions", methods=["POST"])
def add_exclusion():
    """Exclude a media item, or an indexer for one library.

    Body: {"exclusion_type": "media", "media_id": ...} or
    {"exclusion_type": "indexer_library", "indexer_id": ..., "library_id": ...}
    """
    from db.repositories.exclusions import EXCLUSION_INDEXER_LIBRARY, EXCLUSION_MEDIA, ExclusionRepository

    data = request.get_json() or {}
    repo = ExclusionRepository()
    exclusion_type = data.get("exclusion_type", EXCLUSION_MEDIA)
    if exclusion_type == EXCLUSION_MEDIA:
        if data.get("media_id") is None:
            raise ValidationError("media_id is required")
        row = repo.add_media_exclusion(data["media_id"], data.get("reason", ""))
    elif exclusion_type == EXCLUSION_INDEXER_LIBRARY:
        row = repo.add_indexer_exclusion(data.get("indexer_id"), data.get("library_id"), data.get("reason", ""))
    else:
        raise ValidationError(f"Invalid exclusion type: {exclusion_type}")
    return jsonify(row), 201


@bp.route("/exclusions/<int:exclusion_id>", methods=["DELETE"])
def remove_exclusion(exclusion_id):
    from db.repositories.exclusions import ExclusionRepository

    if not ExclusionRepository().remove(exclusion_id):
        raise NotFoundError(f"Exclusion {exclusion_id} not found")
    return jsonify({"status": "removed"})
