"""Quality routes: /presets/*, /media/<id>/override, /delay-profiles/*, /naming/*."""

import logging

from flask import Blueprint, jsonify, request

from error_handler import NotFoundError, ValidationError

bp = Blueprint("quality", __name__, url_prefix="/api/v1")
logger = logging.getLogger(__name__)


# ─── Presets ──────────────────────────────────────────────────────────────────


@bp.route("/presets", methods=["GET"])
def list_presets():
    """List quality presets, optionally filtered by ?media_type=movie|tv|anime."""
    from db.repositories.presets import QualityPresetRepository

    media_type = request.args.get("media_type") or None
    return jsonify(QualityPresetRepository().list_presets(media_type))


@bp.route("/presets/<int:preset_id>", methods=["GET"])
def get_preset(preset_id):
    from db.repositories.presets import QualityPresetRepository

    repo = QualityPresetRepository()
    preset = repo.get_preset(preset_id)
    if preset is None:
        raise NotFoundError(f"Preset {preset_id} not found")
    preset["filters"] = repo.list_filters(preset_id)
    return jsonify(preset)


@bp.route("/presets", methods=["POST"])
def create_preset():
    """Create a user preset."""
    from db.repositories.presets import QualityPresetRepository

    data = request.get_json() or {}
    return jsonify(QualityPresetRepository().create_preset(data)), 201


@bp.route("/presets/<int:preset_id>", methods=["PUT"])
def update_preset(preset_id):
    """Update a user preset. Built-in presets answer 409."""
    from db.repositories.presets import QualityPresetRepository

    data = request.get_json() or {}
    return jsonify(QualityPresetRepository().update_preset(preset_id, data))


@bp.route("/presets/<int:preset_id>", methods=["DELETE"])
def delete_preset(preset_id):
    from db.repositories.presets import QualityPresetRepository

    if not QualityPresetRepository().delete_preset(preset_id):
        raise NotFoundError(f"Preset {preset_id} not found")
    return jsonify({"status": "deleted"})


@bp.route("/presets/<int:preset_id>/duplicate", methods=["POST"])
def duplicate_preset(preset_id):
    """Copy a preset (typically a built-in) into an editable one."""
    from db.repositories.presets import QualityPresetRepository

    data = request.get_json() or {}
    name = data.get("name", "").strip()
    if not name:
        raise ValidationError("name is required")
    return jsonify(QualityPresetRepository().duplicate_preset(preset_id, name)), 201


@bp.route("/presets/<int:preset_id>/default", methods=["POST"])
def set_default_preset(preset_id):
    from db.repositories.presets import QualityPresetRepository

    return jsonify(QualityPresetRepository().set_default_preset(preset_id))


@bp.route("/presets/<int:preset_id>/filters", methods=["GET"])
def list_filters(preset_id):
    from db.repositories.presets import QualityPresetRepository

    return jsonify(QualityPresetRepository().list_filters(preset_id))


@bp.route("/presets/<int:preset_id>/filters", methods=["POST"])
def add_filter(preset_id):
    """Add a must_contain / must_not_contain rule to a user preset."""
    from db.repositories.presets import QualityPresetRepository

    data = request.get_json() or {}
    rule = QualityPresetRepository().add_filter(
        preset_id,
        data.get("filter_type", ""),
        data.get("value", ""),
        is_regex=bool(data.get("is_regex", False)),
    )
    return jsonify(rule), 201


@bp.route("/filters/<int:filter_id>", methods=["DELETE"])
def delete_filter(filter_id):
    from db.repositories.presets import QualityPresetRepository

    if not QualityPresetRepository().delete_filter(filter_id):
        raise NotFoundError(f"Filter {filter_id} not found")
    return jsonify({"status": "deleted"})


# ─── Per-item overrides and status ────────────────────────────────────────────


@bp.route("/media/<int:media_id>/override", methods=["GET"])
def get_override(media_id):
    from db.repositories.quality import MediaQualityRepository

    override = MediaQualityRepository().get_override(media_id)
    if override is None:
        raise NotFoundError(f"No override for media {media_id}")
    return jsonify(override)


@bp.route("/media/<int:media_id>/override", methods=["PUT"])
def set_override(media_id):
    """Set the preset and/or monitored flag for one item."""
    from db.repositories.media import MediaRepository
    from db.repositories.quality import MediaQualityRepository

    if MediaRepository().get_media(media_id) is None:
        raise NotFoundError(f"Media {media_id} not found")
    data = request.get_json() or {}
    override = MediaQualityRepository().set_override(
        media_id,
        preset_id=data.get("preset_id"),
        monitored=bool(data.get("monitored", True)),
    )
    return jsonify(override)


@bp.route("/media/<int:media_id>/override", methods=["DELETE"])
def delete_override(media_id):
    from db.repositories.quality import MediaQualityRepository

    if not MediaQualityRepository().delete_override(media_id):
        raise NotFoundError(f"No override for media {media_id}")
    return jsonify({"status": "deleted"})


@bp.route("/media/<int:media_id>/quality", methods=["GET"])
def get_quality_status(media_id):
    """Held quality, score and target/upgrade flags for one item."""
    from db.repositories.quality import MediaQualityRepository

    status = MediaQualityRepository().get_status(media_id)
    if status is None:
        raise NotFoundError(f"No quality status for media {media_id}")
    return jsonify(status)


# ─── Delay profiles ───────────────────────────────────────────────────────────


@bp.route("/delay-profiles", methods=["GET"])
def list_delay_profiles():
    from db.repositories.delay import DelayProfileRepository

    return jsonify(DelayProfileRepository().list_profiles())


@bp.route("/delay-profiles", methods=["POST"])
def create_delay_profile():
    from db.repositories.delay import DelayProfileRepository

    data = request.get_json() or {}
    return jsonify(DelayProfileRepository().create_profile(data)), 201


@bp.route("/delay-profiles/<int:profile_id>", methods=["PUT"])
def update_delay_profile(profile_id):
    from db.repositories.delay import DelayProfileRepository

    data = request.get_json() or {}
    return jsonify(DelayProfileRepository().update_profile(profile_id, data))


@bp.route("/delay-profiles/<int:profile_id>", methods=["DELETE"])
def delete_delay_profile(profile_id):
    from db.repositories.delay import DelayProfileRepository

    if not DelayProfileRepository().delete_profile(profile_id):
        raise NotFoundError(f"Delay profile {profile_id} not found")
    return jsonify({"status": "deleted"})


# ─── Naming templates ─────────────────────────────────────────────────────────


@bp.route("/naming", methods=["GET"])
def list_naming_templates():
    from db.repositories.naming import NamingTemplateRepository

    return jsonify(NamingTemplateRepository().list_templates())


@bp.route("/naming/<template_type>", methods=["PUT"])
def set_naming_template(template_type):
    """Replace the default folder/file template for movie, tv or daily."""
    from db.repositories.naming import NamingTemplateRepository

    data = request.get_json() or {}
    template = NamingTemplateRepository().set_template(
        template_type,
        data.get("folder_template", ""),
        data.get("file_template", ""),
    )
    return jsonify(template)


@bp.route("/naming/preview", methods=["POST"])
def preview_naming():
    """Render a template against sample tokens without saving anything."""
    import naming

    data = request.get_json() or {}
    template_type = data.get("template_type", "movie")
    tokens = data.get("tokens") or {}
    templates = None
    if data.get("file_template"):
        templates = {template_type: (data.get("folder_template", ""), data["file_template"])}
    try:
        rendered = naming.render(template_type, tokens, templates=templates)
    except ValueError as e:
        raise ValidationError(f"Invalid template: {e}") from e
    return jsonify({"path": rendered})
