"""Quality preset and release filter repository.

Enforces the two preset invariants: built-in presets are never modified
or deleted, and exactly one preset holds is_default (clear-then-set inside
one transaction).
"""

import logging

from sqlalchemy import func, select, update

from db.models.library import Library
from db.models.quality import MediaQualityOverride, QualityPreset, ReleaseFilter
from db.repositories.base import BaseRepository
from error_handler import NotFoundError, PresetLockedError, ValidationError
from quality.model import QualityTarget, ReleaseFilterRule, resolution_rank, source_rank
from quality.presets import BUILT_IN_PRESETS
from transaction_manager import transaction

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "media_type",
    "resolution",
    "min_resolution",
    "source",
    "hdr_formats",
    "codec",
    "audio_formats",
    "preferred_edition",
    "min_seeders",
    "prefer_season_packs",
    "auto_upgrade",
    "upgrade_delete_old",
    "prefer_dual_audio",
    "prefer_dubbed",
    "preferred_language",
)

_BOOL_FIELDS = {
    "prefer_season_packs",
    "auto_upgrade",
    "upgrade_delete_old",
    "prefer_dual_audio",
    "prefer_dubbed",
}

VALID_FILTER_TYPES = ("must_contain", "must_not_contain")


class QualityPresetRepository(BaseRepository):
    """Repository for quality_presets and release_filters."""

    flag_columns = (
        "is_default",
        "is_built_in",
        "prefer_season_packs",
        "auto_upgrade",
        "upgrade_delete_old",
        "prefer_dual_audio",
        "prefer_dubbed",
        "is_regex",
    )
    json_columns = ("hdr_formats", "audio_formats")

    # ---- Presets ----------------------------------------------------------------

    def seed_built_in_presets(self) -> int:
        """Insert missing built-in presets. Returns the number created."""
        existing = set(self.session.execute(
            select(QualityPreset.name).where(QualityPreset.is_built_in == 1)
        ).scalars().all())
        has_default = self.session.execute(
            select(func.count()).select_from(QualityPreset).where(QualityPreset.is_default == 1)
        ).scalar() or 0

        created = 0
        now = self._now()
        for preset in BUILT_IN_PRESETS:
            if preset["name"] in existing:
                continue
            row = QualityPreset(
                is_built_in=1,
                is_default=1 if (preset.get("is_default") and not has_default) else 0,
                created_at=now,
                updated_at=now,
            )
            self._apply_fields(row, preset)
            self.session.add(row)
            created += 1
        if created:
            self._commit()
            logger.info("Seeded %d built-in quality presets", created)
        return created

    def list_presets(self, media_type: str | None = None) -> list[dict]:
        stmt = select(QualityPreset).order_by(QualityPreset.is_built_in.desc(), QualityPreset.name)
        if media_type:
            stmt = stmt.where(QualityPreset.media_type == media_type)
        return [self._to_dict(p) for p in self.session.execute(stmt).scalars().all()]

    def get_preset(self, preset_id: int) -> dict | None:
        return self._to_dict(self.session.get(QualityPreset, preset_id))

    def get_default_preset(self) -> dict | None:
        row = self.session.execute(
            select(QualityPreset).where(QualityPreset.is_default == 1).limit(1)
        ).scalar_one_or_none()
        return self._to_dict(row)

    def create_preset(self, data: dict) -> dict:
        """Create a user preset. Built-in and default flags cannot be set here."""
        if not data.get("name"):
            raise ValidationError("Preset name is required")
        self._validate(data)
        now = self._now()
        row = QualityPreset(is_built_in=0, is_default=0, created_at=now, updated_at=now)
        self._apply_fields(row, data)
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def update_preset(self, preset_id: int, data: dict) -> dict:
        row = self._get_or_raise(preset_id)
        if row.is_built_in:
            raise PresetLockedError(row.name)
        self._validate(data)
        self._apply_fields(row, data)
        row.updated_at = self._now()
        self._commit()
        return self._to_dict(row)

    def delete_preset(self, preset_id: int) -> bool:
        """Delete a user preset and its filters. Returns False if missing."""
        row = self.session.get(QualityPreset, preset_id)
        if row is None:
            return False
        if row.is_built_in:
            raise PresetLockedError(row.name)
        with transaction() as session:
            was_default = bool(row.is_default)
            session.query(ReleaseFilter).filter(ReleaseFilter.preset_id == preset_id).delete()
            session.delete(row)
            if was_default:
                # Fall back to the first built-in so one default always exists
                fallback = session.execute(
                    select(QualityPreset)
                    .where(QualityPreset.is_built_in == 1, QualityPreset.id != preset_id)
                    .order_by(QualityPreset.id)
                    .limit(1)
                ).scalar_one_or_none()
                if fallback is not None:
                    fallback.is_default = 1
        return True

    def duplicate_preset(self, preset_id: int, name: str) -> dict:
        """Copy a preset (typically a built-in) into an editable user preset."""
        source = self._get_or_raise(preset_id)
        data = self._to_dict(source)
        data["name"] = name
        copy = self.create_preset(data)
        for rule in self.list_filters(preset_id):
            self.add_filter(copy["id"], rule["filter_type"], rule["value"], rule["is_regex"])
        return copy

    def set_default_preset(self, preset_id: int) -> dict:
        """Make one preset the default: clear every flag, then set one.

        Idempotent; afterwards exactly one row has is_default=1.
        """
        self._get_or_raise(preset_id)
        with transaction() as session:
            session.execute(update(QualityPreset).values(is_default=0))
            session.execute(
                update(QualityPreset).where(QualityPreset.id == preset_id).values(is_default=1)
            )
        logger.info("Default quality preset set to %d", preset_id)
        return self.get_preset(preset_id)

    def get_target(self, preset_id: int) -> QualityTarget | None:
        preset = self.get_preset(preset_id)
        return QualityTarget.from_dict(preset) if preset else None

    def resolve_for_media(self, media: dict) -> dict | None:
        """Effective preset: per-item override, then library, then global default."""
        override = self.session.execute(
            select(MediaQualityOverride).where(MediaQualityOverride.media_id == media["id"])
        ).scalar_one_or_none()
        if override is not None and override.preset_id:
            preset = self.get_preset(override.preset_id)
            if preset:
                return preset
        library = self.session.get(Library, media["library_id"]) if media.get("library_id") else None
        if library is not None and library.preset_id:
            preset = self.get_preset(library.preset_id)
            if preset:
                return preset
        return self.get_default_preset()

    # ---- Filters ----------------------------------------------------------------

    def list_filters(self, preset_id: int) -> list[dict]:
        rows = self.session.execute(
            select(ReleaseFilter).where(ReleaseFilter.preset_id == preset_id).order_by(ReleaseFilter.id)
        ).scalars().all()
        return [self._to_dict(r) for r in rows]

    def get_filter_rules(self, preset_id: int) -> list[ReleaseFilterRule]:
        return [
            ReleaseFilterRule(r["filter_type"], r["value"], r["is_regex"])
            for r in self.list_filters(preset_id)
        ]

    def add_filter(self, preset_id: int, filter_type: str, value: str, is_regex: bool = False) -> dict:
        if filter_type not in VALID_FILTER_TYPES:
            raise ValidationError(f"Invalid filter type: {filter_type}")
        if not value:
            raise ValidationError("Filter value is required")
        preset = self._get_or_raise(preset_id)
        if preset.is_built_in:
            raise PresetLockedError(preset.name)
        row = ReleaseFilter(
            preset_id=preset_id,
            filter_type=filter_type,
            value=value,
            is_regex=1 if is_regex else 0,
        )
        self.session.add(row)
        self._commit()
        return self._to_dict(row)

    def delete_filter(self, filter_id: int) -> bool:
        row = self.session.get(ReleaseFilter, filter_id)
        if row is None:
            return False
        preset = self.session.get(QualityPreset, row.preset_id)
        if preset is not None and preset.is_built_in:
            raise PresetLockedError(preset.name)
        self.session.delete(row)
        self._commit()
        return True

    # ---- Helpers ----------------------------------------------------------------

    def _get_or_raise(self, preset_id: int) -> QualityPreset:
        row = self.session.get(QualityPreset, preset_id)
        if row is None:
            raise NotFoundError(f"Quality preset {preset_id} not found")
        return row

    def _apply_fields(self, row: QualityPreset, data: dict) -> None:
        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key in ("hdr_formats", "audio_formats"):
                value = self._dump_json(list(value or []))
            elif key in _BOOL_FIELDS:
                value = 1 if value else 0
            elif key == "min_seeders":
                value = int(value or 0)
            setattr(row, key, value)

    @staticmethod
    def _validate(data: dict) -> None:
        for key in ("resolution", "min_resolution"):
            if data.get(key) and not resolution_rank(data[key]):
                raise ValidationError(f"Invalid {key}: {data[key]}")
        if "source" in data and data["source"] != "any" and not source_rank(data["source"]):
            raise ValidationError(f"Invalid source: {data['source']}")
        if "min_seeders" in data and int(data["min_seeders"] or 0) < 0:
            raise ValidationError("min_seeders must not be negative")
