"""Centralized configuration using Pydantic Settings.

All settings can be overridden via environment variables with the GRABARR_ prefix,
or via a .env file. Example: GRABARR_PORT=8080
"""

import os
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Grabarr application settings."""

    # General
    port: int = 5780
    log_level: str = "INFO"
    log_file: str = "/config/grabarr.log"
    log_format: str = "text"  # "text" or "json"
    db_path: str = "/config/grabarr.db"
    database_url: str = ""  # Empty = SQLite at db_path

    # Scheduler (minutes, 0 = task disabled)
    scheduler_enabled: bool = True
    search_interval_minutes: int = 60
    upgrade_search_interval_minutes: int = 720
    pending_promotion_interval_minutes: int = 1
    download_poll_interval_minutes: int = 1
    stalled_sweep_interval_minutes: int = 15
    rss_sync_interval_minutes: int = 15
    blocklist_expiry_interval_minutes: int = 1440
    recycle_bin_cleanup_interval_minutes: int = 1440
    search_max_items_per_run: int = 50
    rss_max_items_per_run: int = 500

    # Network
    indexer_timeout_seconds: int = 30
    client_timeout_seconds: int = 15
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_cooldown_seconds: int = 60

    # Acquisition
    max_retries: int = 3
    auto_block_group_after: int = 3
    stalled_threshold_minutes: int = 360
    upgrade_min_score_delta: int = 10_000  # one source tier
    failed_blocklist_hours: int = 0  # 0 = permanent entry

    # Import
    recycle_bin_path: str = ""  # Empty = delete superseded files
    recycle_bin_retention_days: int = 7  # 0 = keep forever

    model_config = {
        "env_prefix": "GRABARR_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def get_database_url(self) -> str:
        """SQLAlchemy URL, falling back to the SQLite file at db_path."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{os.path.abspath(self.db_path)}"

    def get_safe_config(self) -> dict:
        """Get config dict without credentials embedded in the database URL."""
        data = self.model_dump()
        if data.get("database_url") and "@" in data["database_url"]:
            data["database_url"] = "***configured***"
        return data


# Singleton settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(overrides: dict = None) -> Settings:
    """Force reload settings from environment/file, with optional overrides.

    Args:
        overrides: Dict of key-value pairs applied on top of the env/file
                   settings. String values are coerced to the field type.
    """
    global _settings
    base = Settings()

    if not overrides:
        _settings = base
        return _settings

    base_data = base.model_dump()
    update = {}
    for key, value in overrides.items():
        if key not in base_data:
            continue
        expected_type = type(base_data[key])
        try:
            if expected_type is bool:
                update[key] = value.lower() in ("true", "1", "yes") if isinstance(value, str) else bool(value)
            elif expected_type is int:
                update[key] = int(value)
            elif expected_type is float:
                update[key] = float(value)
            else:
                update[key] = str(value)
        except (ValueError, TypeError):
            continue  # Skip invalid values

    _settings = base.model_copy(update=update) if update else base
    return _settings
