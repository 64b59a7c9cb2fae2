"""Application configuration"""

import json
import os
from pathlib import Path


def _get_config_value(key: str, default: str | None = None) -> str | None:
    """
    Get configuration value from environment or local.settings.json.

    Priority:
    1. Environment variable
    2. local.settings.json (Values.key)
    3. Default value

    Args:
        key: Configuration key name
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # Try environment variable first
    value = os.getenv(key)
    if value:
        return value

    # Try local.settings.json
    project_root = Path(__file__).resolve().parent.parent
    local_settings_path = project_root / "local.settings.json"

    if local_settings_path.exists():
        try:
            with open(local_settings_path) as f:
                settings = json.load(f)
                value = settings.get("Values", {}).get(key)
                if value:
                    return value
        except (json.JSONDecodeError, KeyError):
            pass

    return default


def _get_int_value(key: str, default: int) -> int:
    """Get an integer configuration value, falling back to default on bad input."""
    value = _get_config_value(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_database_url() -> str | None:
    """
    Get database URL for the local state store.

    Returns:
        Database connection string
    """
    return _get_config_value("DATABASE_URL", default="sqlite:///cinematch_engine.db")


def get_content_api_url() -> str | None:
    """
    Get base URL of the catalog metadata API.

    Returns:
        API base URL (default: TMDB v3)
    """
    return _get_config_value("CONTENT_API_URL", default="https://api.themoviedb.org/3")


def get_content_api_key() -> str | None:
    """Get API key for the catalog metadata API."""
    return _get_config_value("CONTENT_API_KEY")


def get_cache_ttl_seconds() -> int:
    """
    Get time-to-live for cached catalog metadata.

    Returns:
        TTL in seconds (default: 24 hours)
    """
    return _get_int_value("CACHE_TTL_SECONDS", 86400)


def get_cache_max_size() -> int:
    """Get maximum number of cached catalog entries (default: 500)."""
    return _get_int_value("CACHE_MAX_SIZE", 500)


def get_max_learning_events() -> int:
    """Get cap on the persisted learning-event log (default: 1000)."""
    return _get_int_value("MAX_LEARNING_EVENTS", 1000)


def use_training_worker() -> bool:
    """
    Check if model training should run on the background worker.

    Returns:
        True if the background worker is enabled
    """
    value = _get_config_value("USE_TRAINING_WORKER")
    if value is None:
        return False
    return value.lower() == "true"
