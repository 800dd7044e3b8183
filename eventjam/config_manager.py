"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .database import ConfigRepository, Database

# Shown instead of the stored API key
API_KEY_MASK = "********"


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "playback": {"label": "Playback", "order": 1},
    "sync": {"label": "Playlist Sync", "order": 2},
    "api": {"label": "Search API", "order": 3},
}

# Schema defining metadata for each editable configuration key
CONFIG_SCHEMA = {
    # Playback
    "default_volume": {
        "group": "playback",
        "label": "Default Volume",
        "description": "Starting volume for new player views.",
        "control": "slider",
        "min": 0,
        "max": 1,
        "step": 0.05,
        "display_format": "percent",
    },
    "end_of_item_threshold_seconds": {
        "group": "playback",
        "label": "Advance Before End",
        "description": "Switch to the next video when less than this many seconds remain.",
        "control": "slider",
        "min": 0.5,
        "max": 5,
        "step": 0.5,
        "display_format": "seconds",
    },
    "error_advance_delay_seconds": {
        "group": "playback",
        "label": "Skip Delay After Error",
        "description": "How long to show a player error before moving to the next video.",
        "control": "slider",
        "min": 0,
        "max": 10,
        "step": 1,
        "display_format": "seconds",
    },
    "shuffle_restart_from_top": {
        "group": "playback",
        "label": "Restart On Shuffle",
        "description": "Jump to the first video of the new order when shuffle is turned on.",
        "control": "checkbox",
    },
    # Sync
    "playlist_cache_ttl_seconds": {
        "group": "sync",
        "label": "Playlist Cache Lifetime",
        "description": "How long a fetched playlist is reused before it is fetched again.",
        "control": "slider",
        "min": 0,
        "max": 120,
        "step": 5,
        "display_format": "seconds",
    },
    "poll_interval_seconds": {
        "group": "sync",
        "label": "Player Poll Interval",
        "description": "How often the player position is checked while playing.",
        "control": "slider",
        "min": 0.25,
        "max": 5,
        "step": 0.25,
        "display_format": "seconds",
    },
    # API
    "youtube_api_key": {
        "group": "api",
        "label": "YouTube API Key",
        "description": "Your YouTube Data API v3 key for searching videos. Get one from Google Cloud Console.",
        "control": "password",
    },
    "youtube_max_results": {
        "group": "api",
        "label": "Search Results",
        "description": "Maximum number of videos returned by a search.",
        "control": "slider",
        "min": 1,
        "max": 50,
        "step": 1,
    },
}


class ConfigManager:
    """Manages configuration stored in database."""

    DEFAULTS = {
        "youtube_api_key": None,
        "youtube_max_results": "10",
        "playlist_cache_ttl_seconds": "30",
        "poll_interval_seconds": "1.0",
        "end_of_item_threshold_seconds": "1.0",
        "load_retry_delay_ms": "300",  # Wait before retrying a load with no video data
        "load_retry_attempts": "5",
        "error_advance_delay_seconds": "3",
        "default_volume": "0.7",
        "shuffle_restart_from_top": "false",
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value as stored.

        An unset or empty value falls back to default, then to DEFAULTS.
        """
        if default is None:
            default = self.DEFAULTS.get(key)
        entry = self.repository.get(key)
        return entry.value if entry and entry.value else default

    def _get_typed(self, key: str, convert: Callable[[str], Any], default: Any) -> Any:
        value = self.get(key)
        if not value:
            return default
        try:
            return convert(value)
        except ValueError:
            self.logger.warning("Invalid %s value for %s: %s", convert.__name__, key, value)
            return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        return self._get_typed(key, int, default)

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        return self._get_typed(key, float, default)

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        return self._get_typed(key, _parse_bool, default)

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """Get all configuration values, merged over the defaults."""
        entries = self.repository.get_all()
        result = self.DEFAULTS.copy()
        result.update({entry.key: entry.value for entry in entries})
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get a copy of the configuration schema."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        values = self.get_all()
        # Never echo the API key back to the browser
        if values.get("youtube_api_key"):
            values["youtube_api_key"] = API_KEY_MASK
        return {
            "values": values,
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
