"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from typing import Any, Dict, Optional

from .database import ConfigRepository, Database

# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "playback": {"label": "Playback", "order": 1},
    "schedule": {"label": "Scheduling", "order": 2},
    "devices": {"label": "Devices", "order": 3},
    "security": {"label": "Security", "order": 4},
    "api": {"label": "API & Storage", "order": 5},
}

# Schema defining metadata for each editable configuration key
CONFIG_SCHEMA = {
    # Playback
    "default_image_seconds": {
        "group": "playback",
        "label": "Default Image Duration",
        "description": "Used when neither the playlist item nor the media item sets a duration.",
        "control": "slider",
        "min": 1,
        "max": 300,
        "step": 1,
        "display_format": "seconds",
    },
    "failure_skip_seconds": {
        "group": "playback",
        "label": "Skip Delay After Errors",
        "description": "How long a screen waits before skipping an item that failed to load.",
        "control": "slider",
        "min": 1,
        "max": 10,
        "step": 1,
        "display_format": "seconds",
    },
    "probe_media": {
        "group": "playback",
        "label": "Probe Media Before Playing",
        "description": "Headless players check that video links resolve before presenting them.",
        "control": "toggle",
    },
    # Scheduling
    "schedule_poll_seconds": {
        "group": "schedule",
        "label": "Schedule Check Interval",
        "description": "How often each screen re-checks which playlist should be showing.",
        "control": "slider",
        "min": 1,
        "max": 60,
        "step": 1,
        "display_format": "seconds",
    },
    "schedule_overnight_windows": {
        "group": "schedule",
        "label": "Overnight Time Windows",
        "description": "Treat an end time earlier than the start time (e.g. 22:00-02:00) "
        "as a window that runs past midnight. When off, such windows never match.",
        "control": "toggle",
    },
    # Devices
    "heartbeat_interval_seconds": {
        "group": "devices",
        "label": "Heartbeat Interval",
        "description": "How often screens report that they are alive.",
        "control": "slider",
        "min": 5,
        "max": 300,
        "step": 5,
        "display_format": "seconds",
    },
    "offline_after_seconds": {
        "group": "devices",
        "label": "Offline Threshold",
        "description": "A screen is shown as offline when its last heartbeat is older than this.",
        "control": "slider",
        "min": 10,
        "max": 600,
        "step": 5,
        "display_format": "seconds",
    },
    # Security
    "operator_pin": {
        "group": "security",
        "label": "Operator PIN",
        "description": "PIN code required to change media, playlists and screen assignments.",
        "control": "password",
    },
    # API & Storage
    "youtube_api_key": {
        "group": "api",
        "label": "YouTube API Key",
        "description": "YouTube Data API v3 key, used to look up clip lengths for YouTube media.",
        "control": "password",
    },
    "max_document_bytes": {
        "group": "api",
        "label": "Maximum Document Size",
        "description": "Largest media or playlist record the datastore accepts. "
        "Embedded images count towards this limit.",
        "control": "text",
        "placeholder": "1048576",
    },
}


class ConfigManager:
    """Manages configuration stored in database."""

    DEFAULTS = {
        "schedule_poll_seconds": "2",
        "heartbeat_interval_seconds": "30",
        "failure_skip_seconds": "3",
        "default_image_seconds": "10",
        "offline_after_seconds": "60",
        "schedule_overnight_windows": "false",
        "datastore_watch_seconds": "1",
        "max_document_bytes": "1048576",  # 1 MiB, the hosted document store limit
        "operator_pin": "1234",
        "youtube_api_key": None,
        "probe_media": "false",
    }

    # Keys not in CONFIG_SCHEMA are internal/system config (not shown in UI)

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
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        config = {entry.key: entry.value for entry in entries}

        result = self.DEFAULTS.copy()
        result.update(config)
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get the configuration schema (a copy, safe to modify)."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Secrets (password controls) are masked in the returned values.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        values = self.get_all()
        for key, key_def in CONFIG_SCHEMA.items():
            if key_def.get("control") == "password" and values.get(key):
                values[key] = "********"
        return {
            "values": values,
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
