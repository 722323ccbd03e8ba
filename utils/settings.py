"""
Persistent user preferences for navigation.

Stores the voice mute toggle and the last traffic factor in a JSON file so
they survive restarts. Location: config.SETTINGS_FILE
(~/.georacing_nav_settings.json by default).

A corrupt file (invalid JSON) is deleted and defaults are used; a warning
is logged when that happens.
"""

import json
import logging
import os
import threading
from typing import Any, Optional

import config

logger = logging.getLogger('georacing.settings')

VOICE_MUTED_KEY = "voice.muted"
TRAFFIC_FACTOR_KEY = "navigation.traffic_factor"


class SettingsManager:
    """
    Dot-notation access to the preferences file.

    One instance per process (see get_settings()); writes are atomic
    (temp file + rename) and serialised by a lock.
    """

    _instance: Optional['SettingsManager'] = None
    _lock = threading.Lock()

    def __new__(cls, file_path: Optional[str] = None):
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialised = False
                cls._instance = instance
        return cls._instance

    def __init__(self, file_path: Optional[str] = None):
        if self._initialised:
            return

        self._settings = {}
        self._file_path = file_path or config.SETTINGS_FILE
        self._save_lock = threading.Lock()
        self._load()
        self._initialised = True

    @property
    def file_path(self) -> str:
        return self._file_path

    def _load(self):
        if not os.path.exists(self._file_path):
            logger.debug("No settings file at %s, using defaults", self._file_path)
            self._settings = {}
            return
        try:
            with open(self._file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt settings file deleted, using defaults: %s", e)
            self._delete_corrupt_file()
            data = {}
        except OSError as e:
            logger.warning("Could not read settings: %s", e)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Settings file does not hold an object, using defaults")
            data = {}
        self._settings = data
        logger.info("Settings loaded from %s", self._file_path)

    def _delete_corrupt_file(self):
        try:
            os.remove(self._file_path)
        except OSError as e:
            logger.error("Failed to remove corrupt settings file: %s", e)

    def _save(self):
        """Write settings to a temp file, then rename over the real one."""
        with self._save_lock:
            temp_path = self._file_path + '.tmp'
            try:
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(self._settings, f, indent=2)
                os.replace(temp_path, self._file_path)
            except OSError as e:
                logger.warning("Could not save settings: %s", e)
                if os.path.exists(temp_path):
                    try:
                        os.remove(temp_path)
                    except OSError:
                        pass

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key, dot notation for nested values ("voice.muted")
            default: Returned when the key is missing
        """
        value = self._settings
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any, save: bool = True):
        """
        Set a setting value, creating nested sections as needed.

        Args:
            key: Setting key (dot notation)
            value: JSON-serialisable value
            save: Write the file immediately
        """
        parts = key.split('.')
        section = self._settings
        for part in parts[:-1]:
            if not isinstance(section.get(part), dict):
                section[part] = {}
            section = section[part]
        section[parts[-1]] = value

        if save:
            self._save()

    def get_all(self) -> dict:
        return self._settings.copy()

    def reset(self):
        """Forget all preferences."""
        self._settings = {}
        self._save()

    # Navigation preferences

    def voice_muted(self) -> bool:
        return bool(self.get(VOICE_MUTED_KEY, config.VOICE_MUTED_DEFAULT))

    def set_voice_muted(self, muted: bool):
        self.set(VOICE_MUTED_KEY, bool(muted))

    def traffic_factor(self) -> float:
        """Stored traffic factor, or the default if missing or out of range."""
        value = self.get(TRAFFIC_FACTOR_KEY, config.TRAFFIC_FACTOR_DEFAULT)
        try:
            factor = float(value)
        except (TypeError, ValueError):
            return config.TRAFFIC_FACTOR_DEFAULT
        if factor < config.TRAFFIC_FACTOR_MIN:
            return config.TRAFFIC_FACTOR_DEFAULT
        return factor


def get_settings() -> SettingsManager:
    """Get the settings manager singleton."""
    return SettingsManager()
