"""Application configuration manager wrapping QSettings."""

import logging
import os
from pathlib import Path

from PySide6.QtCore import QObject, Signal, Slot, QSettings

from claude_session_monitor.services.stats_store import (
    LEGACY_CACHE_NAME,
    MONITOR_DIR_NAME,
    STATS_CACHE_NAME,
)

logger = logging.getLogger(__name__)

# Default values
DEFAULTS = {
    "general/claudeDir": "~/.claude",
    "sessions/activeThresholdSecs": 300,
    "watcher/debounceMs": 500,
    "watcher/sessionTimeoutSecs": 60,
    "stats/cacheFile": "",
    "advanced/debugLogging": False,
}


class ConfigManager(QObject):
    """Centralized monitor settings."""

    settings_changed = Signal(str)  # key

    def __init__(self, parent=None):
        super().__init__(parent)
        self._settings = QSettings()

    @Slot(str, result=str)
    def get_string(self, key: str) -> str:
        return str(self._settings.value(key, DEFAULTS.get(key, "")))

    @Slot(str, result=int)
    def get_int(self, key: str) -> int:
        val = self._settings.value(key, DEFAULTS.get(key, 0))
        try:
            return int(val)
        except (ValueError, TypeError):
            return DEFAULTS.get(key, 0)

    @Slot(str, result=bool)
    def get_bool(self, key: str) -> bool:
        val = self._settings.value(key, DEFAULTS.get(key, False))
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ("true", "1", "yes")
        return bool(val)

    @Slot(str, str)
    def set_string(self, key: str, value: str):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, int)
    def set_int(self, key: str, value: int):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, bool)
    def set_bool(self, key: str, value: bool):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    # Derived paths
    def claude_dir(self) -> Path:
        raw = self.get_string("general/claudeDir") or DEFAULTS["general/claudeDir"]
        return Path(os.path.expanduser(raw))

    def projects_dir(self) -> Path:
        return self.claude_dir() / "projects"

    def stats_cache_path(self) -> Path:
        """The cache this package writes; never Claude Code's own file."""
        custom = self.get_string("stats/cacheFile")
        if custom:
            return Path(os.path.expanduser(custom))
        return self.claude_dir() / MONITOR_DIR_NAME / STATS_CACHE_NAME

    def fallback_stats_cache_paths(self) -> list[Path]:
        """Caches written by Claude Code, read only when ours is missing."""
        claude = self.claude_dir()
        return [claude / STATS_CACHE_NAME, claude / LEGACY_CACHE_NAME]

    def watch_roots(self) -> list[Path]:
        """Directories the change notifier watches."""
        return [self.claude_dir()]
