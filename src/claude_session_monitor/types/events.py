"""Change notification categories."""

from enum import Enum


class ChangeEvent(str, Enum):
    CONFIGURATION_CHANGED = "claude-md-changed"
    SETTINGS_CHANGED = "settings-changed"
    ENTITY_CHANGED = "entity-changed"
    HISTORY_CHANGED = "history-changed"
