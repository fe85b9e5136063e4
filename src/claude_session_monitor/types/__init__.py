"""Type definitions for Claude Session Monitor."""

from claude_session_monitor.types.records import (
    ReadResult,
    RecordRole,
    TokenUsage,
    TranscriptRecord,
)
from claude_session_monitor.types.sessions import SessionHandle, TailCursor, TailResult
from claude_session_monitor.types.stats import (
    STATS_SCHEMA_VERSION,
    UNKNOWN_MODEL,
    DayActivity,
    LongestSession,
    ModelUsage,
    StatsCache,
)
from claude_session_monitor.types.events import ChangeEvent

__all__ = [
    "ReadResult",
    "RecordRole",
    "TokenUsage",
    "TranscriptRecord",
    "SessionHandle",
    "TailCursor",
    "TailResult",
    "STATS_SCHEMA_VERSION",
    "UNKNOWN_MODEL",
    "DayActivity",
    "LongestSession",
    "ModelUsage",
    "StatsCache",
    "ChangeEvent",
]
