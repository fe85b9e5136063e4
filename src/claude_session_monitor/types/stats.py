"""Aggregate usage statistics types."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

# Bump on any change to the serialized field set; readers discard older caches.
STATS_SCHEMA_VERSION = 1

UNKNOWN_MODEL = "unknown"


@dataclass
class DayActivity:
    date: date
    message_count: int = 0
    session_count: int = 0
    tool_call_count: int = 0


@dataclass
class ModelUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cost_usd: Optional[float] = None
    context_window: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_input_tokens + self.cache_creation_input_tokens)


@dataclass
class LongestSession:
    session_id: str
    duration_ms: int
    message_count: int
    timestamp: datetime    # Session start, UTC


@dataclass
class StatsCache:
    version: int = STATS_SCHEMA_VERSION
    last_computed_date: Optional[date] = None
    daily_activity: list[DayActivity] = field(default_factory=list)
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    total_sessions: int = 0
    total_messages: int = 0
    longest_session: Optional[LongestSession] = None
    first_session_date: Optional[datetime] = None
    hour_counts: dict[int, int] = field(default_factory=dict)

    @property
    def total_tool_calls(self) -> int:
        return sum(d.tool_call_count for d in self.daily_activity)

    @property
    def days_active(self) -> int:
        return sum(1 for d in self.daily_activity if d.message_count > 0)
