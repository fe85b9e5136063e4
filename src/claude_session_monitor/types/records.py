"""Record-level types for parsed transcript lines."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RecordRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_input_tokens + self.cache_creation_input_tokens)


@dataclass(frozen=True)
class TranscriptRecord:
    """One transcript line. Timestamps are UTC-aware, or None if absent."""
    role: RecordRole
    content: str
    timestamp: Optional[datetime]
    model: str = ""
    usage: Optional[TokenUsage] = None
    session_id: str = ""
    uuid: str = ""
    tool_calls: int = 0
    line_number: int = 0


@dataclass
class ReadResult:
    """Outcome of reading a span of complete lines from a transcript."""
    records: list[TranscriptRecord]
    consumed_lines: int
    end_offset: int
    parse_errors: int = 0
