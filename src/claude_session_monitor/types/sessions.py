"""Session handle and tail cursor types."""

import os
from dataclasses import dataclass, field, replace

from claude_session_monitor.types.records import TranscriptRecord


@dataclass(frozen=True)
class SessionHandle:
    session_id: str
    project_id: str        # Encoded directory name
    project_name: str      # Last decoded path segment
    file_path: str
    last_modified: float
    file_size: int
    message_count: int = 0
    message_count_exact: bool = False
    last_message_preview: str = ""
    model: str = ""


@dataclass
class TailResult:
    messages: list[TranscriptRecord] = field(default_factory=list)
    total_lines: int = 0
    end_offset: int = 0
    parse_errors: int = 0
    reset: bool = False


@dataclass(frozen=True)
class TailCursor:
    """Caller-owned position in a transcript file.

    ``size``, ``mtime`` and ``inode`` are the file's stat values when the
    cursor was last advanced; they are used to notice a truncated or replaced
    file.
    """
    file_path: str
    line: int = 0
    byte_offset: int = 0
    size: int = 0
    mtime: float = 0.0
    inode: int = 0

    def is_stale(self, stat: os.stat_result | None = None) -> bool:
        """True if the file shrank, went back in time, or was replaced."""
        if self.line == 0 and self.byte_offset == 0:
            return False
        if stat is None:
            try:
                stat = os.stat(self.file_path)
            except OSError:
                return False
        if self.inode and stat.st_ino != self.inode:
            return True
        if stat.st_size < self.size:
            return True
        return stat.st_mtime < self.mtime

    def advance(self, result: TailResult, stat: os.stat_result | None = None) -> "TailCursor":
        """Return the cursor positioned after ``result``."""
        if result.reset:
            return self.reset()
        size, mtime, inode = self.size, self.mtime, self.inode
        if stat is not None:
            size, mtime, inode = stat.st_size, stat.st_mtime, stat.st_ino
        return replace(
            self,
            line=result.total_lines,
            byte_offset=result.end_offset,
            size=size,
            mtime=mtime,
            inode=inode,
        )

    def reset(self) -> "TailCursor":
        return TailCursor(file_path=self.file_path)
