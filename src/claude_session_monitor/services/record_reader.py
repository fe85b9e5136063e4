"""Line-oriented reader for Claude Code transcript (JSONL) files.

Every physical line is one self-describing record. Reads only ever consume
complete lines: a trailing line without a newline may still be in the middle
of being written by Claude Code, so it is left for the next read.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator

import orjson

from claude_session_monitor.types.records import (
    ReadResult,
    RecordRole,
    TokenUsage,
    TranscriptRecord,
)

logger = logging.getLogger(__name__)

# Max size for a single JSONL line (10MB)
MAX_LINE_SIZE = 10 * 1024 * 1024

# Block size used when counting or skipping lines without parsing them
BLOCK_SIZE = 64 * 1024

PREVIEW_LENGTH = 200


def read_records(
    file_path: str | Path,
    from_line: int = 0,
    byte_offset: int | None = None,
) -> ReadResult:
    """Read the records on complete lines after the first ``from_line`` lines.

    When ``byte_offset`` is given it must be the offset at which line
    ``from_line`` starts (as returned in a previous ``end_offset``); the file
    is then read from there without counting the skipped lines.

    If the file holds fewer than ``from_line`` complete lines, the result has
    no records and ``consumed_lines`` is the actual complete-line count.
    OS errors propagate.
    """
    with open(file_path, "rb") as f:
        if byte_offset is not None and byte_offset > 0:
            f.seek(byte_offset)
            skipped, start = from_line, byte_offset
        else:
            skipped, start = _skip_lines(f, from_line)
            if skipped < from_line:
                return ReadResult(records=[], consumed_lines=skipped, end_offset=start)

        records = []
        errors = 0
        consumed = skipped
        end_offset = start
        for line_number, end_offset, raw in _complete_lines(f, start, skipped):
            consumed = line_number
            try:
                record = parse_line(raw, line_number)
            except ValueError as e:
                errors += 1
                logger.debug("Malformed record at line %d in %s: %s",
                             line_number, Path(file_path).name, e)
                continue
            if record is not None:
                records.append(record)

    return ReadResult(
        records=records,
        consumed_lines=consumed,
        end_offset=end_offset,
        parse_errors=errors,
    )


def iter_records(file_path: str | Path) -> Iterator[TranscriptRecord]:
    """Stream the records on every complete line of a transcript.

    Malformed lines are logged and skipped.
    """
    path = Path(file_path)
    with open(path, "rb") as f:
        for line_number, _, raw in _complete_lines(f, 0, 0):
            try:
                record = parse_line(raw, line_number)
            except ValueError as e:
                logger.debug("Malformed record at line %d in %s: %s", line_number, path.name, e)
                continue
            if record is not None:
                yield record


def read_tail_records(file_path: str | Path, max_bytes: int = BLOCK_SIZE) -> list[TranscriptRecord]:
    """Parse the complete lines within the last ``max_bytes`` of a file.

    Used for previews: the first line of the window is dropped when the
    window does not start at a line boundary.
    """
    records = []
    with open(file_path, "rb") as f:
        f.seek(0, 2)
        size = f.tell()
        start = max(0, size - max_bytes)
        if start > 0:
            f.seek(start - 1)
            if f.read(1) != b"\n":
                partial = f.readline()
                start += len(partial)
        f.seek(start)
        for line_number, _, raw in _complete_lines(f, start, 0):
            try:
                record = parse_line(raw, line_number)
            except ValueError:
                continue
            if record is not None:
                records.append(record)
    return records


def count_lines(file_path: str | Path) -> tuple[int, int]:
    """Return (complete lines, complete non-blank lines) without parsing."""
    total = 0
    non_blank = 0
    with open(file_path, "rb") as f:
        for raw in f:
            if not raw.endswith(b"\n"):
                break
            total += 1
            if raw.strip():
                non_blank += 1
    return total, non_blank


def parse_line(line: bytes | str, line_number: int = 0) -> TranscriptRecord | None:
    """Parse one JSONL line into a TranscriptRecord.

    Returns None for blank lines and for well-formed lines that are not
    conversation records (summaries, file snapshots, queue operations).
    Raises ValueError for malformed lines.
    """
    if isinstance(line, str):
        line = line.encode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    if len(line) > MAX_LINE_SIZE:
        raise ValueError(f"line exceeds {MAX_LINE_SIZE // (1024 * 1024)}MB")

    raw = orjson.loads(line)
    if not isinstance(raw, dict):
        raise ValueError(f"expected a JSON object, got {type(raw).__name__}")

    message = raw.get("message")
    if not isinstance(message, dict):
        message = {}
    content = message.get("content", raw.get("content", ""))

    role = _classify_role(raw.get("type", ""), content)
    if role is None:
        return None

    model = message.get("model", "")
    if not isinstance(model, str):
        model = ""

    usage = None
    raw_usage = message.get("usage")
    if isinstance(raw_usage, dict):
        usage = TokenUsage(
            input_tokens=_as_int(raw_usage.get("input_tokens")),
            output_tokens=_as_int(raw_usage.get("output_tokens")),
            cache_read_input_tokens=_as_int(raw_usage.get("cache_read_input_tokens")),
            cache_creation_input_tokens=_as_int(raw_usage.get("cache_creation_input_tokens")),
        )

    tool_calls = 0
    if isinstance(content, list):
        tool_calls = sum(
            1 for block in content
            if isinstance(block, dict) and block.get("type") == "tool_use"
        )

    session_id = raw.get("sessionId", "")
    uuid = raw.get("uuid", "")

    return TranscriptRecord(
        role=role,
        content=extract_text(content, tool_result=role is RecordRole.TOOL),
        timestamp=parse_timestamp(raw.get("timestamp")),
        model=model,
        usage=usage,
        session_id=session_id if isinstance(session_id, str) else "",
        uuid=uuid if isinstance(uuid, str) else "",
        tool_calls=tool_calls,
        line_number=line_number,
    )


def extract_text(content, tool_result: bool = False) -> str:
    """Return the first piece of text in message content, trimmed."""
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text", "")
            if isinstance(text, str) and text.strip():
                return text.strip()
        elif tool_result and block_type == "tool_result":
            text = extract_text(block.get("content", ""))
            if text:
                return text
    return ""


def truncate_text(text: str, max_chars: int = PREVIEW_LENGTH) -> str:
    """Truncate to ``max_chars`` characters, marking the cut with '...'."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def parse_timestamp(ts_value) -> datetime | None:
    """Parse a record timestamp into an aware UTC datetime.

    Naive ISO strings are taken as UTC. Numbers are epoch seconds, or epoch
    milliseconds when larger than 1e12.
    """
    if isinstance(ts_value, bool):
        return None
    if isinstance(ts_value, (int, float)):
        try:
            seconds = ts_value / 1000 if ts_value > 1e12 else ts_value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(ts_value, str) and ts_value:
        try:
            # ISO 8601 format: "2026-02-13T12:00:00.000Z"
            parsed = datetime.fromisoformat(ts_value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def _classify_role(line_type, content) -> RecordRole | None:
    if line_type == "assistant":
        return RecordRole.ASSISTANT
    if line_type == "user":
        if _is_tool_result_only(content):
            return RecordRole.TOOL
        return RecordRole.USER
    if line_type == "system":
        return RecordRole.SYSTEM
    if line_type == "tool":
        return RecordRole.TOOL
    return None


def _is_tool_result_only(content) -> bool:
    if not isinstance(content, list) or not content:
        return False
    return all(
        isinstance(block, dict) and block.get("type") == "tool_result"
        for block in content
    )


def _as_int(value) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0)
    return 0


def _skip_lines(f: BinaryIO, count: int) -> tuple[int, int]:
    """Advance ``f`` past ``count`` complete lines by counting newline bytes.

    Returns (lines skipped, offset after the last skipped line). Fewer than
    ``count`` lines skipped means the file ended first.
    """
    offset = f.tell()
    if count <= 0:
        return 0, offset

    skipped = 0
    while True:
        block_start = f.tell()
        block = f.read(BLOCK_SIZE)
        if not block:
            f.seek(offset)
            return skipped, offset

        newlines = block.count(b"\n")
        if skipped + newlines < count:
            skipped += newlines
            if newlines:
                offset = block_start + block.rindex(b"\n") + 1
            continue

        pos = -1
        for _ in range(count - skipped):
            pos = block.index(b"\n", pos + 1)
        offset = block_start + pos + 1
        f.seek(offset)
        return count, offset


def _complete_lines(
    f: BinaryIO,
    start_offset: int,
    lines_before: int,
) -> Iterator[tuple[int, int, bytes]]:
    """Yield (line number, end offset, raw bytes) for each complete line."""
    offset = start_offset
    line_number = lines_before
    for raw in f:
        if not raw.endswith(b"\n"):
            # Still being written; not consumed
            break
        line_number += 1
        offset += len(raw)
        yield line_number, offset, raw
