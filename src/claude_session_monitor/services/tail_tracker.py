"""Incremental tailing of live transcript files.

The tracker keeps no state between calls: the caller owns the cursor and
passes it back in. Reads never re-parse lines before the cursor.
"""

import logging
import os
from pathlib import Path

from claude_session_monitor.services.record_reader import read_records
from claude_session_monitor.types.sessions import TailCursor, TailResult

logger = logging.getLogger(__name__)


def tail_session(
    file_path: str | Path,
    from_line: int,
    byte_offset: int | None = None,
) -> TailResult:
    """Return the records appended after the first ``from_line`` complete lines.

    ``byte_offset``, when known, is the offset where line ``from_line``
    starts and lets the read seek straight to the new data.

    If the file now holds fewer complete lines than ``from_line`` (truncated
    or replaced), the result is empty with ``reset`` set and ``total_lines``
    holding the current count. A missing or unreadable file is a transient
    condition: the result is empty and echoes ``from_line``.
    """
    from_line = max(from_line, 0)
    path = Path(file_path)
    try:
        size = path.stat().st_size
        if byte_offset is not None and byte_offset > size:
            logger.debug("Offset %d beyond end of %s (%d bytes)", byte_offset, path.name, size)
            result = read_records(path)
            return TailResult(
                total_lines=result.consumed_lines,
                end_offset=result.end_offset,
                reset=True,
            )
        result = read_records(path, from_line, byte_offset)
    except OSError as e:
        logger.debug("Cannot tail %s: %s", path, e)
        return TailResult(total_lines=from_line, end_offset=byte_offset or 0)

    if result.consumed_lines < from_line:
        logger.debug(
            "%s has %d complete lines, cursor at %d; signalling reset",
            path.name, result.consumed_lines, from_line,
        )
        return TailResult(
            total_lines=result.consumed_lines,
            end_offset=result.end_offset,
            reset=True,
        )

    return TailResult(
        messages=result.records,
        total_lines=result.consumed_lines,
        end_offset=result.end_offset,
        parse_errors=result.parse_errors,
    )


def tail_cursor(cursor: TailCursor) -> tuple[TailResult, TailCursor]:
    """Tail from ``cursor`` and return the result with the advanced cursor.

    A stale cursor (file shrank, mtime went backwards, or inode changed) is
    reset to the start of the file before reading.
    """
    try:
        stat = os.stat(cursor.file_path)
    except OSError as e:
        logger.debug("Cannot stat %s: %s", cursor.file_path, e)
        return TailResult(total_lines=cursor.line, end_offset=cursor.byte_offset), cursor

    if cursor.is_stale(stat):
        logger.debug("Cursor for %s is stale, restarting from line 0", cursor.file_path)
        cursor = cursor.reset()

    result = tail_session(cursor.file_path, cursor.line, cursor.byte_offset or None)
    if result.reset:
        return result, cursor.reset()
    return result, cursor.advance(result, stat)
