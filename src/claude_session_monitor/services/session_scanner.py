"""Enumerate transcript files and summarize them as SessionHandles."""

import logging
import os
import threading
import time
from pathlib import Path

from claude_session_monitor.errors import OperationCancelled, ProjectsRootError
from claude_session_monitor.services.record_reader import (
    count_lines,
    iter_records,
    read_tail_records,
    truncate_text,
)
from claude_session_monitor.types.records import RecordRole, TranscriptRecord
from claude_session_monitor.types.sessions import SessionHandle
from claude_session_monitor.utils.path_codec import extract_project_name

logger = logging.getLogger(__name__)

# Roles that count as conversation messages
MESSAGE_ROLES = (RecordRole.USER, RecordRole.ASSISTANT, RecordRole.TOOL)

# Bytes read from the end of a file for the preview and model
PREVIEW_WINDOW = 64 * 1024


def list_project_dirs(projects_root: str | Path) -> list[Path]:
    """Return the project directories under the projects root, sorted by name.

    Raises ProjectsRootError if the root is missing or cannot be listed.
    """
    root = Path(projects_root)
    if not root.is_dir():
        raise ProjectsRootError(root, "not a directory")
    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        raise ProjectsRootError(root, str(e)) from e
    return [e for e in entries if e.is_dir() and not e.name.startswith(".")]


def list_session_files(project_dir: Path) -> list[Path]:
    """List the .jsonl transcripts directly inside a project directory."""
    try:
        return sorted(project_dir.glob("*.jsonl"))
    except OSError:
        logger.warning("Cannot list project directory %s", project_dir, exc_info=True)
        return []


def scan_sessions(
    projects_root: str | Path,
    threshold_seconds: float | None = None,
    *,
    now: float | None = None,
    exact_counts: bool = False,
    cancel_event: threading.Event | None = None,
) -> list[SessionHandle]:
    """Scan every project for sessions, most recently modified first.

    Only files modified within ``threshold_seconds`` of ``now`` are returned;
    None or 0 returns every session. By default the message count is the
    number of complete non-blank lines (an approximation that also counts
    summary and snapshot lines); ``exact_counts`` parses each file fully.

    Sessions that cannot be read are left out. Raises OperationCancelled if
    ``cancel_event`` is set during the scan.
    """
    if now is None:
        now = time.time()

    sessions = []
    for project_dir in list_project_dirs(projects_root):
        project_id = project_dir.name
        project_name = extract_project_name(project_id)

        for jsonl_file in list_session_files(project_dir):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"session scan of {projects_root} cancelled")

            try:
                stat = jsonl_file.stat()
            except OSError:
                logger.debug("Session file vanished: %s", jsonl_file)
                continue

            if threshold_seconds and now - stat.st_mtime > threshold_seconds:
                continue

            try:
                handle = summarize_session(
                    jsonl_file,
                    project_id=project_id,
                    project_name=project_name,
                    stat=stat,
                    exact_count=exact_counts,
                )
            except OSError as e:
                logger.warning("Skipping unreadable session %s: %s", jsonl_file, e)
                continue

            if handle.message_count == 0:
                continue
            sessions.append(handle)

    sessions.sort(key=lambda s: (-s.last_modified, s.session_id))
    return sessions


def summarize_session(
    file_path: Path,
    project_id: str,
    project_name: str = "",
    stat: os.stat_result | None = None,
    exact_count: bool = False,
) -> SessionHandle:
    """Build a SessionHandle for one transcript. OS errors propagate."""
    if stat is None:
        stat = file_path.stat()

    if exact_count:
        records = [r for r in iter_records(file_path) if r.role in MESSAGE_ROLES]
        message_count = len(records)
        tail = records[-20:]
    else:
        _, message_count = count_lines(file_path)
        tail = [r for r in read_tail_records(file_path, PREVIEW_WINDOW) if r.role in MESSAGE_ROLES]

    preview, model = _preview_and_model(tail)

    return SessionHandle(
        session_id=file_path.stem,
        project_id=project_id,
        project_name=project_name or extract_project_name(project_id),
        file_path=str(file_path),
        last_modified=stat.st_mtime,
        file_size=stat.st_size,
        message_count=message_count,
        message_count_exact=exact_count,
        last_message_preview=preview,
        model=model,
    )


def _preview_and_model(records: list[TranscriptRecord]) -> tuple[str, str]:
    """Latest non-empty user/assistant text and latest model, newest first."""
    preview = ""
    model = ""
    for record in reversed(records):
        if not preview and record.role is not RecordRole.TOOL and record.content:
            preview = truncate_text(record.content)
        if not model and record.model:
            model = record.model
        if preview and model:
            break
    return preview, model
