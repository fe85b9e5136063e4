"""Shared test helpers."""

import json
from pathlib import Path

from PySide6.QtCore import QCoreApplication


def make_line(
    uuid,
    msg_type="user",
    content="Hello",
    timestamp="2026-02-13T10:00:00.000Z",
    model=None,
    usage=None,
    session_id="test-session",
):
    """Create a single JSONL transcript line (without newline)."""
    role = msg_type if msg_type in ("user", "assistant") else ""
    message = {"role": role, "content": content}
    if model:
        message["model"] = model
    if usage:
        message["usage"] = usage
    return json.dumps({
        "uuid": uuid,
        "parentUuid": None,
        "type": msg_type,
        "sessionId": session_id,
        "message": message,
        "timestamp": timestamp,
        "cwd": "/home/wiz/test",
        "isMeta": False,
        "isSidechain": False,
    })


def write_session(path: Path, lines: list[str]):
    """Write JSONL lines to a file, each newline-terminated."""
    path.write_text("".join(line + "\n" for line in lines))


def append_lines(path: Path, lines: list[str]):
    with open(path, "a") as f:
        for line in lines:
            f.write(line + "\n")


def wait_for_workers(monitor):
    """Wait for background workers to finish and deliver their signals."""
    monitor.wait_for_workers(5000)
    QCoreApplication.processEvents()
