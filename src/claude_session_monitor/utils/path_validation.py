"""Path validation for caller-supplied transcript paths."""

import os
from pathlib import Path


def is_path_allowed(path: str, allowed_roots: list[str | Path]) -> bool:
    """Validate that a path is within one of the allowed directories.

    Resolves symlinks before checking to prevent escape attacks.
    """
    if not path:
        return False
    try:
        resolved = os.path.realpath(os.path.expanduser(path))
    except (OSError, ValueError):
        return False

    for root in allowed_roots:
        try:
            resolved_root = os.path.realpath(os.path.expanduser(str(root)))
        except (OSError, ValueError):
            continue
        if resolved.startswith(resolved_root + os.sep) or resolved == resolved_root:
            return True

    return False


def validate_session_path(path: str, projects_root: str | Path) -> bool:
    """Validate that a path is an absolute .jsonl file inside the projects root."""
    if not path.endswith(".jsonl"):
        return False
    if not os.path.isabs(path):
        return False
    return is_path_allowed(path, [projects_root])
