"""Encode and decode Claude Code project path ↔ directory name."""


def encode_path(path: str) -> str:
    """Encode a filesystem path to a Claude project directory name.

    /home/wiz/AI/LLM → -home-wiz-AI-LLM
    """
    if not path:
        return ""
    return path.replace("/", "-").replace("\\", "-")


def decode_path(encoded: str) -> str:
    """Decode a Claude project directory name to a filesystem path.

    -home-wiz-AI-LLM → /home/wiz/AI/LLM

    Lossy: hyphens inside the original path segments also become slashes.
    """
    if not encoded:
        return ""
    return encoded.replace("-", "/")


def extract_project_name(project_id: str) -> str:
    """Get the last non-empty path segment as the project display name.

    -home-wiz-AI-LLM → LLM
    """
    path = decode_path(project_id)
    for segment in reversed(path.split("/")):
        if segment:
            return segment
    return project_id
