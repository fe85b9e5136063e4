"""Per-model pricing and context window metadata."""

import re

# Per 1M tokens (as of Feb 2026), newest release of each family first
MODEL_COSTS: dict[str, dict[str, float]] = {
    "claude-opus-4-6":   {"input": 5.00,  "output": 25.00, "cache_read": 0.50, "cache_create": 6.25},
    "claude-opus-4-5":   {"input": 5.00,  "output": 25.00, "cache_read": 0.50, "cache_create": 6.25},
    "claude-opus-4-1":   {"input": 15.00, "output": 75.00, "cache_read": 1.50, "cache_create": 18.75},
    "claude-opus-4":     {"input": 15.00, "output": 75.00, "cache_read": 1.50, "cache_create": 18.75},
    "claude-sonnet-4-5": {"input": 3.00,  "output": 15.00, "cache_read": 0.30, "cache_create": 3.75},
    "claude-sonnet-4":   {"input": 3.00,  "output": 15.00, "cache_read": 0.30, "cache_create": 3.75},
    "claude-haiku-4-5":  {"input": 1.00,  "output": 5.00,  "cache_read": 0.10, "cache_create": 1.25},
    "claude-3-5-haiku":  {"input": 0.80,  "output": 4.00,  "cache_read": 0.08, "cache_create": 1.00},
}

CONTEXT_WINDOWS: dict[str, int] = {
    "claude-opus-4": 200_000,
    "claude-sonnet-4": 200_000,
    "claude-haiku-4": 200_000,
    "claude-3-5-haiku": 200_000,
}

# Release date suffix, e.g. "-20250514"
_DATE_SUFFIX = re.compile(r"-\d{8}$")


def _match_model(model: str) -> dict[str, float] | None:
    """Match a model id to its cost entry.

    Tries the id without its date suffix first, so "claude-opus-4-20250514"
    is Opus 4 and not a newer Opus 4.x. An unlisted minor version
    (e.g. "claude-sonnet-4-7") takes the newest release of its family.
    Otherwise the longest listed prefix wins ("claude-3-5-haiku-latest").
    """
    if not model:
        return None
    base = _DATE_SUFFIX.sub("", model)
    if base in MODEL_COSTS:
        return MODEL_COSTS[base]

    family, _, minor = base.rpartition("-")
    if family[-1:].isdigit() and minor.isdigit():
        for prefix, costs in MODEL_COSTS.items():
            if prefix.startswith(family + "-"):
                return costs

    prefixes = [p for p in MODEL_COSTS if base.startswith(p + "-")]
    if prefixes:
        return MODEL_COSTS[max(prefixes, key=len)]
    return None


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: int,
    cache_creation_tokens: int,
    model: str,
) -> float | None:
    """Calculate cost in USD for the given token counts, None if unpriced."""
    costs = _match_model(model)
    if not costs:
        return None
    return (
        input_tokens * costs["input"]
        + output_tokens * costs["output"]
        + cache_read_tokens * costs["cache_read"]
        + cache_creation_tokens * costs["cache_create"]
    ) / 1_000_000


def context_window(model: str) -> int | None:
    if not model:
        return None
    for prefix, window in CONTEXT_WINDOWS.items():
        if model.startswith(prefix):
            return window
    return None
