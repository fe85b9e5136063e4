"""Persistence for the aggregate statistics cache (stats-cache.json)."""

import logging
import os
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Iterable

import orjson

from claude_session_monitor.types.stats import (
    STATS_SCHEMA_VERSION,
    DayActivity,
    LongestSession,
    ModelUsage,
    StatsCache,
)

logger = logging.getLogger(__name__)

STATS_CACHE_NAME = "stats-cache.json"
LEGACY_CACHE_NAME = "statsig-cache.json"

# Directory under the Claude directory that this package writes into
MONITOR_DIR_NAME = "session-monitor"


class StatsCacheStore:
    """Loads and atomically saves the StatsCache file.

    A cache whose version tag differs from ``schema_version`` is treated as
    absent. Saves write a temporary file beside the cache and rename it into
    place, so readers see either the old or the new file, never a mix. One
    writer at a time is assumed.

    ``fallback_paths`` are caches owned by someone else (Claude Code's own
    ``stats-cache.json``). They are only read, and only when
    ``load(include_fallbacks=True)`` finds no usable primary cache; they
    never seed an incremental update.
    """

    def __init__(
        self,
        path: str | Path,
        schema_version: int = STATS_SCHEMA_VERSION,
        fallback_paths: Iterable[str | Path] = (),
    ):
        self._path = Path(path)
        self._schema_version = schema_version
        self._fallback_paths = [Path(p) for p in fallback_paths if Path(p) != self._path]

    @property
    def path(self) -> Path:
        return self._path

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def fallback_paths(self) -> list[Path]:
        return list(self._fallback_paths)

    def load(self, include_fallbacks: bool = False) -> StatsCache | None:
        """Return the cached stats, or None if missing, corrupt or outdated."""
        cache = self._load_file(self._path)
        if cache is not None or not include_fallbacks:
            return cache
        for path in self._fallback_paths:
            cache = self._load_file(path)
            if cache is not None:
                logger.debug("Using read-only stats cache %s", path)
                return cache
        return None

    def _load_file(self, path: Path) -> StatsCache | None:
        try:
            raw = orjson.loads(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning("Cannot read stats cache %s: %s", path, e)
            return None

        if not isinstance(raw, dict):
            logger.warning("Stats cache %s is not an object, ignoring", path)
            return None

        version = _as_version(raw.get("version"))
        if version != self._schema_version:
            logger.info(
                "Stats cache %s has version %r, expected %d; recompute needed",
                path, raw.get("version"), self._schema_version,
            )
            return None

        try:
            return self._dict_to_cache(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Malformed stats cache %s: %s", path, e)
            return None

    def save(self, cache: StatsCache) -> bool:
        """Atomically replace the cache file. Returns False on I/O failure."""
        data = orjson.dumps(self._cache_to_dict(cache), option=orjson.OPT_INDENT_2)
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
            return True
        except OSError:
            logger.warning("Failed to save stats cache %s", self._path, exc_info=True)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def clear(self):
        """Delete the cache file, forcing a full recompute."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass

    def _cache_to_dict(self, cache: StatsCache) -> dict:
        longest = cache.longest_session
        return {
            "version": self._schema_version,
            "lastComputedDate": _format_date(cache.last_computed_date),
            "dailyActivity": [
                {
                    "date": d.date.isoformat(),
                    "messageCount": d.message_count,
                    "sessionCount": d.session_count,
                    "toolCallCount": d.tool_call_count,
                }
                for d in cache.daily_activity
            ],
            "modelUsage": {
                model: {
                    "inputTokens": u.input_tokens,
                    "outputTokens": u.output_tokens,
                    "cacheReadInputTokens": u.cache_read_input_tokens,
                    "cacheCreationInputTokens": u.cache_creation_input_tokens,
                    "costUSD": u.cost_usd,
                    "contextWindow": u.context_window,
                }
                for model, u in cache.model_usage.items()
            },
            "totalSessions": cache.total_sessions,
            "totalMessages": cache.total_messages,
            "longestSession": None if longest is None else {
                "sessionId": longest.session_id,
                "duration": longest.duration_ms,
                "messageCount": longest.message_count,
                "timestamp": longest.timestamp.isoformat(),
            },
            "firstSessionDate": _format_date(cache.first_session_date),
            "hourCounts": {str(h): n for h, n in cache.hour_counts.items()},
        }

    def _dict_to_cache(self, d: dict) -> StatsCache:
        longest = d.get("longestSession")
        return StatsCache(
            version=self._schema_version,
            last_computed_date=_parse_date(d.get("lastComputedDate")),
            daily_activity=[
                DayActivity(
                    date=date.fromisoformat(a["date"]),
                    message_count=a.get("messageCount", 0),
                    session_count=a.get("sessionCount", 0),
                    tool_call_count=a.get("toolCallCount", 0),
                )
                for a in d.get("dailyActivity", [])
            ],
            model_usage={
                model: ModelUsage(
                    input_tokens=u.get("inputTokens", 0),
                    output_tokens=u.get("outputTokens", 0),
                    cache_read_input_tokens=u.get("cacheReadInputTokens", 0),
                    cache_creation_input_tokens=u.get("cacheCreationInputTokens", 0),
                    cost_usd=u.get("costUSD"),
                    context_window=u.get("contextWindow"),
                )
                for model, u in d.get("modelUsage", {}).items()
            },
            total_sessions=d.get("totalSessions", 0),
            total_messages=d.get("totalMessages", 0),
            longest_session=None if not longest else LongestSession(
                session_id=longest["sessionId"],
                duration_ms=longest.get("duration", 0),
                message_count=longest.get("messageCount", 0),
                timestamp=datetime.fromisoformat(longest["timestamp"]),
            ),
            first_session_date=_parse_datetime(d.get("firstSessionDate")),
            hour_counts={int(h): n for h, n in d.get("hourCounts", {}).items()},
        )


def _as_version(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _format_date(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value) -> date | None:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
