"""Fold the transcript corpus into the aggregate usage statistics.

The aggregate covers whole UTC days up to ``last_computed_date``. A full
recompute folds every record up to that date; an incremental update folds
only the days after the previous ``last_computed_date``. Both paths go
through ``fold_session``.

Incremental updates assume transcripts are append-only. When that does not
hold the caller must request a full recompute, since folded data cannot be
retracted.
"""

import copy
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from claude_session_monitor.errors import OperationCancelled
from claude_session_monitor.services.record_reader import iter_records
from claude_session_monitor.services.session_scanner import (
    MESSAGE_ROLES,
    list_project_dirs,
    list_session_files,
)
from claude_session_monitor.types.records import TranscriptRecord
from claude_session_monitor.types.stats import (
    UNKNOWN_MODEL,
    DayActivity,
    LongestSession,
    ModelUsage,
    StatsCache,
)
from claude_session_monitor.utils.pricing import calculate_cost, context_window

if TYPE_CHECKING:
    from claude_session_monitor.services.stats_store import StatsCacheStore

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class SessionContribution:
    """What one session adds to the aggregate for a range of days."""
    session_id: str
    start: datetime | None = None
    end: datetime | None = None
    first_message: datetime | None = None
    message_count: int = 0          # All messages up to the range end
    starts_in_range: bool = False
    days: dict[date, DayActivity] = field(default_factory=dict)
    hours: Counter = field(default_factory=Counter)
    models: dict[str, list[int]] = field(default_factory=dict)

    @property
    def duration_ms(self) -> int:
        if self.start is None or self.end is None:
            return 0
        return int((self.end - self.start).total_seconds() * 1000)


def fold_session(
    session_id: str,
    records: Iterable[TranscriptRecord],
    through: date,
    after: date | None = None,
) -> SessionContribution:
    """Fold one session's records into a SessionContribution.

    Records dated after ``through`` are ignored. Day, hour and token totals
    take only records dated after ``after``; the session's start, end and
    message count use every record up to ``through`` so that a session
    spanning the boundary is measured whole. Records without a timestamp
    are skipped.
    """
    contrib = SessionContribution(session_id=session_id)

    for record in records:
        ts = record.timestamp
        if ts is None:
            continue
        day = ts.date()
        if day > through:
            continue

        if contrib.start is None or ts < contrib.start:
            contrib.start = ts
        if contrib.end is None or ts > contrib.end:
            contrib.end = ts

        is_message = record.role in MESSAGE_ROLES
        if is_message:
            contrib.message_count += 1
            if contrib.first_message is None or ts < contrib.first_message:
                contrib.first_message = ts

        if after is not None and day <= after:
            continue

        if is_message:
            bucket = contrib.days.get(day)
            if bucket is None:
                bucket = contrib.days[day] = DayActivity(date=day, session_count=1)
            bucket.message_count += 1
            bucket.tool_call_count += record.tool_calls
            contrib.hours[ts.hour] += 1

        if record.usage is not None:
            tokens = contrib.models.setdefault(record.model or UNKNOWN_MODEL, [0, 0, 0, 0])
            tokens[0] += record.usage.input_tokens
            tokens[1] += record.usage.output_tokens
            tokens[2] += record.usage.cache_read_input_tokens
            tokens[3] += record.usage.cache_creation_input_tokens

    # A session is counted once, on the day of its first message
    if contrib.first_message is not None:
        contrib.starts_in_range = after is None or contrib.first_message.date() > after
    return contrib


class _Accumulator:
    """Mutable aggregate the contributions are merged into."""

    def __init__(self, previous: StatsCache | None = None):
        self.days: dict[date, DayActivity] = {}
        self.models: dict[str, ModelUsage] = {}
        self.hours: Counter = Counter()
        self.total_sessions = 0
        self.longest: LongestSession | None = None
        self.first_session: datetime | None = None

        if previous is not None:
            self.days = {d.date: copy.copy(d) for d in previous.daily_activity}
            self.models = {m: copy.copy(u) for m, u in previous.model_usage.items()}
            self.hours.update(previous.hour_counts)
            self.total_sessions = previous.total_sessions
            self.longest = copy.copy(previous.longest_session)
            self.first_session = previous.first_session_date

    def merge(self, contrib: SessionContribution):
        for day, activity in contrib.days.items():
            bucket = self.days.get(day)
            if bucket is None:
                self.days[day] = copy.copy(activity)
            else:
                bucket.message_count += activity.message_count
                bucket.session_count += activity.session_count
                bucket.tool_call_count += activity.tool_call_count

        for model, tokens in contrib.models.items():
            usage = self.models.setdefault(model, ModelUsage())
            usage.input_tokens += tokens[0]
            usage.output_tokens += tokens[1]
            usage.cache_read_input_tokens += tokens[2]
            usage.cache_creation_input_tokens += tokens[3]

        self.hours.update(contrib.hours)

        if contrib.start is None or contrib.message_count == 0:
            return
        if contrib.starts_in_range:
            self.total_sessions += 1
        if self.first_session is None or contrib.start < self.first_session:
            self.first_session = contrib.start
        if _is_longer(contrib, self.longest):
            self.longest = LongestSession(
                session_id=contrib.session_id,
                duration_ms=contrib.duration_ms,
                message_count=contrib.message_count,
                timestamp=contrib.start,
            )

    def to_cache(self, last_computed_date: date) -> StatsCache:
        daily = [self.days[d] for d in sorted(self.days)]
        for model, usage in self.models.items():
            usage.cost_usd = calculate_cost(
                usage.input_tokens,
                usage.output_tokens,
                usage.cache_read_input_tokens,
                usage.cache_creation_input_tokens,
                model,
            )
            usage.context_window = context_window(model)

        return StatsCache(
            last_computed_date=last_computed_date,
            daily_activity=daily,
            model_usage=dict(sorted(self.models.items())),
            total_sessions=self.total_sessions,
            total_messages=sum(d.message_count for d in daily),
            longest_session=self.longest,
            first_session_date=self.first_session,
            hour_counts={h: self.hours[h] for h in sorted(self.hours) if self.hours[h]},
        )


def _is_longer(contrib: SessionContribution, current: LongestSession | None) -> bool:
    """Longer duration wins; equal durations go to the smaller session id."""
    if current is None:
        return True
    if contrib.duration_ms != current.duration_ms:
        return contrib.duration_ms > current.duration_ms
    if contrib.session_id == current.session_id:
        return contrib.message_count > current.message_count
    return contrib.session_id < current.session_id


def compute_stats(
    projects_root: str | Path,
    previous: StatsCache | None = None,
    *,
    full: bool = False,
    through: date | None = None,
    cancel_event: threading.Event | None = None,
) -> StatsCache:
    """Compute the aggregate, incrementally from ``previous`` unless ``full``.

    ``through`` is the last day folded (default: yesterday, UTC). When the
    previous cache already reaches ``through`` it is returned unchanged.
    Raises ProjectsRootError if the root is missing and OperationCancelled
    if ``cancel_event`` is set between files.
    """
    if through is None:
        through = utc_today() - timedelta(days=1)

    incremental = not full and previous is not None and previous.last_computed_date is not None
    if incremental and previous.last_computed_date >= through:
        logger.debug("Stats cache already covers %s", through)
        return previous

    after = previous.last_computed_date if incremental else None
    acc = _Accumulator(previous if incremental else None)

    # Files untouched since the end of ``after`` hold nothing new
    modified_since = None
    if after is not None:
        boundary = datetime.combine(after + timedelta(days=1), time.min, tzinfo=timezone.utc)
        modified_since = boundary.timestamp()

    folded = 0
    for project_dir in list_project_dirs(projects_root):
        for jsonl_file in list_session_files(project_dir):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled(f"stats computation for {projects_root} cancelled")

            try:
                if modified_since is not None and jsonl_file.stat().st_mtime < modified_since:
                    continue
                contrib = fold_session(
                    jsonl_file.stem,
                    iter_records(jsonl_file),
                    through=through,
                    after=after,
                )
            except OSError as e:
                logger.warning("Skipping unreadable session %s: %s", jsonl_file, e)
                continue

            acc.merge(contrib)
            folded += 1

    logger.info(
        "%s stats through %s from %d sessions",
        "Updated" if incremental else "Recomputed", through, folded,
    )
    return acc.to_cache(through)


def update_stats_cache(
    store: "StatsCacheStore",
    projects_root: str | Path,
    *,
    full: bool = False,
    through: date | None = None,
    cancel_event: threading.Event | None = None,
) -> StatsCache:
    """Load the cache, bring it up to date, and persist it if it changed."""
    previous = None if full else store.load()
    stats = compute_stats(
        projects_root,
        previous,
        full=full,
        through=through,
        cancel_event=cancel_event,
    )
    if stats is not previous:
        store.save(stats)
    return stats
