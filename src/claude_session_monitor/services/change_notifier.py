"""Recursive file system watcher with debounced, coalesced change events."""

import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Iterable

from PySide6.QtCore import QObject, QThread, QTimer, Signal
from watchfiles import watch

from claude_session_monitor.types.events import ChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 500
DEFAULT_SESSION_TIMEOUT_S = 60.0
COMPLETION_CHECK_INTERVAL_MS = 10_000
WORKER_STOP_TIMEOUT_MS = 2000

# Subscription queue capacity; one slot per category is enough when coalescing
MAX_PENDING = len(ChangeEvent)

ENTITY_DIRS = ("agents", "rules", "commands", "skills", "hooks")


def classify_path(path: str | Path, cache_file: str | Path | None = None) -> ChangeEvent | None:
    """Map a changed path to its event category, or None if irrelevant."""
    p = Path(path)
    if cache_file is not None and p == Path(cache_file):
        return ChangeEvent.HISTORY_CHANGED
    name = p.name
    if name == "CLAUDE.md":
        return ChangeEvent.CONFIGURATION_CHANGED
    if "settings" in name and name.endswith(".json"):
        return ChangeEvent.SETTINGS_CHANGED
    if name.endswith(".jsonl"):
        return ChangeEvent.HISTORY_CHANGED
    if any(part in ENTITY_DIRS for part in p.parent.parts):
        return ChangeEvent.ENTITY_CHANGED
    return None


class ChangeSubscription(QObject):
    """The single consumer's end of the notifier channel.

    The queue is bounded and coalescing: a category that is already pending
    is not queued again, and when full the oldest entry is dropped. Delivery
    never blocks. ``ready`` fires whenever something was queued; the
    consumer calls ``drain()`` at its own pace.
    """

    ready = Signal()

    def __init__(
        self,
        categories: Iterable[ChangeEvent] | None = None,
        callback: Callable[[ChangeEvent], None] | None = None,
        max_pending: int = MAX_PENDING,
        parent=None,
    ):
        super().__init__(parent)
        self._categories = frozenset(categories) if categories else frozenset(ChangeEvent)
        self._callback = callback
        self._pending: deque[ChangeEvent] = deque(maxlen=max_pending)
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def categories(self) -> frozenset[ChangeEvent]:
        return self._categories

    def deliver(self, event: ChangeEvent) -> bool:
        """Queue an event. Returns False if it was filtered out or coalesced."""
        if not self._active or event not in self._categories:
            return False
        with self._lock:
            if event in self._pending:
                return False
            self._pending.append(event)
        if self._callback is not None:
            self._callback(event)
        self.ready.emit()
        return True

    def drain(self) -> list[ChangeEvent]:
        """Take every pending event, oldest first."""
        with self._lock:
            events = list(self._pending)
            self._pending.clear()
        return events

    def unsubscribe(self):
        self._active = False
        self._callback = None
        with self._lock:
            self._pending.clear()


class _WatchWorker(QThread):
    """Background thread running the watchfiles loop."""

    changes_detected = Signal(list)  # list[str] of changed paths

    def __init__(self, paths: list[str], debounce_ms: int, parent=None):
        super().__init__(parent)
        self._paths = paths
        self._debounce_ms = debounce_ms
        self._stop_event = threading.Event()

    def run(self):
        try:
            for changes in watch(
                *self._paths,
                debounce=self._debounce_ms,
                stop_event=self._stop_event,
                raise_interrupt=False,
            ):
                self.changes_detected.emit(sorted({path for _, path in changes}))
        except Exception:
            logger.exception("File watcher stopped unexpectedly")

    def stop(self):
        self._stop_event.set()


class ChangeNotifier(QObject):
    """Watches directory roots and the stats cache file for changes.

    File system events are debounced by watchfiles over a fixed window
    (``debounce_ms``, 500ms by default), then each category is emitted at
    most once per batch. Events go to exactly one subscriber.
    """

    change_detected = Signal(str)    # ChangeEvent value
    session_completed = Signal(str)  # session_id

    def __init__(
        self,
        parent=None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        session_timeout_s: float = DEFAULT_SESSION_TIMEOUT_S,
    ):
        super().__init__(parent)
        self._debounce_ms = debounce_ms
        self._session_timeout_s = session_timeout_s
        self._roots: list[Path] = []
        self._cache_file: Path | None = None
        self._worker: _WatchWorker | None = None
        self._subscription: ChangeSubscription | None = None
        self._active_sessions: dict[str, float] = {}

        # Timer to report sessions with no writes for session_timeout_s
        self._completion_timer = QTimer(self)
        self._completion_timer.setInterval(COMPLETION_CHECK_INTERVAL_MS)
        self._completion_timer.timeout.connect(self.check_completed_sessions)

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    def start(self, roots: Iterable[str | Path], cache_file: str | Path | None = None):
        """Start watching ``roots`` recursively, plus the cache file."""
        self.stop()
        self._roots = [Path(r) for r in roots]
        self._cache_file = Path(cache_file) if cache_file else None

        paths = [str(r) for r in self._roots if r.exists()]
        if self._cache_file is not None and not self._is_under_roots(self._cache_file):
            if self._cache_file.parent.exists():
                paths.append(str(self._cache_file.parent))

        if not paths:
            logger.warning("No watch paths exist, watcher has nothing to monitor")
            return

        worker = _WatchWorker(paths, self._debounce_ms, self)
        worker.changes_detected.connect(self.handle_changes)
        self._worker = worker
        worker.start()
        self._completion_timer.start()
        logger.info("Watching %d paths: %s", len(paths), paths)

    def stop(self):
        """Stop watching. Pending subscription events are kept."""
        self._completion_timer.stop()
        if self._worker is not None:
            self._worker.stop()
            # watchfiles checks the stop event between polls
            while not self._worker.wait(WORKER_STOP_TIMEOUT_MS):
                logger.warning("File watcher still stopping after %d ms", WORKER_STOP_TIMEOUT_MS)
            self._worker = None
        self._active_sessions.clear()

    def subscribe(
        self,
        categories: Iterable[ChangeEvent] | None = None,
        callback: Callable[[ChangeEvent], None] | None = None,
    ) -> ChangeSubscription:
        """Register the single subscriber, replacing any previous one."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = ChangeSubscription(categories, callback, parent=self)
        return self._subscription

    def handle_changes(self, paths: list[str], now: float | None = None):
        """Classify one debounced batch of changed paths and dispatch it."""
        if now is None:
            now = time.monotonic()

        categories: list[ChangeEvent] = []
        for path in paths:
            p = Path(path)
            if not self._is_under_roots(p) and p != self._cache_file:
                continue
            event = classify_path(p, self._cache_file)
            if event is None:
                continue
            if event not in categories:
                categories.append(event)
            if p.suffix == ".jsonl":
                self._active_sessions[str(p)] = now

        for event in categories:
            logger.debug("Change detected: %s", event.value)
            self.change_detected.emit(event.value)
            subscription = self._subscription
            if subscription is not None and subscription.active:
                subscription.deliver(event)

    def check_completed_sessions(self, now: float | None = None) -> list[str]:
        """Emit session_completed for transcripts idle past the timeout."""
        if now is None:
            now = time.monotonic()
        completed = [
            path for path, last_seen in self._active_sessions.items()
            if now - last_seen > self._session_timeout_s
        ]
        session_ids = []
        for path in completed:
            del self._active_sessions[path]
            session_id = Path(path).stem
            session_ids.append(session_id)
            self.session_completed.emit(session_id)
        return session_ids

    def _is_under_roots(self, path: Path) -> bool:
        if not self._roots:
            return True
        return any(path == root or root in path.parents for root in self._roots)
