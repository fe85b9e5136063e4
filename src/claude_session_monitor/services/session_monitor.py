"""Central monitor exposing live sessions, tailing, stats and change events."""

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable

from PySide6.QtCore import QObject, QThread, Signal, Slot, Property

from claude_session_monitor.errors import MonitorError, OperationCancelled
from claude_session_monitor.services.change_notifier import ChangeNotifier, ChangeSubscription
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.session_scanner import scan_sessions
from claude_session_monitor.services.stats_store import StatsCacheStore
from claude_session_monitor.services.tail_tracker import tail_session
from claude_session_monitor.services.usage_aggregator import update_stats_cache
from claude_session_monitor.types.events import ChangeEvent
from claude_session_monitor.types.sessions import SessionHandle, TailResult
from claude_session_monitor.types.stats import StatsCache
from claude_session_monitor.utils.path_validation import validate_session_path

logger = logging.getLogger(__name__)

WORKER_STOP_TIMEOUT_MS = 2000


class _ScanWorker(QThread):
    """Background thread for scanning active sessions.

    Results carry the worker's ``generation`` so the monitor can drop a
    result that was queued before a newer scan replaced this worker.
    """

    finished = Signal(int, list)  # generation, list[SessionHandle]
    failed = Signal(int, str)

    def __init__(
        self,
        projects_root: Path,
        threshold_seconds: float | None,
        generation: int,
        parent=None,
    ):
        super().__init__(parent)
        self._projects_root = projects_root
        self._threshold_seconds = threshold_seconds
        self.generation = generation
        self.cancel_event = threading.Event()

    def run(self):
        try:
            sessions = scan_sessions(
                self._projects_root,
                self._threshold_seconds,
                cancel_event=self.cancel_event,
            )
        except OperationCancelled:
            logger.debug("Session scan cancelled")
            return
        except MonitorError as e:
            self.failed.emit(self.generation, str(e))
            return
        except Exception:
            logger.exception("Worker failed to scan sessions in %s", self._projects_root)
            self.failed.emit(self.generation, "session scan failed")
            return
        self.finished.emit(self.generation, sessions)


class _StatsWorker(QThread):
    """Background thread for bringing the stats cache up to date."""

    finished = Signal(int, object)  # generation, StatsCache
    failed = Signal(int, str)

    def __init__(
        self,
        store: StatsCacheStore,
        projects_root: Path,
        full: bool,
        generation: int,
        parent=None,
    ):
        super().__init__(parent)
        self._store = store
        self._projects_root = projects_root
        self._full = full
        self.generation = generation
        self.cancel_event = threading.Event()

    def run(self):
        try:
            stats = update_stats_cache(
                self._store,
                self._projects_root,
                full=self._full,
                cancel_event=self.cancel_event,
            )
        except OperationCancelled:
            logger.info("Stats refresh cancelled, partial results discarded")
            return
        except MonitorError as e:
            self.failed.emit(self.generation, str(e))
            return
        except Exception:
            logger.exception("Worker failed to refresh stats for %s", self._projects_root)
            self.failed.emit(self.generation, "stats refresh failed")
            return
        self.finished.emit(self.generation, stats)


class SessionMonitor(QObject):
    """Facade over the scanner, tail tracker, aggregator, store and notifier.

    Synchronous calls (``list_active_sessions``, ``tail_session``,
    ``read_stats_cache``) hold no per-session state. Long operations have
    background variants that report through signals.
    """

    sessions_scanned = Signal(list)     # list[SessionHandle]
    scan_failed = Signal(str)
    stats_updated = Signal(object)      # StatsCache
    stats_failed = Signal(str)
    refreshing_changed = Signal()
    change_detected = Signal(str)       # ChangeEvent value
    session_completed = Signal(str)     # session_id

    def __init__(
        self,
        parent=None,
        projects_root: str | None = None,
        stats_cache_path: str | None = None,
        config: ConfigManager | None = None,
    ):
        super().__init__(parent)
        self._config = config or ConfigManager(self)
        self._projects_root = Path(projects_root) if projects_root else self._config.projects_dir()
        cache_path = Path(stats_cache_path) if stats_cache_path else self._config.stats_cache_path()
        fallbacks = () if stats_cache_path else self._config.fallback_stats_cache_paths()
        self._store = StatsCacheStore(cache_path, fallback_paths=fallbacks)

        self._notifier = ChangeNotifier(
            self,
            debounce_ms=self._config.get_int("watcher/debounceMs"),
            session_timeout_s=float(self._config.get_int("watcher/sessionTimeoutSecs")),
        )
        self._notifier.change_detected.connect(self.change_detected)
        self._notifier.session_completed.connect(self.session_completed)

        self._scan_worker: _ScanWorker | None = None
        self._stats_worker: _StatsWorker | None = None
        self._generation = 0

    @property
    def projects_root(self) -> Path:
        return self._projects_root

    @property
    def store(self) -> StatsCacheStore:
        return self._store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def _get_refreshing(self) -> bool:
        return self._stats_worker is not None

    refreshing = Property(bool, _get_refreshing, notify=refreshing_changed)

    # ------------------------------------------------------------------
    # Synchronous operations
    # ------------------------------------------------------------------

    def list_active_sessions(self, threshold_seconds: float | None = None) -> list[SessionHandle]:
        """Sessions modified within the threshold, most recent first.

        None uses the configured threshold; 0 returns every session.
        Raises ProjectsRootError if the projects root is unavailable.
        """
        if threshold_seconds is None:
            threshold_seconds = self._config.get_int("sessions/activeThresholdSecs")
        return scan_sessions(self._projects_root, threshold_seconds)

    def tail_session(self, file_path: str, from_line: int) -> TailResult:
        """Records appended to a session file after ``from_line``."""
        if not validate_session_path(file_path, self._projects_root):
            logger.error("Invalid session path: %s", file_path)
            return TailResult(total_lines=from_line)
        return tail_session(file_path, from_line)

    def read_stats_cache(self) -> StatsCache | None:
        """The persisted aggregate, or None when it needs computing.

        Falls back to Claude Code's own stats cache when this package has
        not written one yet.
        """
        return self._store.load(include_fallbacks=True)

    def subscribe(
        self,
        categories: Iterable[ChangeEvent] | None = None,
        callback: Callable[[ChangeEvent], None] | None = None,
    ) -> ChangeSubscription:
        return self._notifier.subscribe(categories, callback)

    # ------------------------------------------------------------------
    # Background operations
    # ------------------------------------------------------------------

    @Slot()
    def scan_active_sessions(self, threshold_seconds: float | None = None):
        """Scan in a background thread; results arrive via sessions_scanned."""
        if threshold_seconds is None:
            threshold_seconds = self._config.get_int("sessions/activeThresholdSecs")
        self._cancel_scan()

        self._generation += 1
        worker = _ScanWorker(self._projects_root, threshold_seconds, self._generation, self)
        worker.finished.connect(self._on_sessions_scanned)
        worker.failed.connect(self._on_scan_failed)
        self._scan_worker = worker
        worker.start()

    @Slot(bool)
    def refresh_stats(self, full: bool = False):
        """Update the stats cache in a background thread."""
        self.cancel_refresh()

        self._generation += 1
        worker = _StatsWorker(self._store, self._projects_root, full, self._generation, self)
        worker.finished.connect(self._on_stats_updated)
        worker.failed.connect(self._on_stats_failed)
        self._stats_worker = worker
        worker.start()
        self.refreshing_changed.emit()

    @Slot()
    def cancel_refresh(self):
        """Cancel an in-flight stats refresh; its partial result is dropped."""
        worker = self._stats_worker
        if worker is None:
            return
        self._stats_worker = None
        self._stop_worker(worker)
        self.refreshing_changed.emit()

    def wait_for_workers(self, timeout_ms: int = 5000):
        """Block until background workers finish (used by the CLI and tests)."""
        for worker in (self._scan_worker, self._stats_worker):
            if worker is not None:
                worker.wait(timeout_ms)

    def _is_current(self, worker: QThread | None, generation: int) -> bool:
        # Results queued by a replaced or cancelled worker are dropped
        return worker is not None and worker.generation == generation

    def _on_sessions_scanned(self, generation: int, sessions: list):
        if not self._is_current(self._scan_worker, generation):
            return
        self._scan_worker = None
        self.sessions_scanned.emit(sessions)

    def _on_scan_failed(self, generation: int, message: str):
        if not self._is_current(self._scan_worker, generation):
            return
        self._scan_worker = None
        self.scan_failed.emit(message)

    def _on_stats_updated(self, generation: int, stats: StatsCache):
        if not self._is_current(self._stats_worker, generation):
            return
        self._stats_worker = None
        self.refreshing_changed.emit()
        self.stats_updated.emit(stats)

    def _on_stats_failed(self, generation: int, message: str):
        if not self._is_current(self._stats_worker, generation):
            return
        self._stats_worker = None
        self.refreshing_changed.emit()
        self.stats_failed.emit(message)

    def _cancel_scan(self):
        worker = self._scan_worker
        if worker is None:
            return
        self._scan_worker = None
        self._stop_worker(worker)

    def _stop_worker(self, worker):
        worker.cancel_event.set()
        if worker.isRunning() and not worker.wait(WORKER_STOP_TIMEOUT_MS):
            # Still parented to the monitor, so Qt keeps it alive until it exits
            logger.warning(
                "%s did not stop within %d ms", type(worker).__name__, WORKER_STOP_TIMEOUT_MS,
            )

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    @Slot()
    def start_watching(self):
        """Watch the Claude directory and the stats cache file."""
        roots = self._config.watch_roots()
        if self._projects_root.exists() and not any(
            self._projects_root == r or r in self._projects_root.parents for r in roots
        ):
            roots.append(self._projects_root)
        self._notifier.start(roots, self._store.path)

    def cleanup(self):
        """Clean up resources."""
        self._cancel_scan()
        self.cancel_refresh()
        self._notifier.stop()
