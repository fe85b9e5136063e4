"""Tests for the SessionMonitor facade."""

import threading

import pytest

from claude_session_monitor.errors import ProjectsRootError
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.session_monitor import SessionMonitor
from claude_session_monitor.services.stats_store import StatsCacheStore
from claude_session_monitor.types.events import ChangeEvent
from claude_session_monitor.types.stats import StatsCache
from helpers import append_lines, make_line, wait_for_workers, write_session

OLD_TS = "2025-06-01T10:00:00.000Z"
LATER_TS = "2025-06-01T10:20:00.000Z"


@pytest.fixture
def monitor(isolated_settings, tmp_projects_dir, tmp_path):
    config = ConfigManager()
    m = SessionMonitor(
        projects_root=str(tmp_projects_dir),
        stats_cache_path=str(tmp_path / "stats-cache.json"),
        config=config,
    )
    yield m
    m.cleanup()


@pytest.fixture
def session_file(project_dir):
    path = project_dir / "sess-1.jsonl"
    write_session(path, [
        make_line("m1", "user", "Hello", timestamp=OLD_TS),
        make_line("m2", "assistant", [{"type": "text", "text": "Hi!"}], timestamp=LATER_TS,
                  model="claude-sonnet-4-5",
                  usage={"input_tokens": 10, "output_tokens": 5}),
    ])
    return path


class TestSynchronousApi:
    def test_list_active_sessions(self, monitor, session_file):
        sessions = monitor.list_active_sessions()
        assert [s.session_id for s in sessions] == ["sess-1"]
        assert sessions[0].project_name == "myapp"

    def test_list_active_sessions_missing_root(self, isolated_settings, tmp_path):
        m = SessionMonitor(projects_root=str(tmp_path / "missing"), config=ConfigManager())
        with pytest.raises(ProjectsRootError):
            m.list_active_sessions()
        m.cleanup()

    def test_tail_session(self, monitor, session_file):
        first = monitor.tail_session(str(session_file), 0)
        assert [m.uuid for m in first.messages] == ["m1", "m2"]

        append_lines(session_file, [make_line("m3", "user", "More", timestamp=LATER_TS)])
        second = monitor.tail_session(str(session_file), first.total_lines)
        assert [m.uuid for m in second.messages] == ["m3"]
        assert second.total_lines == 3

    def test_tail_rejects_path_outside_root(self, monitor, tmp_path):
        outside = tmp_path / "elsewhere.jsonl"
        write_session(outside, [make_line("x1", "user", "secret")])
        result = monitor.tail_session(str(outside), 4)
        assert result.messages == []
        assert result.total_lines == 4

    def test_read_stats_cache_absent(self, monitor):
        assert monitor.read_stats_cache() is None


class TestBackgroundApi:
    def test_scan_active_sessions(self, monitor, session_file):
        results = []
        monitor.sessions_scanned.connect(results.append)
        monitor.scan_active_sessions(0)
        wait_for_workers(monitor)
        assert len(results) == 1
        assert [s.session_id for s in results[0]] == ["sess-1"]

    def test_scan_failure_reported(self, isolated_settings, tmp_path):
        m = SessionMonitor(projects_root=str(tmp_path / "missing"), config=ConfigManager())
        errors = []
        m.scan_failed.connect(errors.append)
        m.scan_active_sessions(0)
        wait_for_workers(m)
        assert len(errors) == 1
        assert "missing" in errors[0]
        m.cleanup()

    def test_refresh_stats_persists(self, monitor, session_file):
        updates = []
        monitor.stats_updated.connect(updates.append)
        monitor.refresh_stats()
        assert monitor.refreshing is True
        wait_for_workers(monitor)

        assert len(updates) == 1
        stats = updates[0]
        assert stats.total_sessions == 1
        assert stats.total_messages == 2
        assert stats.longest_session.duration_ms == 20 * 60 * 1000
        assert monitor.refreshing is False
        assert monitor.read_stats_cache() == stats

    def test_cancel_refresh_drops_result(self, monitor, session_file):
        updates = []
        monitor.stats_updated.connect(updates.append)
        monitor.refresh_stats()
        monitor.cancel_refresh()
        wait_for_workers(monitor)
        assert updates == []
        assert monitor.refreshing is False

    def test_back_to_back_scans_deliver_latest(self, monitor, session_file, project_dir):
        results = []
        monitor.sessions_scanned.connect(results.append)

        monitor.scan_active_sessions(0)
        # First result stays queued while the second scan starts
        monitor.wait_for_workers(5000)
        write_session(project_dir / "sess-2.jsonl", [make_line("n1", "user", "New", timestamp=LATER_TS)])
        monitor.scan_active_sessions(0)
        wait_for_workers(monitor)

        assert len(results) == 1
        assert sorted(s.session_id for s in results[0]) == ["sess-1", "sess-2"]

    def test_replaced_refresh_result_dropped(self, monitor, session_file):
        updates = []
        monitor.stats_updated.connect(updates.append)

        monitor.refresh_stats()
        monitor.wait_for_workers(5000)
        monitor.refresh_stats(full=True)
        wait_for_workers(monitor)

        assert len(updates) == 1
        assert monitor.refreshing is False

    def test_stuck_worker_logged(self, monitor, caplog):
        class StuckWorker:
            def __init__(self):
                self.cancel_event = threading.Event()

            def isRunning(self):
                return True

            def wait(self, timeout):
                return False

        worker = StuckWorker()
        with caplog.at_level("WARNING", logger="claude_session_monitor.services.session_monitor"):
            monitor._stop_worker(worker)
        assert worker.cancel_event.is_set()
        assert "StuckWorker did not stop" in caplog.text


class TestClaudeCacheFallback:
    @pytest.fixture
    def claude_dir(self, isolated_settings, tmp_projects_dir):
        return tmp_projects_dir.parent

    @pytest.fixture
    def default_monitor(self, claude_dir, tmp_projects_dir):
        config = ConfigManager()
        config.set_string("general/claudeDir", str(claude_dir))
        m = SessionMonitor(projects_root=str(tmp_projects_dir), config=config)
        yield m
        m.cleanup()

    def test_writes_to_own_directory(self, default_monitor, claude_dir, session_file):
        default_monitor.refresh_stats()
        wait_for_workers(default_monitor)

        own = claude_dir / "session-monitor" / "stats-cache.json"
        assert default_monitor.store.path == own
        assert own.exists()
        assert not (claude_dir / "stats-cache.json").exists()

    def test_reads_claude_cache_without_adopting_it(self, default_monitor, claude_dir, session_file):
        claude_cache = claude_dir / "stats-cache.json"
        StatsCacheStore(claude_cache).save(StatsCache(total_sessions=77))
        before = claude_cache.read_bytes()

        assert default_monitor.read_stats_cache().total_sessions == 77
        assert default_monitor.store.load() is None

        updates = []
        default_monitor.stats_updated.connect(updates.append)
        default_monitor.refresh_stats()
        wait_for_workers(default_monitor)

        assert updates[0].total_sessions == 1
        assert claude_cache.read_bytes() == before
        assert default_monitor.read_stats_cache().total_sessions == 1


class TestSubscriptions:
    def test_subscribe_routes_notifier_events(self, monitor, tmp_projects_dir):
        sub = monitor.subscribe([ChangeEvent.HISTORY_CHANGED])
        forwarded = []
        monitor.change_detected.connect(forwarded.append)
        monitor.notifier.handle_changes([str(tmp_projects_dir / "-home-wiz-projects-myapp" / "s.jsonl")])
        assert sub.drain() == [ChangeEvent.HISTORY_CHANGED]
        assert forwarded == ["history-changed"]
