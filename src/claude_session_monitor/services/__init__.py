"""Services for Claude Session Monitor."""

from claude_session_monitor.services.session_monitor import SessionMonitor
from claude_session_monitor.services.stats_store import StatsCacheStore
from claude_session_monitor.services.change_notifier import ChangeNotifier, ChangeSubscription
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.tail_tracker import tail_cursor, tail_session
from claude_session_monitor.services.session_scanner import scan_sessions
from claude_session_monitor.services.usage_aggregator import compute_stats, update_stats_cache

__all__ = [
    "SessionMonitor",
    "StatsCacheStore",
    "ChangeNotifier",
    "ChangeSubscription",
    "ConfigManager",
    "tail_cursor",
    "tail_session",
    "scan_sessions",
    "compute_stats",
    "update_stats_cache",
]
