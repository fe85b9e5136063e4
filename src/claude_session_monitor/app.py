"""Headless application entry point: active sessions, tailing, stats, watching."""

import argparse
import logging
import signal
import sys
import time
from datetime import datetime

from PySide6.QtCore import QCoreApplication

from claude_session_monitor.errors import ProjectsRootError
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.session_monitor import SessionMonitor
from claude_session_monitor.services.tail_tracker import tail_cursor
from claude_session_monitor.services.usage_aggregator import update_stats_cache
from claude_session_monitor.types.sessions import TailCursor
from claude_session_monitor.types.stats import StatsCache


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_sessions(monitor: SessionMonitor, args) -> int:
    """List active sessions."""
    sessions = monitor.list_active_sessions(args.threshold)
    if not sessions:
        print("No active sessions.")
        return 0
    for s in sessions:
        modified = datetime.fromtimestamp(s.last_modified).strftime("%Y-%m-%d %H:%M:%S")
        approx = "" if s.message_count_exact else "~"
        print(f"{modified}  {s.project_name:<20} {s.session_id}  {approx}{s.message_count} msgs  {s.model}")
        if s.last_message_preview:
            print(f"    {s.last_message_preview}")
    return 0


def cmd_tail(monitor: SessionMonitor, args) -> int:
    """Print new records of a session file, optionally following it."""
    cursor = TailCursor(file_path=args.file, line=args.from_line)
    while True:
        result, cursor = tail_cursor(cursor)
        if result.reset:
            print("-- file truncated or replaced, restarting --", file=sys.stderr)
        for msg in result.messages:
            ts = msg.timestamp.isoformat() if msg.timestamp else "?"
            print(f"[{ts}] {msg.role.value}: {msg.content}")
        if not args.follow:
            return 0
        time.sleep(args.interval)


def cmd_stats(monitor: SessionMonitor, args) -> int:
    """Update the stats cache and print a summary."""
    if args.cached:
        stats = monitor.read_stats_cache()
        if stats is None:
            print("Stats cache missing or outdated (computing needed).")
            return 1
    else:
        stats = update_stats_cache(monitor.store, monitor.projects_root, full=args.full)
    _print_stats(stats)
    return 0


def cmd_watch(monitor: SessionMonitor, args) -> int:
    """Print change events until interrupted."""
    app = QCoreApplication.instance()
    subscription = monitor.subscribe()

    def print_pending():
        for event in subscription.drain():
            print(event.value, flush=True)

    subscription.ready.connect(print_pending)
    monitor.session_completed.connect(lambda sid: print(f"session-completed {sid}", flush=True))
    monitor.start_watching()
    return app.exec()


def _print_stats(stats: StatsCache):
    print(f"Computed through:  {stats.last_computed_date}")
    print(f"Sessions:          {stats.total_sessions}")
    print(f"Messages:          {stats.total_messages}")
    print(f"Days active:       {stats.days_active}")
    if stats.longest_session:
        ls = stats.longest_session
        print(f"Longest session:   {ls.session_id} ({ls.duration_ms // 60000} min, {ls.message_count} msgs)")
    for model, usage in stats.model_usage.items():
        cost = f"${usage.cost_usd:.2f}" if usage.cost_usd is not None else "n/a"
        print(f"  {model:<32} in={usage.input_tokens} out={usage.output_tokens} "
              f"cache_read={usage.cache_read_input_tokens} "
              f"cache_create={usage.cache_creation_input_tokens} cost={cost}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-session-monitor",
        description="Monitor live Claude Code sessions and usage statistics",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--projects-root", help="Override the projects directory")
    parser.add_argument("--stats-cache", help="Override the stats cache file")
    sub = parser.add_subparsers(dest="command")

    p_sessions = sub.add_parser("sessions", help="List active sessions")
    p_sessions.add_argument("--threshold", type=float, default=None,
                            help="Recency threshold in seconds (0 = all)")

    p_tail = sub.add_parser("tail", help="Tail a session file")
    p_tail.add_argument("file")
    p_tail.add_argument("--from-line", type=int, default=0)
    p_tail.add_argument("-f", "--follow", action="store_true")
    p_tail.add_argument("--interval", type=float, default=1.0)

    p_stats = sub.add_parser("stats", help="Update and show usage statistics")
    p_stats.add_argument("--full", action="store_true", help="Force a full recompute")
    p_stats.add_argument("--cached", action="store_true", help="Only read the cache")

    sub.add_parser("watch", help="Print change events")
    return parser


COMMANDS = {
    "sessions": cmd_sessions,
    "tail": cmd_tail,
    "stats": cmd_stats,
    "watch": cmd_watch,
}


def run(argv: list[str] | None = None) -> int:
    """Launch the application."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    app.setApplicationName("Claude Session Monitor")
    app.setOrganizationName("claude-session-monitor")
    app.setOrganizationDomain("claude.local")

    config = ConfigManager()
    _configure_logging(args.verbose or config.get_bool("advanced/debugLogging"))

    # Allow Ctrl+C to kill the app
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    monitor = SessionMonitor(
        projects_root=args.projects_root,
        stats_cache_path=args.stats_cache,
        config=config,
    )
    try:
        return COMMANDS[args.command](monitor, args)
    except ProjectsRootError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    finally:
        monitor.cleanup()
