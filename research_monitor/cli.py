# -*- coding: utf-8 -*-
"""
Command-line entry point for research_monitor.

Usage:
    research-monitor                       # interactive TUI (default)
    research-monitor watch "quantum error correction"
    research-monitor replay .research_monitor/logs/log_20260101_120000/events.jsonl

Global options:
    --config PATH   YAML configuration file
    --server URL    Research server base URL (http:// or https://)
    --debug         Debug-level logging
    --record        Append every inbound frame to events.jsonl in the log directory
"""

import argparse
import asyncio
import sys
from contextlib import suppress
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from research_monitor import __version__
from research_monitor.config import MonitorConfig, load_config
from research_monitor.connection import ConnectionManager, Connector
from research_monitor.coordinator import ExecutionCoordinator, RunOutcome
from research_monitor.errors import ConfigError
from research_monitor.events import EventReader, EventRecorder
from research_monitor.logger_config import (
    get_log_session_dir,
    logger,
    restore_console_logging,
    setup_logging,
    suppress_console_logging,
)
from research_monitor.view import ConsoleView

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2

CONNECT_TIMEOUT = 10.0

# run_watch outcome when the connection stops reconnecting
_GAVE_UP = "gave_up"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="research-monitor",
        description="Live monitor for research pipeline runs.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--server", default=None, help="Research server base URL, e.g. https://host:8080")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--record", action="store_true", help="Record inbound frames to events.jsonl")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("tui", help="Interactive terminal UI (default)")

    watch = subparsers.add_parser("watch", help="Request a run and stream it to the console")
    watch.add_argument("query", help="Research topic")
    watch.add_argument("--no-stream", action="store_true", help="Hide intermediate stream output")

    replay = subparsers.add_parser("replay", help="Replay a recorded events.jsonl without a server")
    replay.add_argument("events_file", type=Path, help="Path to events.jsonl")
    return parser


def _make_recorder(enabled: bool) -> Optional[EventRecorder]:
    if not enabled:
        return None
    recorder = EventRecorder(get_log_session_dir())
    logger.info(f"[CLI] Recording frames to {recorder.file_path}")
    return recorder


def _new_connection(
    config: MonitorConfig,
    view: ConsoleView,
    recorder: Optional[EventRecorder] = None,
    connector: Optional[Connector] = None,
) -> ConnectionManager:
    return ConnectionManager(
        config.server.websocket_url,
        view,
        active_delay=config.reconnect.active_delay,
        idle_delay=config.reconnect.idle_delay,
        max_reconnect_attempts=config.reconnect.max_attempts,
        max_consecutive_malformed=config.reconnect.max_consecutive_malformed,
        connector=connector,
        recorder=recorder,
    )


async def run_watch(
    config: MonitorConfig,
    query: str,
    view: ConsoleView,
    recorder: Optional[EventRecorder] = None,
    connector: Optional[Connector] = None,
) -> int:
    """Connect, request one run and stream it until it completes, fails or the connection gives up."""
    loop = asyncio.get_running_loop()
    finished: "asyncio.Future[str]" = loop.create_future()

    def _on_run_end(outcome: str) -> None:
        if not finished.done():
            finished.set_result(outcome)

    connection = _new_connection(config, view, recorder, connector)
    connection.on_give_up(lambda: _on_run_end(_GAVE_UP))
    coordinator = ExecutionCoordinator(connection, view, config.pipeline, on_run_end=_on_run_end)
    try:
        connection.connect()
        opened = loop.create_task(connection.wait_open(CONNECT_TIMEOUT))
        await asyncio.wait({opened, finished}, return_when=asyncio.FIRST_COMPLETED)
        if not opened.done():
            opened.cancel()
            with suppress(asyncio.CancelledError):
                await opened
        if opened.cancelled() or not opened.result():
            view.notify_validation_error(f"Could not connect to {connection.url}")
            return EXIT_USAGE
        if not await coordinator.submit(query):
            return EXIT_USAGE
        outcome = await finished
    finally:
        coordinator.stop()
        await connection.close()

    if outcome == _GAVE_UP:
        view.notify_validation_error(f"Lost connection to {connection.url}")
        return EXIT_USAGE
    return EXIT_OK if outcome == RunOutcome.COMPLETED else EXIT_RUN_FAILED


async def run_replay(config: MonitorConfig, events_file: Path, view: ConsoleView) -> int:
    """Feed recorded frames through the coordinator without a network connection."""
    reader = EventReader(events_file)
    if not reader.exists():
        view.notify_validation_error(f"Events file not found: {events_file}")
        return EXIT_USAGE

    connection = _new_connection(config, view)
    coordinator = ExecutionCoordinator(connection, view, config.pipeline)
    count = 0
    for frame in reader.frames():
        connection.feed_frame(frame)
        count += 1
    coordinator.stop()

    completed, total = coordinator.graph.progress_summary()
    logger.info(f"[CLI] Replayed {count} frames ({connection.malformed_frames} malformed), progress {completed}/{total}")
    if coordinator.session.is_completed:
        return EXIT_OK
    return EXIT_RUN_FAILED


def run_tui(config: MonitorConfig, recorder: Optional[EventRecorder] = None) -> int:
    from research_monitor.frontend.displays.textual_monitor_display import ResearchMonitorApp

    app = ResearchMonitorApp(config, recorder=recorder)
    suppress_console_logging()
    try:
        app.run()
    finally:
        restore_console_logging()
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug)

    try:
        config = load_config(args.config)
        if args.server:
            config.server.url = args.server
            config.validate()
    except ConfigError as e:
        Console(stderr=True).print(f"[bold red]Configuration error:[/] {e}")
        return EXIT_USAGE

    command = args.command or "tui"
    if command == "tui":
        return run_tui(config, _make_recorder(args.record))

    view = ConsoleView(show_stream=not getattr(args, "no_stream", False))
    if command == "watch":
        return asyncio.run(run_watch(config, args.query, view, _make_recorder(args.record)))
    return asyncio.run(run_replay(config, args.events_file, view))


if __name__ == "__main__":
    sys.exit(main())
