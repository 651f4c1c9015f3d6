# -*- coding: utf-8 -*-
"""
Tests for the command-line entry point: replay, watch and argument handling.
"""

import asyncio
import io
import json

import pytest
from conftest import FakeConnector, settle
from rich.console import Console

import research_monitor.config as config_module
from research_monitor.cli import (
    EXIT_OK,
    EXIT_RUN_FAILED,
    EXIT_USAGE,
    build_parser,
    main,
    run_replay,
    run_watch,
)
from research_monitor.config import MonitorConfig
from research_monitor.events import EventRecorder
from research_monitor.logger_config import logger
from research_monitor.view import ConsoleView

FULL_RUN = [
    {"type": "start"},
    {"type": "node_start", "node": "classify_intent_and_topic"},
    {"type": "node_complete", "node": "classify_intent_and_topic"},
    {"type": "node_start", "node": "search_query_0"},
    {"type": "node_complete", "node": "search_query_0"},
    {"type": "node_start", "node": "synthesize_and_report"},
    {"type": "streaming_chunk", "node": "synthesize_and_report", "chunk": "```markdown\n# Findings\n"},
    {"type": "streaming_chunk", "node": "synthesize_and_report", "chunk": "All good.\n```"},
    {"type": "node_complete", "node": "synthesize_and_report"},
    {"type": "complete"},
]


@pytest.fixture(autouse=True)
def _isolated_cli(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "USER_CONFIG_PATH", tmp_path / "user" / "config.yaml")
    monkeypatch.delenv("RESEARCH_MONITOR_SERVER_URL", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    logger.remove()


def _console_view():
    buffer = io.StringIO()
    return ConsoleView(Console(file=buffer, width=100, color_system=None)), buffer


def _record(tmp_path, frames):
    recorder = EventRecorder(tmp_path / "recording")
    for frame in frames:
        recorder.record(frame if isinstance(frame, str) else json.dumps(frame))
    recorder.close()
    return recorder.file_path


def test_parser_defaults_to_tui():
    args = build_parser().parse_args([])

    assert args.command is None
    assert args.debug is False
    assert args.record is False


def test_parser_watch_arguments():
    args = build_parser().parse_args(["--server", "https://host", "watch", "fusion power", "--no-stream"])

    assert args.command == "watch"
    assert args.query == "fusion power"
    assert args.no_stream is True
    assert args.server == "https://host"


@pytest.mark.asyncio
async def test_replay_completed_run(tmp_path):
    path = _record(tmp_path, FULL_RUN[:3] + ["not json"] + FULL_RUN[3:])
    view, buffer = _console_view()

    assert await run_replay(MonitorConfig(), path, view) == EXIT_OK

    assert view.final_report == "# Findings\nAll good.\n"
    output = buffer.getvalue()
    assert "Research complete" in output
    assert "Dropped malformed message" in output


@pytest.mark.asyncio
async def test_replay_failed_run(tmp_path):
    path = _record(tmp_path, FULL_RUN[:2] + [{"type": "error", "node": "classify_intent_and_topic", "error": "boom"}])
    view, buffer = _console_view()

    assert await run_replay(MonitorConfig(), path, view) == EXIT_RUN_FAILED
    assert "Intent: boom" in buffer.getvalue()


@pytest.mark.asyncio
async def test_replay_missing_file(tmp_path):
    view, buffer = _console_view()

    assert await run_replay(MonitorConfig(), tmp_path / "missing.jsonl", view) == EXIT_USAGE
    assert "Events file not found" in buffer.getvalue()


@pytest.mark.asyncio
async def test_watch_runs_until_complete():
    connector = FakeConnector()
    view, buffer = _console_view()

    task = asyncio.ensure_future(run_watch(MonitorConfig(), "  solar sails ", view, connector=connector))
    await settle(20)

    socket = connector.current
    assert socket.sent_json() == [{"type": "research", "query": "solar sails"}]
    for message in FULL_RUN:
        socket.feed(message)

    assert await asyncio.wait_for(task, 1.0) == EXIT_OK
    assert view.final_report == "# Findings\nAll good.\n"
    assert socket.closed is True


@pytest.mark.asyncio
async def test_watch_reports_failed_run():
    connector = FakeConnector()
    view, _ = _console_view()

    task = asyncio.ensure_future(run_watch(MonitorConfig(), "topic", view, connector=connector))
    await settle(20)
    connector.current.feed({"type": "start"})
    connector.current.feed({"type": "error", "error": "quota exceeded"})

    assert await asyncio.wait_for(task, 1.0) == EXIT_RUN_FAILED


@pytest.mark.asyncio
async def test_watch_rejects_empty_query():
    connector = FakeConnector()
    view, buffer = _console_view()

    assert await run_watch(MonitorConfig(), "   ", view, connector=connector) == EXIT_USAGE
    assert connector.current.sent == []
    assert "Please enter a topic to research" in buffer.getvalue()


@pytest.mark.asyncio
async def test_watch_exits_when_connection_is_refused():
    config = MonitorConfig()
    config.reconnect.max_attempts = 0
    connector = FakeConnector(refuse=1)
    view, buffer = _console_view()

    assert await asyncio.wait_for(run_watch(config, "topic", view, connector=connector), 1.0) == EXIT_USAGE
    assert "Could not connect" in buffer.getvalue()


@pytest.mark.asyncio
async def test_watch_exits_when_connection_is_lost_mid_run():
    config = MonitorConfig()
    config.reconnect.active_delay = 0.01
    config.reconnect.max_attempts = 1
    connector = FakeConnector()
    view, buffer = _console_view()

    task = asyncio.ensure_future(run_watch(config, "topic", view, connector=connector))
    await settle(20)
    connector.current.feed({"type": "start"})
    await settle()
    connector.refuse = 10
    connector.current.drop()

    assert await asyncio.wait_for(task, 1.0) == EXIT_USAGE
    assert len(connector.urls) == 2
    assert "Lost connection" in buffer.getvalue()


def test_main_rejects_bad_server_url(capsys):
    assert main(["--server", "localhost:8080", "replay", "events.jsonl"]) == EXIT_USAGE
    assert "Configuration error" in capsys.readouterr().err


def test_main_replay(tmp_path):
    path = _record(tmp_path, FULL_RUN)

    assert main(["replay", str(path)]) == EXIT_OK
