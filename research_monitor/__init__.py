# -*- coding: utf-8 -*-
"""research_monitor: live client for observing research pipeline runs.

Connects to a research server over a WebSocket, tracks pipeline stages as a
node graph (including parallel search branches discovered at runtime) and
renders the streamed report as it arrives.
"""

from research_monitor.connection import ConnectionManager, ConnectionState
from research_monitor.coordinator import ExecutionCoordinator, RunSession
from research_monitor.errors import ConfigError, EventParseError, ResearchMonitorError
from research_monitor.events import EventKind, RunEvent
from research_monitor.graph_state import GraphState, Stage, StageKind, StageStatus
from research_monitor.report import RenderedReport, ReportAccumulator

__version__ = "0.3.0"

__all__ = [
    "ConfigError",
    "ConnectionManager",
    "ConnectionState",
    "EventKind",
    "EventParseError",
    "ExecutionCoordinator",
    "GraphState",
    "RenderedReport",
    "ReportAccumulator",
    "ResearchMonitorError",
    "RunEvent",
    "RunSession",
    "Stage",
    "StageKind",
    "StageStatus",
]
