# -*- coding: utf-8 -*-
"""Textual widgets for the research monitor TUI."""

from .notice_modal import NoticeModal
from .run_status_ribbon import RunStatusRibbon
from .stage_graph import StageGraph, StageNode

__all__ = [
    "NoticeModal",
    "RunStatusRibbon",
    "StageGraph",
    "StageNode",
]
