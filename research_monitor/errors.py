# -*- coding: utf-8 -*-
"""Exception hierarchy for research_monitor."""


class ResearchMonitorError(Exception):
    """Base class for all research_monitor errors."""


class EventParseError(ResearchMonitorError):
    """Raised when an inbound frame cannot be decoded into a RunEvent."""

    def __init__(self, message: str, raw: object = None):
        super().__init__(message)
        self.raw = raw


class ConfigError(ResearchMonitorError):
    """Raised when configuration cannot be loaded or is invalid."""
