# -*- coding: utf-8 -*-
"""
Logging configuration for research_monitor.

All modules log through the shared loguru ``logger`` exported here. Each
process gets a session directory (``<base>/log_<timestamp>``) that holds the
debug log file and, when recording is enabled, the ``events.jsonl`` frame log.

The base directory defaults to ``.research_monitor/logs`` and can be moved with
the ``RESEARCH_MONITOR_LOG_BASE_DIR`` environment variable.
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_BASE_DIR_ENV = "RESEARCH_MONITOR_LOG_BASE_DIR"
DEFAULT_LOG_BASE_DIR = Path(".research_monitor") / "logs"

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

_LOG_SESSION_DIR: Optional[Path] = None
_CONSOLE_HANDLER_ID: Optional[int] = None
_FILE_HANDLER_ID: Optional[int] = None
_CONSOLE_LEVEL = "INFO"


def get_log_base_dir() -> Path:
    """Return the directory under which session log directories are created."""
    override = os.getenv(LOG_BASE_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return DEFAULT_LOG_BASE_DIR


def get_log_session_dir() -> Path:
    """Return (and create) the log directory for this process."""
    global _LOG_SESSION_DIR
    if _LOG_SESSION_DIR is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        _LOG_SESSION_DIR = get_log_base_dir() / f"log_{timestamp}"
    _LOG_SESSION_DIR.mkdir(parents=True, exist_ok=True)
    return _LOG_SESSION_DIR


def reset_logging_session() -> None:
    """Forget the current session directory so the next lookup creates a new one."""
    global _LOG_SESSION_DIR
    _LOG_SESSION_DIR = None


def setup_logging(debug: bool = False, console: bool = True, log_file: bool = True) -> None:
    """Configure loguru sinks for the process.

    Args:
        debug: Log at DEBUG level instead of INFO
        console: Attach a stderr sink
        log_file: Attach a file sink in the session directory
    """
    global _CONSOLE_HANDLER_ID, _FILE_HANDLER_ID, _CONSOLE_LEVEL

    logger.remove()
    _CONSOLE_HANDLER_ID = None
    _FILE_HANDLER_ID = None
    _CONSOLE_LEVEL = "DEBUG" if debug else "INFO"

    if console:
        _CONSOLE_HANDLER_ID = logger.add(sys.stderr, level=_CONSOLE_LEVEL, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_path = get_log_session_dir() / "research_monitor.log"
        _FILE_HANDLER_ID = logger.add(
            str(log_path),
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="10 MB",
            encoding="utf-8",
            enqueue=False,
        )
        logger.debug(f"[Logging] Session log file: {log_path}")


def suppress_console_logging() -> None:
    """Detach the stderr sink while a full-screen UI owns the terminal."""
    global _CONSOLE_HANDLER_ID
    if _CONSOLE_HANDLER_ID is not None:
        try:
            logger.remove(_CONSOLE_HANDLER_ID)
        except ValueError:
            pass
        _CONSOLE_HANDLER_ID = None


def restore_console_logging() -> None:
    """Re-attach the stderr sink removed by suppress_console_logging()."""
    global _CONSOLE_HANDLER_ID
    if _CONSOLE_HANDLER_ID is None:
        _CONSOLE_HANDLER_ID = logger.add(sys.stderr, level=_CONSOLE_LEVEL, format=CONSOLE_FORMAT, colorize=True)


__all__ = [
    "get_log_base_dir",
    "get_log_session_dir",
    "logger",
    "reset_logging_session",
    "restore_console_logging",
    "setup_logging",
    "suppress_console_logging",
]
