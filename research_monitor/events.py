# -*- coding: utf-8 -*-
"""
Run event model for research_monitor.

This module provides:
1. RunEvent, the immutable typed form of one inbound server frame
2. Decoding of wire frames into RunEvents (EventParseError on bad frames)
3. EventRecorder/EventReader for the optional events.jsonl frame log

Wire Schema (one JSON object per frame):
- type: start | node_start | node_complete | streaming_chunk | complete | error
- node: stage id, required for node_start, node_complete and streaming_chunk
- chunk: text fragment, only on streaming_chunk
- error: error message, only on error
- state: auxiliary summary object, optional on node_complete
- timestamp: server send time in epoch milliseconds (optional)
"""

from __future__ import annotations

import json
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Generator, List, Mapping, Optional, Union

from research_monitor.errors import EventParseError


class EventKind:
    """Event kind constants."""

    RUN_START = "run_start"
    STAGE_START = "stage_start"
    STAGE_COMPLETE = "stage_complete"
    STREAM_CHUNK = "stream_chunk"
    RUN_COMPLETE = "run_complete"
    STAGE_ERROR = "stage_error"


# Wire "type" value -> EventKind
WIRE_TYPES: Dict[str, str] = {
    "start": EventKind.RUN_START,
    "node_start": EventKind.STAGE_START,
    "node_complete": EventKind.STAGE_COMPLETE,
    "streaming_chunk": EventKind.STREAM_CHUNK,
    "complete": EventKind.RUN_COMPLETE,
    "error": EventKind.STAGE_ERROR,
}

KIND_TO_WIRE: Dict[str, str] = {kind: wire for wire, kind in WIRE_TYPES.items()}

# Kinds whose frames must name a stage
_STAGE_REQUIRED = frozenset({EventKind.STAGE_START, EventKind.STAGE_COMPLETE, EventKind.STREAM_CHUNK})


@dataclass(frozen=True)
class RunEvent:
    """One lifecycle event of a research run.

    Attributes:
        kind: One of the EventKind constants
        stage_id: Stage the event refers to (None for run-level events)
        chunk: Streamed text fragment (stream_chunk only)
        error_message: Error text (stage_error only)
        auxiliary: Read-only summary data attached by the server
        timestamp_ms: Server send time in epoch milliseconds, if provided
    """

    kind: str
    stage_id: Optional[str] = None
    chunk: Optional[str] = None
    error_message: Optional[str] = None
    auxiliary: Optional[Mapping[str, Any]] = None
    timestamp_ms: Optional[int] = None

    @classmethod
    def from_message(cls, message: Any) -> "RunEvent":
        """Build an event from a decoded wire message.

        Raises:
            EventParseError: If the message is not a well-formed event
        """
        if not isinstance(message, dict):
            raise EventParseError(f"frame is not a JSON object: {type(message).__name__}", message)

        wire_type = message.get("type")
        kind = WIRE_TYPES.get(wire_type) if isinstance(wire_type, str) else None
        if kind is None:
            raise EventParseError(f"unknown event type: {wire_type!r}", message)

        stage_id = _optional_str(message, "node")
        chunk = _optional_str(message, "chunk")
        error_message = _optional_str(message, "error")

        if kind in _STAGE_REQUIRED and not stage_id:
            raise EventParseError(f"'{wire_type}' frame is missing 'node'", message)

        state = message.get("state")
        if state is not None and not isinstance(state, dict):
            raise EventParseError("'state' must be an object", message)

        timestamp = message.get("timestamp")
        if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
            raise EventParseError("'timestamp' must be a number", message)
        if isinstance(timestamp, float) and not math.isfinite(timestamp):
            raise EventParseError("'timestamp' must be finite", message)

        return cls(
            kind=kind,
            stage_id=stage_id,
            chunk=chunk,
            error_message=error_message,
            auxiliary=MappingProxyType(dict(state)) if state is not None else None,
            timestamp_ms=int(timestamp) if timestamp is not None else None,
        )

    def to_message(self) -> Dict[str, Any]:
        """Encode the event back into its wire form."""
        message: Dict[str, Any] = {"type": KIND_TO_WIRE[self.kind]}
        if self.stage_id is not None:
            message["node"] = self.stage_id
        if self.chunk is not None:
            message["chunk"] = self.chunk
        if self.error_message is not None:
            message["error"] = self.error_message
        if self.auxiliary is not None:
            message["state"] = dict(self.auxiliary)
        if self.timestamp_ms is not None:
            message["timestamp"] = self.timestamp_ms
        return message

    def aux(self, key: str, default: Any = None) -> Any:
        """Look up a key in the auxiliary data."""
        if self.auxiliary is None:
            return default
        return self.auxiliary.get(key, default)


def _optional_str(message: Dict[str, Any], key: str) -> Optional[str]:
    value = message.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EventParseError(f"'{key}' must be a string", message)
    return value


def decode_frame(frame: Union[str, bytes]) -> RunEvent:
    """Decode one raw transport frame into a RunEvent.

    Raises:
        EventParseError: If the frame is not valid JSON or not a valid event
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EventParseError(f"frame is not valid UTF-8: {e}", frame) from e
    try:
        message = json.loads(frame)
    except json.JSONDecodeError as e:
        raise EventParseError(f"frame is not valid JSON: {e.msg}", frame) from e
    except (ValueError, RecursionError) as e:
        raise EventParseError(f"frame is not valid JSON: {e}", frame) from e
    return RunEvent.from_message(message)


class EventRecorder:
    """Appends every inbound frame to events.jsonl.

    Frames are stored verbatim (including malformed ones) so a session can be
    replayed through the same decoding path later.

    Usage:
        recorder = EventRecorder("/path/to/log/dir")
        recorder.record('{"type": "start"}')
        recorder.close()
    """

    def __init__(self, log_dir: Union[str, Path]):
        self._log_dir = Path(log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = self._log_dir / "events.jsonl"
        self._lock = threading.Lock()
        self._file_handle = open(self._file_path, "a", encoding="utf-8", buffering=1)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def record(self, frame: Union[str, bytes]) -> None:
        """Append one raw frame."""
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")
        line = json.dumps({"timestamp": datetime.now().isoformat(), "frame": frame}, ensure_ascii=False)
        with self._lock:
            if self._file_handle:
                self._file_handle.write(line + "\n")

    def close(self) -> None:
        with self._lock:
            if self._file_handle:
                self._file_handle.close()
                self._file_handle = None


class EventReader:
    """Reads frames back from an events.jsonl file written by EventRecorder.

    Usage:
        reader = EventReader("/path/to/events.jsonl")
        for frame in reader.frames():
            ...
    """

    def __init__(self, file_path: Union[str, Path]):
        self._file_path = Path(file_path)

    def exists(self) -> bool:
        return self._file_path.exists()

    def frames(self) -> Generator[str, None, None]:
        """Yield recorded raw frames in order, skipping corrupt lines."""
        with self._file_path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(entry, dict) and isinstance(entry.get("frame"), str):
                    yield entry["frame"]

    def read_all(self) -> List[str]:
        return list(self.frames())
