# -*- coding: utf-8 -*-
"""
Configuration for research_monitor.

Values are resolved in order: built-in defaults, a YAML file, then
environment variables prefixed with ``RESEARCH_MONITOR_`` (a ``.env`` file in
the working directory is loaded first). The YAML file is the explicit
``--config`` path, else ``./research_monitor.yaml``, else
``~/.config/research_monitor/config.yaml``.

Example YAML:

    server:
      url: https://research.example.com
    reconnect:
      active_delay: 3
      idle_delay: 5
      max_attempts: 10
    pipeline:
      report_stage: synthesize_and_report
      stages:
        - {id: classify_intent_and_topic, name: Intent, icon: "🎯"}
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import yaml
from dotenv import load_dotenv

from research_monitor.errors import ConfigError
from research_monitor.graph_state import DEFAULT_BRANCH_LABEL, DEFAULT_BRANCH_PREFIX, StageSpec
from research_monitor.logger_config import logger

ENV_PREFIX = "RESEARCH_MONITOR_"
DEFAULT_CONFIG_FILENAME = "research_monitor.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "research_monitor" / "config.yaml"

WEBSOCKET_PATH = "/ws"

DEFAULT_STAGES: Tuple[StageSpec, ...] = (
    StageSpec("classify_intent_and_topic", "Intent", "🎯"),
    StageSpec("generate_search_queries", "Query Generation", "🔍"),
    StageSpec("execute_parallel_search", "Parallel Search", "⚡"),
    StageSpec("merge_search_results", "Merge Results", "🔗"),
    StageSpec("synthesize_and_report", "Report", "📝"),
)


@dataclass
class ServerConfig:
    url: str = "http://localhost:8080"

    @property
    def websocket_url(self) -> str:
        return websocket_endpoint(self.url)


@dataclass
class ReconnectConfig:
    active_delay: float = 3.0
    idle_delay: float = 5.0
    max_attempts: Optional[int] = None
    max_consecutive_malformed: int = 20


@dataclass
class PipelineConfig:
    stages: List[StageSpec] = field(default_factory=lambda: list(DEFAULT_STAGES))
    report_stage: str = "synthesize_and_report"
    query_stage: str = "generate_search_queries"
    merge_stage: str = "merge_search_results"
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    branch_label: str = DEFAULT_BRANCH_LABEL
    tick_period: float = 1.0


@dataclass
class MonitorConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        websocket_endpoint(self.server.url)
        if self.reconnect.active_delay <= 0 or self.reconnect.idle_delay <= 0:
            raise ConfigError("reconnect delays must be positive")
        if self.reconnect.max_attempts is not None and self.reconnect.max_attempts < 0:
            raise ConfigError("reconnect.max_attempts must be >= 0")
        if self.reconnect.max_consecutive_malformed < 1:
            raise ConfigError("reconnect.max_consecutive_malformed must be >= 1")
        if self.pipeline.tick_period <= 0:
            raise ConfigError("pipeline.tick_period must be positive")
        if not self.pipeline.branch_prefix:
            raise ConfigError("pipeline.branch_prefix must not be empty")
        ids = [stage.id for stage in self.pipeline.stages]
        if len(set(ids)) != len(ids):
            raise ConfigError(f"pipeline.stages contains duplicate ids: {ids}")


def websocket_endpoint(base_url: str) -> str:
    """Map the server's base URL to its WebSocket endpoint.

    ``https`` selects ``wss``; ``http`` selects ``ws``. ``ws``/``wss`` URLs are
    accepted as-is. The path is always ``/ws``.
    """
    parts = urlsplit(base_url.strip())
    schemes = {"https": "wss", "wss": "wss", "http": "ws", "ws": "ws"}
    scheme = schemes.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise ConfigError(f"server url must be http(s)://host[:port], got {base_url!r}")
    return urlunsplit((scheme, parts.netloc, WEBSOCKET_PATH, "", ""))


def _find_config_file(path: Optional[Path]) -> Optional[Path]:
    if path is not None:
        if not path.exists():
            raise ConfigError(f"config file not found: {path}")
        return path
    for candidate in (Path.cwd() / DEFAULT_CONFIG_FILENAME, USER_CONFIG_PATH):
        if candidate.exists():
            return candidate
    return None


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _parse_stages(raw: Any) -> List[StageSpec]:
    if not isinstance(raw, list) or not raw:
        raise ConfigError("pipeline.stages must be a non-empty list")
    stages = []
    for entry in raw:
        if isinstance(entry, str):
            stages.append(StageSpec(entry, entry))
        elif isinstance(entry, dict) and isinstance(entry.get("id"), str):
            stages.append(StageSpec(entry["id"], str(entry.get("name", entry["id"])), str(entry.get("icon", "•"))))
        else:
            raise ConfigError(f"invalid stage entry: {entry!r}")
    return stages


def _apply_file(config: MonitorConfig, data: Dict[str, Any]) -> None:
    server = _section(data, "server")
    if "url" in server:
        config.server.url = str(server["url"])

    reconnect = _section(data, "reconnect")
    try:
        if "active_delay" in reconnect:
            config.reconnect.active_delay = float(reconnect["active_delay"])
        if "idle_delay" in reconnect:
            config.reconnect.idle_delay = float(reconnect["idle_delay"])
        if "max_attempts" in reconnect:
            value = reconnect["max_attempts"]
            config.reconnect.max_attempts = None if value is None else int(value)
        if "max_consecutive_malformed" in reconnect:
            config.reconnect.max_consecutive_malformed = int(reconnect["max_consecutive_malformed"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid reconnect setting: {e}") from e

    pipeline = _section(data, "pipeline")
    if "stages" in pipeline:
        config.pipeline.stages = _parse_stages(pipeline["stages"])
    for key in ("report_stage", "query_stage", "merge_stage", "branch_prefix", "branch_label"):
        if key in pipeline:
            setattr(config.pipeline, key, str(pipeline[key]))
    if "tick_period" in pipeline:
        try:
            config.pipeline.tick_period = float(pipeline["tick_period"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid pipeline.tick_period: {e}") from e


def _apply_env(config: MonitorConfig) -> None:
    def env(name: str) -> Optional[str]:
        value = os.getenv(ENV_PREFIX + name)
        return value.strip() if value and value.strip() else None

    try:
        if env("SERVER_URL"):
            config.server.url = env("SERVER_URL")
        if env("RECONNECT_ACTIVE_DELAY"):
            config.reconnect.active_delay = float(env("RECONNECT_ACTIVE_DELAY"))
        if env("RECONNECT_IDLE_DELAY"):
            config.reconnect.idle_delay = float(env("RECONNECT_IDLE_DELAY"))
        if env("MAX_RECONNECT_ATTEMPTS"):
            config.reconnect.max_attempts = int(env("MAX_RECONNECT_ATTEMPTS"))
    except ValueError as e:
        raise ConfigError(f"invalid {ENV_PREFIX}* environment value: {e}") from e


def load_config(path: Optional[Path] = None, *, load_env_file: bool = True) -> MonitorConfig:
    """Load and validate the monitor configuration.

    Args:
        path: Explicit YAML file; must exist if given
        load_env_file: Load ``.env`` from the working directory first

    Raises:
        ConfigError: If a file cannot be read or a value is invalid
    """
    if load_env_file:
        load_dotenv(Path.cwd() / ".env", override=False)

    config = MonitorConfig()
    config_file = _find_config_file(path)
    if config_file is not None:
        logger.debug(f"[Config] Loading {config_file}")
        _apply_file(config, _read_yaml(config_file))
    _apply_env(config)
    config.validate()
    return config
