"""Configuration loading.

Precedence (lowest to highest): defaults, global config.json, the local
tmux-team.json ``$config`` section, then command-line flags (applied by the caller).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from tmux_team.constants import (
    APP_DIR_NAME,
    CONFIG_FILENAME,
    LEGACY_DIR_NAME,
    LOCAL_CONFIG_FILENAME,
    LOCAL_SETTINGS_KEY,
    MIN_POLL_INTERVAL,
    STATE_FILENAME,
)
from tmux_team.models.config import ConfigDefaults, Paths, ResolvedConfig
from tmux_team.services.settle import default_threshold

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base class for configuration problems reported to the user."""

    pass


class ConfigParseError(ConfigError):
    """Raised when a config file exists but is not valid JSON."""

    def __init__(self, file_path: Path, cause: Exception):
        super().__init__(f"Invalid JSON in {file_path}: {cause}")
        self.file_path = file_path
        self.cause = cause


class ConfigValidationError(ConfigError):
    """Raised when config files parse but hold values of the wrong shape."""

    def __init__(self, paths: Paths, cause: ValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in cause.errors()
        )
        super().__init__(
            f"Invalid configuration ({problems}). Check {paths.global_config} "
            f"and {paths.local_config}."
        )
        self.cause = cause


def resolve_global_dir() -> Path:
    """Resolve the global config directory.

    Priority:
    1. TMUX_TEAM_HOME
    2. $XDG_CONFIG_HOME/tmux-team
    3. ~/.config/tmux-team if it exists (unless only ~/.tmux-team has a config.json)
    4. ~/.tmux-team if it exists
    5. ~/.config/tmux-team for new installs
    """
    explicit = os.getenv("TMUX_TEAM_HOME")
    if explicit:
        return Path(explicit)

    xdg_home = os.getenv("XDG_CONFIG_HOME")
    if xdg_home:
        return Path(xdg_home) / APP_DIR_NAME

    home = Path.home()
    xdg_path = home / ".config" / APP_DIR_NAME
    legacy_path = home / LEGACY_DIR_NAME

    if xdg_path.exists():
        if (
            legacy_path.exists()
            and (legacy_path / CONFIG_FILENAME).exists()
            and not (xdg_path / CONFIG_FILENAME).exists()
        ):
            return legacy_path
        return xdg_path

    if legacy_path.exists():
        return legacy_path

    return xdg_path


def resolve_paths(cwd: Optional[Path] = None) -> Paths:
    global_dir = resolve_global_dir()
    return Paths(
        global_dir=global_dir,
        global_config=global_dir / CONFIG_FILENAME,
        local_config=(cwd or Path.cwd()) / LOCAL_CONFIG_FILENAME,
        state_file=global_dir / STATE_FILENAME,
    )


def _load_json_file(file_path: Path) -> Optional[Dict[str, Any]]:
    if not file_path.exists():
        return None
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigParseError(file_path, e) from e
    if not isinstance(data, dict):
        raise ConfigParseError(file_path, ValueError("top-level value must be an object"))
    return data


def load_local_config_file(paths: Paths) -> Dict[str, Any]:
    """Raw local config, $config section and pane entries alike, for editing."""
    return _load_json_file(paths.local_config) or {}


def save_local_config_file(paths: Paths, data: Dict[str, Any]) -> None:
    paths.local_config.write_text(
        json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )


def load_config(paths: Paths) -> ResolvedConfig:
    """Load and merge configuration from all tiers."""
    merged: Dict[str, Any] = {}

    global_config = _load_json_file(paths.global_config)
    if global_config:
        for key in ("mode", "preambleMode", "agents"):
            if key in global_config:
                merged[key] = global_config[key]
        if "defaults" in global_config:
            merged["defaults"] = global_config["defaults"]

    local_config = _load_json_file(paths.local_config)
    pane_registry: Dict[str, Any] = {}
    if local_config:
        local_settings = local_config.get(LOCAL_SETTINGS_KEY) or {}
        for key in ("mode", "preambleMode"):
            if local_settings.get(key):
                merged[key] = local_settings[key]
        pane_registry = {
            name: entry for name, entry in local_config.items() if name != LOCAL_SETTINGS_KEY
        }

    merged["paneRegistry"] = pane_registry
    try:
        config = ResolvedConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigValidationError(paths, e) from e
    logger.debug(
        f"Loaded config: mode={config.mode} agents={list(config.pane_registry)} "
        f"global={paths.global_config} local={paths.local_config}"
    )
    return config


class WaitSettings(BaseModel):
    """Effective wait-mode timings for one invocation, in seconds."""

    timeout: float
    poll_interval: float
    capture_lines: int
    fallback_lines: int
    min_wait: Optional[float] = None
    idle_threshold: Optional[float] = None
    agent_timeouts: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_config(
        cls, config: ResolvedConfig, timeout_override: Optional[float] = None
    ) -> "WaitSettings":
        defaults: ConfigDefaults = config.defaults
        agent_timeouts: Dict[str, float] = {}
        if timeout_override is None:
            agent_timeouts = {
                name: agent.timeout
                for name, agent in config.agents.items()
                if agent.timeout is not None
            }
        return cls(
            timeout=timeout_override if timeout_override is not None else defaults.timeout,
            poll_interval=max(MIN_POLL_INTERVAL, defaults.poll_interval),
            capture_lines=defaults.capture_lines,
            fallback_lines=defaults.fallback_lines,
            min_wait=defaults.min_wait,
            idle_threshold=defaults.idle_threshold,
            agent_timeouts=agent_timeouts,
        )

    def timeout_for(self, agent: str) -> float:
        return self.agent_timeouts.get(agent, self.timeout)

    def min_wait_for(self, agent: str) -> float:
        if self.min_wait is not None:
            return self.min_wait
        return default_threshold(self.timeout_for(agent))

    def idle_threshold_for(self, agent: str) -> float:
        if self.idle_threshold is not None:
            return self.idle_threshold
        return default_threshold(self.timeout_for(agent))
