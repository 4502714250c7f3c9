"""Configuration models."""

from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tmux_team.constants import (
    DEFAULT_CAPTURE_LINES,
    DEFAULT_FALLBACK_LINES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PREAMBLE_EVERY,
    DEFAULT_TIMEOUT,
)


class CamelModel(BaseModel):
    """Base model whose JSON form uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaneEntry(CamelModel):
    """A registered agent pane."""

    pane: str
    remark: Optional[str] = None


class AgentConfig(CamelModel):
    """Per-agent settings from the global config."""

    preamble: Optional[str] = None
    timeout: Optional[float] = None


class ConfigDefaults(CamelModel):
    """Timing and capture defaults, in seconds and lines."""

    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    capture_lines: int = DEFAULT_CAPTURE_LINES
    fallback_lines: int = DEFAULT_FALLBACK_LINES
    preamble_every: int = Field(default=DEFAULT_PREAMBLE_EVERY, ge=0)
    min_wait: Optional[float] = None
    idle_threshold: Optional[float] = None


class ResolvedConfig(CamelModel):
    """Configuration after merging defaults, global and local files."""

    mode: Literal["polling", "wait"] = "polling"
    preamble_mode: Literal["always", "disabled"] = "always"
    defaults: ConfigDefaults = Field(default_factory=ConfigDefaults)
    agents: Dict[str, AgentConfig] = Field(default_factory=dict)
    pane_registry: Dict[str, PaneEntry] = Field(default_factory=dict)


class Paths(BaseModel):
    """Filesystem locations used by one invocation."""

    global_dir: Path
    global_config: Path
    local_config: Path
    state_file: Path
