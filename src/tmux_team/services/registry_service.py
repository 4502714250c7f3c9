"""Pane registry service: add, update and remove agents in the project's tmux-team.json.

Edits go through the raw file so the $config section and any extra fields of other
entries survive untouched.
"""

import logging
from typing import Optional

from tmux_team.config import load_local_config_file, save_local_config_file
from tmux_team.constants import LOCAL_SETTINGS_KEY
from tmux_team.models.config import PaneEntry, Paths

logger = logging.getLogger(__name__)

# Names that cannot identify a single agent
RESERVED_AGENT_NAMES = {"all", LOCAL_SETTINGS_KEY}


class AgentExistsError(Exception):
    """Raised when adding an agent name that is already registered."""

    pass


class AgentNotFoundError(Exception):
    """Raised when an agent name is not in the registry."""

    pass


def add_agent(paths: Paths, name: str, pane: str, remark: Optional[str] = None) -> PaneEntry:
    """Register name at pane. Creates tmux-team.json if it does not exist yet."""
    if name in RESERVED_AGENT_NAMES:
        raise ValueError(f"'{name}' is reserved and cannot be used as an agent name.")

    data = load_local_config_file(paths)
    if name in data:
        raise AgentExistsError(f"Agent '{name}' already exists. Use 'tmux-team update' to modify.")

    entry = PaneEntry(pane=pane, remark=remark)
    data[name] = entry.model_dump(exclude_none=True)
    save_local_config_file(paths, data)
    logger.info(f"Registered {name} at pane {pane} in {paths.local_config}")
    return entry


def update_agent(
    paths: Paths, name: str, pane: Optional[str] = None, remark: Optional[str] = None
) -> PaneEntry:
    """Change the pane and/or remark of a registered agent, keeping its other fields."""
    data = load_local_config_file(paths)
    if name == LOCAL_SETTINGS_KEY or name not in data:
        raise AgentNotFoundError(f"Agent '{name}' not found. Use 'tmux-team add' to create.")

    entry = dict(data[name])
    if pane:
        entry["pane"] = pane
    if remark:
        entry["remark"] = remark
    data[name] = entry
    save_local_config_file(paths, data)
    return PaneEntry.model_validate(entry)


def remove_agent(paths: Paths, name: str) -> None:
    data = load_local_config_file(paths)
    if name == LOCAL_SETTINGS_KEY or name not in data:
        raise AgentNotFoundError(f"Agent '{name}' not found.")

    del data[name]
    save_local_config_file(paths, data)
    logger.info(f"Removed {name} from {paths.local_config}")
