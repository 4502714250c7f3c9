"""Identity resolution: which registered agent (if any) is running this command."""

import logging
import os
from typing import Dict, List, Mapping, NamedTuple, Optional

from tmux_team.clients.tmux import tmux_client
from tmux_team.models.config import PaneEntry

logger = logging.getLogger(__name__)

ACTOR_ENV_VARS = ("TMT_AGENT_NAME", "TMUX_TEAM_ACTOR")
DEFAULT_ACTOR = "human"


class ActorResolution(NamedTuple):
    actor: str
    source: str  # "pane", "env" or "default"
    warning: Optional[str] = None


def _env_actor() -> Optional[str]:
    for name in ACTOR_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _find_agent_by_pane(pane_registry: Mapping[str, PaneEntry], *pane_ids: str) -> Optional[str]:
    wanted = {pane_id for pane_id in pane_ids if pane_id}
    for agent_name, entry in pane_registry.items():
        if entry.pane in wanted:
            return agent_name
    return None


def resolve_actor(pane_registry: Mapping[str, PaneEntry]) -> ActorResolution:
    """Resolve the caller, preferring the pane registry over environment variables."""
    env_actor = _env_actor()

    current_pane = tmux_client.get_current_pane() if os.environ.get("TMUX") else None
    if not current_pane:
        if env_actor:
            return ActorResolution(env_actor, "env")
        return ActorResolution(DEFAULT_ACTOR, "default")

    position = tmux_client.get_pane_position(current_pane)
    pane_agent = _find_agent_by_pane(pane_registry, current_pane, position or "")
    pane_label = position or current_pane

    if pane_agent:
        if env_actor and env_actor != pane_agent:
            return ActorResolution(
                pane_agent,
                "pane",
                f'Identity mismatch: TMT_AGENT_NAME="{env_actor}" but pane {pane_label} '
                f'is registered to "{pane_agent}". Using pane identity.',
            )
        return ActorResolution(pane_agent, "pane")

    if env_actor:
        return ActorResolution(
            env_actor,
            "env",
            f"Unregistered pane: pane {pane_label} is not in registry. "
            f'Using TMT_AGENT_NAME="{env_actor}".',
        )
    return ActorResolution(DEFAULT_ACTOR, "default")


class BroadcastTargets(NamedTuple):
    targets: Dict[str, PaneEntry]
    skipped: List[str]
    warning: Optional[str]


def exclude_actor(pane_registry: Mapping[str, PaneEntry]) -> BroadcastTargets:
    """Split the registry into broadcast targets and the caller's own entry."""
    resolution = resolve_actor(pane_registry)
    targets = {name: entry for name, entry in pane_registry.items() if name != resolution.actor}
    skipped = [name for name in pane_registry if name == resolution.actor]
    if skipped:
        logger.debug(f"Skipping caller's own pane: {resolution.actor}")
    return BroadcastTargets(targets, skipped, resolution.warning)
