"""Active-request registry and preamble counters, stored in the global state file.

The registry is advisory: it only lets the next wait on the same agent warn that an
earlier request may still be in flight. It takes no locks.
"""

import logging
import time
from typing import Dict, Optional

from tmux_team.models.config import Paths
from tmux_team.models.request import ActiveRequest, StateFile

logger = logging.getLogger(__name__)


def load_state(paths: Paths) -> StateFile:
    """Load the state file, falling back to an empty state if missing or corrupt."""
    if not paths.state_file.exists():
        return StateFile()

    try:
        return StateFile.model_validate_json(paths.state_file.read_text(encoding="utf-8"))
    except ValueError as e:
        logger.warning(f"Ignoring unreadable state file {paths.state_file}: {e}")
        return StateFile()


def save_state(paths: Paths, state: StateFile) -> None:
    paths.global_dir.mkdir(parents=True, exist_ok=True)
    paths.state_file.write_text(
        state.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8"
    )


def cleanup_state(paths: Paths, ttl_seconds: float) -> StateFile:
    """Drop active requests older than ttl_seconds and return the remaining state."""
    state = load_state(paths)
    now_ms = int(time.time() * 1000)
    ttl_ms = max(1.0, ttl_seconds) * 1000

    fresh = {
        agent: request
        for agent, request in state.requests.items()
        if now_ms - request.started_at_ms <= ttl_ms
    }
    if len(fresh) != len(state.requests):
        logger.debug(f"Dropped {len(state.requests) - len(fresh)} expired active request(s)")
        state.requests = fresh
        save_state(paths, state)
    return state


def set_active_request(paths: Paths, agent: str, request: ActiveRequest) -> None:
    state = load_state(paths)
    state.requests[agent] = request
    save_state(paths, state)


def clear_active_request(paths: Paths, agent: str, request_id: Optional[str] = None) -> None:
    """Remove the agent's entry; with request_id, only if it still belongs to that request."""
    state = load_state(paths)
    current = state.requests.get(agent)
    if current is None:
        return
    if request_id and current.id != request_id:
        return
    del state.requests[agent]
    save_state(paths, state)


def load_preamble_counters(paths: Paths) -> Dict[str, int]:
    return dict(load_state(paths).preamble_counters)


def save_preamble_counters(paths: Paths, counters: Dict[str, int]) -> None:
    state = load_state(paths)
    state.preamble_counters = dict(counters)
    save_state(paths, state)
