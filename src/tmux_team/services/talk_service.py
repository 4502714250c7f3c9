"""Fire-and-forget delivery: compose and send once per agent, no polling."""

import logging
from typing import List, Mapping

from tmux_team.clients.state import save_preamble_counters
from tmux_team.models.config import PaneEntry, Paths
from tmux_team.models.request import RequestStatus, SendResult
from tmux_team.services import terminal_service
from tmux_team.services.composer import PreambleState, compose, sanitize_for_agent
from tmux_team.services.terminal_service import SendError

logger = logging.getLogger(__name__)


def send_only(
    targets: Mapping[str, PaneEntry],
    message: str,
    paths: Paths,
    preamble: PreambleState,
    skip_preamble: bool = False,
) -> List[SendResult]:
    """Send message to each target in order; one failure does not stop the rest."""
    results: List[SendResult] = []
    counters = dict(preamble.counters)

    for agent, entry in targets.items():
        composition = compose(
            message, agent, preamble.model_copy(update={"counters": counters}), skip_preamble
        )
        counters = composition.counters
        try:
            terminal_service.send_input(entry.pane, sanitize_for_agent(agent, composition.text))
        except SendError as e:
            logger.info(f"Send to {agent} failed: {e}")
            results.append(
                SendResult(target=agent, pane=entry.pane, status=RequestStatus.FAILED, error=str(e))
            )
            continue
        results.append(SendResult(target=agent, pane=entry.pane, status=RequestStatus.SENT))

    if counters != preamble.counters:
        save_preamble_counters(paths, counters)
    return results
