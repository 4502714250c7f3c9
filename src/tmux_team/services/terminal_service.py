"""Terminal service: send to and capture from agent panes."""

import logging

from tmux_team.clients.tmux import tmux_client
from tmux_team.utils.terminal import clean_terminal_output

logger = logging.getLogger(__name__)


class SendError(Exception):
    """Raised when a message could not be delivered to a pane."""

    def __init__(self, pane: str, cause: Exception):
        super().__init__(f"Failed to send to pane {pane}: {cause}")
        self.pane = pane
        self.cause = cause


class CaptureError(Exception):
    """Raised when a pane's output could not be captured."""

    def __init__(self, pane: str, cause: Exception):
        super().__init__(f"Failed to capture pane {pane}: {cause}")
        self.pane = pane
        self.cause = cause


def send_input(pane: str, message: str) -> None:
    """Send message to pane. Fire-and-forget: no acknowledgment is awaited."""
    try:
        tmux_client.send_keys(pane, message)
    except Exception as e:
        logger.error(f"Failed to send input to pane {pane}: {e}")
        raise SendError(pane, e) from e
    logger.info(f"Sent input to pane: {pane}")


def get_output(pane: str, lines: int) -> str:
    """Capture the last lines of pane output with control sequences removed."""
    try:
        output = tmux_client.get_history(pane, tail_lines=lines)
    except Exception as e:
        logger.error(f"Failed to get output from pane {pane}: {e}")
        raise CaptureError(pane, e) from e
    return clean_terminal_output(output)
