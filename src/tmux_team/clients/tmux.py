"""Thin tmux client over libtmux: bracketed paste, capture-pane and pane lookup."""

import logging
import os
import secrets
import time
from typing import List, Optional

import libtmux
from libtmux.exc import LibTmuxException

from tmux_team.constants import ENTER_DELAY_SECONDS, EXCLAMATION_REPLACEMENT

logger = logging.getLogger(__name__)


class TmuxCommandError(Exception):
    """Raised when a tmux command reports an error."""

    pass


class TmuxClient:
    """Run tmux commands against a tmux server, the default one unless given."""

    def __init__(
        self, enter_delay: float = ENTER_DELAY_SECONDS, server: Optional[libtmux.Server] = None
    ):
        self.server = server if server is not None else libtmux.Server()
        self.enter_delay = enter_delay

    def _run(self, *args: str) -> List[str]:
        """Run a tmux command and return its stdout lines."""
        try:
            result = self.server.cmd(*args)
        except LibTmuxException as e:
            raise TmuxCommandError(f"tmux {args[0]} failed: {e}") from e

        if result.stderr:
            raise TmuxCommandError(f"tmux {args[0]} failed: {' '.join(result.stderr).strip()}")
        return list(result.stdout)

    def send_keys(self, pane: str, message: str) -> None:
        """Paste message into pane and press Enter.

        The message goes through a named buffer with bracketed paste so multi-line
        text arrives as one input. Falls back to literal send-keys if the buffer
        route fails.
        """
        payload = message.replace("!", EXCLAMATION_REPLACEMENT)
        if not payload.endswith("\n"):
            payload = f"{payload}\n"
        buffer_name = f"tmt-{os.getpid()}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"

        try:
            self._run("set-buffer", "-b", buffer_name, "--", payload)
            self._run("paste-buffer", "-b", buffer_name, "-d", "-p", "-t", pane)
            if self.enter_delay > 0:
                time.sleep(self.enter_delay)
            self._run("send-keys", "-t", pane, "Enter")
        except TmuxCommandError as e:
            logger.warning(f"Buffer paste to {pane} failed, falling back to send-keys: {e}")
            self._run("send-keys", "-t", pane, "-l", message)
            self._run("send-keys", "-t", pane, "Enter")

    def get_history(self, pane: str, tail_lines: int) -> str:
        """Return the last tail_lines lines of the pane, wrapped lines joined."""
        lines = self._run("capture-pane", "-p", "-J", "-t", pane, "-S", f"-{tail_lines}")
        return "\n".join(lines)

    def get_current_pane(self) -> Optional[str]:
        """Pane id of the caller, from $TMUX_PANE or tmux itself."""
        env_pane = os.environ.get("TMUX_PANE")
        if env_pane:
            return env_pane
        try:
            lines = self._run("display-message", "-p", "#{pane_id}")
        except TmuxCommandError:
            return None
        return lines[0].strip() if lines and lines[0].strip() else None

    def get_pane_position(self, pane: str) -> Optional[str]:
        """Return "<window_index>.<pane_index>" for a pane id, or None."""
        try:
            lines = self._run("display-message", "-p", "-t", pane, "#{window_index}.#{pane_index}")
        except TmuxCommandError:
            return None
        return lines[0].strip() if lines and lines[0].strip() else None


# Module-level singleton
tmux_client = TmuxClient()
