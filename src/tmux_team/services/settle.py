"""Settle detection: decides when an agent's output counts as final."""

import logging
from typing import Pattern

from tmux_team.constants import SETTLE_THRESHOLD_CAP, SETTLE_THRESHOLD_RATIO

logger = logging.getLogger(__name__)


def default_threshold(timeout: float) -> float:
    """Settle threshold for a timeout: capped, but short timeouts stay usable."""
    return min(SETTLE_THRESHOLD_CAP, SETTLE_THRESHOLD_RATIO * timeout)


class SettleDetector:
    """Track one pane's output and report when it has settled on the marker.

    Completion requires all of:
    - at least min_wait seconds since the request started,
    - the marker matcher matches the current text,
    - the text unchanged for at least idle_threshold seconds.

    A marker seen mid-stream therefore does not end the wait while the agent is
    still printing.
    """

    def __init__(
        self,
        matcher: Pattern[str],
        started_at: float,
        min_wait: float,
        idle_threshold: float,
    ):
        self.matcher = matcher
        self.started_at = started_at
        self.min_wait = min_wait
        self.idle_threshold = idle_threshold
        self.last_output = ""
        self.last_output_change_at = started_at

    def observe(self, output: str, now: float) -> bool:
        """Feed a new capture taken at now; return True once output has settled."""
        if output != self.last_output:
            self.last_output = output
            self.last_output_change_at = now

        elapsed = now - self.started_at
        idle = now - self.last_output_change_at
        if elapsed < self.min_wait:
            return False
        if not self.matcher.search(output):
            return False
        if idle < self.idle_threshold:
            logger.debug(f"Marker seen, waiting for output to settle (idle {idle:.1f}s)")
            return False
        return True
