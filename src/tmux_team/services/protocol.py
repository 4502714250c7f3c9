"""Completion protocol: request ids, nonces and nonce-scoped end markers.

An agent signals the end of its reply by printing a marker line that embeds a nonce
generated for that request only. Markers left in scrollback by earlier requests carry
other nonces and never match.
"""

import re
import secrets
import string
import time
from typing import Iterable, Pattern

from tmux_team.models.request import Request

MARKER_DELIMITER = "---"
MARKER_LABEL = "RESPONSE-END-"
NONCE_BYTES = 2

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def new_request_id() -> str:
    """Correlation id for logs and output; never used for matching."""
    return f"req_{_base36(int(time.time() * 1000))}_{secrets.token_hex(3)}"


def new_nonce(exclude: Iterable[str] = ()) -> str:
    """Fresh random nonce, distinct from every nonce in exclude."""
    taken = {nonce.lower() for nonce in exclude}
    while True:
        nonce = secrets.token_hex(NONCE_BYTES)
        if nonce not in taken:
            return nonce


def build_marker(nonce: str) -> str:
    return f"{MARKER_DELIMITER}{MARKER_LABEL}{nonce}{MARKER_DELIMITER}"


def build_matcher(nonce: str) -> Pattern[str]:
    """Case-insensitive pattern matching the marker for this nonce only."""
    return re.compile(
        rf"-*{re.escape(MARKER_LABEL)}{re.escape(nonce)}\b-*",
        re.IGNORECASE,
    )


def instruction_anchor(nonce: str) -> str:
    """Nonce-bearing fragment of the wait instruction, used to find its echo."""
    return f'"{nonce}{MARKER_DELIMITER}"'


def new_request(target: str, pane: str, exclude_nonces: Iterable[str] = ()) -> Request:
    nonce = new_nonce(exclude_nonces)
    return Request(
        request_id=new_request_id(),
        nonce=nonce,
        target=target,
        pane=pane,
        marker=build_marker(nonce),
    )
