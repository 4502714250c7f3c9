"""Response extraction from captured pane text.

Pure functions of (text, nonce): no tmux access, no clock. The reply is anchored
to the echoed wait instruction, the last thing the agent saw before answering.
"""

from typing import List, Optional

from tmux_team.constants import DEFAULT_FALLBACK_LINES
from tmux_team.services.protocol import build_matcher, instruction_anchor
from tmux_team.utils.terminal import clean_terminal_output


def _split_lines(text: str) -> List[str]:
    return clean_terminal_output(text or "").split("\n")


def _find_anchor_line(lines: List[str], nonce: str, before: int) -> Optional[int]:
    anchor = instruction_anchor(nonce).lower()
    for index in range(min(before, len(lines)) - 1, -1, -1):
        if anchor in lines[index].lower():
            return index
    return None


def extract_response(
    text: str, nonce: str, fallback_lines: int = DEFAULT_FALLBACK_LINES
) -> Optional[str]:
    """Return the reply that ends at the last marker line, or None without a marker.

    The reply starts after the echoed instruction line. When that line has scrolled
    out of the capture, the fallback_lines lines preceding the marker are used.
    """
    lines = _split_lines(text)
    matcher = build_matcher(nonce)

    for marker_index in range(len(lines) - 1, -1, -1):
        match = matcher.search(lines[marker_index])
        if match:
            break
    else:
        return None

    anchor_index = _find_anchor_line(lines, nonce, marker_index)
    if anchor_index is not None:
        start = anchor_index + 1
    else:
        start = max(0, marker_index - max(1, fallback_lines))

    body = lines[start:marker_index]
    # Text printed on the marker line before the marker itself
    head = lines[marker_index][: match.start()]
    if head.strip():
        body.append(head)
    return "\n".join(body).strip()


def extract_partial(
    text: str, nonce: str, fallback_lines: int = DEFAULT_FALLBACK_LINES
) -> Optional[str]:
    """Best-effort reply for a request that never printed its marker."""
    lines = _split_lines(text)
    anchor_index = _find_anchor_line(lines, nonce, len(lines))
    if anchor_index is not None:
        body = lines[anchor_index + 1 :]
    else:
        body = lines[-max(1, fallback_lines) :]

    partial = "\n".join(body).strip()
    return partial or None
