"""Shared fixtures: temporary paths, a fake clock and a scripted fake terminal."""

import re
from unittest.mock import patch

import pytest

from tmux_team.models.config import Paths
from tmux_team.services.protocol import build_marker
from tmux_team.services.terminal_service import CaptureError, SendError

NONCE_IN_INSTRUCTION = re.compile(r'"([0-9a-f]{4})---"')


def nonce_of(sent: str) -> str:
    """Recover the nonce from a composed wait-mode message."""
    match = NONCE_IN_INSTRUCTION.search(sent)
    assert match, f"no wait instruction in: {sent!r}"
    return match.group(1)


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTerminal:
    """Stands in for terminal_service: records sends, replays scripted captures.

    A script is a list of frames per pane. Each capture returns the next frame; the
    last frame repeats. A frame is a string or a callable (sent_text, nonce) -> str.
    """

    def __init__(self):
        self.sends = []
        self.scripts = {}
        self.capture_calls = []
        self.send_failures = set()
        self.capture_failures = set()
        self.on_capture = None

    def script(self, pane, *frames):
        self.scripts[pane] = list(frames)

    def last_sent(self, pane):
        for sent_pane, message in reversed(self.sends):
            if sent_pane == pane:
                return message
        return ""

    def send_input(self, pane, message):
        if pane in self.send_failures:
            raise SendError(pane, RuntimeError(f"can't find pane: {pane}"))
        self.sends.append((pane, message))

    def get_output(self, pane, lines):
        self.capture_calls.append(pane)
        if self.on_capture:
            self.on_capture(pane, len(self.capture_calls))
        if pane in self.capture_failures:
            raise CaptureError(pane, RuntimeError("no server running"))

        frames = self.scripts.get(pane, [""])
        count = sum(1 for called in self.capture_calls if called == pane)
        frame = frames[min(count, len(frames)) - 1]
        if callable(frame):
            sent = self.last_sent(pane)
            return frame(sent, nonce_of(sent))
        return frame


def echoed(sent: str, *reply_lines: str, marker: bool = False, nonce: str = "") -> str:
    """Pane text: some scrollback, the echoed input, then reply lines (and marker)."""
    lines = ["$ claude", "Welcome back!", f"> {sent}"]
    lines.extend(reply_lines)
    if marker:
        lines.append(build_marker(nonce))
    lines.append("> ")
    return "\n".join(lines)


@pytest.fixture
def paths(tmp_path):
    global_dir = tmp_path / "global"
    return Paths(
        global_dir=global_dir,
        global_config=global_dir / "config.json",
        local_config=tmp_path / "tmux-team.json",
        state_file=global_dir / "state.json",
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_terminal():
    terminal = FakeTerminal()
    with patch("tmux_team.services.wait_service.terminal_service", terminal), patch(
        "tmux_team.services.broadcast_service.terminal_service", terminal
    ), patch("tmux_team.services.talk_service.terminal_service", terminal):
        yield terminal


@pytest.fixture
def no_tmux_identity(monkeypatch):
    """Run as a caller outside tmux with no agent name set."""
    for name in ("TMUX", "TMUX_PANE", "TMT_AGENT_NAME", "TMUX_TEAM_ACTOR"):
        monkeypatch.delenv(name, raising=False)
