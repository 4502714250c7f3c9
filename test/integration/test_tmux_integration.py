"""End-to-end tests against a real tmux server on a private socket."""

import shutil
import time
from unittest.mock import patch

import libtmux
import pytest

from tmux_team.clients.tmux import TmuxClient
from tmux_team.config import WaitSettings
from tmux_team.models.request import RequestStatus
from tmux_team.services.composer import PreambleState
from tmux_team.services.wait_service import wait_for_response

pytestmark = pytest.mark.integration

# Answers every line carrying a wait instruction with "pong" and the matching end marker
RESPONDER = (
    "sh -c 'while read -r line; do "
    'n=$(printf "%s" "$line" | sed -n "s/.*\\"\\([0-9a-f]\\{4\\}\\)---\\".*/\\1/p"); '
    '[ -n "$n" ] && echo pong && echo "---RESPONSE-END-$n---"; '
    "done'"
)


@pytest.fixture(scope="session")
def tmux_available():
    if not shutil.which("tmux"):
        pytest.skip("tmux not installed")
    return True


@pytest.fixture
def server(tmux_available):
    tmux_server = libtmux.Server(
        socket_name=f"tmux-team-test-{time.time_ns()}", config_file="/dev/null"
    )
    yield tmux_server
    tmux_server.cmd("kill-server")


def _new_pane(server, command):
    result = server.cmd(
        "new-session", "-d", "-x", "200", "-y", "50", "-P", "-F", "#{pane_id}", command
    )
    return result.stdout[0].strip()


def _wait_for(client, pane, text, times=1, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        output = client.get_history(pane, tail_lines=50)
        if output.count(text) >= times:
            return output
        time.sleep(0.1)
    pytest.fail(f"{text!r} never appeared in pane {pane}")


def test_send_and_capture(server):
    client = TmuxClient(enter_delay=0.1, server=server)
    pane = _new_pane(server, "cat")

    client.send_keys(pane, "hello from tmux-team")

    # Echoed by the terminal, then printed back by cat
    _wait_for(client, pane, "hello from tmux-team", times=2)


def test_pane_position_lookup(server):
    client = TmuxClient(server=server)
    pane = _new_pane(server, "cat")

    assert client.get_pane_position(pane) == "0.0"
    assert client.get_pane_position("%999") is None


@pytest.mark.slow
def test_wait_round_trip(server, paths):
    client = TmuxClient(enter_delay=0.1, server=server)
    pane = _new_pane(server, RESPONDER)
    settings = WaitSettings(
        timeout=20.0,
        poll_interval=0.5,
        capture_lines=200,
        fallback_lines=100,
        min_wait=0.5,
        idle_threshold=1.0,
    )

    with patch("tmux_team.services.terminal_service.tmux_client", client):
        result = wait_for_response("claude", pane, "ping?", paths, settings, PreambleState())

    assert result.status is RequestStatus.COMPLETED
    assert "pong" in result.response
