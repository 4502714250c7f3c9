"""Unit tests for the single-target send-then-wait loop."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from conftest import echoed, nonce_of
from tmux_team.clients.state import load_preamble_counters, load_state, set_active_request
from tmux_team.config import WaitSettings
from tmux_team.models.request import ActiveRequest, RequestStatus
from tmux_team.services.composer import PreambleState
from tmux_team.services.wait_service import wait_for_response
from tmux_team.utils.cancellation import CancellationToken

PANE = "1.0"


@pytest.fixture(autouse=True)
def mock_time(fake_clock):
    with patch("tmux_team.services.wait_service.time") as mock_time:
        mock_time.monotonic.side_effect = fake_clock.monotonic
        mock_time.sleep.side_effect = fake_clock.sleep
        yield mock_time


def _settings(**overrides):
    values = dict(timeout=10.0, poll_interval=1.0, capture_lines=100, fallback_lines=100)
    values.update(overrides)
    return WaitSettings(**values)


def _wait(paths, message="What is 2+2?", target="claude", settings=None, preamble=None, **kwargs):
    return wait_for_response(
        target,
        PANE,
        message,
        paths,
        settings or _settings(),
        preamble or PreambleState(),
        **kwargs,
    )


def _thinking(sent, nonce):
    return echoed(sent, "Thinking...")


def _answered(sent, nonce):
    return echoed(sent, "The answer is 4.", marker=True, nonce=nonce)


class TestWaitCompleted:
    def test_returns_reply_after_output_settles(self, paths, fake_terminal):
        fake_terminal.script(PANE, _thinking, _answered)

        result = _wait(paths)

        assert result.status is RequestStatus.COMPLETED
        assert result.response == "The answer is 4."
        assert result.target == "claude"
        assert result.pane == PANE
        assert result.marker == f"---RESPONSE-END-{result.nonce}---"
        # Marker seen at 2s, stable for the 3s idle threshold
        assert result.elapsed_ms == 5000
        assert len(fake_terminal.capture_calls) == 5

    def test_sent_message_carries_instruction_for_same_nonce(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)

        result = _wait(paths)

        assert len(fake_terminal.sends) == 1
        pane, sent = fake_terminal.sends[0]
        assert pane == PANE
        assert sent.startswith("What is 2+2?\n\n[IMPORTANT:")
        assert nonce_of(sent) == result.nonce
        assert result.marker not in sent

    def test_does_not_complete_before_min_wait(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)

        result = _wait(paths, settings=_settings(min_wait=4.0, idle_threshold=0.5))

        assert result.status is RequestStatus.COMPLETED
        assert result.elapsed_ms == 4000
        assert len(fake_terminal.capture_calls) == 4

    def test_stale_marker_from_previous_request_ignored(self, paths, fake_terminal):
        def stale(sent, nonce):
            return "old reply\n---RESPONSE-END-0000---\n" + echoed(sent, "Working...")

        fake_terminal.script(PANE, stale, stale, stale, stale, _answered)

        result = _wait(paths, settings=_settings(timeout=20.0))

        assert result.status is RequestStatus.COMPLETED
        assert result.response == "The answer is 4."
        assert result.elapsed_ms == 8000

    def test_on_poll_reports_elapsed(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)
        on_poll = MagicMock()

        _wait(paths, on_poll=on_poll)

        assert on_poll.call_count == 4
        on_poll.assert_any_call("claude", 0.0)
        on_poll.assert_called_with("claude", 3.0)

    def test_gemini_message_has_no_exclamation_marks(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)

        _wait(paths, message="Ship it!", target="gemini")

        assert "!" not in fake_terminal.sends[0][1]


class TestWaitTimeout:
    def test_timeout_returns_partial_response(self, paths, fake_terminal):
        def step(count):
            return lambda sent, nonce: echoed(sent, *[f"step {i}" for i in range(1, count + 1)])

        fake_terminal.script(PANE, *[step(i) for i in range(1, 9)])

        result = _wait(paths, settings=_settings(timeout=5.0))

        assert result.status is RequestStatus.TIMEOUT
        assert result.error == "Timed out waiting for claude after 5s."
        assert result.elapsed_ms == 5000
        assert result.partial_response.startswith("step 1\nstep 2")
        assert "step 5" in result.partial_response
        assert "step 6" not in result.partial_response
        assert result.response is None

    def test_timeout_logs_tail_of_output(self, paths, fake_terminal, caplog):
        lines = [f"line {i}" for i in range(1, 9)]
        fake_terminal.script(PANE, lambda sent, nonce: echoed(sent, *lines))

        with caplog.at_level(logging.INFO, logger="tmux_team.services.wait_service"):
            _wait(paths, settings=_settings(timeout=3.0))

        messages = [r.getMessage() for r in caplog.records if "Timed out" in r.getMessage()]
        assert len(messages) == 1
        assert messages[0].endswith("last output:\nline 5\nline 6\nline 7\nline 8\n>")

    def test_agent_timeout_override(self, paths, fake_terminal):
        fake_terminal.script(PANE, _thinking)

        result = _wait(paths, settings=_settings(agent_timeouts={"claude": 2.0}))

        assert result.status is RequestStatus.TIMEOUT
        assert result.elapsed_ms == 2000
        assert result.partial_response == "Thinking...\n>"

    def test_marker_without_settling_times_out(self, paths, fake_terminal):
        def still_printing(count):
            def frame(sent, nonce):
                return echoed(sent, "x", marker=True, nonce=nonce) + "\n" + "y" * count

            return frame

        fake_terminal.script(PANE, *[still_printing(i) for i in range(1, 20)])

        result = _wait(paths, settings=_settings(timeout=6.0))

        assert result.status is RequestStatus.TIMEOUT


class TestWaitErrors:
    def test_send_failure_is_error_without_polling(self, paths, fake_terminal):
        fake_terminal.send_failures.add(PANE)

        result = _wait(paths)

        assert result.status is RequestStatus.ERROR
        assert "Failed to send to pane 1.0" in result.error
        assert fake_terminal.capture_calls == []
        assert load_state(paths).requests == {}

    def test_capture_failure_is_error(self, paths, fake_terminal):
        fake_terminal.capture_failures.add(PANE)

        result = _wait(paths)

        assert result.status is RequestStatus.ERROR
        assert "Failed to capture pane 1.0" in result.error
        assert result.elapsed_ms == 1000
        assert load_state(paths).requests == {}


class TestWaitCancellation:
    def test_cancel_mid_poll(self, paths, fake_terminal):
        token = CancellationToken()
        fake_terminal.script(PANE, _thinking)
        fake_terminal.on_capture = lambda pane, count: count == 2 and token.cancel()

        result = _wait(paths, cancel_token=token)

        assert result.status is RequestStatus.CANCELLED
        assert result.error == "Interrupted."
        assert len(fake_terminal.capture_calls) == 2
        assert load_state(paths).requests == {}

    def test_cancelled_before_send(self, paths, fake_terminal):
        token = CancellationToken()
        token.cancel()
        preamble = PreambleState(preambles={"claude": "You review code."})

        result = _wait(paths, cancel_token=token, preamble=preamble)

        assert result.status is RequestStatus.CANCELLED
        assert result.error == "Interrupted."
        assert result.elapsed_ms == 0
        assert fake_terminal.sends == []
        assert fake_terminal.capture_calls == []
        assert load_state(paths).requests == {}
        assert load_preamble_counters(paths) == {}


class TestWaitRegistry:
    def test_entry_present_while_polling_and_cleared_after(self, paths, fake_terminal):
        seen = []
        fake_terminal.script(PANE, _answered)
        fake_terminal.on_capture = lambda pane, count: seen.append(load_state(paths).requests)

        result = _wait(paths)

        entry = seen[0]["claude"]
        assert entry.id == result.request_id
        assert entry.nonce == result.nonce
        assert entry.pane == PANE
        assert load_state(paths).requests == {}

    def test_collision_warns_and_proceeds(self, paths, fake_terminal):
        set_active_request(paths, "claude", ActiveRequest(id="req_old", nonce="aaaa", pane=PANE))
        fake_terminal.script(PANE, _answered)
        warnings = []

        result = _wait(paths, on_warning=warnings.append)

        assert result.status is RequestStatus.COMPLETED
        assert len(warnings) == 1
        assert "req_old" in warnings[0]
        assert load_state(paths).requests == {}

    def test_collision_without_callback_is_logged(self, paths, fake_terminal, caplog):
        set_active_request(paths, "claude", ActiveRequest(id="req_old", nonce="aaaa", pane=PANE))
        fake_terminal.script(PANE, _answered)

        with caplog.at_level(logging.WARNING, logger="tmux_team.services.wait_service"):
            _wait(paths)

        assert ["req_old" in r.getMessage() for r in caplog.records] == [True]

    def test_collision_with_callback_is_not_logged_twice(self, paths, fake_terminal, caplog):
        set_active_request(paths, "claude", ActiveRequest(id="req_old", nonce="aaaa", pane=PANE))
        fake_terminal.script(PANE, _answered)

        with caplog.at_level(logging.WARNING, logger="tmux_team.services.wait_service"):
            _wait(paths, on_warning=lambda text: None)

        assert caplog.records == []

    def test_other_agents_entries_untouched(self, paths, fake_terminal):
        set_active_request(paths, "codex", ActiveRequest(id="req_codex", nonce="bbbb", pane="1.1"))
        fake_terminal.script(PANE, _answered)

        _wait(paths)

        assert list(load_state(paths).requests) == ["codex"]


class TestWaitPreamble:
    def test_preamble_injected_and_counter_saved(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)
        preamble = PreambleState(preambles={"claude": "You review code."})

        result = _wait(paths, preamble=preamble)

        sent = fake_terminal.sends[0][1]
        assert sent.startswith("[SYSTEM: You review code.]\n\nWhat is 2+2?")
        assert result.response == "The answer is 4."
        assert load_preamble_counters(paths) == {"claude": 1}

    def test_skip_preamble(self, paths, fake_terminal):
        fake_terminal.script(PANE, _answered)
        preamble = PreambleState(preambles={"claude": "You review code."})

        _wait(paths, preamble=preamble, skip_preamble=True)

        assert not fake_terminal.sends[0][1].startswith("[SYSTEM:")
        assert load_preamble_counters(paths) == {}
