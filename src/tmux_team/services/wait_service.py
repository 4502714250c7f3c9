"""Send-then-wait for a single agent.

State machine: SENT -> POLLING -> COMPLETED | TIMEOUT | ERROR | CANCELLED.
Every terminal state releases the agent's registry entry before returning.
"""

import logging
import time
from typing import Callable, Optional

from tmux_team.clients.state import (
    cleanup_state,
    clear_active_request,
    save_preamble_counters,
    set_active_request,
)
from tmux_team.config import WaitSettings
from tmux_team.constants import REQUEST_TTL_SECONDS
from tmux_team.models.config import Paths
from tmux_team.models.request import ActiveRequest, Request, RequestStatus, WaitResult
from tmux_team.services import terminal_service
from tmux_team.services.composer import (
    PreambleState,
    compose,
    sanitize_for_agent,
    with_wait_instruction,
)
from tmux_team.services.protocol import build_matcher, new_request
from tmux_team.services.settle import SettleDetector
from tmux_team.services.terminal_service import CaptureError, SendError
from tmux_team.utils.cancellation import CancellationToken
from tmux_team.utils.extraction import extract_partial, extract_response

logger = logging.getLogger(__name__)

# Lines of pane output included in the timeout log
LOG_TAIL_LINES = 5

PollCallback = Callable[[str, float], None]
WarningCallback = Callable[[str], None]


def collision_warning(agent: str, request_id: str) -> str:
    return (
        f"Another recent wait request exists for '{agent}' (id: {request_id}). "
        "Results may interleave."
    )


def build_result(
    request: Request, status: RequestStatus, elapsed_seconds: float, **fields
) -> WaitResult:
    return WaitResult(
        target=request.target,
        pane=request.pane,
        status=status,
        request_id=request.request_id,
        nonce=request.nonce,
        marker=request.marker,
        elapsed_ms=int(elapsed_seconds * 1000),
        **fields,
    )


def wait_for_response(
    target: str,
    pane: str,
    message: str,
    paths: Paths,
    settings: WaitSettings,
    preamble: PreambleState,
    cancel_token: Optional[CancellationToken] = None,
    skip_preamble: bool = False,
    on_poll: Optional[PollCallback] = None,
    on_warning: Optional[WarningCallback] = None,
) -> WaitResult:
    """Send message to one agent and wait until its reply settles on the end marker.

    Args:
        target: Agent name, used for the registry, preambles and filters
        pane: tmux pane address of the agent
        message: Message text, without preamble or wait instruction
        paths: Location of the shared state file
        settings: Effective timings for this invocation
        preamble: Preamble settings and counters
        cancel_token: Checked at the top of every poll iteration
        skip_preamble: Disable the preamble for this call
        on_poll: Called with (target, elapsed_seconds) before each sleep
        on_warning: Called with non-fatal warnings (registry collisions)

    Returns:
        WaitResult with status completed, timeout, error or cancelled
    """
    token = cancel_token or CancellationToken()
    request = new_request(target, pane)

    state = cleanup_state(paths, REQUEST_TTL_SECONDS)
    existing = state.requests.get(target)
    if existing is not None:
        warning = collision_warning(target, existing.id)
        if on_warning:
            on_warning(warning)
        else:
            logger.warning(warning)

    set_active_request(
        paths, target, ActiveRequest(id=request.request_id, nonce=request.nonce, pane=pane)
    )
    started_at = time.monotonic()

    try:
        if token.cancelled:
            logger.info(f"[{target}] Request {request.request_id} cancelled before sending")
            return build_result(request, RequestStatus.CANCELLED, 0.0, error="Interrupted.")

        composition = compose(
            with_wait_instruction(message, request.nonce), target, preamble, skip_preamble
        )
        if composition.counters != preamble.counters:
            save_preamble_counters(paths, composition.counters)

        try:
            terminal_service.send_input(pane, sanitize_for_agent(target, composition.text))
        except SendError as e:
            return build_result(
                request, RequestStatus.ERROR, time.monotonic() - started_at, error=str(e)
            )

        logger.info(f"[{target}] Sent request {request.request_id} (nonce {request.nonce})")
        timeout = settings.timeout_for(target)
        detector = SettleDetector(
            build_matcher(request.nonce),
            started_at,
            settings.min_wait_for(target),
            settings.idle_threshold_for(target),
        )

        while True:
            if token.cancelled:
                logger.info(f"[{target}] Request {request.request_id} cancelled")
                return build_result(
                    request,
                    RequestStatus.CANCELLED,
                    time.monotonic() - started_at,
                    error="Interrupted.",
                )

            elapsed = time.monotonic() - started_at
            if elapsed >= timeout:
                tail = "\n".join(detector.last_output.rstrip().splitlines()[-LOG_TAIL_LINES:])
                logger.info(f"[{target}] Timed out after {elapsed:.1f}s, last output:\n{tail}")
                return build_result(
                    request,
                    RequestStatus.TIMEOUT,
                    elapsed,
                    error=f"Timed out waiting for {target} after {int(timeout)}s.",
                    partial_response=extract_partial(
                        detector.last_output, request.nonce, settings.fallback_lines
                    ),
                )

            if on_poll:
                on_poll(target, elapsed)

            time.sleep(settings.poll_interval)

            try:
                output = terminal_service.get_output(pane, settings.capture_lines)
            except CaptureError as e:
                return build_result(
                    request, RequestStatus.ERROR, time.monotonic() - started_at, error=str(e)
                )

            now = time.monotonic()
            if detector.observe(output, now):
                logger.info(f"[{target}] Completed after {now - started_at:.1f}s")
                response = extract_response(output, request.nonce, settings.fallback_lines)
                return build_result(
                    request, RequestStatus.COMPLETED, now - started_at, response=response or ""
                )
    finally:
        clear_active_request(paths, target, request.request_id)
