"""Send-then-wait for every registered agent in one cooperative polling loop.

Agents are polled round-robin in registration order. Captures run one after another,
so one iteration costs the sum of the capture latencies; the only suspension point
is the shared sleep between iterations. Each agent keeps its own timeout clock.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional

from tmux_team.clients.state import (
    cleanup_state,
    clear_active_request,
    save_preamble_counters,
    set_active_request,
)
from tmux_team.config import WaitSettings
from tmux_team.constants import REQUEST_TTL_SECONDS
from tmux_team.models.config import PaneEntry, Paths
from tmux_team.models.request import (
    ActiveRequest,
    BroadcastResult,
    BroadcastSummary,
    Request,
    RequestStatus,
    WaitResult,
)
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
from tmux_team.services.wait_service import (
    PollCallback,
    WarningCallback,
    build_result,
    collision_warning,
)
from tmux_team.utils.cancellation import CancellationToken
from tmux_team.utils.extraction import extract_partial, extract_response
from tmux_team.utils.identity import exclude_actor

logger = logging.getLogger(__name__)


@dataclass
class WaitState:
    """Per-agent polling state. Frozen once status leaves PENDING."""

    agent: str
    request: Request
    timeout: float
    started_at: float
    detector: SettleDetector
    status: RequestStatus = RequestStatus.PENDING
    result: Optional[WaitResult] = None

    @property
    def pending(self) -> bool:
        return self.status is RequestStatus.PENDING


def _finish(
    state: WaitState, status: RequestStatus, now: float, paths: Paths, **fields
) -> None:
    state.status = status
    state.result = build_result(state.request, status, now - state.started_at, **fields)
    clear_active_request(paths, state.agent, state.request.request_id)
    logger.info(f"[{state.agent}] {status.value} after {now - state.started_at:.1f}s")


def _summarize(total: int, states: List[WaitState], skipped: List[str]) -> BroadcastSummary:
    return BroadcastSummary(
        total=total,
        completed=sum(1 for s in states if s.status is RequestStatus.COMPLETED),
        timeout=sum(1 for s in states if s.status is RequestStatus.TIMEOUT),
        error=sum(1 for s in states if s.status is RequestStatus.ERROR),
        skipped=len(skipped),
    )


def _final_status(states: List[WaitState], cancelled: bool) -> RequestStatus:
    if not states or all(s.status is RequestStatus.ERROR for s in states):
        return RequestStatus.ERROR
    if cancelled:
        return RequestStatus.CANCELLED
    if any(s.status is RequestStatus.TIMEOUT for s in states):
        return RequestStatus.TIMEOUT
    if any(s.status is RequestStatus.ERROR for s in states):
        return RequestStatus.ERROR
    return RequestStatus.COMPLETED


def broadcast_and_wait(
    pane_registry: Mapping[str, PaneEntry],
    message: str,
    paths: Paths,
    settings: WaitSettings,
    preamble: PreambleState,
    cancel_token: Optional[CancellationToken] = None,
    skip_preamble: bool = False,
    on_poll: Optional[PollCallback] = None,
    on_warning: Optional[WarningCallback] = None,
) -> BroadcastResult:
    """Send message to every registered agent except the caller and wait for all replies.

    A send or capture failure only ends that agent's request. Cancellation halts the
    loop and releases every registry entry; the partial aggregate is still returned.
    """
    token = cancel_token or CancellationToken()

    def warn(text: str) -> None:
        if on_warning:
            on_warning(text)
        else:
            logger.warning(text)

    selection = exclude_actor(pane_registry)
    if selection.warning:
        warn(selection.warning)

    existing = cleanup_state(paths, REQUEST_TTL_SECONDS).requests
    states: List[WaitState] = []
    counters = dict(preamble.counters)
    cancelled = False
    broadcast_started = time.monotonic()

    try:
        # Phase 1: send to every agent with its own nonce
        for agent, entry in selection.targets.items():
            if token.cancelled:
                cancelled = True
                break

            request = new_request(
                agent, entry.pane, exclude_nonces=[s.request.nonce for s in states]
            )
            if agent in existing:
                warn(collision_warning(agent, existing[agent].id))
            set_active_request(
                paths,
                agent,
                ActiveRequest(id=request.request_id, nonce=request.nonce, pane=entry.pane),
            )

            composition = compose(
                with_wait_instruction(message, request.nonce),
                agent,
                preamble.model_copy(update={"counters": counters}),
                skip_preamble,
            )
            counters = composition.counters

            started_at = time.monotonic()
            state = WaitState(
                agent=agent,
                request=request,
                timeout=settings.timeout_for(agent),
                started_at=started_at,
                detector=SettleDetector(
                    build_matcher(request.nonce),
                    started_at,
                    settings.min_wait_for(agent),
                    settings.idle_threshold_for(agent),
                ),
            )
            states.append(state)

            try:
                terminal_service.send_input(
                    entry.pane, sanitize_for_agent(agent, composition.text)
                )
            except SendError as e:
                _finish(state, RequestStatus.ERROR, time.monotonic(), paths, error=str(e))

        if counters != preamble.counters:
            save_preamble_counters(paths, counters)

        if states and all(s.status is RequestStatus.ERROR for s in states):
            logger.error("Failed to send to every agent")
        else:
            # Phase 2: poll every pending agent until none is left
            while any(s.pending for s in states):
                if cancelled or token.cancelled:
                    cancelled = True
                    break

                now = time.monotonic()
                for state in states:
                    if state.pending and now - state.started_at >= state.timeout:
                        _finish(
                            state,
                            RequestStatus.TIMEOUT,
                            now,
                            paths,
                            error=f"Timed out waiting for {state.agent} "
                            f"after {int(state.timeout)}s.",
                            partial_response=extract_partial(
                                state.detector.last_output,
                                state.request.nonce,
                                settings.fallback_lines,
                            ),
                        )

                pending = [s for s in states if s.pending]
                if not pending:
                    break

                if on_poll:
                    on_poll(f"{len(pending)} agent(s)", now - broadcast_started)

                time.sleep(settings.poll_interval)

                for state in pending:
                    try:
                        output = terminal_service.get_output(
                            state.request.pane, settings.capture_lines
                        )
                    except CaptureError as e:
                        _finish(state, RequestStatus.ERROR, time.monotonic(), paths, error=str(e))
                        continue

                    now = time.monotonic()
                    if state.detector.observe(output, now):
                        response = extract_response(
                            output, state.request.nonce, settings.fallback_lines
                        )
                        _finish(
                            state, RequestStatus.COMPLETED, now, paths, response=response or ""
                        )

        if cancelled:
            now = time.monotonic()
            for state in states:
                if state.pending:
                    _finish(state, RequestStatus.CANCELLED, now, paths, error="Interrupted.")
    finally:
        for state in states:
            if state.pending:
                clear_active_request(paths, state.agent, state.request.request_id)

    return BroadcastResult(
        status=_final_status(states, cancelled),
        summary=_summarize(len(selection.targets), states, selection.skipped),
        results=[s.result for s in states if s.result is not None],
        skipped=selection.skipped,
        cancelled=cancelled,
    )
