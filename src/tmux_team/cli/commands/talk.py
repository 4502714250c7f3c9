"""Talk command for tmux-team CLI."""

import sys
import time
from typing import List

import click

from tmux_team.cli.commands.common import (
    CommandError,
    echo_json,
    load_project,
    require_agent,
    warn,
)
from tmux_team.clients.state import load_preamble_counters
from tmux_team.config import WaitSettings
from tmux_team.constants import NON_TTY_PROGRESS_INTERVAL, ExitCodes
from tmux_team.models.config import Paths, ResolvedConfig
from tmux_team.models.request import BroadcastResult, RequestStatus, SendResult, WaitResult
from tmux_team.services import broadcast_service, talk_service, wait_service
from tmux_team.services.composer import PreambleState
from tmux_team.utils.cancellation import CancellationToken, interrupt_handler
from tmux_team.utils.identity import exclude_actor
from tmux_team.utils.logging import setup_logging


class ProgressLine:
    """Renders "waiting" progress: a redrawn line on a TTY, periodic stderr lines otherwise."""

    def __init__(self, enabled: bool):
        self.enabled = enabled
        self.is_tty = sys.stdout.isatty()
        self._drawn = False
        self._last_logged = None

    def __call__(self, label: str, elapsed: float) -> None:
        if not self.enabled:
            return
        seconds = max(0, int(elapsed))
        if self.is_tty:
            click.echo(f"\r⏳ Waiting for {label}... ({seconds}s)", nl=False)
            self._drawn = True
        elif self._last_logged is None or elapsed - self._last_logged >= NON_TTY_PROGRESS_INTERVAL:
            self._last_logged = elapsed
            click.echo(f"[tmux-team] Waiting for {label} ({seconds}s elapsed)", err=True)

    def clear(self) -> None:
        if self._drawn:
            click.echo("\r" + " " * 80 + "\r", nl=False)
            self._drawn = False


def _print_response(result: WaitResult) -> None:
    if result.status is RequestStatus.COMPLETED:
        click.echo(click.style(f"─── Response from {result.target} ({result.pane}) ───", fg="cyan"))
        click.echo(result.response or "")
    elif result.partial_response:
        click.echo(
            click.style(
                f"─── Partial response from {result.target} ({result.pane}) ───", fg="yellow"
            )
        )
        click.echo(result.partial_response)
    else:
        warn(f"{result.target}: {result.error or result.status.value}")


def _send(
    target: str,
    text: str,
    config: ResolvedConfig,
    paths: Paths,
    preamble: PreambleState,
    no_preamble: bool,
    as_json: bool,
) -> None:
    if target == "all":
        selection = exclude_actor(config.pane_registry)
        if selection.warning:
            warn(selection.warning)
        targets = selection.targets
    else:
        targets = {target: config.pane_registry[target]}

    results: List[SendResult] = talk_service.send_only(targets, text, paths, preamble, no_preamble)

    if as_json:
        outputs = [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in results]
        echo_json({"target": "all", "results": outputs} if target == "all" else outputs[0])
    else:
        for result in results:
            if result.status is RequestStatus.SENT:
                click.echo(
                    f"{click.style('→', fg='green')} Sent to "
                    f"{click.style(result.target, fg='cyan')} ({result.pane})"
                )
            else:
                warn(f"Failed to send to {result.target}")

    failed = [r for r in results if r.status is RequestStatus.FAILED]
    if results and len(failed) == len(results):
        raise CommandError(f"Failed to send to pane {failed[0].pane}. Is tmux running?")


def _wait_single(
    target: str,
    text: str,
    config: ResolvedConfig,
    paths: Paths,
    settings: WaitSettings,
    preamble: PreambleState,
    no_preamble: bool,
    as_json: bool,
) -> None:
    progress = ProgressLine(enabled=not as_json)
    token = CancellationToken()
    with interrupt_handler(token):
        result = wait_service.wait_for_response(
            target,
            config.pane_registry[target].pane,
            text,
            paths,
            settings,
            preamble,
            cancel_token=token,
            skip_preamble=no_preamble,
            on_poll=progress,
            on_warning=warn,
        )
    progress.clear()

    if as_json:
        echo_json(result.to_output())
    elif result.status is not RequestStatus.ERROR and result.status is not RequestStatus.CANCELLED:
        _print_response(result)

    if result.status is RequestStatus.COMPLETED:
        return
    if result.status is RequestStatus.TIMEOUT:
        raise CommandError(result.error or "Timed out.", ExitCodes.TIMEOUT)
    raise CommandError(result.error or f"Request to {target} failed.")


def _wait_broadcast(
    text: str,
    config: ResolvedConfig,
    paths: Paths,
    settings: WaitSettings,
    preamble: PreambleState,
    no_preamble: bool,
    as_json: bool,
) -> None:
    progress = ProgressLine(enabled=not as_json)
    token = CancellationToken()
    with interrupt_handler(token):
        result: BroadcastResult = broadcast_service.broadcast_and_wait(
            config.pane_registry,
            text,
            paths,
            settings,
            preamble,
            cancel_token=token,
            skip_preamble=no_preamble,
            on_poll=progress,
            on_warning=warn,
        )
    progress.clear()

    summary = result.summary
    if as_json:
        echo_json(result.to_output())
    else:
        for item in result.results:
            _print_response(item)
            click.echo()
        click.echo(
            f"Summary: {summary.completed} completed, {summary.timeout} timed out, "
            f"{summary.error} failed, {summary.skipped} skipped (of {summary.total})"
        )

    if result.cancelled:
        raise CommandError("Interrupted.")
    if result.status is RequestStatus.TIMEOUT:
        raise CommandError(f"{summary.timeout} agent(s) timed out.", ExitCodes.TIMEOUT)
    if result.status is RequestStatus.ERROR:
        if summary.total and summary.error == summary.total:
            raise CommandError("Failed to send to every agent. Is tmux running?")
        raise CommandError(f"{summary.error} agent(s) failed.")


@click.command()
@click.argument("target")
@click.argument("message", nargs=-1, required=True)
@click.option("--wait", "-w", is_flag=True, help="Wait for the agent's reply")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds to wait for a reply (default: from config)",
)
@click.option("--delay", type=click.FloatRange(min=0), help="Seconds to sleep before sending")
@click.option("--no-preamble", is_flag=True, help="Do not inject the agent's preamble")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def talk(target, message, wait, timeout, delay, no_preamble, as_json, verbose):
    """Send MESSAGE to agent TARGET (or "all"), optionally waiting for the reply."""
    setup_logging(verbose)
    text = " ".join(message)

    paths, config = load_project()
    if target == "all":
        if not config.pane_registry:
            raise CommandError(
                "No agents configured. Use 'tmux-team add <name> <pane>' to add one.",
                ExitCodes.CONFIG_MISSING,
            )
    else:
        require_agent(config, target)

    preamble = PreambleState.from_config(config, load_preamble_counters(paths))

    if delay:
        time.sleep(delay)

    if not (wait or config.mode == "wait"):
        _send(target, text, config, paths, preamble, no_preamble, as_json)
        return

    settings = WaitSettings.from_config(config, timeout)
    if target == "all":
        _wait_broadcast(text, config, paths, settings, preamble, no_preamble, as_json)
    else:
        _wait_single(target, text, config, paths, settings, preamble, no_preamble, as_json)
