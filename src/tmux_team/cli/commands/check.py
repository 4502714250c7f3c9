"""Check command: print recent output from an agent's pane."""

import click

from tmux_team.cli.commands.common import CommandError, echo_json, load_project, require_agent
from tmux_team.services import terminal_service
from tmux_team.services.terminal_service import CaptureError
from tmux_team.utils.logging import setup_logging


@click.command()
@click.argument("target")
@click.argument("lines", type=click.IntRange(min=1), required=False)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def check(target, lines, as_json, verbose):
    """Show the last LINES lines of agent TARGET's pane (default: from config)."""
    setup_logging(verbose)
    _, config = load_project()
    require_agent(config, target)

    pane = config.pane_registry[target].pane
    lines = lines or config.defaults.capture_lines
    try:
        output = terminal_service.get_output(pane, lines)
    except CaptureError:
        raise CommandError(f"Failed to capture pane {pane}. Is tmux running?")

    if as_json:
        echo_json({"target": target, "pane": pane, "lines": lines, "output": output})
    else:
        click.echo(click.style(f"─── Output from {target} ({pane}) ───", fg="cyan"))
        click.echo(output)
