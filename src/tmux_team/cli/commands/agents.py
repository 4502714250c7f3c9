"""Registry commands: add, this, update, remove and list agents in tmux-team.json."""

import os
from typing import Optional

import click

from tmux_team.cli.commands.common import CommandError, echo_json, load_project
from tmux_team.clients.tmux import tmux_client
from tmux_team.config import ConfigError, resolve_paths
from tmux_team.constants import ExitCodes
from tmux_team.models.config import Paths
from tmux_team.services import registry_service
from tmux_team.services.registry_service import AgentExistsError, AgentNotFoundError
from tmux_team.utils.logging import setup_logging


def _register(paths: Paths, name: str, pane: str, remark: Optional[str], as_json: bool) -> None:
    created = not paths.local_config.exists()
    try:
        entry = registry_service.add_agent(paths, name, pane, remark)
    except (AgentExistsError, ConfigError, ValueError) as e:
        raise CommandError(str(e))

    if as_json:
        echo_json({"added": name, "pane": entry.pane, "remark": entry.remark})
        return
    if created:
        click.echo(f"Created {paths.local_config}")
    click.echo(
        f"{click.style('✓', fg='green')} Added agent "
        f"{click.style(name, fg='cyan')} at pane {entry.pane}"
    )


@click.command()
@click.argument("name")
@click.argument("pane")
@click.argument("remark", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def add(name, pane, remark, as_json, verbose):
    """Register agent NAME at tmux PANE (e.g. 1.0 or %5)."""
    setup_logging(verbose)
    _register(resolve_paths(), name, pane, remark, as_json)


@click.command()
@click.argument("name")
@click.argument("remark", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def this(name, remark, as_json, verbose):
    """Register the pane this command runs in as agent NAME."""
    setup_logging(verbose)
    pane = tmux_client.get_current_pane() if os.environ.get("TMUX") else None
    if not pane:
        raise CommandError("Not running inside tmux.")
    _register(resolve_paths(), name, pane, remark, as_json)


@click.command()
@click.argument("name")
@click.option("--pane", help="New pane for the agent")
@click.option("--remark", help="New remark for the agent")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def update(name, pane, remark, as_json, verbose):
    """Change the pane or remark of agent NAME."""
    setup_logging(verbose)
    if not pane and not remark:
        raise CommandError("No updates specified. Use --pane or --remark.")

    try:
        registry_service.update_agent(resolve_paths(), name, pane=pane, remark=remark)
    except AgentNotFoundError as e:
        raise CommandError(str(e), ExitCodes.PANE_NOT_FOUND)
    except ConfigError as e:
        raise CommandError(str(e))

    if as_json:
        changes = {key: value for key, value in (("pane", pane), ("remark", remark)) if value}
        echo_json({"updated": name, **changes})
        return
    if pane:
        click.echo(f"{click.style('✓', fg='green')} Updated '{name}': pane → {pane}")
    if remark:
        click.echo(f"{click.style('✓', fg='green')} Updated '{name}': remark updated")


@click.command()
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def remove(name, as_json, verbose):
    """Unregister agent NAME."""
    setup_logging(verbose)
    try:
        registry_service.remove_agent(resolve_paths(), name)
    except AgentNotFoundError as e:
        raise CommandError(str(e), ExitCodes.PANE_NOT_FOUND)
    except ConfigError as e:
        raise CommandError(str(e))

    if as_json:
        echo_json({"removed": name})
    else:
        click.echo(f"{click.style('✓', fg='green')} Removed agent {click.style(name, fg='cyan')}")


@click.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
def list_agents(as_json):
    """List registered agents."""
    _, config = load_project()
    registry = config.pane_registry

    if as_json:
        echo_json({name: entry.model_dump(exclude_none=True) for name, entry in registry.items()})
        return
    if not registry:
        click.echo("No agents configured. Use 'tmux-team add <name> <pane>' to add one.")
        return

    name_width = max(len("NAME"), *(len(name) for name in registry))
    pane_width = max(len("PANE"), *(len(entry.pane) for entry in registry.values()))
    click.echo(f"{'NAME'.ljust(name_width)}  {'PANE'.ljust(pane_width)}  REMARK")
    for name, entry in registry.items():
        remark = entry.remark or "-"
        click.echo(f"{name.ljust(name_width)}  {entry.pane.ljust(pane_width)}  {remark}")
