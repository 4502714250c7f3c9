"""Main CLI entry point for tmux-team."""

import click

from tmux_team import __version__
from tmux_team.cli.commands.agents import add, list_agents, remove, this, update
from tmux_team.cli.commands.check import check
from tmux_team.cli.commands.talk import talk


@click.group()
@click.version_option(__version__, prog_name="tmux-team")
def cli():
    """tmux-team: talk to coding agents running in tmux panes."""
    pass


cli.add_command(talk)
cli.add_command(check)
cli.add_command(add)
cli.add_command(this)
cli.add_command(update)
cli.add_command(remove)
cli.add_command(list_agents)


if __name__ == "__main__":
    cli()
