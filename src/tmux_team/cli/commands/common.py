"""Helpers shared by the tmux-team commands."""

import json
from typing import Any, Tuple

import click

from tmux_team.config import ConfigError, load_config, resolve_paths
from tmux_team.constants import ExitCodes
from tmux_team.models.config import Paths, ResolvedConfig


class CommandError(click.ClickException):
    """Error shown to the user, exiting with a specific exit code."""

    def __init__(self, message: str, exit_code: int = ExitCodes.ERROR):
        super().__init__(message)
        self.exit_code = int(exit_code)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def warn(text: str) -> None:
    click.echo(click.style(f"⚠ {text}", fg="yellow"), err=True)


def load_project() -> Tuple[Paths, ResolvedConfig]:
    """Resolve paths for the current directory and load the merged config."""
    paths = resolve_paths()
    try:
        return paths, load_config(paths)
    except ConfigError as e:
        raise CommandError(str(e))


def require_agent(config: ResolvedConfig, name: str) -> None:
    if name not in config.pane_registry:
        available = ", ".join(config.pane_registry) or "none"
        raise CommandError(
            f"Agent '{name}' not found. Available: {available}", ExitCodes.PANE_NOT_FOUND
        )
