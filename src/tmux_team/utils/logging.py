"""Logging configuration for the command-line entry point."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Log to stderr; --verbose wins over TMUX_TEAM_LOG_LEVEL (default WARNING)."""
    if verbose:
        level = logging.DEBUG
    else:
        level_name = os.getenv("TMUX_TEAM_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, level_name, logging.WARNING)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
