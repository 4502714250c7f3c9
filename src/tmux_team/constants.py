"""Constants for tmux-team.

This module defines the configuration constants used throughout tmux-team,
including file names, default timings and exit codes.

tmux-team sends messages to coding agents (Claude Code, Codex, Gemini, ...) that run
in tmux panes and, in wait mode, detects when each agent has finished replying.
"""

from enum import IntEnum

# =============================================================================
# File Layout
# =============================================================================
# Global directory name under $XDG_CONFIG_HOME (or ~/.config)
APP_DIR_NAME = "tmux-team"

# Legacy global directory, still honored when it already exists
LEGACY_DIR_NAME = ".tmux-team"

CONFIG_FILENAME = "config.json"
STATE_FILENAME = "state.json"

# Per-project pane registry, looked up in the current working directory
LOCAL_CONFIG_FILENAME = "tmux-team.json"

# Key inside the local config file that holds project settings instead of a pane
LOCAL_SETTINGS_KEY = "$config"

# =============================================================================
# Wait Defaults
# =============================================================================
# Seconds to wait for an agent before giving up
DEFAULT_TIMEOUT = 180.0

# Seconds between two captures of the same pane
DEFAULT_POLL_INTERVAL = 1.0

# Polling faster than this only burns tmux round-trips
MIN_POLL_INTERVAL = 0.1

# Lines of pane history captured on each poll
DEFAULT_CAPTURE_LINES = 100

# Lines kept before the marker (or at the end of the pane) when the echoed
# instruction has scrolled out of the captured window
DEFAULT_FALLBACK_LINES = 100

# Upper bound for the settle thresholds (minimum wait and idle window), seconds
SETTLE_THRESHOLD_CAP = 3.0

# Fraction of the timeout used for the settle thresholds when the timeout is short
SETTLE_THRESHOLD_RATIO = 0.3

# Active requests older than this are dropped from the registry
REQUEST_TTL_SECONDS = 24 * 60 * 60

# =============================================================================
# Preamble Defaults
# =============================================================================
# Inject the preamble on every Nth message to an agent (0 = never, 1 = always)
DEFAULT_PREAMBLE_EVERY = 3

# =============================================================================
# Tmux Send Configuration
# =============================================================================
# Pause between pasting the message and pressing Enter, so TUIs finish
# processing the bracketed paste
ENTER_DELAY_SECONDS = 0.5

# Agents inside tmux usually live in an interactive shell where "!" triggers
# history expansion; it is replaced by the full-width form
EXCLAMATION_REPLACEMENT = "！"

# =============================================================================
# Progress Output
# =============================================================================
# Interval between progress lines when stdout is not a TTY, seconds
NON_TTY_PROGRESS_INTERVAL = 5.0

# =============================================================================
# Exit Codes
# =============================================================================


class ExitCodes(IntEnum):
    """Process exit codes, one per outcome class the caller can act on."""

    SUCCESS = 0
    ERROR = 1
    CONFIG_MISSING = 2
    PANE_NOT_FOUND = 3
    TIMEOUT = 4
    CONFLICT = 5
