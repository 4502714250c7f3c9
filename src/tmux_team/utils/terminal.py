"""Terminal text helpers."""

import re

# Regex patterns for raw pane output
ANSI_CODE_PATTERN = r"\x1b\[[0-?]*[ -/]*[@-~]"
OSC_PATTERN = r"\x1b\][^\x07]*(?:\x07|\x1b\\)"


def clean_terminal_output(output: str) -> str:
    """Strip control sequences and normalize line endings for parsing."""
    output = re.sub(OSC_PATTERN, "", output)
    output = re.sub(ANSI_CODE_PATTERN, "", output)
    return output.replace("\r\n", "\n").replace("\r", "\n")

