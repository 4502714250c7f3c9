"""Message composition: preambles, the wait instruction and per-agent filters."""

import logging
from typing import Callable, Dict, Mapping, NamedTuple, Optional

from pydantic import BaseModel, Field

from tmux_team.constants import DEFAULT_PREAMBLE_EVERY
from tmux_team.models.config import ResolvedConfig
from tmux_team.services.protocol import MARKER_DELIMITER, MARKER_LABEL

logger = logging.getLogger(__name__)

# Agents whose input layer mishandles some characters
AGENT_TEXT_FILTERS: Dict[str, Callable[[str], str]] = {
    "gemini": lambda text: text.replace("!", ""),
}


class PreambleState(BaseModel):
    """Preamble settings plus the per-agent message counters."""

    enabled: bool = True
    every: int = Field(default=DEFAULT_PREAMBLE_EVERY, ge=0)
    preambles: Dict[str, str] = Field(default_factory=dict)
    counters: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_config(
        cls, config: ResolvedConfig, counters: Optional[Mapping[str, int]] = None
    ) -> "PreambleState":
        return cls(
            enabled=config.preamble_mode != "disabled",
            every=config.defaults.preamble_every,
            preambles={
                name: agent.preamble for name, agent in config.agents.items() if agent.preamble
            },
            counters=dict(counters or {}),
        )


class Composition(NamedTuple):
    text: str
    counters: Dict[str, int]


def increment_counter(counters: Mapping[str, int], agent: str) -> Dict[str, int]:
    """Return a copy of counters with the agent's count bumped by one."""
    updated = dict(counters)
    updated[agent] = updated.get(agent, 0) + 1
    return updated


def should_inject(count: int, every: int) -> bool:
    if every <= 0:
        return False
    return (count - 1) % every == 0


def compose(
    base_text: str, agent: str, state: PreambleState, skip_preamble: bool = False
) -> Composition:
    """Prefix the agent's preamble on every Nth message.

    The counter advances on every call that has a preamble to consider, whether or
    not this call injects it.
    """
    preamble = state.preambles.get(agent)
    if not state.enabled or skip_preamble or not preamble:
        return Composition(base_text, dict(state.counters))

    counters = increment_counter(state.counters, agent)
    if should_inject(counters[agent], state.every):
        logger.debug(f"Injecting preamble for {agent} (message #{counters[agent]})")
        return Composition(f"[SYSTEM: {preamble}]\n\n{base_text}", counters)
    return Composition(base_text, counters)


def build_wait_instruction(nonce: str) -> str:
    """Describe the end marker in words without spelling it out."""
    return (
        "[IMPORTANT: When your response is complete, print one final line made of "
        f'"{MARKER_DELIMITER}{MARKER_LABEL}" immediately followed by "{nonce}{MARKER_DELIMITER}", '
        "joined together with no spaces or quotes.]"
    )


def with_wait_instruction(message: str, nonce: str) -> str:
    return f"{message.rstrip()}\n\n{build_wait_instruction(nonce)}"


def sanitize_for_agent(agent: str, text: str) -> str:
    text_filter = AGENT_TEXT_FILTERS.get(agent)
    return text_filter(text) if text_filter else text
