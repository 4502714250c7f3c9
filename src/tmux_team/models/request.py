"""Request, registry and result models."""

import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from tmux_team.models.config import CamelModel


class RequestStatus(str, Enum):
    """Lifecycle status of a message sent to one agent."""

    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"


class Request(CamelModel):
    """One wait-mode request. Only its status changes after creation."""

    request_id: str
    nonce: str
    target: str
    pane: str
    marker: str
    created_at: datetime = Field(default_factory=datetime.now)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ActiveRequest(CamelModel):
    """Registry entry for an in-flight wait request."""

    id: str
    nonce: str
    pane: str
    started_at_ms: int = Field(default_factory=_now_ms)


class StateFile(CamelModel):
    """Content of the shared state file."""

    requests: Dict[str, ActiveRequest] = Field(default_factory=dict)
    preamble_counters: Dict[str, int] = Field(default_factory=dict)


class SendResult(CamelModel):
    """Outcome of a fire-and-forget send."""

    target: str
    pane: str
    status: RequestStatus
    error: Optional[str] = None


class WaitResult(CamelModel):
    """Outcome of a wait-mode request to one agent."""

    target: str
    pane: str
    status: RequestStatus
    request_id: str
    nonce: str
    marker: str
    response: Optional[str] = None
    error: Optional[str] = None
    partial_response: Optional[str] = None
    elapsed_ms: Optional[int] = None

    def to_output(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BroadcastSummary(CamelModel):
    total: int = 0
    completed: int = 0
    timeout: int = 0
    error: int = 0
    skipped: int = 0


class BroadcastResult(CamelModel):
    """Aggregate outcome of a wait-mode broadcast."""

    status: RequestStatus
    summary: BroadcastSummary
    results: List[WaitResult] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    cancelled: bool = False

    def to_output(self) -> Dict[str, Any]:
        return {
            "target": "all",
            "status": self.status.value,
            "cancelled": self.cancelled,
            "summary": self.summary.model_dump(mode="json"),
            "skipped": list(self.skipped),
            "results": [result.to_output() for result in self.results],
        }
