"""Agent backend protocol.

A backend runs one prompt against an agent/model pair and returns the
reply text plus the session id to use for a follow-up turn.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ocpipe.models.config import ModelConfig

if TYPE_CHECKING:
    from ocpipe.backends.cancellation import CancellationToken


@dataclass(frozen=True)
class AgentRequest:
    """One backend call.

    Attributes:
        prompt: Full prompt text.
        agent: Agent name (e.g. "general", "explore").
        model: Model to run.
        session_id: Existing session to continue, or None for a new one.
        timeout_sec: Deadline for the whole call.
        workdir: Working directory the agent runs in.
        cancel_token: Aborts the call when cancelled.
    """

    prompt: str
    agent: str
    model: ModelConfig
    session_id: str | None = None
    timeout_sec: float = 300
    workdir: str | None = None
    cancel_token: CancellationToken | None = None


@dataclass(frozen=True)
class AgentResponse:
    """Reply text and the session id that produced it."""

    text: str
    session_id: str


@runtime_checkable
class AgentBackend(Protocol):
    """Protocol for pluggable agent backends.

    Implementations raise BackendError subclasses: BackendTimeoutError on
    deadline expiry, BackendAbortedError on cancellation.
    """

    def run(self, request: AgentRequest) -> AgentResponse:
        """Run the request and return the agent's reply."""
        ...
