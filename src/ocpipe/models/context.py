"""Execution context threaded through a pipeline run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ocpipe.models.config import ModelConfig

if TYPE_CHECKING:
    from ocpipe.backends.cancellation import CancellationToken
    from ocpipe.backends.protocols import AgentBackend


@dataclass
class ExecutionContext:
    """Mutable per-run context.

    ``session_id`` is updated after every backend reply so the next call
    continues the same conversation. Owned by one task at a time.
    """

    backend: AgentBackend
    default_model: ModelConfig
    default_agent: str
    timeout_sec: float = 300
    session_id: str | None = None
    workdir: str | None = None
    cancel_token: CancellationToken | None = None
