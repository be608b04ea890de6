"""Agent backends: protocol, cancellation and built-in implementations."""

from ocpipe.backends.cancellation import CancellationToken
from ocpipe.backends.opencode import OpenCodeBackend
from ocpipe.backends.openai import OpenAIBackend
from ocpipe.backends.protocols import AgentBackend, AgentRequest, AgentResponse

__all__ = [
    "AgentBackend",
    "AgentRequest",
    "AgentResponse",
    "CancellationToken",
    "OpenAIBackend",
    "OpenCodeBackend",
]
