"""Test helpers: a scripted mock backend and context/output factories.

Usage::

    backend = MockAgentBackend()
    backend.add_json_response({"name": "John"}, session_id="s1")
    backend.add_response('[{"op": "add", "path": "/age", "value": 30}]', match="schema error")

    ctx = create_mock_context(backend)
    Predict(Person).execute({"text": "..."}, ctx)
    assert backend.call_count == 2
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ocpipe.backends.protocols import AgentRequest, AgentResponse
from ocpipe.models.config import ModelConfig
from ocpipe.models.context import ExecutionContext
from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.validators import (
    DefaultType,
    EnumType,
    FieldValidator,
    NullableType,
    OptionalType,
)

DEFAULT_MOCK_SESSION_ID = "mock-session-001"
DEFAULT_MOCK_MODEL = ModelConfig(provider_id="github-copilot", model_id="grok-code-fast-1")


@dataclass
class MockResponse:
    """A scripted reply.

    Attributes:
        response: Reply text.
        match: Substring or compiled regex the prompt must match; None
            matches any prompt.
        session_id: Session id to report; defaults to the request's
            session, then to ``mock-session-001``.
        delay: Seconds to sleep before replying.
        error: Raised instead of replying.
    """

    response: str = ""
    match: str | re.Pattern[str] | None = None
    session_id: str | None = None
    delay: float = 0.0
    error: BaseException | None = None

    def matches(self, prompt: str) -> bool:
        if self.match is None:
            return True
        if isinstance(self.match, re.Pattern):
            return self.match.search(prompt) is not None
        return self.match in prompt


class MockAgentBackend:
    """AgentBackend returning scripted replies.

    Each call consumes the first queued reply whose ``match`` fits the
    prompt. With nothing matching, the reply is ``{}``.
    """

    def __init__(self, default_session_id: str = DEFAULT_MOCK_SESSION_ID) -> None:
        self.default_session_id = default_session_id
        self._responses: list[MockResponse] = []
        self.calls: list[AgentRequest] = []

    def add_response(
        self,
        response: str = "",
        *,
        match: str | re.Pattern[str] | None = None,
        session_id: str | None = None,
        delay: float = 0.0,
        error: BaseException | None = None,
    ) -> MockAgentBackend:
        self._responses.append(
            MockResponse(response=response, match=match, session_id=session_id, delay=delay, error=error)
        )
        return self

    def add_json_response(self, data: Any, **options: Any) -> MockAgentBackend:
        return self.add_response(json.dumps(data, indent=2), **options)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> AgentRequest | None:
        return self.calls[-1] if self.calls else None

    @property
    def pending(self) -> int:
        """Queued replies not yet consumed."""
        return len(self._responses)

    def reset(self) -> MockAgentBackend:
        self._responses.clear()
        self.calls.clear()
        return self

    def run(self, request: AgentRequest) -> AgentResponse:
        self.calls.append(request)
        if request.cancel_token is not None:
            request.cancel_token.raise_if_cancelled()

        scripted = MockResponse(response="{}")
        for idx, candidate in enumerate(self._responses):
            if candidate.matches(request.prompt):
                scripted = self._responses.pop(idx)
                break

        if scripted.delay:
            time.sleep(scripted.delay)
        if scripted.error is not None:
            raise scripted.error
        return AgentResponse(
            text=scripted.response,
            session_id=scripted.session_id or request.session_id or self.default_session_id,
        )


def create_mock_context(
    backend: MockAgentBackend | None = None,
    *,
    session_id: str | None = None,
    default_model: ModelConfig = DEFAULT_MOCK_MODEL,
    default_agent: str = "general",
    timeout_sec: float = 60,
) -> ExecutionContext:
    """ExecutionContext wired to a mock backend."""
    return ExecutionContext(
        backend=backend or MockAgentBackend(),
        default_model=default_model,
        default_agent=default_agent,
        timeout_sec=timeout_sec,
        session_id=session_id,
    )


def _mock_value(name: str, validator: FieldValidator) -> Any:
    if isinstance(validator, (OptionalType, NullableType, DefaultType)):
        return _mock_value(name, validator.inner)
    if isinstance(validator, EnumType):
        return validator.values[0]
    return {
        "string": f"mock_{name}",
        "number": 42,
        "integer": 42,
        "boolean": True,
        "array": [],
        "object": {},
    }.get(validator.kind)


def generate_mock_outputs(outputs: Mapping[str, FieldConfig]) -> dict[str, Any]:
    """Placeholder output values by field type (None for unknown kinds)."""
    return {name: _mock_value(name, cfg.validator) for name, cfg in outputs.items()}
