"""Tests for the ocpipe.testing helpers."""

from __future__ import annotations

import re

import pytest

from ocpipe import AgentRequest, BackendTimeoutError, fields
from ocpipe.testing import (
    DEFAULT_MOCK_MODEL,
    MockAgentBackend,
    create_mock_context,
    generate_mock_outputs,
)


def _request(prompt: str, session_id: str | None = None) -> AgentRequest:
    return AgentRequest(prompt=prompt, agent="general", model=DEFAULT_MOCK_MODEL, session_id=session_id)


class TestMockAgentBackend:
    def test_default_reply(self):
        backend = MockAgentBackend()
        response = backend.run(_request("anything"))
        assert response.text == "{}"
        assert response.session_id == "mock-session-001"

    def test_replies_are_consumed_in_order(self):
        backend = MockAgentBackend().add_response("one").add_response("two")
        assert backend.run(_request("a")).text == "one"
        assert backend.run(_request("b")).text == "two"
        assert backend.pending == 0
        assert backend.call_count == 2

    def test_match_by_substring_and_regex(self):
        backend = MockAgentBackend()
        backend.add_response("patch", match="schema error")
        backend.add_response("first", match=re.compile(r"^Extract"))
        assert backend.run(_request("Extract it")).text == "first"
        assert backend.run(_request("a schema error here")).text == "patch"

    def test_session_ids(self):
        backend = MockAgentBackend().add_response("x", session_id="s1")
        assert backend.run(_request("a", session_id="s0")).session_id == "s1"
        assert backend.run(_request("b", session_id="s0")).session_id == "s0"

    def test_error(self):
        backend = MockAgentBackend().add_response(error=BackendTimeoutError(5))
        with pytest.raises(BackendTimeoutError):
            backend.run(_request("a"))
        assert backend.last_call.prompt == "a"

    def test_reset(self):
        backend = MockAgentBackend().add_response("x")
        backend.run(_request("a"))
        backend.add_response("y")
        backend.reset()
        assert backend.pending == 0
        assert backend.calls == []


class TestHelpers:
    def test_create_mock_context(self):
        ctx = create_mock_context(session_id="s1")
        assert isinstance(ctx.backend, MockAgentBackend)
        assert ctx.session_id == "s1"
        assert str(ctx.default_model) == "github-copilot/grok-code-fast-1"
        assert ctx.default_agent == "general"

    def test_generate_mock_outputs(self):
        outputs = {
            "name": fields.string(),
            "age": fields.number(),
            "count": fields.integer(),
            "ok": fields.boolean(),
            "level": fields.enum(["low", "high"]),
            "tags": fields.optional(fields.array(fields.string())),
            "meta": fields.object({"a": fields.string()}),
        }
        assert generate_mock_outputs(outputs) == {
            "name": "mock_name",
            "age": 42,
            "count": 42,
            "ok": True,
            "level": "low",
            "tags": [],
            "meta": {},
        }
