"""Tests for ocpipe.parsing.extract: pulling JSON out of LLM prose."""

from __future__ import annotations

import json

import pytest
from hypothesis import given

from ocpipe.exceptions import JsonSyntaxError, NoJsonFoundError
from ocpipe.parsing.extract import (
    extract_json,
    extract_patch_array,
    parse_json_from_response,
    scan_balanced,
)

from strategies import json_objects, prose


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_fenced_block_with_language(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'
        assert extract_json(text) == '{"a": 1}'

    def test_fenced_block_without_language(self):
        text = '```\n  {"a": [1, 2]}  \n```'
        assert extract_json(text) == '{"a": [1, 2]}'

    def test_skips_fenced_block_that_is_not_an_object(self):
        text = '```bash\nls -la\n```\nResult: {"ok": true}'
        assert extract_json(text) == '{"ok": true}'

    def test_bare_object_in_prose(self):
        text = 'Sure! {"name": "John", "nested": {"x": 1}} Hope that helps.'
        assert extract_json(text) == '{"name": "John", "nested": {"x": 1}}'

    def test_braces_inside_strings_do_not_count(self):
        text = 'x {"msg": "a } tricky { string", "q": "say \\"}\\""} y'
        assert json.loads(extract_json(text)) == {"msg": "a } tricky { string", "q": 'say "}"'}

    def test_no_json(self):
        assert extract_json("not json") is None

    def test_unbalanced(self):
        assert extract_json('{"a": 1') is None


class TestExtractPatchArray:
    def test_fenced_array(self):
        text = 'Patch:\n```json\n[{"op": "remove", "path": "/a"}]\n```'
        assert json.loads(extract_patch_array(text)) == [{"op": "remove", "path": "/a"}]

    def test_bare_array(self):
        text = 'Use [{"op": "add", "path": "/b", "value": [1]}] to fix it.'
        assert json.loads(extract_patch_array(text)) == [{"op": "add", "path": "/b", "value": [1]}]

    def test_no_array(self):
        assert extract_patch_array("no patch here") is None


class TestScanBalanced:
    def test_wrong_start(self):
        assert scan_balanced("abc", 0, "{", "}") is None
        assert scan_balanced("abc", -1, "{", "}") is None

    def test_escaped_quote(self):
        assert scan_balanced('{"a": "\\"{"}', 0, "{", "}") == '{"a": "\\"{"}'


# ---------------------------------------------------------------------------
# parse_json_from_response
# ---------------------------------------------------------------------------


class TestParseJsonFromResponse:
    def test_parses(self):
        assert parse_json_from_response('answer: {"a": null}') == {"a": None}

    def test_no_json_found(self):
        with pytest.raises(NoJsonFoundError) as exc_info:
            parse_json_from_response("not json")
        assert exc_info.value.raw == "not json"

    def test_syntax_error(self):
        with pytest.raises(JsonSyntaxError, match="JSON parse failed"):
            parse_json_from_response('{"a": }')

    def test_too_deeply_nested(self):
        with pytest.raises(JsonSyntaxError):
            parse_json_from_response('{"a": ' + "[" * 100_000 + "]" * 100_000 + "}")


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestExtractionProperties:
    @given(doc=json_objects, before=prose, after=prose)
    def test_recovers_object_from_prose(self, doc, before, after):
        text = f"{before}{json.dumps(doc)}{after}"
        assert json.loads(extract_json(text)) == doc

    @given(doc=json_objects, before=prose)
    def test_recovers_object_from_fence(self, doc, before):
        text = f"{before}\n```json\n{json.dumps(doc, indent=2)}\n```\n"
        assert json.loads(extract_json(text)) == doc

    @given(doc=json_objects, before=prose, after=prose)
    def test_extraction_is_idempotent(self, doc, before, after):
        once = extract_json(f"{before}{json.dumps(doc)}{after}")
        again = extract_json(f"```json\n{once}\n```")
        assert json.loads(again) == json.loads(once)
