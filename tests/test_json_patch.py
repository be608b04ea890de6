"""Tests for the JSON Patch applier and JSON Pointer handling."""

from __future__ import annotations

import logging

import pytest

from ocpipe.exceptions import UnsafePatchError
from ocpipe.patch import (
    JqPatchApplier,
    JsonPatchApplier,
    PatchApplier,
    apply_json_patch,
    extract_json_patch,
    get_patch_applier,
    parse_pointer,
    to_pointer,
)


# ---------------------------------------------------------------------------
# Pointers
# ---------------------------------------------------------------------------


class TestPointer:
    def test_dotted_to_pointer(self):
        assert to_pointer("items.0.name") == "/items/0/name"
        assert to_pointer("items[0].name") == "/items/0/name"
        assert to_pointer("/already") == "/already"
        assert to_pointer("") == ""

    def test_unescape(self):
        assert parse_pointer("/a~1b/c~0d") == ["a/b", "c~d"]

    @pytest.mark.parametrize("path", ["/__proto__/x", "/a/constructor", "prototype.polluted"])
    def test_unsafe_keys(self, path):
        with pytest.raises(UnsafePatchError):
            parse_pointer(path)

    def test_non_string_path(self):
        with pytest.raises(UnsafePatchError):
            parse_pointer(3)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class TestApplyJsonPatch:
    def test_add_replace_remove(self):
        doc = {"a": 1, "b": 2}
        result = apply_json_patch(
            doc,
            [
                {"op": "add", "path": "/c", "value": 3},
                {"op": "replace", "path": "/a", "value": 10},
                {"op": "remove", "path": "/b"},
            ],
        )
        assert result == {"a": 10, "c": 3}

    def test_input_is_not_mutated(self):
        doc = {"a": {"b": 1}}
        apply_json_patch(doc, [{"op": "replace", "path": "/a/b", "value": 2}])
        assert doc == {"a": {"b": 1}}

    def test_move_renames_field(self):
        result = apply_json_patch({"type": "bug"}, [{"op": "move", "from": "/type", "path": "/issue_type"}])
        assert result == {"issue_type": "bug"}

    def test_copy(self):
        result = apply_json_patch({"a": [1]}, [{"op": "copy", "from": "/a", "path": "/b"}])
        assert result == {"a": [1], "b": [1]}
        assert result["a"] is not result["b"]

    def test_array_insert_and_append(self):
        result = apply_json_patch(
            {"xs": [1, 3]},
            [
                {"op": "add", "path": "/xs/1", "value": 2},
                {"op": "add", "path": "/xs/-", "value": 4},
            ],
        )
        assert result == {"xs": [1, 2, 3, 4]}

    def test_dotted_paths(self):
        doc = {"items": [{"name": "a"}]}
        result = apply_json_patch(doc, [{"op": "replace", "path": "items[0].name", "value": "b"}])
        assert result == {"items": [{"name": "b"}]}

    def test_creates_intermediate_containers(self):
        result = apply_json_patch(
            {},
            [
                {"op": "add", "path": "/a/b/c", "value": 1},
                {"op": "add", "path": "/xs/0", "value": "first"},
            ],
        )
        assert result == {"a": {"b": {"c": 1}}, "xs": ["first"]}

    def test_prototype_pollution_is_skipped(self):
        doc = {"a": 1}
        result = apply_json_patch(
            doc,
            [
                {"op": "add", "path": "/__proto__/polluted", "value": True},
                {"op": "add", "path": "/constructor/prototype/x", "value": 1},
            ],
        )
        assert result == {"a": 1}

    def test_failing_operation_does_not_block_others(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ocpipe.patch.json_patch"):
            result = apply_json_patch(
                {"a": 1},
                [
                    {"op": "move", "from": "/missing", "path": "/x"},
                    {"op": "add", "path": "/b", "value": 2},
                ],
            )
        assert result == {"a": 1, "b": 2}
        assert "JSON Patch operation skipped" in caplog.text

    def test_move_failure_leaves_no_partial_change(self):
        result = apply_json_patch(
            {"a": 1, "xs": []},
            [{"op": "move", "from": "/a", "path": "/xs/5"}],
        )
        assert result == {"a": 1, "xs": []}

    def test_move_into_own_child_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ocpipe.patch.json_patch"):
            result = apply_json_patch({"a": {"x": 1}}, [{"op": "move", "from": "/a", "path": "/a/b"}])
        assert result == {"a": {"x": 1}}
        assert "into its own child" in caplog.text

    def test_failed_test_op_warns_and_continues(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ocpipe.patch.json_patch"):
            result = apply_json_patch(
                {"a": 1},
                [
                    {"op": "test", "path": "/a", "value": 2},
                    {"op": "add", "path": "/b", "value": 2},
                ],
            )
        assert result == {"a": 1, "b": 2}
        assert "JSON Patch test failed at /a" in caplog.text

    def test_unknown_op_and_bad_entries(self):
        result = apply_json_patch(
            {"a": 1},
            [{"op": "explode", "path": "/a"}, "not-an-op", {"op": "add", "path": "/b"}],  # type: ignore[list-item]
        )
        assert result == {"a": 1}

    def test_whole_document(self):
        assert apply_json_patch({"a": 1}, [{"op": "replace", "path": "", "value": {"b": 2}}]) == {"b": 2}
        assert apply_json_patch({"a": 1}, [{"op": "remove", "path": ""}]) == {"a": 1}
        assert apply_json_patch({"a": 1}, [{"op": "add", "path": "", "value": [1]}]) == {"a": 1}

    def test_index_out_of_range(self):
        assert apply_json_patch({"xs": [1]}, [{"op": "remove", "path": "/xs/3"}]) == {"xs": [1]}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractJsonPatch:
    def test_fenced_array(self):
        text = 'Here:\n```json\n[{"op": "add", "path": "/age", "value": 30}]\n```'
        assert extract_json_patch(text) == [{"op": "add", "path": "/age", "value": 30}]

    def test_drops_non_objects(self):
        assert extract_json_patch('[1, {"op": "remove", "path": "/a"}]') == [
            {"op": "remove", "path": "/a"}
        ]

    def test_single_operation_object(self):
        assert extract_json_patch('{"op": "remove", "path": "/a"}') == [{"op": "remove", "path": "/a"}]

    def test_deeply_nested_value(self):
        text = '[{"op": "add", "path": "/a", "value": ' + "[" * 100_000 + "]" * 100_000 + "}]"
        assert extract_json_patch(text) == []

    def test_nothing_usable(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ocpipe.patch.json_patch"):
            assert extract_json_patch("I cannot help with that.") == []
        assert "Could not extract JSON Patch" in caplog.text


# ---------------------------------------------------------------------------
# Strategy lookup
# ---------------------------------------------------------------------------


class TestPatchAppliers:
    def test_lookup(self):
        assert isinstance(get_patch_applier("json-patch"), JsonPatchApplier)
        assert isinstance(get_patch_applier("jq"), JqPatchApplier)

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown patch method"):
            get_patch_applier("xml")

    def test_protocol_conformance(self):
        assert isinstance(JsonPatchApplier(), PatchApplier)
        assert isinstance(JqPatchApplier(), PatchApplier)

    def test_applier_round(self):
        applier = JsonPatchApplier()
        patch = applier.extract('[{"op": "add", "path": "/age", "value": 30}]')
        assert applier.apply({"name": "John"}, patch) == {"name": "John", "age": 30}
