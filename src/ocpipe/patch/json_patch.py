"""In-process RFC 6902 JSON Patch applier.

Total: malformed, unsafe or failing operations are logged and skipped,
never raised. Each operation runs against its own copy of the document
and is committed only if it fully succeeds, so a failure halfway through
a ``move`` cannot leave a half-applied change behind.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from ocpipe.exceptions import UnsafePatchError
from ocpipe.parsing.extract import extract_json, extract_patch_array
from ocpipe.patch.pointer import list_index, parse_pointer, resolve

logger = logging.getLogger(__name__)

JsonPatchOperation = dict[str, Any]

_OPS = frozenset({"add", "remove", "replace", "move", "copy", "test"})
_MISSING = object()


def extract_json_patch(text: str) -> list[JsonPatchOperation]:
    """Extract a JSON Patch array from an LLM response.

    A lone operation object is accepted as a one-element patch. Entries
    that are not objects are dropped. Returns an empty list when nothing
    usable is found.
    """
    candidate = extract_patch_array(text)
    if candidate is not None:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, RecursionError):
            parsed = None
        if isinstance(parsed, list):
            ops = [op for op in parsed if isinstance(op, dict)]
            # an array inside a lone operation's value is not the patch
            if ops or "{" not in text[: text.find(candidate)]:
                return ops

    single = extract_json(text)
    if single is not None:
        try:
            parsed = json.loads(single)
        except (json.JSONDecodeError, RecursionError):
            parsed = None
        if isinstance(parsed, dict) and "op" in parsed:
            return [parsed]

    logger.warning("Could not extract JSON Patch from response: %.100s", text)
    return []


def _container_for(doc: Any, segments: list[str], *, create: bool) -> Any:
    """Walk to the parent of the last segment, optionally creating objects."""
    current = doc
    for i, segment in enumerate(segments[:-1]):
        if isinstance(current, list):
            current = current[list_index(segment, len(current))]
        elif isinstance(current, dict):
            if segment not in current:
                if not create:
                    raise KeyError(segment)
                current[segment] = [] if segments[i + 1].isdigit() else {}
            current = current[segment]
        else:
            raise KeyError(segment)
    return current


def _add(doc: Any, segments: list[str], value: Any) -> Any:
    if not segments:
        if not isinstance(value, dict):
            raise UnsafePatchError("Whole-document replacement requires an object value")
        return value
    parent = _container_for(doc, segments, create=True)
    key = segments[-1]
    if isinstance(parent, list):
        parent.insert(list_index(key, len(parent), allow_end=True), value)
    elif isinstance(parent, dict):
        parent[key] = value
    else:
        raise KeyError(key)
    return doc


def _replace(doc: Any, segments: list[str], value: Any) -> Any:
    if not segments:
        return _add(doc, segments, value)
    parent = _container_for(doc, segments, create=True)
    key = segments[-1]
    if isinstance(parent, list):
        parent[list_index(key, len(parent))] = value
    elif isinstance(parent, dict):
        parent[key] = value
    else:
        raise KeyError(key)
    return doc


def _remove(doc: Any, segments: list[str]) -> Any:
    if not segments:
        raise UnsafePatchError("Cannot remove the whole document")
    parent = _container_for(doc, segments, create=False)
    key = segments[-1]
    if isinstance(parent, list):
        del parent[list_index(key, len(parent))]
    elif isinstance(parent, dict):
        del parent[key]
    else:
        raise KeyError(key)
    return doc


def _apply_operation(doc: dict[str, Any], op: JsonPatchOperation) -> dict[str, Any]:
    kind = op.get("op")
    if kind not in _OPS:
        raise UnsafePatchError(f"Unsupported operation {kind!r}")
    segments = parse_pointer(op.get("path"))
    working = copy.deepcopy(doc)

    if kind in ("add", "replace"):
        if "value" not in op:
            raise UnsafePatchError(f"{kind} requires a value")
        value = copy.deepcopy(op["value"])
        return _add(working, segments, value) if kind == "add" else _replace(working, segments, value)
    if kind == "remove":
        return _remove(working, segments)
    if kind in ("move", "copy"):
        from_segments = parse_pointer(op.get("from"))
        is_descendant = len(segments) > len(from_segments) and segments[: len(from_segments)] == from_segments
        if kind == "move" and is_descendant:
            raise ValueError(f"Cannot move {op.get('from')} into its own child {op.get('path')}")
        value = copy.deepcopy(resolve(working, from_segments))
        if kind == "move":
            working = _remove(working, from_segments)
        return _add(working, segments, value)

    # test
    try:
        actual = resolve(working, segments)
    except (KeyError, IndexError, UnsafePatchError):
        actual = _MISSING
    if actual is _MISSING or actual != op.get("value"):
        logger.warning(
            "JSON Patch test failed at %s: expected %s, got %s",
            op.get("path"),
            json.dumps(op.get("value")),
            "<missing>" if actual is _MISSING else json.dumps(actual, default=str),
        )
    return doc


def apply_json_patch(
    doc: dict[str, Any],
    operations: list[JsonPatchOperation],
) -> dict[str, Any]:
    """Apply RFC 6902 operations to a copy of ``doc``.

    Supported: add, remove, replace, move, copy, test. Dotted paths are
    accepted and converted to pointers. Operations that fail or touch an
    unsafe key are skipped; the rest still apply.

    Returns:
        A new document. ``doc`` is never mutated.
    """
    result = copy.deepcopy(doc)
    for op in operations:
        if not isinstance(op, dict):
            logger.warning("Skipping non-object JSON Patch entry: %r", op)
            continue
        try:
            result = _apply_operation(result, op)
        except (UnsafePatchError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning("JSON Patch operation skipped: %s (%s)", json.dumps(op, default=str), exc)
    return result


class JsonPatchApplier:
    """PatchApplier backed by apply_json_patch."""

    name = "json-patch"

    def extract(self, text: str) -> list[JsonPatchOperation]:
        return extract_json_patch(text)

    def apply(self, doc: dict[str, Any], patch: list[JsonPatchOperation]) -> dict[str, Any]:
        return apply_json_patch(doc, patch)
