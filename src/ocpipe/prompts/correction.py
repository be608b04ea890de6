"""Prompts for schema correction.

Two families:

- **patch prompts** -- ask for a JSON Patch array or a jq filter that
  fixes the listed field errors in the current JSON. Single-error and
  batch variants exist for each method.
- **repair prompt** -- ask the LLM to resend the whole answer as valid
  JSON when its response contained none (or it did not parse).

The current JSON is abbreviated before it is shown: long arrays keep
their first two items and long strings are cut.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ocpipe.parsing.validate import FieldError
from ocpipe.prompts.predict import OUTPUT_FORMAT_INSTRUCTIONS, dump_json

MAX_STRING_LENGTH = 100
MAX_ARRAY_ITEMS = 2

_JSON_PATCH_SINGLE_EXAMPLES = (
    '- [{"op": "add", "path": "/field_name", "value": "new_value"}]',
    '- [{"op": "replace", "path": "/field_name", "value": 123}]',
    '- [{"op": "move", "from": "/wrong_field", "path": "/correct_field"}]',
    '- [{"op": "remove", "path": "/wrong_field"}, '
    '{"op": "add", "path": "/correct_field", "value": "..."}]',
)

_JSON_PATCH_BATCH_EXAMPLES = (
    '- [{"op": "move", "from": "/type", "path": "/issue_type"}]',
    '- [{"op": "replace", "path": "/items/0/name", "value": "fixed"}]',
    '- [{"op": "add", "path": "/missing_field", "value": "default"}]',
)

_JQ_SINGLE_EXAMPLES = (
    '- .field_name = "value"',
    "- .field_name = 123",
    "- .field_name = .other_field",
    '- del(.wrong_field) | .correct_field = "value"',
)

_JQ_BATCH_EXAMPLES = (
    '- .field1 = "value" | .field2 = 123',
    "- .items[0].name = .items[0].title | del(.items[0].title)",
    "- .changes[2].rationale = .changes[2].reason",
)


def abbreviate_json(value: Any, max_length: int = MAX_STRING_LENGTH) -> Any:
    """Shrink a JSON value for display in a prompt."""
    if isinstance(value, dict):
        return {k: abbreviate_json(v, max_length) for k, v in value.items()}
    if isinstance(value, list):
        if len(value) <= MAX_ARRAY_ITEMS:
            return [abbreviate_json(v, max_length) for v in value]
        head = [abbreviate_json(v, max_length) for v in value[:MAX_ARRAY_ITEMS]]
        return [*head, f"... ({len(value) - MAX_ARRAY_ITEMS} more)"]
    if isinstance(value, str) and len(value) > max_length:
        return value[:max_length] + "..."
    return value


def _current_json_block(current: dict[str, Any]) -> list[str]:
    return [
        "Current JSON (abbreviated):",
        "```json",
        dump_json(abbreviate_json(current)),
        "```",
    ]


def _single_error_lines(error: FieldError) -> list[str]:
    lines = [
        f'Field: "{error.path}"',
        f"Issue: {error.message}",
        f"Expected type: {error.expected_type}",
    ]
    if error.found_field is not None:
        lines.append(
            f'Found similar field: "{error.found_field}" with value: '
            f"{dump_json(error.found_value, indent=None)}"
        )
    return lines


def _batch_error_lines(errors: Sequence[FieldError]) -> list[str]:
    lines = ["ERRORS:"]
    for i, error in enumerate(errors, start=1):
        lines.append(f'{i}. Field "{error.path}": {error.message} (expected: {error.expected_type})')
        if error.found_field is not None:
            lines.append(
                f'   Found similar: "{error.found_field}" = '
                f"{dump_json(error.found_value, indent=None)}"
            )
    return lines


def build_json_patch_prompt(errors: Sequence[FieldError], current: dict[str, Any]) -> str:
    """Ask for an RFC 6902 JSON Patch array fixing ``errors``."""
    if len(errors) == 1:
        lines = [
            "Your JSON output has a schema error that needs correction.",
            "",
            *_single_error_lines(errors[0]),
            "",
            *_current_json_block(current),
            "",
            "Respond with ONLY a JSON Patch array (RFC 6902) to fix this field. Examples:",
            *_JSON_PATCH_SINGLE_EXAMPLES,
            "",
            "Your JSON Patch:",
        ]
    else:
        lines = [
            "Your JSON output has schema errors that need correction.",
            "",
            *_batch_error_lines(errors),
            "",
            *_current_json_block(current),
            "",
            "Respond with a JSON Patch array (RFC 6902) to fix ALL errors. Examples:",
            *_JSON_PATCH_BATCH_EXAMPLES,
            "",
            "Your JSON Patch array:",
        ]
    return "\n".join(lines)


def build_jq_patch_prompt(errors: Sequence[FieldError], current: dict[str, Any]) -> str:
    """Ask for a jq filter fixing ``errors``."""
    if len(errors) == 1:
        lines = [
            "Your JSON output has a schema error that needs correction.",
            "",
            *_single_error_lines(errors[0]),
            "",
            *_current_json_block(current),
            "",
            "Respond with ONLY a jq-style patch to fix this field. Examples:",
            *_JQ_SINGLE_EXAMPLES,
            "",
            "Your patch:",
        ]
    else:
        lines = [
            "Your JSON output has schema errors that need correction.",
            "",
            *_batch_error_lines(errors),
            "",
            *_current_json_block(current),
            "",
            "Respond with jq-style patches to fix ALL errors. Use | to chain multiple patches.",
            "Examples:",
            *_JQ_BATCH_EXAMPLES,
            "",
            "Your patches (one line, pipe-separated):",
        ]
    return "\n".join(lines)


def build_patch_prompt(method: str, errors: Sequence[FieldError], current: dict[str, Any]) -> str:
    if method == "jq":
        return build_jq_patch_prompt(errors, current)
    return build_json_patch_prompt(errors, current)


def build_json_repair_prompt(
    error: FieldError,
    output_schema: dict[str, Any],
    previous: str,
) -> str:
    """Ask the LLM to resend its answer as one valid JSON object."""
    excerpt = previous.strip()
    if len(excerpt) > 2000:
        excerpt = excerpt[:2000] + "..."
    return "\n".join(
        [
            "Your previous response could not be used.",
            f"Problem: {error.message}",
            "",
            "Previous response (excerpt):",
            "```",
            excerpt,
            "```",
            "",
            "Resend your complete answer as a single valid JSON object. "
            "Do not add any explanation.",
            "",
            OUTPUT_FORMAT_INSTRUCTIONS,
            "",
            "```json",
            dump_json(output_schema),
            "```",
        ]
    )
