"""Validate LLM responses against a signature's output fields.

``try_parse_response`` never raises: it returns ParseOk or ParseFail with
a list of FieldErrors the correction controller can act on.
``parse_response`` is the raising variant.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ocpipe.exceptions import FieldValidationError, JsonSyntaxError, NoJsonFoundError
from ocpipe.parsing.extract import extract_json
from ocpipe.parsing.similar import DEFAULT_MATCHERS, SimilarFieldMatcher, find_similar_field
from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.signature import build_output_validator

logger = logging.getLogger(__name__)

#: Error codes that mean the response has no usable JSON object.
JSON_ERROR_CODES = frozenset({"no_json_found", "json_parse_failed"})


@dataclass(frozen=True)
class FieldError:
    """One schema violation in a response.

    Attributes:
        path: Dotted path to the offending value ("" for the whole document).
        message: Human-readable explanation.
        expected_type: Type description of the top-level field involved.
        found_field: For a missing field, an undeclared key that probably
            holds the intended value.
        found_value: The value under ``found_field``.
        code: Machine-readable kind: no_json_found, json_parse_failed,
            missing, invalid_type, invalid_value or custom.
    """

    path: str
    message: str
    expected_type: str
    found_field: str | None = None
    found_value: Any = None
    code: str = "invalid_value"

    @property
    def is_json_error(self) -> bool:
        return self.code in JSON_ERROR_CODES


@dataclass(frozen=True)
class ParseOk:
    """Validated response.

    Attributes:
        data: Declared output fields only, converted by their validators.
        json: The null-stripped parsed object.
    """

    data: dict[str, Any]
    json: dict[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseFail:
    """Failed validation. ``json`` is set when the response parsed as an object.

    ``errors`` is normally non-empty. An empty tuple means a validator
    rejected the value without saying why, which the correction controller
    reports as an anomaly.
    """

    errors: tuple[FieldError, ...]
    json: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_json_error(self) -> bool:
        return any(e.is_json_error for e in self.errors)


ParseResult = ParseOk | ParseFail


def strip_nulls(value: Any) -> Any:
    """Drop null-valued keys from objects, recursively.

    Array slots keep their nulls so element positions stay stable;
    objects inside arrays are still cleaned.
    """
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(item) for item in value]
    return value


def validate_object(
    parsed: Any,
    outputs: Mapping[str, FieldConfig],
    matchers: Sequence[SimilarFieldMatcher] = DEFAULT_MATCHERS,
) -> ParseResult:
    """Validate an already decoded JSON value against ``outputs``."""
    if not isinstance(parsed, dict):
        return ParseFail(
            [
                FieldError(
                    path="",
                    message=f"Expected a JSON object, got {type(parsed).__name__}",
                    expected_type="object",
                    code="json_parse_failed",
                )
            ]
        )

    try:
        cleaned = strip_nulls(parsed)
    except RecursionError:
        return ParseFail(
            [
                FieldError(
                    path="",
                    message="JSON parse failed: document is nested too deeply",
                    expected_type="object",
                    code="json_parse_failed",
                )
            ]
        )
    checked = build_output_validator(outputs).validate(cleaned)
    if checked.ok:
        return ParseOk(data=checked.value, json=cleaned)

    declared = list(outputs)
    errors: list[FieldError] = []
    for issue in checked.issues:
        top = issue.path[0] if issue.path else None
        field_cfg = outputs.get(top) if isinstance(top, str) else None
        expected = field_cfg.type_description if field_cfg is not None else issue.expected

        found_field: str | None = None
        found_value: Any = None
        if issue.code == "missing" and len(issue.path) == 1 and isinstance(top, str):
            found_field = find_similar_field(top, cleaned, declared, matchers)
            if found_field is not None:
                found_value = cleaned[found_field]

        errors.append(
            FieldError(
                path=issue.dotted_path,
                message=issue.message,
                expected_type=expected,
                found_field=found_field,
                found_value=found_value,
                code=issue.code,
            )
        )
    if not errors:
        logger.warning("Validator rejected the response without reporting issues")
    logger.debug("Validation produced %d field error(s)", len(errors))
    return ParseFail(errors, json=cleaned)


def try_parse_response(
    text: str,
    outputs: Mapping[str, FieldConfig],
    matchers: Sequence[SimilarFieldMatcher] = DEFAULT_MATCHERS,
) -> ParseResult:
    """Extract, decode and validate the JSON object in ``text``."""
    candidate = extract_json(text)
    if candidate is None:
        return ParseFail(
            [
                FieldError(
                    path="",
                    message="No JSON found in response",
                    expected_type="object",
                    code="no_json_found",
                )
            ]
        )
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as exc:
        return ParseFail(
            [
                FieldError(
                    path="",
                    message=f"JSON parse failed: {exc}",
                    expected_type="object",
                    code="json_parse_failed",
                )
            ]
        )
    return validate_object(parsed, outputs, matchers)


def format_field_errors(errors: Sequence[FieldError]) -> str:
    return "; ".join(f"{e.path or '<root>'}: {e.message}" for e in errors)


def parse_response(text: str, outputs: Mapping[str, FieldConfig]) -> dict[str, Any]:
    """Raising variant of try_parse_response.

    Raises:
        NoJsonFoundError: No JSON object in the response.
        JsonSyntaxError: The JSON did not decode, or is not an object.
        FieldValidationError: The object failed the output fields.
    """
    result = try_parse_response(text, outputs)
    if isinstance(result, ParseOk):
        return result.data

    first = result.errors[0]
    if first.code == "no_json_found":
        raise NoJsonFoundError(first.message, raw=text)
    if first.code == "json_parse_failed":
        raise JsonSyntaxError(first.message, raw=text)
    raise FieldValidationError(
        f"Validation failed: {format_field_errors(result.errors)}",
        raw=text,
        field_errors=list(result.errors),
    )
