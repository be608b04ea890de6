"""Prompt builder for Predict.

The prompt has three parts: the signature's doc, the inputs as a fenced
JSON block, and the output JSON Schema generated from the output field
validators (descriptions merged in).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from ocpipe.schema.signature import Signature

OUTPUT_FORMAT_INSTRUCTIONS: str = (
    "OUTPUT FORMAT:\n"
    "Return a JSON object matching this schema EXACTLY.\n"
    "IMPORTANT: For optional fields, OMIT the field entirely - do NOT use null."
)


def json_default(value: Any) -> Any:
    """``json.dumps`` fallback for pydantic models and other objects."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def dump_json(value: Any, indent: int | None = 2) -> str:
    return json.dumps(value, indent=indent, ensure_ascii=False, default=json_default)


def select_inputs(sig: Signature, inputs: Mapping[str, Any]) -> dict[str, Any]:
    """Declared inputs only, in declaration order. Absent inputs are omitted."""
    return {name: inputs[name] for name in sig.inputs if name in inputs}


def build_predict_prompt(sig: Signature, inputs: Mapping[str, Any]) -> str:
    """Build the default prompt for a signature."""
    lines = [
        sig.doc,
        "",
        "INPUTS:",
        "```json",
        dump_json(select_inputs(sig, inputs)),
        "```",
        "",
        OUTPUT_FORMAT_INSTRUCTIONS,
        "",
        "```json",
        dump_json(sig.output_schema),
        "```",
    ]
    return "\n".join(lines)
