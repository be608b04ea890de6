"""Pull JSON substrings out of free-form LLM responses.

LLMs wrap JSON in markdown fences inconsistently and often add prose
before or after the payload. Extraction is two-tiered:

1. The first fenced code block (optional language tag) whose trimmed
   interior opens with the wanted delimiter.
2. Otherwise, the first opening delimiter in the text, scanned forward
   with a depth counter until it balances. Delimiters inside JSON
   string literals are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from ocpipe.exceptions import JsonSyntaxError, NoJsonFoundError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)


def _fenced_blocks(text: str) -> Iterator[str]:
    for match in _FENCE_RE.finditer(text):
        yield match.group(1).strip()


def scan_balanced(text: str, start: int, open_ch: str, close_ch: str) -> str | None:
    """Return the balanced span of ``text`` starting at ``start``.

    ``text[start]`` must be ``open_ch``. Returns None if the span never
    closes.
    """
    if start < 0 or start >= len(text) or text[start] != open_ch:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def extract_json(text: str) -> str | None:
    """Extract a JSON object substring from an LLM response.

    Returns:
        The fenced block's trimmed interior, or the first balanced
        ``{...}`` span, or None.
    """
    for block in _fenced_blocks(text):
        if block.startswith("{"):
            return block
    return scan_balanced(text, text.find("{"), "{", "}")


def extract_patch_array(text: str) -> str | None:
    """Extract a JSON array substring (bracket-balanced) from an LLM response."""
    for block in _fenced_blocks(text):
        if block.startswith("["):
            span = scan_balanced(block, 0, "[", "]")
            if span is not None:
                return span
    return scan_balanced(text, text.find("["), "[", "]")


def parse_json_from_response(text: str) -> Any:
    """Extract and decode the JSON object in a response, without schema checks.

    Raises:
        NoJsonFoundError: If no JSON object substring is present.
        JsonSyntaxError: If the substring does not decode.
    """
    candidate = extract_json(text)
    if candidate is None:
        logger.debug("No JSON object in response: %.100s", text)
        raise NoJsonFoundError("No JSON found in response", raw=text)
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise JsonSyntaxError(f"JSON parse failed: {exc}", raw=text) from exc
