"""JSON Pointer (RFC 6901) parsing with unsafe-key rejection."""

from __future__ import annotations

import re
from typing import Any

from ocpipe.exceptions import UnsafePatchError

#: Keys that are never traversed or written, whatever the container.
UNSAFE_KEYS = frozenset({"__proto__", "constructor", "prototype"})

_BRACKET_INDEX_RE = re.compile(r"\[(\d+)\]")


def to_pointer(path: str) -> str:
    """Convert a dotted path (``items.0.name``, ``items[0].name``) to a pointer.

    Paths that already start with ``/`` and the empty path are returned
    unchanged.
    """
    if path == "" or path.startswith("/"):
        return path
    pointer = "/" + path.replace(".", "/")
    return _BRACKET_INDEX_RE.sub(r"/\1", pointer)


def unescape_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def is_safe_segment(segment: str) -> bool:
    """Check an unescaped segment."""
    if segment in UNSAFE_KEYS:
        return False
    return "[" not in segment and "]" not in segment


def parse_pointer(path: Any) -> list[str]:
    """Split a pointer or dotted path into unescaped segments.

    Raises:
        UnsafePatchError: If the path is not a string or any segment is
            an unsafe key or contains brackets.
    """
    if not isinstance(path, str):
        raise UnsafePatchError(f"Patch path must be a string, got {type(path).__name__}")
    pointer = to_pointer(path)
    segments = [unescape_segment(s) for s in pointer.split("/")[1:] if s]
    for segment in segments:
        if not is_safe_segment(segment):
            raise UnsafePatchError(f"Unsafe path segment {segment!r} in {path!r}")
    return segments


def list_index(segment: str, length: int, *, allow_end: bool = False) -> int:
    """Resolve an array index segment.

    ``allow_end`` permits ``length`` itself (and ``-``), used for inserts.
    """
    if segment == "-" and allow_end:
        return length
    if not segment.isdigit():
        raise UnsafePatchError(f"Invalid array index {segment!r}")
    idx = int(segment)
    limit = length if allow_end else length - 1
    if idx > limit:
        raise IndexError(f"Array index {idx} out of range (length {length})")
    return idx


def resolve(doc: Any, segments: list[str]) -> Any:
    """Return the value at ``segments``.

    Raises:
        KeyError, IndexError: If the path does not exist.
    """
    current = doc
    for segment in segments:
        if isinstance(current, list):
            current = current[list_index(segment, len(current))]
        elif isinstance(current, dict):
            current = current[segment]
        else:
            raise KeyError(segment)
    return current
