"""Similar-field detection for missing output fields.

When a required field is absent, the LLM often wrote the value under a
different key (``type`` instead of ``issue_type``, ``segmentIndex``
instead of ``segment_index``). Matchers look through the undeclared
top-level keys of the response and name the most likely candidate,
which the correction prompt then points out.

A matcher is any callable ``(expected, extra_keys) -> str | None``.
They run in order; the first hit wins.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any

SimilarFieldMatcher = Callable[[str, Sequence[str]], "str | None"]

FIELD_SYNONYMS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "issue_type": ("type", "issueType", "issue", "kind", "category"),
        "segment_index": ("index", "segmentIndex", "segment_idx", "idx"),
        "timestamp_sec": ("timestamp", "time", "time_sec", "seconds", "timestampSec"),
        "why_awkward": ("description", "reason", "explanation", "why"),
        "ideal_state": ("suggestion", "suggested", "fix", "recommendation"),
        "severity": ("priority", "level", "importance"),
    }
)


class SynonymMatcher:
    """Match through a static table of known alternative names."""

    def __init__(self, synonyms: Mapping[str, Sequence[str]] = FIELD_SYNONYMS) -> None:
        self.synonyms = synonyms

    def __call__(self, expected: str, extra_keys: Sequence[str]) -> str | None:
        for alt in self.synonyms.get(expected, ()):
            if alt in extra_keys:
                return alt
        return None


def _normalize(name: str) -> str:
    return name.lower().replace("_", "")


def normalized_matcher(expected: str, extra_keys: Sequence[str]) -> str | None:
    """Match ignoring case and underscores, then by containment."""
    target = _normalize(expected)
    for key in extra_keys:
        candidate = _normalize(key)
        if not candidate:
            continue
        if candidate == target or candidate in target or target in candidate:
            return key
    return None


DEFAULT_MATCHERS: tuple[SimilarFieldMatcher, ...] = (SynonymMatcher(), normalized_matcher)


def find_similar_field(
    expected: str,
    parsed: Mapping[str, Any],
    declared: Sequence[str],
    matchers: Sequence[SimilarFieldMatcher] = DEFAULT_MATCHERS,
) -> str | None:
    """Name the undeclared key in ``parsed`` most likely meant as ``expected``."""
    extra_keys = [k for k in parsed if k not in declared]
    if not extra_keys:
        return None
    for matcher in matchers:
        hit = matcher(expected, extra_keys)
        if hit is not None:
            return hit
    return None
