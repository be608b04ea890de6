"""Response extraction and validation."""

from ocpipe.parsing.extract import (
    extract_json,
    extract_patch_array,
    parse_json_from_response,
)
from ocpipe.parsing.similar import (
    DEFAULT_MATCHERS,
    FIELD_SYNONYMS,
    SynonymMatcher,
    find_similar_field,
    normalized_matcher,
)
from ocpipe.parsing.validate import (
    FieldError,
    ParseFail,
    ParseOk,
    ParseResult,
    parse_response,
    strip_nulls,
    try_parse_response,
    validate_object,
)

__all__ = [
    "DEFAULT_MATCHERS",
    "FIELD_SYNONYMS",
    "FieldError",
    "ParseFail",
    "ParseOk",
    "ParseResult",
    "SynonymMatcher",
    "extract_json",
    "extract_patch_array",
    "find_similar_field",
    "normalized_matcher",
    "parse_json_from_response",
    "parse_response",
    "strip_nulls",
    "try_parse_response",
    "validate_object",
]
