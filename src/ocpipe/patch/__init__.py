"""Patch engine: JSON Patch and restricted jq strategies."""

from ocpipe.patch.jq import JqPatchApplier, apply_jq_patch, check_jq_patch, extract_jq_patch
from ocpipe.patch.json_patch import JsonPatchApplier, apply_json_patch, extract_json_patch
from ocpipe.patch.pointer import UNSAFE_KEYS, parse_pointer, to_pointer
from ocpipe.patch.protocols import PatchApplier, PatchMethod, get_patch_applier

__all__ = [
    "UNSAFE_KEYS",
    "JqPatchApplier",
    "JsonPatchApplier",
    "PatchApplier",
    "PatchMethod",
    "apply_jq_patch",
    "apply_json_patch",
    "check_jq_patch",
    "extract_jq_patch",
    "extract_json_patch",
    "get_patch_applier",
    "parse_pointer",
    "to_pointer",
]
