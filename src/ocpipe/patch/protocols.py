"""PatchApplier protocol and strategy lookup."""

from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from ocpipe.patch.jq import JqPatchApplier
from ocpipe.patch.json_patch import JsonPatchApplier

PatchMethod = Literal["json-patch", "jq"]


@runtime_checkable
class PatchApplier(Protocol):
    """A patch strategy: pull a patch out of an LLM reply and apply it.

    ``apply`` must be total: it returns the (possibly unchanged)
    document and never raises for malformed or unsafe patches.
    """

    name: str

    def extract(self, text: str) -> Any:
        """Extract the patch from a reply."""
        ...

    def apply(self, doc: dict[str, Any], patch: Any) -> dict[str, Any]:
        """Apply a patch, returning a new document."""
        ...


def get_patch_applier(method: PatchMethod | str, **kwargs: Any) -> PatchApplier:
    """Return the applier for ``method``.

    Raises:
        ValueError: If the method is unknown.
    """
    if method == "json-patch":
        return JsonPatchApplier()
    if method == "jq":
        return JqPatchApplier(**kwargs)
    raise ValueError(f"Unknown patch method {method!r}; expected 'json-patch' or 'jq'")
