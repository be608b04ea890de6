"""Restricted jq patch applier.

Patches are jq filters such as ``.severity = "high" | del(.priority)``.
A filter is screened by a denylist of builtins and syntax that could read
the environment, files or stdin, then by an allow-list of characters.
Only filters that pass both are handed to an external ``jq`` binary,
invoked with an argument vector (never a shell) and the document on
stdin.

The denylist matches whole words, so field names that collide with a
denied builtin (``.input``, ``.error``, ``.env``) cannot be patched
through this strategy. Use the JSON Patch strategy for those.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_JQ_TIMEOUT = 10.0

_DENYLIST = [
    re.compile(p)
    for p in (
        r"\$",  # any variable, including $ENV and $__loc__
        r"`",
        r"@\w+",  # format encoders (@base64d, @sh, @csv, ...)
        r"\binputs?\b",
        r"\binput_filename\b",
        r"\bsystem\b",
        r"\benv\b",
        r"\bimport\b",
        r"\binclude\b",
        r"\bdebug\b",
        r"\bstderr\b",
        r"\berror\b",
        r"\bhalt(_error)?\b",
        r"\btostream\b",
        r"\bfromstream\b",
        r"\btruncate_stream\b",
    )
]

_ALLOWED_RE = re.compile(r"^[\s\w\[\]().\"'=|,:\-{}]*$")


def check_jq_patch(patch: str) -> str | None:
    """Screen a jq filter.

    Returns:
        None if the filter is allowed, else the reason it was rejected.
    """
    for pattern in _DENYLIST:
        if pattern.search(patch):
            return f"disallowed construct {pattern.pattern!r}"
    if not _ALLOWED_RE.match(patch):
        return "disallowed characters"
    return None


def resolve_jq_binary(jq_bin: str | None = None) -> str:
    return jq_bin or os.environ.get("OCPIPE_JQ_BIN") or "jq"


def apply_jq_patch(
    doc: dict[str, Any],
    patch: str,
    *,
    jq_bin: str | None = None,
    timeout: float = DEFAULT_JQ_TIMEOUT,
) -> dict[str, Any]:
    """Run a screened jq filter over ``doc``.

    Any rejection or failure (unsafe filter, missing binary, timeout,
    non-zero exit, output that is not a single JSON object) voids the
    patch and returns ``doc`` unchanged.
    """
    reason = check_jq_patch(patch)
    if reason is not None:
        logger.warning("Rejected jq patch (%s): %s", reason, patch)
        return doc

    binary = resolve_jq_binary(jq_bin)
    try:
        proc = subprocess.run(
            [binary, "--", patch],
            input=json.dumps(doc),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        logger.warning("jq binary not found: %s", binary)
        return doc
    except subprocess.TimeoutExpired:
        logger.warning("jq timed out after %ss: %s", timeout, patch)
        return doc
    except OSError as exc:
        logger.warning("jq execution failed: %s", exc)
        return doc

    if proc.returncode != 0:
        logger.warning("jq error (exit %d): %s", proc.returncode, proc.stderr.strip())
        return doc

    try:
        result = json.loads(proc.stdout.strip())
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning("jq produced unparsable output: %s", exc)
        return doc
    if not isinstance(result, dict):
        logger.warning("jq produced %s, expected an object", type(result).__name__)
        return doc
    return result


def extract_jq_patch(text: str) -> str:
    """Pick the jq filter out of an LLM reply.

    The first line starting with ``.`` or ``del(`` wins, after any list
    bullet or inline-code backticks around it are removed. Otherwise the
    whole trimmed reply is returned (and will usually be rejected).
    """
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("- "):
            stripped = stripped[2:].strip()
        stripped = stripped.strip("`").strip()
        if stripped.startswith(".") or stripped.startswith("del("):
            return stripped
    return text.strip()


class JqPatchApplier:
    """PatchApplier backed by an external jq binary."""

    name = "jq"

    def __init__(self, jq_bin: str | None = None, timeout: float = DEFAULT_JQ_TIMEOUT) -> None:
        self.jq_bin = jq_bin
        self.timeout = timeout

    def extract(self, text: str) -> str:
        return extract_jq_patch(text)

    def apply(self, doc: dict[str, Any], patch: str) -> dict[str, Any]:
        return apply_jq_patch(doc, patch, jq_bin=self.jq_bin, timeout=self.timeout)
