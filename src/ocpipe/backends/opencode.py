"""OpenCode CLI backend.

Runs ``opencode run`` as a subprocess (argument vector, never a shell)
and continues conversations through OpenCode's own session ids. After a
successful run the session is exported to JSON so the assistant's text
can be read without the CLI's progress output mixed in.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any

from ocpipe.backends.cancellation import CancellationToken
from ocpipe.backends.protocols import AgentRequest, AgentResponse
from ocpipe.exceptions import (
    BackendAbortedError,
    BackendConfigError,
    BackendError,
    BackendRateLimitError,
    BackendTimeoutError,
)

logger = logging.getLogger(__name__)

_SESSION_LINE_RE = re.compile(r"^\[session:([^\]]+)\]\s*$")
_RATE_LIMIT_RE = re.compile(r"rate.?limit|too many requests|\b429\b", re.IGNORECASE)
_NOISE_MARKERS = ("baseline-browser-mapping", "$ bun run")

EXPORT_TIMEOUT_SEC = 60.0


def find_opencode(path: str | None = None) -> str | None:
    """Locate the opencode binary on PATH, preferring non-node_modules entries."""
    dirs = (path if path is not None else os.environ.get("PATH", "")).split(os.pathsep)
    preferred = [d for d in dirs if d and "node_modules" not in d]
    fallback = [d for d in dirs if d and "node_modules" in d]
    for directory in preferred + fallback:
        candidate = os.path.join(directory, "opencode")
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def parse_session_id(stderr: str) -> str | None:
    """Return the last ``[session:ID]`` marker in OpenCode's stderr."""
    found = None
    for line in stderr.splitlines():
        match = _SESSION_LINE_RE.match(line.strip())
        if match:
            found = match.group(1)
    return found


def _is_noise(line: str) -> bool:
    return any(marker in line for marker in _NOISE_MARKERS)


def extract_assistant_text(exported: dict[str, Any]) -> str | None:
    """Text parts of the last assistant message in a session export."""
    messages = exported.get("messages") or []
    for message in reversed(messages):
        if (message.get("info") or {}).get("role") != "assistant":
            continue
        parts = [
            part["text"]
            for part in message.get("parts") or []
            if part.get("type") == "text" and part.get("text")
        ]
        if parts:
            return "\n".join(parts)
    return None


class OpenCodeBackend:
    """AgentBackend that shells out to the OpenCode CLI.

    Args:
        opencode_bin: Path to the binary. Falls back to OCPIPE_OPENCODE_BIN,
            then to a PATH search.
        export_session: Re-read the reply through ``opencode session export``.
        poll_interval: Seconds between cancellation/deadline checks.
    """

    def __init__(
        self,
        opencode_bin: str | None = None,
        *,
        export_session: bool = True,
        poll_interval: float = 0.2,
    ) -> None:
        self._opencode_bin = opencode_bin
        self.export_session = export_session
        self.poll_interval = poll_interval

    @property
    def binary(self) -> str:
        """Resolved binary path.

        Raises:
            BackendConfigError: If opencode cannot be found.
        """
        binary = self._opencode_bin or os.environ.get("OCPIPE_OPENCODE_BIN") or find_opencode()
        if not binary:
            raise BackendConfigError(
                "opencode not found. Install it, pass opencode_bin=, or set OCPIPE_OPENCODE_BIN."
            )
        return binary

    def build_command(self, request: AgentRequest) -> list[str]:
        args = [
            self.binary,
            "run",
            "--format",
            "default",
            "--agent",
            request.agent,
            "--model",
            str(request.model),
        ]
        if request.session_id:
            args += ["--session", request.session_id]
        # Prompt goes last as a positional argument; stdin is not read without a TTY.
        args.append(request.prompt)
        return args

    def run(self, request: AgentRequest) -> AgentResponse:
        token = request.cancel_token
        if token is not None:
            token.raise_if_cancelled()

        command = self.build_command(request)
        preview = request.prompt[:50].replace("\n", " ")
        logger.info(
            "OpenCode [%s] [%s] %s: %s...",
            request.agent,
            request.model,
            f"[session:{request.session_id}]" if request.session_id else "[new session]",
            preview,
        )

        try:
            proc = subprocess.Popen(
                command,
                cwd=request.workdir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise BackendError(f"Failed to start opencode: {exc}") from exc

        stdout, stderr = self._communicate(proc, request.timeout_sec, token)

        for line in stderr.splitlines():
            if line.strip() and not _is_noise(line) and not _SESSION_LINE_RE.match(line.strip()):
                logger.debug("opencode: %s", line)

        if proc.returncode != 0:
            tail = "\n".join(stderr.strip().splitlines()[-5:])
            if _RATE_LIMIT_RE.search(stderr):
                raise BackendRateLimitError(f"OpenCode rate limited: {tail}")
            detail = f"\n{tail}" if tail else ""
            raise BackendError(f"OpenCode exited with code {proc.returncode}{detail}")

        session_id = parse_session_id(stderr) or request.session_id or ""
        text = stdout.strip()
        if session_id and self.export_session:
            exported = self._export(session_id, request.workdir)
            if exported:
                text = exported

        logger.info("OpenCode done (%d chars) [session:%s]", len(text), session_id or "none")
        return AgentResponse(text=text, session_id=session_id)

    def _communicate(
        self,
        proc: subprocess.Popen[str],
        timeout_sec: float,
        token: CancellationToken | None,
    ) -> tuple[str, str]:
        """Wait for the process, polling the deadline and the cancellation token."""
        deadline = time.monotonic() + timeout_sec if timeout_sec and timeout_sec > 0 else None
        while True:
            try:
                return proc.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                pass
            if token is not None and token.cancelled:
                self._kill(proc)
                raise BackendAbortedError()
            if deadline is not None and time.monotonic() >= deadline:
                self._kill(proc)
                raise BackendTimeoutError(timeout_sec)

    @staticmethod
    def _kill(proc: subprocess.Popen[str]) -> None:
        proc.kill()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning("opencode (pid %s) did not exit after kill", proc.pid)

    def _export(self, session_id: str, workdir: str | None) -> str | None:
        """Assistant text of the session's last reply, or None if export fails."""
        with tempfile.TemporaryDirectory(prefix="ocpipe-export-") as tmp:
            out_path = Path(tmp) / "session.json"
            try:
                subprocess.run(
                    [self.binary, "session", "export", session_id, "--format", "json", "-o", str(out_path)],
                    cwd=workdir,
                    stdin=subprocess.DEVNULL,
                    capture_output=True,
                    text=True,
                    timeout=EXPORT_TIMEOUT_SEC,
                    check=False,
                )
                if not out_path.exists():
                    return None
                data = json.loads(out_path.read_text(encoding="utf-8"))
            except (OSError, subprocess.TimeoutExpired, json.JSONDecodeError) as exc:
                logger.debug("Session export failed for %s: %s", session_id, exc)
                return None
        if not isinstance(data, dict):
            return None
        return extract_assistant_text(data)
