"""OpenAI-compatible chat completions backend over httpx with tenacity retry.

Chat completion APIs are stateless, so session continuity is provided
here: each session id maps to the message history kept in memory, and a
request that names a session is sent with that history prepended.

Reads configuration from constructor arguments or environment variables.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Any

import httpx
import tenacity

from ocpipe.backends.protocols import AgentRequest, AgentResponse
from ocpipe.exceptions import (
    BackendAbortedError,
    BackendAuthError,
    BackendConfigError,
    BackendError,
    BackendRateLimitError,
    BackendTimeoutError,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}
_FRONT_MATTER_RE = re.compile(r"\A---\s*\n.*?\n---\s*(\n|\Z)", re.DOTALL)


def _is_retryable(exc: BaseException) -> bool:
    """Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors."""
    if isinstance(exc, BackendAuthError):
        return False
    if isinstance(exc, BackendRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def load_agent_prompt(workdir: str | None, agent: str) -> str | None:
    """System prompt for ``agent`` from ``{workdir}/.opencode/agents/{agent}.md``.

    YAML front matter is stripped. Returns None if there is no such file.
    """
    if not agent or "/" in agent or "\\" in agent:
        return None
    path = Path(workdir or ".") / ".opencode" / "agents" / f"{agent}.md"
    if not path.is_file():
        return None
    text = path.read_text(encoding="utf-8")
    return _FRONT_MATTER_RE.sub("", text, count=1).strip() or None


class OpenAIBackend:
    """AgentBackend for OpenAI-compatible chat completion APIs.

    Usage::

        with OpenAIBackend(base_url="http://localhost:11434/v1", api_key="x") as backend:
            pipe = Pipeline(config, backend=backend)

    The request runs on a worker thread so a cancellation token or the
    per-call deadline can abandon it promptly.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        timeout: float = 120.0,
        max_retries: int = 3,
        temperature: float | None = None,
        max_tokens: int | None = None,
        retry_wait: tenacity.wait.wait_base | None = None,
        transport: httpx.BaseTransport | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: API key. Falls back to OCPIPE_OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to OCPIPE_OPENAI_BASE_URL env var,
                then to https://api.openai.com/v1.
            timeout: HTTP timeout in seconds for a single request.
            max_retries: Maximum attempts for retryable errors.
            temperature: Sampling temperature, sent when set.
            max_tokens: Completion token limit, sent when set.
            retry_wait: tenacity wait strategy between retries. Defaults to
                exponential backoff with jitter.
            transport: httpx transport override.
            poll_interval: Seconds between cancellation/deadline checks.

        Raises:
            BackendConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("OCPIPE_OPENAI_API_KEY", "")
        if not self._api_key:
            raise BackendConfigError(
                "No API key provided. Pass api_key= or set OCPIPE_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url or os.environ.get("OCPIPE_OPENAI_BASE_URL", "https://api.openai.com/v1")
        ).rstrip("/")
        self._max_retries = max_retries
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._retry_wait = retry_wait or (
            tenacity.wait_exponential(multiplier=1, min=1, max=30) + tenacity.wait_random(0, 2)
        )
        self._poll_interval = poll_interval
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="ocpipe-openai"
        )
        self._sessions: dict[str, list[dict[str, str]]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # AgentBackend
    # ------------------------------------------------------------------

    def run(self, request: AgentRequest) -> AgentResponse:
        token = request.cancel_token
        if token is not None:
            token.raise_if_cancelled()

        session_id = request.session_id or uuid.uuid4().hex
        with self._lock:
            history = list(self._sessions.get(session_id, []))
        if not history:
            if request.session_id:
                logger.warning("Unknown session %s, starting a new conversation", session_id)
            system = load_agent_prompt(request.workdir, request.agent)
            if system:
                history.append({"role": "system", "content": system})

        messages = [*history, {"role": "user", "content": request.prompt}]
        payload: dict[str, Any] = {"model": request.model.model_id, "messages": messages}
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        if self._max_tokens is not None:
            payload["max_tokens"] = self._max_tokens

        logger.info(
            "OpenAI [%s] [%s] session=%s (%d prior message(s))",
            request.agent,
            request.model,
            session_id,
            len(history),
        )
        future = self._executor.submit(self.chat, payload)
        data = self._await(future, request)
        text = self.extract_content(data)

        with self._lock:
            self._sessions[session_id] = [*messages, {"role": "assistant", "content": text}]
        return AgentResponse(text=text, session_id=session_id)

    def _await(self, future: concurrent.futures.Future[dict], request: AgentRequest) -> dict:
        timeout_sec = request.timeout_sec
        deadline = time.monotonic() + timeout_sec if timeout_sec and timeout_sec > 0 else None
        token = request.cancel_token
        while True:
            try:
                return future.result(timeout=self._poll_interval)
            except concurrent.futures.TimeoutError:
                pass
            except httpx.HTTPStatusError as exc:
                raise BackendError(
                    f"HTTP {exc.response.status_code} - {exc.response.text}"
                ) from exc
            except httpx.HTTPError as exc:
                raise BackendError(f"Request failed: {exc}") from exc
            except ValueError as exc:
                raise BackendError(f"Invalid JSON in response: {exc}") from exc
            if token is not None and token.cancelled:
                future.cancel()
                raise BackendAbortedError()
            if deadline is not None and time.monotonic() >= deadline:
                future.cancel()
                raise BackendTimeoutError(timeout_sec)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def chat(self, payload: dict[str, Any]) -> dict:
        """Send a chat completion request with retry.

        Raises:
            BackendAuthError: On 401/403 (no retry).
            BackendRateLimitError: On 429 after all retries exhausted.
            httpx.HTTPStatusError: On other non-retryable HTTP errors.
        """
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=self._retry_wait,
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(self._do_chat, payload)

    def _do_chat(self, payload: dict[str, Any]) -> dict:
        """Execute a single chat completion request (no retry)."""
        response = self._client.post(f"{self._base_url}/chat/completions", json=payload)

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise BackendAuthError(
                f"Authentication failed: HTTP {response.status_code} - {response.text}"
            )

        if response.status_code == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise BackendRateLimitError(
                f"Rate limited: HTTP 429 - {response.text}",
                retry_after=retry_after,
            )

        response.raise_for_status()
        return response.json()

    @staticmethod
    def extract_content(response: dict) -> str:
        """Assistant message content of the first choice.

        Raises:
            BackendError: If the response format is unexpected.
        """
        try:
            return response["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise BackendError(
                f"Cannot extract content from response: {exc}. Response: {response}"
            ) from exc

    # ------------------------------------------------------------------
    # Sessions and lifecycle
    # ------------------------------------------------------------------

    def history(self, session_id: str) -> list[dict[str, str]]:
        """Messages exchanged so far in a session."""
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def close(self) -> None:
        """Close the HTTP client and the worker pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def __enter__(self) -> OpenAIBackend:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
