"""Cooperative cancellation for in-flight backend calls."""

from __future__ import annotations

import threading

from ocpipe.exceptions import BackendAbortedError


class CancellationToken:
    """Thread-safe, idempotent cancellation flag.

    Backends poll the token while a call is in flight and abort with
    BackendAbortedError once it is set. Calling ``cancel()`` more than
    once has no further effect.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BackendAbortedError()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
