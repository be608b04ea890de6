"""ocpipe exception hierarchy.

All ocpipe-specific exceptions inherit from OcpipeError.

Routing summary:
- JsonParseError (NoJsonFoundError, JsonSyntaxError): the response held no
  usable JSON object. Retried by a pipeline step only when its retry policy
  sets ``on_parse_error``.
- FieldValidationError: JSON parsed but failed the output schema.
- SchemaCorrectionExhaustedError: terminal. Correction rounds ran out.
  Never retried.
- BackendError: transport / process failures from an agent backend.
  BackendAbortedError is never retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ocpipe.parsing.validate import FieldError


class OcpipeError(Exception):
    """Base exception for all ocpipe errors."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class JsonParseError(OcpipeError):
    """Raised when no JSON object can be obtained from a response.

    Attributes:
        raw: The full response text that failed to parse.
    """

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


class NoJsonFoundError(JsonParseError):
    """Raised when a response contains no JSON substring at all."""


class JsonSyntaxError(JsonParseError):
    """Raised when the extracted JSON substring is not valid JSON."""


class FieldValidationError(OcpipeError):
    """Raised when parsed JSON fails the output schema.

    Named FieldValidationError (not ValidationError) to avoid
    collision with pydantic.ValidationError.

    Attributes:
        raw: The response text that was validated.
        field_errors: Every field that failed.
    """

    def __init__(self, message: str, raw: str, field_errors: list[FieldError]) -> None:
        self.raw = raw
        self.field_errors = list(field_errors)
        super().__init__(message)


class SchemaCorrectionExhaustedError(OcpipeError):
    """Raised when schema correction rounds are exhausted without valid data.

    Terminal: pipeline steps never retry this error.

    Attributes:
        field_errors: Errors remaining after the final round.
        correction_attempts: Number of correction round-trips made.
    """

    def __init__(
        self,
        field_errors: list[FieldError],
        correction_attempts: int,
        message: str | None = None,
    ) -> None:
        self.field_errors = list(field_errors)
        self.correction_attempts = correction_attempts
        if message is None:
            detail = "; ".join(f"{e.path or '<root>'}: {e.message}" for e in self.field_errors)
            message = (
                f"Schema validation failed after {correction_attempts} "
                f"correction round(s): {detail or 'Unknown error'}"
            )
        super().__init__(message)


class CorrectionAnomalyError(SchemaCorrectionExhaustedError):
    """Raised when re-validation reports neither data nor errors.

    Kept distinct from ordinary exhaustion so callers can tell the two
    apart. Still terminal.
    """


# ---------------------------------------------------------------------------
# Patch engine (internal)
# ---------------------------------------------------------------------------


class UnsafePatchError(OcpipeError):
    """Raised inside the patch engine for a disallowed or malformed path.

    Always caught per operation by the patch appliers; never escapes
    ``apply()``.
    """


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class BackendError(OcpipeError):
    """Base for agent backend failures (process, transport, HTTP)."""


class BackendConfigError(BackendError):
    """Missing or invalid backend configuration (no binary, no API key)."""


class BackendAuthError(BackendError):
    """Authentication failed (401/403). Never retried by the HTTP backend."""


class BackendTimeoutError(BackendError):
    """Raised when a backend call exceeds its deadline.

    Attributes:
        timeout_sec: The deadline that expired.
    """

    def __init__(self, timeout_sec: float) -> None:
        self.timeout_sec = timeout_sec
        super().__init__(f"Timeout after {timeout_sec}s")


class BackendAbortedError(BackendError):
    """Raised when a backend call is cancelled through its CancellationToken.

    Never retried by pipeline steps.
    """

    def __init__(self, message: str = "Request aborted") -> None:
        super().__init__(message)


class BackendRateLimitError(BackendError):
    """Rate limited by the backend.

    Attributes:
        retry_after: Seconds to wait before retrying, or None if unknown.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------


class CheckpointError(OcpipeError):
    """Raised when a checkpoint file exists but cannot be read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot load checkpoint {path}: {reason}")
