"""Result types for predictions and pipeline steps."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from ocpipe.models.config import ModelConfig

T = TypeVar("T")


@dataclass(frozen=True)
class PredictResult:
    """Outcome of Predict.execute().

    Attributes:
        data: Validated output fields.
        raw: Reply text of the initial call.
        session_id: Session the reply (or last correction) came from.
        duration: Wall time in milliseconds, corrections included.
        model: Model that produced the initial reply.
    """

    data: dict[str, Any]
    raw: str
    session_id: str
    duration: float
    model: ModelConfig


class StepResult(BaseModel, Generic[T]):
    """Outcome of one pipeline step. ``duration`` is in milliseconds;
    ``attempt`` is the 1-based attempt that succeeded."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    data: T
    step_name: str
    duration: float
    session_id: str
    model: ModelConfig
    attempt: int = 1
