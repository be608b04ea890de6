"""Checkpointable pipeline state.

BaseState allows extra fields, so application data set on a state
survives a checkpoint round trip even without a subclass. Subclasses may
declare typed extension fields instead::

    class ReviewState(BaseState):
        issues: list[dict] = []
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, SerializeAsAny

from ocpipe.models.results import StepResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_session_id() -> str:
    """Timestamp-based run id, ``YYYYMMDD_HHMMSS`` in UTC."""
    return _utcnow().strftime("%Y%m%d_%H%M%S")


class StepRecord(BaseModel):
    """A completed step as stored in a checkpoint."""

    step_name: str
    timestamp: datetime = Field(default_factory=_utcnow)
    result: StepResult


class SubPipelineRecord(BaseModel):
    """A sub-pipeline run as stored in its parent's checkpoint."""

    name: str
    session_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    state: SerializeAsAny[BaseState]


class BaseState(BaseModel):
    """State shared by every pipeline.

    Attributes:
        session_id: Pipeline run id (checkpoint key).
        started_at: When the run started.
        agent_session_id: Last backend session id, restored on resume.
        phase: Application-defined progress marker.
        steps: Completed steps in order.
        sub_pipelines: Sub-pipeline runs in order.
    """

    model_config = {"extra": "allow"}

    session_id: str = Field(default_factory=create_session_id)
    started_at: datetime = Field(default_factory=_utcnow)
    agent_session_id: Optional[str] = None
    phase: str = "init"
    steps: list[StepRecord] = Field(default_factory=list)
    sub_pipelines: list[SubPipelineRecord] = Field(default_factory=list)


SubPipelineRecord.model_rebuild()
BaseState.model_rebuild()


def create_base_state() -> BaseState:
    """Fresh state with a new session id."""
    return BaseState()


def extend_base_state(**fields: Any) -> BaseState:
    """Fresh state carrying extra application fields.

    Example::

        Pipeline(config, lambda: extend_base_state(issues=[]), backend=backend)
    """
    reserved = set(BaseState.model_fields) & set(fields)
    if reserved:
        raise ValueError(f"Cannot override BaseState fields: {sorted(reserved)}")
    return BaseState(**fields)
