"""Configuration models for ocpipe.

ModelConfig names a provider/model pair.
RetryConfig controls step-level retries in a Pipeline.
CorrectionConfig controls LLM-assisted schema correction in Predict.
PipelineConfig holds per-pipeline settings.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

CorrectionMethod = Literal["json-patch", "jq"]


class ModelConfig(BaseModel):
    """Provider and model identifiers.

    Example::

        ModelConfig(provider_id="anthropic", model_id="claude-sonnet-4")
        ModelConfig.parse("openai/gpt-4o-mini")
    """

    model_config = {"frozen": True, "protected_namespaces": ()}

    provider_id: str
    model_id: str

    @classmethod
    def parse(cls, value: str) -> ModelConfig:
        """Parse ``provider/model``. Everything after the first slash is the model id."""
        provider, sep, model = value.partition("/")
        if not sep or not provider or not model:
            raise ValueError(f"Expected 'provider/model', got {value!r}")
        return cls(provider_id=provider, model_id=model)

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


class RetryConfig(BaseModel):
    """Step-level retry policy.

    ``max_attempts`` counts the first try. JSON extraction failures are
    retried only when ``on_parse_error`` is set; schema-correction
    exhaustion and cancellation are never retried.
    """

    max_attempts: int = Field(default=1, ge=1)
    on_parse_error: bool = False


class CorrectionConfig(BaseModel):
    """Schema-correction settings for Predict.

    Attributes:
        method: Patch strategy the LLM is asked for.
        model: Separate model for corrections. When set, every correction
            round starts a fresh session on that model.
        max_fields: Field errors included per correction prompt.
        max_rounds: Round budget, applied separately to JSON repair and
            to field correction.
        timeout_sec: Deadline for each correction call.
        repair_json: Ask the LLM to resend valid JSON when the response
            has none (or it does not parse).
    """

    method: CorrectionMethod = "json-patch"
    model: Optional[ModelConfig] = None
    max_fields: int = Field(default=5, ge=1)
    max_rounds: int = Field(default=3, ge=0)
    timeout_sec: int = Field(default=60, gt=0)
    repair_json: bool = True


class PipelineConfig(BaseModel):
    """Per-pipeline configuration."""

    name: str
    default_model: ModelConfig
    default_agent: str = "general"
    checkpoint_dir: str = "./ckpt"
    log_dir: Optional[str] = None
    retry: Optional[RetryConfig] = None
    timeout_sec: int = Field(default=300, gt=0)
    workdir: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value:
            raise ValueError("Pipeline name must be non-empty and contain no path separators")
        return value
