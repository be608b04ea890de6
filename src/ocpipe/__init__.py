"""ocpipe: typed, self-correcting LLM steps with checkpointed pipelines.

Declare what a call takes and returns with a signature, execute it with
Predict, and compose predictors into modules run by a Pipeline that
retries, checkpoints and resumes.
"""

from ocpipe._version import __version__

# Schema
from ocpipe.schema import fields
from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.signature import Signature, signature

# Execution
from ocpipe.predict import Predict
from ocpipe.module import Module, SignatureModule, module
from ocpipe.correction import CorrectionController, CorrectionOutcome, CorrectionState
from ocpipe.pipeline import Pipeline
from ocpipe.checkpoint import CheckpointStore

# Configuration, context and results
from ocpipe.models.config import CorrectionConfig, ModelConfig, PipelineConfig, RetryConfig
from ocpipe.models.context import ExecutionContext
from ocpipe.models.results import PredictResult, StepResult
from ocpipe.models.state import (
    BaseState,
    StepRecord,
    SubPipelineRecord,
    create_base_state,
    create_session_id,
    extend_base_state,
)

# Backends
from ocpipe.backends import (
    AgentBackend,
    AgentRequest,
    AgentResponse,
    CancellationToken,
    OpenAIBackend,
    OpenCodeBackend,
)

# Parsing and patching
from ocpipe.parsing import (
    FieldError,
    ParseFail,
    ParseOk,
    extract_json,
    parse_json_from_response,
    parse_response,
    try_parse_response,
)
from ocpipe.patch import apply_jq_patch, apply_json_patch, get_patch_applier

# Exceptions
from ocpipe.exceptions import (
    BackendAbortedError,
    BackendAuthError,
    BackendConfigError,
    BackendError,
    BackendRateLimitError,
    BackendTimeoutError,
    CheckpointError,
    CorrectionAnomalyError,
    FieldValidationError,
    JsonParseError,
    JsonSyntaxError,
    NoJsonFoundError,
    OcpipeError,
    SchemaCorrectionExhaustedError,
)

__all__ = [
    "__version__",
    # Schema
    "fields",
    "FieldConfig",
    "Signature",
    "signature",
    # Execution
    "Predict",
    "Module",
    "SignatureModule",
    "module",
    "CorrectionController",
    "CorrectionOutcome",
    "CorrectionState",
    "Pipeline",
    "CheckpointStore",
    # Configuration, context and results
    "CorrectionConfig",
    "ModelConfig",
    "PipelineConfig",
    "RetryConfig",
    "ExecutionContext",
    "PredictResult",
    "StepResult",
    "BaseState",
    "StepRecord",
    "SubPipelineRecord",
    "create_base_state",
    "create_session_id",
    "extend_base_state",
    # Backends
    "AgentBackend",
    "AgentRequest",
    "AgentResponse",
    "CancellationToken",
    "OpenAIBackend",
    "OpenCodeBackend",
    # Parsing and patching
    "FieldError",
    "ParseFail",
    "ParseOk",
    "extract_json",
    "parse_json_from_response",
    "parse_response",
    "try_parse_response",
    "apply_jq_patch",
    "apply_json_patch",
    "get_patch_applier",
    # Exceptions
    "OcpipeError",
    "JsonParseError",
    "NoJsonFoundError",
    "JsonSyntaxError",
    "FieldValidationError",
    "SchemaCorrectionExhaustedError",
    "CorrectionAnomalyError",
    "BackendError",
    "BackendConfigError",
    "BackendAuthError",
    "BackendTimeoutError",
    "BackendAbortedError",
    "BackendRateLimitError",
    "CheckpointError",
]
