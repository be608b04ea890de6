"""Shared test fixtures for ocpipe.

Provides a scripted mock backend, an execution context wired to it, and
a pipeline config whose checkpoints go to a temporary directory.
"""

import pytest

from ocpipe import ModelConfig, PipelineConfig, fields, signature
from ocpipe.testing import MockAgentBackend, create_mock_context


@pytest.fixture
def backend() -> MockAgentBackend:
    return MockAgentBackend()


@pytest.fixture
def ctx(backend):
    return create_mock_context(backend)


@pytest.fixture
def model() -> ModelConfig:
    return ModelConfig(provider_id="test", model_id="model-1")


@pytest.fixture
def pipeline_config(tmp_path, model) -> PipelineConfig:
    return PipelineConfig(
        name="test-pipe",
        default_model=model,
        checkpoint_dir=str(tmp_path / "ckpt"),
    )


@pytest.fixture
def person_sig():
    """Signature with two required outputs: name (string), age (number)."""
    return signature(
        "Extract the person mentioned in the text.",
        inputs={"text": fields.string("Source text")},
        outputs={
            "name": fields.string("Full name"),
            "age": fields.number("Age in years"),
        },
    )
