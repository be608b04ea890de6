"""Pipeline: step execution with retry, checkpointing and sub-pipelines.

A Pipeline owns one ExecutionContext and one state object. Every step
(``run``) is recorded in the state and checkpointed, including failed
ones. A resumed pipeline (``load_checkpoint``) continues the backend
session it left off with.

Usage::

    config = PipelineConfig(name="review", default_model=ModelConfig.parse("openai/gpt-4o"))
    with Pipeline(config, backend=OpenAIBackend()) as pipe:
        result = pipe.run(module(FindIssues), {"code": source}, retry=RetryConfig(max_attempts=2))
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

import tenacity

from ocpipe.backends.cancellation import CancellationToken
from ocpipe.backends.protocols import AgentBackend
from ocpipe.checkpoint import CheckpointStore
from ocpipe.exceptions import BackendAbortedError, JsonParseError, SchemaCorrectionExhaustedError
from ocpipe.models.config import ModelConfig, PipelineConfig, RetryConfig
from ocpipe.models.context import ExecutionContext
from ocpipe.models.results import StepResult
from ocpipe.models.state import BaseState, StepRecord, SubPipelineRecord, create_base_state
from ocpipe.module import Module

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseState)
T = TypeVar("T")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def is_retryable(exc: BaseException, policy: RetryConfig) -> bool:
    """Classify a step failure.

    Correction exhaustion and cancellation are terminal. JSON extraction
    failures retry only when the policy opts in. Everything else retries.
    """
    if isinstance(exc, (SchemaCorrectionExhaustedError, BackendAbortedError)):
        return False
    if isinstance(exc, JsonParseError):
        return policy.on_parse_error
    return True


class Pipeline(Generic[S]):
    """Runs modules against one context and records them in one state.

    Args:
        config: Pipeline configuration.
        create_state: Factory for the initial state.
        backend: Agent backend for every step.
        cancel_token: Cancels in-flight backend calls when set.
    """

    def __init__(
        self,
        config: PipelineConfig,
        create_state: Callable[[], S] = create_base_state,  # type: ignore[assignment]
        *,
        backend: AgentBackend,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.config = config
        self.state: S = create_state()
        self.ctx = ExecutionContext(
            backend=backend,
            default_model=config.default_model,
            default_agent=config.default_agent,
            timeout_sec=config.timeout_sec,
            workdir=config.workdir,
            cancel_token=cancel_token,
        )
        self.store = CheckpointStore(config.checkpoint_dir)
        self._step_number = 0
        self._log_handler: logging.Handler | None = None
        self._previous_log_level: int | None = None
        if config.log_dir:
            self._attach_log_file(config.log_dir)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def run(
        self,
        module: Module[Any, T],
        input: Any,  # noqa: A002
        *,
        name: str | None = None,
        model: ModelConfig | None = None,
        new_session: bool = False,
        retry: RetryConfig | None = None,
    ) -> StepResult[T]:
        """Run a module as a step.

        Args:
            module: The unit of work.
            input: Passed to ``module.forward``.
            name: Step name; defaults to the module's class name.
            model: Model override for this step only.
            new_session: Drop the current backend session before the step.
            retry: Retry policy; defaults to ``config.retry``, then one attempt.

        Returns:
            StepResult whose ``attempt`` is the attempt that succeeded.

        Raises:
            Whatever the final attempt raised, after the state is checkpointed.
        """
        step_name = name or type(module).__name__
        self._step_number += 1
        self._log_step(step_name)

        if new_session:
            self.ctx.session_id = None

        original_model = self.ctx.default_model
        if model is not None:
            self.ctx.default_model = model

        policy = retry or self.config.retry or RetryConfig()
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(lambda exc: is_retryable(exc, policy)),
            stop=tenacity.stop_after_attempt(policy.max_attempts),
            wait=tenacity.wait_none(),
            before_sleep=self._log_retry(step_name, policy),
            reraise=True,
        )

        start = time.monotonic()
        attempt_no = 0
        try:
            for attempt in retryer:
                with attempt:
                    attempt_no = attempt.retry_state.attempt_number
                    data = module.forward(input, self.ctx)
        except Exception as exc:
            if isinstance(exc, SchemaCorrectionExhaustedError):
                logger.error(
                    "Step %s failed with schema validation error (corrections exhausted): %s",
                    step_name,
                    exc,
                )
            else:
                logger.error("Step %s failed after %d attempt(s): %s", step_name, attempt_no, exc)
            self.state.agent_session_id = self.ctx.session_id
            self.save_checkpoint()
            raise
        finally:
            self.ctx.default_model = original_model

        result: StepResult[T] = StepResult(
            data=data,
            step_name=step_name,
            duration=(time.monotonic() - start) * 1000,
            session_id=self.ctx.session_id or "",
            model=model or self.config.default_model,
            attempt=attempt_no,
        )
        self.state.steps.append(StepRecord(step_name=step_name, result=result))
        self.state.agent_session_id = self.ctx.session_id
        self.save_checkpoint()
        return result

    def run_sub(
        self,
        sub_config: PipelineConfig,
        executor: Callable[[Pipeline[Any]], T],
        create_state: Callable[[], BaseState] = create_base_state,
    ) -> StepResult[T]:
        """Run ``executor`` against a fresh sub-pipeline with its own session.

        The sub-pipeline's final state is recorded in this pipeline's
        state and checkpointed whether or not ``executor`` raises.
        """
        step_name = f"sub:{sub_config.name}"
        self._step_number += 1
        self._log_step(step_name)

        sub: Pipeline[Any] = Pipeline(
            sub_config,
            create_state,
            backend=self.ctx.backend,
            cancel_token=self.ctx.cancel_token,
        )
        start = time.monotonic()
        try:
            data = executor(sub)
        finally:
            self.state.sub_pipelines.append(
                SubPipelineRecord(
                    name=sub_config.name,
                    session_id=sub.session_id or "",
                    state=sub.state,
                )
            )
            self.save_checkpoint()
            sub.close()

        return StepResult(
            data=data,
            step_name=step_name,
            duration=(time.monotonic() - start) * 1000,
            session_id=sub.session_id or "",
            model=sub_config.default_model,
            attempt=1,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str | None:
        """Current backend session id."""
        return self.ctx.session_id

    @property
    def step_number(self) -> int:
        return self._step_number

    def set_phase(self, phase: str) -> None:
        self.state.phase = phase

    def save_checkpoint(self) -> Path:
        return self.store.save(self.config.name, self.state)

    @classmethod
    def load_checkpoint(
        cls,
        config: PipelineConfig,
        session_id: str,
        state_cls: type[BaseState] = BaseState,
        *,
        backend: AgentBackend,
        cancel_token: CancellationToken | None = None,
    ) -> Pipeline[Any] | None:
        """Resume a pipeline from its checkpoint, or None if there is none.

        Restores the backend session id and the step counter.

        Raises:
            CheckpointError: If the checkpoint exists but cannot be loaded.
        """
        state = CheckpointStore(config.checkpoint_dir).load(config.name, session_id, state_cls)
        if state is None:
            return None
        pipeline: Pipeline[Any] = cls(config, lambda: state, backend=backend, cancel_token=cancel_token)
        pipeline.ctx.session_id = state.agent_session_id
        pipeline._step_number = len(state.steps)
        logger.info(
            "Resumed %s/%s at step %d (phase %s)",
            config.name,
            session_id,
            pipeline._step_number,
            state.phase,
        )
        return pipeline

    @staticmethod
    def list_checkpoints(config: PipelineConfig) -> list[Path]:
        """Checkpoint files for this pipeline name, newest first."""
        return CheckpointStore(config.checkpoint_dir).list(config.name)

    # ------------------------------------------------------------------
    # Logging and lifecycle
    # ------------------------------------------------------------------

    def _log_step(self, title: str) -> None:
        logger.info("=" * 60)
        logger.info("STEP %d: %s", self._step_number, title)
        logger.info("=" * 60)

    @staticmethod
    def _log_retry(step_name: str, policy: RetryConfig) -> Callable[[tenacity.RetryCallState], None]:
        def before_sleep(retry_state: tenacity.RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Step %s failed (attempt %d/%d): %s",
                step_name,
                retry_state.attempt_number,
                policy.max_attempts,
                exc,
            )

        return before_sleep

    def _attach_log_file(self, log_dir: str) -> None:
        os.makedirs(log_dir, exist_ok=True)
        path = Path(log_dir) / f"{self.config.name}_{self.state.session_id}.log"
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.setLevel(logging.INFO)
        package_logger = logging.getLogger("ocpipe")
        if package_logger.level == logging.NOTSET:
            self._previous_log_level = package_logger.level
            package_logger.setLevel(logging.INFO)
        package_logger.addHandler(handler)
        self._log_handler = handler

    def close(self) -> None:
        """Detach the per-run log file, if any."""
        if self._log_handler is None:
            return
        package_logger = logging.getLogger("ocpipe")
        package_logger.removeHandler(self._log_handler)
        self._log_handler.close()
        self._log_handler = None
        if self._previous_log_level is not None:
            package_logger.setLevel(self._previous_log_level)
            self._previous_log_level = None

    def __enter__(self) -> Pipeline[S]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Pipeline(name={self.config.name!r}, session={self.state.session_id!r}, "
            f"steps={len(self.state.steps)})"
        )
