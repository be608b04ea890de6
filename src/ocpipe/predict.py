"""Predict: execute a signature with one backend call plus corrections.

Usage::

    predict = Predict(Summarize, agent="general")
    result = predict.execute({"text": doc}, ctx)
    result.data["summary"]
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from ocpipe.backends.protocols import AgentRequest
from ocpipe.correction import CorrectionController
from ocpipe.exceptions import JsonSyntaxError, NoJsonFoundError, SchemaCorrectionExhaustedError
from ocpipe.models.config import CorrectionConfig, ModelConfig
from ocpipe.models.results import PredictResult
from ocpipe.parsing.validate import ParseOk, try_parse_response
from ocpipe.prompts.predict import build_predict_prompt
from ocpipe.schema.signature import Signature

if TYPE_CHECKING:
    from ocpipe.backends.protocols import AgentBackend
    from ocpipe.models.context import ExecutionContext

logger = logging.getLogger(__name__)

PromptTemplate = Callable[[Mapping[str, Any]], str]


class Predict:
    """Turn a signature plus inputs into validated output data.

    Args:
        sig: The signature to execute.
        agent: Agent override; defaults to ``ctx.default_agent``.
        model: Model override; defaults to ``ctx.default_model``.
        new_session: Start a fresh backend session instead of continuing
            ``ctx.session_id``.
        template: Custom prompt builder taking the inputs mapping.
        correction: Correction settings, or False to disable correction.
        backend: Backend override; defaults to ``ctx.backend``.
    """

    def __init__(
        self,
        sig: Signature,
        *,
        agent: str | None = None,
        model: ModelConfig | None = None,
        new_session: bool = False,
        template: PromptTemplate | None = None,
        correction: CorrectionConfig | bool = True,
        backend: AgentBackend | None = None,
    ) -> None:
        self.sig = sig
        self.agent = agent
        self.model = model
        self.new_session = new_session
        self.template = template
        if correction is True:
            correction = CorrectionConfig()
        self.correction: CorrectionConfig | None = correction or None
        self.backend = backend

    def build_prompt(self, inputs: Mapping[str, Any]) -> str:
        if self.template is not None:
            return self.template(inputs)
        return build_predict_prompt(self.sig, inputs)

    def execute(self, inputs: Mapping[str, Any], ctx: ExecutionContext) -> PredictResult:
        """Run the prediction.

        Updates ``ctx.session_id`` with the session of every reply.

        Raises:
            SchemaCorrectionExhaustedError: Validation could not be fixed.
            NoJsonFoundError, JsonSyntaxError: Only with correction disabled.
            BackendError: Propagated from the backend.
        """
        prompt = self.build_prompt(inputs)
        agent = self.agent or ctx.default_agent
        model = self.model or ctx.default_model
        backend = self.backend or ctx.backend
        session_id = None if self.new_session else ctx.session_id

        start = time.monotonic()
        logger.info("Predict: agent=%s model=%s session=%s", agent, model, session_id or "<new>")
        response = backend.run(
            AgentRequest(
                prompt=prompt,
                agent=agent,
                model=model,
                session_id=session_id,
                timeout_sec=ctx.timeout_sec,
                workdir=ctx.workdir,
                cancel_token=ctx.cancel_token,
            )
        )
        ctx.session_id = response.session_id
        logger.debug("Response (%d chars): %.200s", len(response.text), response.text)

        if self.correction is None:
            data = self._parse_strict(response.text)
            final_session = response.session_id
        else:
            controller = CorrectionController(
                self.sig.outputs,
                self.correction,
                agent=agent,
                model=model,
                backend=backend,
            )
            outcome = controller.run(response.text, ctx, response.session_id)
            data = outcome.data
            final_session = outcome.session_id

        return PredictResult(
            data=data,
            raw=response.text,
            session_id=final_session,
            duration=(time.monotonic() - start) * 1000,
            model=model,
        )

    def _parse_strict(self, text: str) -> dict[str, Any]:
        result = try_parse_response(text, self.sig.outputs)
        if isinstance(result, ParseOk):
            return result.data
        first = result.errors[0]
        if first.code == "no_json_found":
            raise NoJsonFoundError(first.message, raw=text)
        if first.code == "json_parse_failed":
            raise JsonSyntaxError(first.message, raw=text)
        raise SchemaCorrectionExhaustedError(list(result.errors), 0)

    def __repr__(self) -> str:
        return f"Predict(doc={self.sig.doc[:40]!r}, outputs={list(self.sig.outputs)})"
