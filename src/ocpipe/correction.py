"""Schema correction controller.

Turns a raw LLM response into validated data, spending a bounded number
of LLM round trips on fixes. States::

    PARSING -> SUCCESS
            -> NEEDS_JSON_REPAIR -> (repair rounds) -> NEEDS_FIELD_CORRECTION | SUCCESS | EXHAUSTED
            -> NEEDS_FIELD_CORRECTION -> (patch rounds) -> SUCCESS | EXHAUSTED

JSON repair asks for the whole answer again when the response holds no
usable JSON object. Field correction asks for a patch against the parsed
object and re-validates it. Each phase has its own ``max_rounds`` budget.

Every correction call continues the session of the previous reply and
writes the new session id back to the context, unless a separate
correction model is configured, in which case each round starts a fresh
session on that model.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn

from ocpipe.backends.protocols import AgentRequest
from ocpipe.exceptions import CorrectionAnomalyError, SchemaCorrectionExhaustedError
from ocpipe.models.config import CorrectionConfig, ModelConfig
from ocpipe.parsing.similar import DEFAULT_MATCHERS, SimilarFieldMatcher
from ocpipe.parsing.validate import ParseResult, try_parse_response, validate_object
from ocpipe.patch.protocols import PatchApplier, get_patch_applier
from ocpipe.prompts.correction import build_json_repair_prompt, build_patch_prompt
from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.signature import build_output_schema

if TYPE_CHECKING:
    from ocpipe.backends.protocols import AgentBackend
    from ocpipe.models.context import ExecutionContext

logger = logging.getLogger(__name__)


class CorrectionState(str, enum.Enum):
    PARSING = "parsing"
    SUCCESS = "success"
    NEEDS_JSON_REPAIR = "needs_json_repair"
    NEEDS_FIELD_CORRECTION = "needs_field_correction"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CorrectionOutcome:
    """Validated data plus bookkeeping from the correction loop.

    Attributes:
        data: Validated output fields.
        session_id: Session of the last reply used.
        attempts: Correction round trips made (0 if the first reply was valid).
    """

    data: dict[str, Any]
    session_id: str
    attempts: int = 0


class CorrectionController:
    """Drive a response to validated data or a terminal error.

    Args:
        outputs: Output fields to validate against.
        config: Round budgets, patch method and optional correction model.
        agent: Agent used for correction calls.
        model: Model of the original call, reused unless ``config.model`` is set.
        backend: Backend override; defaults to ``ctx.backend``.
        applier: Patch strategy override; defaults to ``config.method``.
    """

    def __init__(
        self,
        outputs: Mapping[str, FieldConfig],
        config: CorrectionConfig | None = None,
        *,
        agent: str,
        model: ModelConfig,
        backend: AgentBackend | None = None,
        applier: PatchApplier | None = None,
        matchers: Sequence[SimilarFieldMatcher] = DEFAULT_MATCHERS,
    ) -> None:
        self.outputs = outputs
        self.config = config or CorrectionConfig()
        self.agent = agent
        self.model = model
        self.backend = backend
        self.applier = applier or get_patch_applier(self.config.method)
        self.matchers = matchers
        self.state = CorrectionState.PARSING
        self.attempts = 0

    def run(self, raw: str, ctx: ExecutionContext, session_id: str) -> CorrectionOutcome:
        """Validate ``raw``, correcting it if needed.

        Raises:
            SchemaCorrectionExhaustedError: If a phase runs out of rounds.
            CorrectionAnomalyError: If re-validation fails without reporting errors.
            BackendError: Propagated from correction calls.
        """
        self.state = CorrectionState.PARSING
        self.attempts = 0
        result = try_parse_response(raw, self.outputs, self.matchers)
        if result.ok:
            return self._succeed(result, session_id)

        if result.is_json_error:
            self.state = CorrectionState.NEEDS_JSON_REPAIR
            result, session_id = self._repair_json(result, raw, ctx, session_id)
            if result.ok:
                return self._succeed(result, session_id)

        self.state = CorrectionState.NEEDS_FIELD_CORRECTION
        return self._correct_fields(result, ctx, session_id)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _repair_json(
        self,
        result: ParseResult,
        raw: str,
        ctx: ExecutionContext,
        session_id: str,
    ) -> tuple[ParseResult, str]:
        max_rounds = self.config.max_rounds if self.config.repair_json else 0
        schema = build_output_schema(self.outputs)
        previous = raw
        for round_no in range(1, max_rounds + 1):
            logger.info(
                "JSON repair round %d/%d: %s", round_no, max_rounds, result.errors[0].message
            )
            prompt = build_json_repair_prompt(result.errors[0], schema, previous)
            previous, session_id = self._call(prompt, ctx, session_id)
            result = try_parse_response(previous, self.outputs, self.matchers)
            if result.ok or not result.is_json_error:
                logger.info("JSON repair produced a parsable object after %d round(s)", round_no)
                return result, session_id
        self._exhaust(result.errors)

    def _correct_fields(
        self,
        result: ParseResult,
        ctx: ExecutionContext,
        session_id: str,
    ) -> CorrectionOutcome:
        max_rounds = self.config.max_rounds
        current = result.json or {}
        errors = list(result.errors)
        if not errors:
            logger.warning("Validation failed without errors before correction")
            self._anomaly()
        for round_no in range(1, max_rounds + 1):
            to_fix = errors[: self.config.max_fields]
            logger.info(
                "Correction round %d/%d [%s]: fixing %d field(s)",
                round_no,
                max_rounds,
                self.applier.name,
                len(to_fix),
            )
            prompt = build_patch_prompt(self.applier.name, to_fix, current)
            reply, session_id = self._call(prompt, ctx, session_id)

            patch = self.applier.extract(reply)
            logger.debug("Patch (%s): %s", self.applier.name, patch)
            current = self.applier.apply(current, patch)

            revalidated = validate_object(current, self.outputs, self.matchers)
            if revalidated.ok:
                logger.info("Schema correction succeeded after %d round(s)", round_no)
                return self._succeed(revalidated, session_id)

            errors = list(revalidated.errors)
            if not errors:
                logger.warning("Correction round %d: validation failed without errors", round_no)
                self._anomaly()
            logger.info("Round %d complete, %d error(s) remaining", round_no, len(errors))
        self._exhaust(errors)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call(self, prompt: str, ctx: ExecutionContext, session_id: str) -> tuple[str, str]:
        """One correction round trip. Returns (reply text, session id to continue)."""
        separate_model = self.config.model is not None
        request = AgentRequest(
            prompt=prompt,
            agent=self.agent,
            model=self.config.model or self.model,
            session_id=None if separate_model else session_id,
            timeout_sec=self.config.timeout_sec,
            workdir=ctx.workdir,
            cancel_token=ctx.cancel_token,
        )
        backend = self.backend or ctx.backend
        response = backend.run(request)
        self.attempts += 1
        if separate_model:
            return response.text, session_id
        ctx.session_id = response.session_id
        return response.text, response.session_id

    def _succeed(self, result: ParseResult, session_id: str) -> CorrectionOutcome:
        self.state = CorrectionState.SUCCESS
        return CorrectionOutcome(data=result.data, session_id=session_id, attempts=self.attempts)

    def _exhaust(self, errors: Sequence[Any]) -> NoReturn:
        self.state = CorrectionState.EXHAUSTED
        logger.warning(
            "Schema correction exhausted after %d round(s) with %d error(s)",
            self.attempts,
            len(errors),
        )
        raise SchemaCorrectionExhaustedError(list(errors), self.attempts)

    def _anomaly(self) -> NoReturn:
        self.state = CorrectionState.EXHAUSTED
        raise CorrectionAnomalyError(
            [],
            self.attempts,
            "Schema validation failed without reporting errors "
            f"(after {self.attempts} correction round(s))",
        )
