"""Composable units of work built from predictors.

Subclass Module and implement ``forward``; register predictors with
``self.predict(...)``::

    class Review(Module):
        def __init__(self) -> None:
            super().__init__()
            self.find = self.predict(FindIssues)
            self.rank = self.predict(RankIssues, new_session=True)

        def forward(self, input, ctx):
            issues = self.find.execute(input, ctx).data
            return self.rank.execute(issues, ctx).data

For a single signature, ``module(sig)`` builds the module directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ocpipe.predict import Predict
from ocpipe.schema.signature import Signature

if TYPE_CHECKING:
    from ocpipe.models.context import ExecutionContext

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741


class Module(ABC, Generic[I, O]):
    """Base class for workflow units run by a Pipeline."""

    def __init__(self) -> None:
        self._predictors: list[Predict] = []

    def predict(self, sig: Signature, **config: Any) -> Predict:
        """Create and register a Predict for ``sig``."""
        predictor = Predict(sig, **config)
        self._predictors.append(predictor)
        return predictor

    @property
    def predictors(self) -> list[Predict]:
        return list(self._predictors)

    @abstractmethod
    def forward(self, input: I, ctx: ExecutionContext) -> O:  # noqa: A002
        """Run the unit of work."""


class SignatureModule(Module[Mapping[str, Any], dict[str, Any]]):
    """Module owning one predictor for one signature."""

    def __init__(self, sig: Signature, **config: Any) -> None:
        super().__init__()
        self.sig = sig
        self.predictor = self.predict(sig, **config)

    def forward(self, input: Mapping[str, Any], ctx: ExecutionContext) -> dict[str, Any]:  # noqa: A002
        return self.predictor.execute(input, ctx).data


def module(sig: Signature, **config: Any) -> SignatureModule:
    """Wrap a signature in a module that executes its predictor."""
    return SignatureModule(sig, **config)
