"""Signatures: the declared input/output contract of an LLM call."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.validators import ObjectType


@dataclass(frozen=True)
class Signature:
    """Task description plus named input and output fields.

    ``inputs`` and ``outputs`` are read-only and keep declaration order.
    """

    doc: str
    inputs: Mapping[str, FieldConfig]
    outputs: Mapping[str, FieldConfig]

    def __post_init__(self) -> None:
        for label, group in (("inputs", self.inputs), ("outputs", self.outputs)):
            for name, cfg in group.items():
                if not isinstance(cfg, FieldConfig):
                    raise TypeError(
                        f"Signature {label}[{name!r}] must be a FieldConfig, "
                        f"got {type(cfg).__name__}"
                    )
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))

    @property
    def output_validator(self) -> ObjectType:
        return build_output_validator(self.outputs)

    @property
    def output_schema(self) -> dict[str, Any]:
        return build_output_schema(self.outputs)


def signature(
    doc: str,
    inputs: Mapping[str, FieldConfig],
    outputs: Mapping[str, FieldConfig],
) -> Signature:
    """Define a signature."""
    return Signature(doc=doc, inputs=inputs, outputs=outputs)


def build_output_validator(outputs: Mapping[str, FieldConfig]) -> ObjectType:
    return ObjectType(
        {name: cfg.validator for name, cfg in outputs.items()},
        {name: cfg.desc for name, cfg in outputs.items() if cfg.desc},
    )


def build_output_schema(outputs: Mapping[str, FieldConfig]) -> dict[str, Any]:
    """JSON Schema of the output object, with field descriptions merged in."""
    return build_output_validator(outputs).json_schema()
