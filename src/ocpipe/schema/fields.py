"""Field builders for signatures.

Usage::

    from ocpipe import fields, signature

    Summarize = signature(
        "Summarize the document.",
        inputs={"text": fields.string("Document text")},
        outputs={
            "summary": fields.string("One paragraph summary"),
            "tags": fields.array(fields.string(), "Topic tags"),
            "confidence": fields.optional(fields.number()),
        },
    )
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from ocpipe.schema.validators import (
    ArrayType,
    BooleanType,
    Checked,
    DefaultType,
    EnumType,
    FieldValidator,
    IntegerType,
    ModelType,
    NullableType,
    NumberType,
    ObjectType,
    OptionalType,
    PredicateType,
    StringType,
)


@dataclass(frozen=True)
class FieldConfig:
    """A signature field: validator plus optional human description."""

    validator: FieldValidator
    desc: str | None = None

    @property
    def type_description(self) -> str:
        return self.validator.describe()

    @property
    def optional(self) -> bool:
        return self.validator.optional

    def validate(self, value: Any) -> Checked:
        return self.validator.validate(value)

    def json_schema(self) -> dict[str, Any]:
        schema = self.validator.json_schema()
        if self.desc and "description" not in schema:
            schema = {**schema, "description": self.desc}
        return schema


FieldLike = FieldConfig | FieldValidator


def as_validator(item: FieldLike) -> FieldValidator:
    """Accept either a FieldConfig or a bare validator."""
    if isinstance(item, FieldConfig):
        return item.validator
    if isinstance(item, FieldValidator):
        return item
    raise TypeError(f"Expected FieldConfig or FieldValidator, got {type(item).__name__}")


def _desc_of(item: FieldLike, desc: str | None) -> str | None:
    if desc is not None:
        return desc
    return item.desc if isinstance(item, FieldConfig) else None


def string(desc: str | None = None) -> FieldConfig:
    return FieldConfig(StringType(), desc)


def number(desc: str | None = None) -> FieldConfig:
    return FieldConfig(NumberType(), desc)


def integer(desc: str | None = None) -> FieldConfig:
    return FieldConfig(IntegerType(), desc)


def boolean(desc: str | None = None) -> FieldConfig:
    return FieldConfig(BooleanType(), desc)


def enum(values: Sequence[str], desc: str | None = None) -> FieldConfig:
    return FieldConfig(EnumType(tuple(values)), desc)


def array(item: FieldLike, desc: str | None = None) -> FieldConfig:
    return FieldConfig(ArrayType(as_validator(item)), desc)


def object(shape: Mapping[str, FieldLike], desc: str | None = None) -> FieldConfig:  # noqa: A001
    """Nested object. Descriptions of nested FieldConfigs end up in the JSON Schema."""
    validators = {name: as_validator(f) for name, f in shape.items()}
    descriptions = {
        name: f.desc for name, f in shape.items() if isinstance(f, FieldConfig) and f.desc
    }
    return FieldConfig(ObjectType(validators, descriptions), desc)


def optional(item: FieldLike, desc: str | None = None) -> FieldConfig:
    """Field that may be omitted from the response."""
    return FieldConfig(OptionalType(as_validator(item)), _desc_of(item, desc))


def nullable(item: FieldLike, desc: str | None = None) -> FieldConfig:
    """Field whose value may be null (an omitted value also reads as null)."""
    return FieldConfig(NullableType(as_validator(item)), _desc_of(item, desc))


def default(item: FieldLike, value: Any, desc: str | None = None) -> FieldConfig:
    """Field filled with ``value`` when omitted."""
    return FieldConfig(DefaultType(as_validator(item), value), _desc_of(item, desc))


def model(model_cls: type[BaseModel], desc: str | None = None) -> FieldConfig:
    """Field validated by a pydantic model; the data holds the model instance."""
    return FieldConfig(ModelType(model_cls), desc)


def custom(
    check: FieldValidator | Callable[[Any], bool],
    desc: str | None = None,
    *,
    type_description: str = "unknown",
    schema: dict[str, Any] | None = None,
) -> FieldConfig:
    """Field with a caller-supplied validator or predicate."""
    if isinstance(check, FieldValidator):
        return FieldConfig(check, desc)
    return FieldConfig(PredicateType(check, type_description, schema), desc)
