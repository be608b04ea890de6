"""Field validators for signature inputs and outputs.

Every validator is a tagged variant of FieldValidator with three
operations that share one type definition:

- ``validate(value, path)`` -> Checked (converted value + issues)
- ``describe()`` -> short human-readable type, used in prompts and errors
- ``json_schema()`` -> JSON Schema fragment, used in prompts

Because ``describe()`` and ``json_schema()`` are derived from the same
object that validates, prompt text cannot drift from validation.

Absent values are represented by the MISSING sentinel. ``null`` values
are stripped before validation (see ``ocpipe.parsing.validate``), so a
field the LLM set to null arrives here as MISSING.
"""

from __future__ import annotations

import copy
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar

import pydantic
from pydantic import BaseModel


class _Missing:
    """Sentinel type for an absent value."""

    _instance: ClassVar[_Missing | None] = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

PathPart = str | int


@dataclass(frozen=True)
class Issue:
    """A single validation failure.

    Attributes:
        path: Location of the failing value, outermost key first.
        code: One of "missing", "invalid_type", "invalid_value", "custom".
        message: Human-readable explanation.
        expected: describe() of the validator that failed.
    """

    path: tuple[PathPart, ...]
    code: str
    message: str
    expected: str

    @property
    def dotted_path(self) -> str:
        return ".".join(str(p) for p in self.path)


@dataclass(frozen=True)
class Checked:
    """Outcome of FieldValidator.validate()."""

    value: Any
    issues: tuple[Issue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues


def json_type_name(value: Any) -> str:
    """Return the JSON type name of a Python value."""
    if value is MISSING:
        return "nothing"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class FieldValidator(ABC):
    """Base class for all field validators."""

    kind: ClassVar[str] = "unknown"

    #: Whether an absent value is acceptable.
    optional: ClassVar[bool] = False

    def validate(self, value: Any, path: tuple[PathPart, ...] = ()) -> Checked:
        """Validate (and convert) a value.

        Absent values fail with code "missing" unless the validator is a
        wrapper that accepts them.
        """
        if value is MISSING:
            return Checked(
                MISSING,
                (Issue(path, "missing", "Required field is missing", self.describe()),),
            )
        return self._check(value, path)

    @abstractmethod
    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        """Validate a present value."""

    @abstractmethod
    def describe(self) -> str:
        """Short type description for prompts and error messages."""

    @abstractmethod
    def json_schema(self) -> dict[str, Any]:
        """JSON Schema fragment for this type."""

    def _type_error(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        return Checked(
            value,
            (
                Issue(
                    path,
                    "invalid_type",
                    f"Expected {self.describe()}, received {json_type_name(value)}",
                    self.describe(),
                ),
            ),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.describe()})"


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


class StringType(FieldValidator):
    kind = "string"

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if not isinstance(value, str):
            return self._type_error(value, path)
        return Checked(value)

    def describe(self) -> str:
        return "string"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "string"}


class NumberType(FieldValidator):
    kind = "number"

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        # bool is an int subclass; JSON keeps them distinct
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return self._type_error(value, path)
        if isinstance(value, float) and not math.isfinite(value):
            return Checked(
                value,
                (Issue(path, "invalid_value", "Expected a finite number", self.describe()),),
            )
        return Checked(value)

    def describe(self) -> str:
        return "number"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "number"}


class IntegerType(FieldValidator):
    kind = "integer"

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return self._type_error(value, path)
        if isinstance(value, float):
            if not value.is_integer():
                return Checked(
                    value,
                    (Issue(path, "invalid_value", f"Expected integer, received {value}", self.describe()),),
                )
            value = int(value)
        return Checked(value)

    def describe(self) -> str:
        return "integer"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "integer"}


class BooleanType(FieldValidator):
    kind = "boolean"

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if not isinstance(value, bool):
            return self._type_error(value, path)
        return Checked(value)

    def describe(self) -> str:
        return "boolean"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "boolean"}


class EnumType(FieldValidator):
    kind = "enum"

    def __init__(self, values: tuple[str, ...] | list[str]) -> None:
        if not values:
            raise ValueError("EnumType requires at least one value")
        self.values = tuple(values)

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if value in self.values and isinstance(value, str):
            return Checked(value)
        options = ", ".join(f'"{v}"' for v in self.values)
        return Checked(
            value,
            (
                Issue(
                    path,
                    "invalid_value",
                    f"Invalid option: expected one of {options}, received {value!r}",
                    self.describe(),
                ),
            ),
        )

    def describe(self) -> str:
        return "enum[" + ", ".join(f'"{v}"' for v in self.values) + "]"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "string", "enum": list(self.values)}


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------


class ArrayType(FieldValidator):
    kind = "array"

    def __init__(self, item: FieldValidator) -> None:
        self.item = item

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if not isinstance(value, list):
            return self._type_error(value, path)
        out: list[Any] = []
        issues: list[Issue] = []
        for idx, element in enumerate(value):
            # Array slots keep nulls; an item validator that rejects None
            # reports it as a type error at that index.
            checked = self.item.validate(element, (*path, idx))
            issues.extend(checked.issues)
            out.append(checked.value)
        return Checked(out, tuple(issues))

    def describe(self) -> str:
        return f"array<{self.item.describe()}>"

    def json_schema(self) -> dict[str, Any]:
        return {"type": "array", "items": self.item.json_schema()}


class ObjectType(FieldValidator):
    """Object with a fixed shape. Undeclared keys are dropped."""

    kind = "object"

    def __init__(
        self,
        shape: Mapping[str, FieldValidator],
        descriptions: Mapping[str, str] | None = None,
    ) -> None:
        self.shape = MappingProxyType(dict(shape))
        self.descriptions = MappingProxyType(dict(descriptions or {}))

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if not isinstance(value, dict):
            return self._type_error(value, path)
        out: dict[str, Any] = {}
        issues: list[Issue] = []
        for name, validator in self.shape.items():
            checked = validator.validate(value.get(name, MISSING), (*path, name))
            issues.extend(checked.issues)
            if checked.value is not MISSING:
                out[name] = checked.value
        return Checked(out, tuple(issues))

    def describe(self) -> str:
        names = list(self.shape)
        more = ", ..." if len(names) > 3 else ""
        return "object{" + ", ".join(names[:3]) + more + "}"

    def json_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for name, validator in self.shape.items():
            prop = validator.json_schema()
            desc = self.descriptions.get(name)
            if desc and "description" not in prop:
                prop = {**prop, "description": desc}
            properties[name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [n for n, v in self.shape.items() if not v.optional],
            "additionalProperties": False,
        }


class ModelType(FieldValidator):
    """Validate against a pydantic model class.

    Produces the model instance on success. Pydantic errors are mapped
    onto Issues so they flow into correction prompts like any other
    field error.
    """

    kind = "model"

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if not isinstance(value, dict):
            return self._type_error(value, path)
        try:
            return Checked(self.model.model_validate(value))
        except pydantic.ValidationError as exc:
            issues = []
            for err in exc.errors():
                code = "missing" if err["type"] == "missing" else "invalid_value"
                issues.append(
                    Issue(
                        (*path, *err["loc"]),
                        code,
                        err["msg"],
                        self.describe(),
                    )
                )
            return Checked(value, tuple(issues))

    def describe(self) -> str:
        names = list(self.model.model_fields)
        more = ", ..." if len(names) > 3 else ""
        return "object{" + ", ".join(names[:3]) + more + "}"

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()


class PredicateType(FieldValidator):
    """Escape hatch: validate with an arbitrary pure predicate."""

    kind = "custom"

    def __init__(
        self,
        check: Callable[[Any], bool],
        description: str = "unknown",
        schema: dict[str, Any] | None = None,
    ) -> None:
        self.check = check
        self.description = description
        self.schema = dict(schema or {})

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        if self.check(value):
            return Checked(value)
        return Checked(
            value,
            (Issue(path, "custom", f"Value does not satisfy {self.description}", self.description),),
        )

    def describe(self) -> str:
        return self.description

    def json_schema(self) -> dict[str, Any]:
        return dict(self.schema)


# ---------------------------------------------------------------------------
# Wrappers
# ---------------------------------------------------------------------------


class OptionalType(FieldValidator):
    kind = "optional"
    optional = True

    def __init__(self, inner: FieldValidator) -> None:
        self.inner = inner

    def validate(self, value: Any, path: tuple[PathPart, ...] = ()) -> Checked:
        if value is MISSING:
            return Checked(MISSING)
        return self.inner.validate(value, path)

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        return self.inner.validate(value, path)

    def describe(self) -> str:
        return f"optional<{self.inner.describe()}>"

    def json_schema(self) -> dict[str, Any]:
        return self.inner.json_schema()


class NullableType(FieldValidator):
    """Accepts null. An absent value is read as null as well, because
    nulls are stripped before validation."""

    kind = "nullable"

    def __init__(self, inner: FieldValidator) -> None:
        self.inner = inner

    def validate(self, value: Any, path: tuple[PathPart, ...] = ()) -> Checked:
        if value is MISSING or value is None:
            return Checked(None)
        return self.inner.validate(value, path)

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        return self.inner.validate(value, path)

    def describe(self) -> str:
        return f"nullable<{self.inner.describe()}>"

    def json_schema(self) -> dict[str, Any]:
        return {"anyOf": [self.inner.json_schema(), {"type": "null"}]}


class DefaultType(FieldValidator):
    kind = "default"
    optional = True

    def __init__(self, inner: FieldValidator, default: Any) -> None:
        self.inner = inner
        self.default = default

    def validate(self, value: Any, path: tuple[PathPart, ...] = ()) -> Checked:
        if value is MISSING:
            return self.inner.validate(copy.deepcopy(self.default), path)
        return self.inner.validate(value, path)

    def _check(self, value: Any, path: tuple[PathPart, ...]) -> Checked:
        return self.inner.validate(value, path)

    def describe(self) -> str:
        return f"default<{self.inner.describe()}>"

    def json_schema(self) -> dict[str, Any]:
        return {**self.inner.json_schema(), "default": self.default}
