"""Tests for ocpipe.schema.validators: the FieldValidator variants."""

from __future__ import annotations

import math

import pytest
from pydantic import BaseModel

from ocpipe.schema.validators import (
    MISSING,
    ArrayType,
    BooleanType,
    DefaultType,
    EnumType,
    IntegerType,
    ModelType,
    NullableType,
    NumberType,
    ObjectType,
    OptionalType,
    PredicateType,
    StringType,
    json_type_name,
)


class Point(BaseModel):
    x: int
    y: int


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


class TestPrimitives:
    def test_string_accepts_string(self):
        checked = StringType().validate("hello")
        assert checked.ok
        assert checked.value == "hello"

    def test_string_rejects_number(self):
        checked = StringType().validate(42)
        assert not checked.ok
        issue = checked.issues[0]
        assert issue.code == "invalid_type"
        assert issue.message == "Expected string, received number"
        assert issue.expected == "string"

    def test_number_rejects_boolean(self):
        checked = NumberType().validate(True)
        assert checked.issues[0].message == "Expected number, received boolean"

    def test_number_rejects_non_finite(self):
        checked = NumberType().validate(math.inf)
        assert checked.issues[0].code == "invalid_value"

    def test_integer_converts_integral_float(self):
        checked = IntegerType().validate(3.0)
        assert checked.ok
        assert checked.value == 3
        assert isinstance(checked.value, int)

    def test_integer_rejects_fraction(self):
        checked = IntegerType().validate(3.5)
        assert checked.issues[0].code == "invalid_value"

    def test_boolean(self):
        assert BooleanType().validate(False).ok
        assert not BooleanType().validate(0).ok

    def test_missing_is_reported(self):
        checked = StringType().validate(MISSING, ("name",))
        assert checked.issues[0].code == "missing"
        assert checked.issues[0].message == "Required field is missing"
        assert checked.issues[0].dotted_path == "name"

    def test_missing_sentinel(self):
        assert not MISSING
        assert repr(MISSING) == "MISSING"
        assert json_type_name(MISSING) == "nothing"


class TestEnum:
    def test_accepts_member(self):
        assert EnumType(("low", "high")).validate("low").ok

    def test_rejects_other_value(self):
        checked = EnumType(("low", "high")).validate("medium")
        assert checked.issues[0].code == "invalid_value"
        assert '"low"' in checked.issues[0].message

    def test_describe_and_schema(self):
        validator = EnumType(("a", "b"))
        assert validator.describe() == 'enum["a", "b"]'
        assert validator.json_schema() == {"type": "string", "enum": ["a", "b"]}

    def test_requires_values(self):
        with pytest.raises(ValueError):
            EnumType(())


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------


class TestArray:
    def test_item_errors_carry_index(self):
        checked = ArrayType(StringType()).validate(["a", 1, "c"], ("tags",))
        assert len(checked.issues) == 1
        assert checked.issues[0].path == ("tags", 1)
        assert checked.issues[0].dotted_path == "tags.1"

    def test_describe(self):
        assert ArrayType(NumberType()).describe() == "array<number>"

    def test_rejects_non_list(self):
        assert ArrayType(StringType()).validate("a").issues[0].code == "invalid_type"


class TestObject:
    def test_drops_undeclared_keys(self):
        validator = ObjectType({"a": StringType()})
        checked = validator.validate({"a": "x", "extra": 1})
        assert checked.ok
        assert checked.value == {"a": "x"}

    def test_nested_paths(self):
        validator = ObjectType({"inner": ObjectType({"n": NumberType()})})
        checked = validator.validate({"inner": {"n": "nope"}})
        assert checked.issues[0].path == ("inner", "n")

    def test_missing_field(self):
        checked = ObjectType({"a": StringType(), "b": NumberType()}).validate({"a": "x"})
        assert [(i.path, i.code) for i in checked.issues] == [(("b",), "missing")]

    def test_describe_truncates(self):
        validator = ObjectType({k: StringType() for k in "abcd"})
        assert validator.describe() == "object{a, b, c, ...}"
        assert ObjectType({"a": StringType()}).describe() == "object{a}"

    def test_json_schema(self):
        validator = ObjectType(
            {"a": StringType(), "b": OptionalType(NumberType())},
            {"a": "The a field"},
        )
        schema = validator.json_schema()
        assert schema["required"] == ["a"]
        assert schema["additionalProperties"] is False
        assert schema["properties"]["a"] == {"type": "string", "description": "The a field"}
        assert schema["properties"]["b"] == {"type": "number"}


class TestModelType:
    def test_returns_model_instance(self):
        checked = ModelType(Point).validate({"x": 1, "y": 2})
        assert checked.ok
        assert checked.value == Point(x=1, y=2)

    def test_maps_pydantic_errors(self):
        checked = ModelType(Point).validate({"x": 1}, ("point",))
        assert checked.issues[0].path == ("point", "y")
        assert checked.issues[0].code == "missing"

    def test_describe(self):
        assert ModelType(Point).describe() == "object{x, y}"


class TestPredicate:
    def test_predicate(self):
        validator = PredicateType(lambda v: isinstance(v, str) and v.isupper(), "uppercase string")
        assert validator.validate("OK").ok
        checked = validator.validate("no")
        assert checked.issues[0].code == "custom"
        assert checked.issues[0].message == "Value does not satisfy uppercase string"


# ---------------------------------------------------------------------------
# Wrappers
# ---------------------------------------------------------------------------


class TestWrappers:
    def test_optional_accepts_missing(self):
        checked = OptionalType(StringType()).validate(MISSING)
        assert checked.ok
        assert checked.value is MISSING

    def test_optional_still_checks_present_value(self):
        assert not OptionalType(StringType()).validate(1).ok

    def test_nullable_reads_missing_as_none(self):
        validator = NullableType(StringType())
        assert validator.validate(MISSING).value is None
        assert validator.validate(None).value is None
        assert validator.json_schema() == {"anyOf": [{"type": "string"}, {"type": "null"}]}

    def test_default_fills_fresh_copy(self):
        validator = DefaultType(ArrayType(StringType()), [])
        first = validator.validate(MISSING).value
        first.append("mutated")
        assert validator.validate(MISSING).value == []

    def test_describe(self):
        assert OptionalType(StringType()).describe() == "optional<string>"
        assert NullableType(NumberType()).describe() == "nullable<number>"
        assert DefaultType(BooleanType(), False).describe() == "default<boolean>"

    def test_optional_flags(self):
        assert OptionalType(StringType()).optional
        assert DefaultType(StringType(), "x").optional
        assert not NullableType(StringType()).optional
