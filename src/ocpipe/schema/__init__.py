"""Schema registry: field validators, field builders and signatures."""

from ocpipe.schema import fields
from ocpipe.schema.fields import FieldConfig
from ocpipe.schema.signature import (
    Signature,
    build_output_schema,
    build_output_validator,
    signature,
)
from ocpipe.schema.validators import MISSING, Checked, FieldValidator, Issue

__all__ = [
    "MISSING",
    "Checked",
    "FieldConfig",
    "FieldValidator",
    "Issue",
    "Signature",
    "build_output_schema",
    "build_output_validator",
    "fields",
    "signature",
]
