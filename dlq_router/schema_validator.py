"""Shape validation for raw record payloads.

Decodes a payload as a UTF-8 JSON object and checks it field by field
against a shape descriptor. Shapes built from a JSON Schema document also
run the document through a Draft 2020-12 validator to catch corruption
that keeps every field present and well typed but violates the contract
(invalid enums, out-of-range values, bad patterns).
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from jsonschema import Draft202012Validator

from .exceptions import SchemaError
from .records import ParsedRecord, RawRecord

ENCODING_ERROR = "ENCODING_ERROR"
JSON_PARSE_ERROR = "JSON_PARSE_ERROR"
MISSING_FIELD = "MISSING_FIELD"
TYPE_MISMATCH = "TYPE_MISMATCH"
SCHEMA_VIOLATION = "SCHEMA_VIOLATION"

FIELD_TYPES = ("string", "integer", "number", "boolean", "object", "array", "any")


def json_type_name(value: Any) -> str:
    """Name of a decoded JSON value's type, in JSON Schema vocabulary."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _matches(value: Any, expected: str) -> bool:
    if expected == "any":
        return True
    actual = json_type_name(value)
    if expected == "number":
        return actual in ("integer", "number")
    return actual == expected


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: str = "any"
    required: bool = True
    nullable: bool = False

    def __post_init__(self) -> None:
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unknown field type for {self.name}: {self.type}")


@dataclass(frozen=True)
class RecordShape:
    """Expected shape of a record payload.

    Fields are checked in declaration order, so the first violated
    constraint reported is deterministic.
    """

    fields: tuple[FieldSpec, ...]
    name: str = "record"
    json_schema: Optional[dict[str, Any]] = field(default=None, compare=False)
    _schema_validator: Optional[Draft202012Validator] = field(
        default=None, init=False, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.json_schema is not None:
            object.__setattr__(self, "_schema_validator", Draft202012Validator(self.json_schema))

    @classmethod
    def of(cls, *names: str, name: str = "record") -> "RecordShape":
        """Shape requiring the given fields, of any non-null type."""
        return cls(fields=tuple(FieldSpec(n) for n in names), name=name)

    @classmethod
    def from_json_schema(cls, schema: dict[str, Any]) -> "RecordShape":
        required = set(schema.get("required", []))
        fields = []
        for prop_name, prop in schema.get("properties", {}).items():
            field_type, nullable = _field_type_from_schema(prop)
            fields.append(
                FieldSpec(
                    name=prop_name,
                    type=field_type,
                    required=prop_name in required,
                    nullable=nullable,
                )
            )
        # Required names without a properties entry still have to be present.
        for missing in sorted(required - {f.name for f in fields}):
            fields.append(FieldSpec(name=missing))
        Draft202012Validator.check_schema(schema)
        return cls(
            fields=tuple(fields),
            name=schema.get("title", "record"),
            json_schema=schema,
        )

    @classmethod
    def from_file(cls, path: str) -> "RecordShape":
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Schema file not found: {path}")
        with open(path) as f:
            schema = json.load(f)
        return cls.from_json_schema(schema)


def _field_type_from_schema(prop: dict[str, Any]) -> tuple[str, bool]:
    declared = prop.get("type", "any")
    if isinstance(declared, list):
        nullable = "null" in declared
        non_null = [t for t in declared if t != "null"]
        return (non_null[0] if len(non_null) == 1 else "any"), nullable
    if declared == "null":
        return "any", True
    return declared, False


def decode_payload(raw: RawRecord) -> dict[str, Any]:
    """Decode a raw payload into a JSON object or raise SchemaError."""
    if raw.payload is None:
        raise SchemaError("malformed encoding: payload is empty", ENCODING_ERROR)

    try:
        text = raw.payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SchemaError(f"malformed encoding: UTF-8 decode failed: {e}", ENCODING_ERROR) from e

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        raise SchemaError(f"malformed json: {e}", JSON_PARSE_ERROR) from e

    if not isinstance(data, dict):
        raise SchemaError(
            f"type mismatch: record expected object, got {json_type_name(data)}",
            TYPE_MISMATCH,
        )
    return data


def validate(raw: RawRecord, shape: RecordShape) -> ParsedRecord:
    """Check a raw record against a shape.

    Returns the parsed record, or raises SchemaError naming the first
    violated constraint.
    """
    data = decode_payload(raw)

    for spec in shape.fields:
        if spec.name not in data:
            if spec.required:
                raise SchemaError(f"missing field: {spec.name}", MISSING_FIELD, field=spec.name)
            continue

        value = data[spec.name]
        if value is None:
            if spec.nullable:
                continue
            raise SchemaError(
                f"type mismatch: field {spec.name} expected {spec.type}, got null",
                TYPE_MISMATCH,
                field=spec.name,
            )
        if not _matches(value, spec.type):
            raise SchemaError(
                f"type mismatch: field {spec.name} expected {spec.type}, "
                f"got {json_type_name(value)}",
                TYPE_MISMATCH,
                field=spec.name,
            )

    if shape._schema_validator is not None:
        error = next(iter(shape._schema_validator.iter_errors(data)), None)
        if error is not None:
            path = ".".join(str(p) for p in error.absolute_path) or "$"
            raise SchemaError(
                f"schema violation: {path}: {error.message}",
                SCHEMA_VIOLATION,
                field=path if error.absolute_path else None,
            )

    return ParsedRecord(offset=raw.offset, data=data, raw=raw)


class SchemaValidator:
    """Validates raw records against one fixed shape."""

    def __init__(self, shape: RecordShape) -> None:
        self.shape = shape

    @classmethod
    def from_file(cls, path: str) -> "SchemaValidator":
        return cls(RecordShape.from_file(path))

    def validate(self, raw: RawRecord) -> ParsedRecord:
        return validate(raw, self.shape)
