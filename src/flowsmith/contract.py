"""Structured-output contract.

A ``SchemaDescriptor`` tree is the single description of a response shape. It
is rendered into the provider's generation constraint and used locally to
sanitize, parse and structurally validate whatever text comes back.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger

from flowsmith.errors import MalformedOutputError

_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_CLOSING_FENCE = re.compile(r"\r?\n?```$")


class SchemaKind(StrEnum):
    OBJECT = "OBJECT"
    ARRAY = "ARRAY"
    STRING = "STRING"
    INTEGER = "INTEGER"
    ENUM = "ENUM"


@dataclass(frozen=True)
class SchemaDescriptor:
    """Declarative response shape."""

    kind: SchemaKind
    properties: Mapping[str, SchemaDescriptor] = field(default_factory=dict)
    items: SchemaDescriptor | None = None
    required: tuple[str, ...] = ()
    values: tuple[str, ...] = ()
    description: str | None = None

    def __post_init__(self) -> None:
        if self.kind is SchemaKind.ARRAY and self.items is None:
            raise ValueError("array schemas need an item schema")
        if self.kind is SchemaKind.ENUM and not self.values:
            raise ValueError("enum schemas need at least one value")
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required fields without a property schema: {', '.join(missing)}")

    @classmethod
    def object(
        cls,
        properties: Mapping[str, SchemaDescriptor],
        *,
        required: tuple[str, ...] = (),
        description: str | None = None,
    ) -> SchemaDescriptor:
        return cls(SchemaKind.OBJECT, properties=dict(properties), required=required, description=description)

    @classmethod
    def array(cls, items: SchemaDescriptor, *, description: str | None = None) -> SchemaDescriptor:
        return cls(SchemaKind.ARRAY, items=items, description=description)

    @classmethod
    def string(cls, *, description: str | None = None) -> SchemaDescriptor:
        return cls(SchemaKind.STRING, description=description)

    @classmethod
    def integer(cls, *, description: str | None = None) -> SchemaDescriptor:
        return cls(SchemaKind.INTEGER, description=description)

    @classmethod
    def enum(cls, values: tuple[str, ...], *, description: str | None = None) -> SchemaDescriptor:
        return cls(SchemaKind.ENUM, values=values, description=description)

    def to_provider_schema(self) -> dict[str, Any]:
        """Render as the provider's OpenAPI-style ``response_schema``."""
        rendered: dict[str, Any]
        if self.kind is SchemaKind.ENUM:
            rendered = {"type": "STRING", "format": "enum", "enum": list(self.values)}
        else:
            rendered = {"type": self.kind.value}
        if self.description:
            rendered["description"] = self.description
        if self.kind is SchemaKind.OBJECT:
            rendered["properties"] = {name: prop.to_provider_schema() for name, prop in self.properties.items()}
            if self.required:
                rendered["required"] = list(self.required)
        elif self.kind is SchemaKind.ARRAY and self.items is not None:
            rendered["items"] = self.items.to_provider_schema()
        return rendered


def sanitize_output(raw_text: str) -> str:
    """Strip one optional leading fence marker and one optional trailing fence, then trim."""
    text = raw_text.strip()
    text = _OPENING_FENCE.sub("", text, count=1)
    text = _CLOSING_FENCE.sub("", text, count=1)
    return text.strip()


def _kind_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def _mismatch(path: str, expected: str, value: Any) -> MalformedOutputError:
    return MalformedOutputError(f"{path or '$'}: expected {expected}, got {_kind_name(value)}", path=path or "$")


def validate_shape(value: Any, schema: SchemaDescriptor, path: str = "") -> Any:
    """Check ``value`` against ``schema`` structurally and return a normalized copy.

    Integral floats are accepted for integers and enum values are matched
    case-insensitively; both are normalized. Optional properties may be absent
    or null. Properties the schema does not declare pass through untouched.
    """
    kind = schema.kind
    if kind is SchemaKind.OBJECT:
        if not isinstance(value, dict):
            raise _mismatch(path, "object", value)
        normalized = dict(value)
        for name, prop in schema.properties.items():
            child = f"{path}.{name}" if path else name
            if name not in value or value[name] is None:
                if name in schema.required:
                    raise MalformedOutputError(f"{child}: required field is missing", path=child)
                continue
            normalized[name] = validate_shape(value[name], prop, child)
        return normalized

    if kind is SchemaKind.ARRAY:
        if not isinstance(value, list):
            raise _mismatch(path, "array", value)
        assert schema.items is not None
        return [validate_shape(item, schema.items, f"{path}[{index}]") for index, item in enumerate(value)]

    if kind is SchemaKind.STRING:
        if not isinstance(value, str):
            raise _mismatch(path, "string", value)
        return value

    if kind is SchemaKind.INTEGER:
        if isinstance(value, bool):
            raise _mismatch(path, "integer", value)
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise _mismatch(path, "integer", value)

    if not isinstance(value, str):
        raise _mismatch(path, f"one of {list(schema.values)}", value)
    lowered = value.strip().lower()
    for allowed in schema.values:
        if allowed.lower() == lowered:
            return allowed
    raise MalformedOutputError(
        f"{path or '$'}: {value!r} is not one of {list(schema.values)}",
        path=path or "$",
    )


def parse_structured(raw_text: str | None, schema: SchemaDescriptor) -> Any:
    """Sanitize, parse and structurally validate provider output."""
    if raw_text is None or not raw_text.strip():
        raise MalformedOutputError("The AI returned an empty response.", raw_text=raw_text)

    sanitized = sanitize_output(raw_text)
    try:
        payload = json.loads(sanitized)
    except json.JSONDecodeError as exc:
        logger.error("contract.parse.failed error={} raw={!r}", exc, raw_text)
        raise MalformedOutputError(f"Invalid JSON at line {exc.lineno} column {exc.colno}", raw_text=raw_text) from exc

    try:
        return validate_shape(payload, schema)
    except MalformedOutputError as exc:
        logger.error("contract.shape.failed path={} error={} raw={!r}", exc.path, exc, raw_text)
        exc.raw_text = raw_text
        raise
