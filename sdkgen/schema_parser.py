"""Classify OpenAPI schema nodes and map primitive kinds to scalar types.

Handles:
- Closed classification of a schema node (SchemaKind)
- string/integer/number/boolean mapping, with string formats
  (date-time, date, time) specialized
- $ref targets to previously declared type names, singular for enums
- Parameter types that need no declarations of their own
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, NamedTuple

from .diagnostics import Diagnostics
from .ir import Declaration, ScalarKind, TypeRef
from .loader import SCHEMA_PREFIX, deref, ref_name, resolve_ref
from .naming import identifier, make_singular


class Resolution(NamedTuple):
    """A resolved type plus the declarations discovered while resolving it."""

    type: TypeRef
    declarations: list[Declaration]


class SchemaKind(Enum):
    """Every shape a schema node can take, in detection priority order."""

    REF = "ref"
    ENUM = "enum"
    ALL_OF = "allOf"
    ONE_OF = "oneOf"
    ANY_OF = "anyOf"
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


_PRIMITIVE_KINDS: dict[str, SchemaKind] = {
    "string": SchemaKind.STRING,
    "integer": SchemaKind.INTEGER,
    "number": SchemaKind.NUMBER,
    "boolean": SchemaKind.BOOLEAN,
    "array": SchemaKind.ARRAY,
    "object": SchemaKind.OBJECT,
}

_STRING_FORMATS: dict[str, ScalarKind] = {
    "date-time": ScalarKind.TIMESTAMP,
    "date": ScalarKind.DATE,
    "time": ScalarKind.TIME,
}


def strip_html(text: str) -> str:
    """Strip HTML tags and collapse whitespace."""
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def describe(node: dict[str, Any]) -> str:
    """One-line documentation for a schema, parameter or response."""
    if not isinstance(node, dict):
        return ""
    return strip_html(str(node.get("description") or node.get("title") or ""))


def schema_type(schema: dict[str, Any]) -> str | None:
    """Return the declared type, taking the first non-null entry of a type list."""
    declared = schema.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    return declared


def classify(schema: dict[str, Any]) -> SchemaKind:
    """Classify a schema node. Enum detection wins over the base type."""
    if not isinstance(schema, dict):
        return SchemaKind.UNKNOWN
    if "$ref" in schema:
        return SchemaKind.REF
    if schema.get("enum"):
        return SchemaKind.ENUM
    if schema.get("allOf"):
        return SchemaKind.ALL_OF
    if schema.get("oneOf"):
        return SchemaKind.ONE_OF
    if schema.get("anyOf"):
        return SchemaKind.ANY_OF

    declared = schema_type(schema)
    if declared in _PRIMITIVE_KINDS:
        return _PRIMITIVE_KINDS[declared]
    if declared is None and ("properties" in schema or "additionalProperties" in schema):
        return SchemaKind.OBJECT
    if declared is None and "items" in schema:
        return SchemaKind.ARRAY
    return SchemaKind.UNKNOWN


def string_kind(schema: dict[str, Any]) -> ScalarKind:
    """Specialize a string schema by its format; unknown formats stay strings."""
    return _STRING_FORMATS.get(schema.get("format", ""), ScalarKind.STRING)


def scalar_kind(schema: dict[str, Any]) -> ScalarKind | None:
    """Map a primitive schema to its scalar kind, or None if it is not one."""
    kind = classify(schema)
    if kind is SchemaKind.STRING:
        return string_kind(schema)
    if kind is SchemaKind.INTEGER:
        return ScalarKind.INTEGER
    if kind is SchemaKind.NUMBER:
        return ScalarKind.FLOAT
    if kind is SchemaKind.BOOLEAN:
        return ScalarKind.BOOLEAN
    return None


def is_enum(spec: dict[str, Any], schema: dict[str, Any]) -> bool:
    """Check whether a schema, after following refs, is an enumeration."""
    return bool(deref(spec, schema).get("enum"))


def reference_name(spec: dict[str, Any], ref: str) -> str:
    """Return the declaration name a ``$ref`` resolves to.

    Enum components are always declared under their singular name, so a
    reference to ``Colors`` yields ``Color``.
    """
    target = resolve_ref(spec, ref)
    name = ref_name(ref)
    if ref.startswith(SCHEMA_PREFIX) and is_enum(spec, target):
        return identifier(make_singular(name))
    return identifier(name)


def is_free_form(schema: dict[str, Any]) -> bool:
    """An object with no fixed properties that allows additional ones."""
    if schema.get("properties"):
        return False
    additional = schema.get("additionalProperties")
    return additional is True or isinstance(additional, dict)


class TypeMapper:
    """Map schema nodes to TypeRefs without emitting declarations.

    Used where no declaration may be produced, e.g. path parameters.
    """

    def __init__(self, spec: dict[str, Any], diagnostics: Diagnostics) -> None:
        self.spec = spec
        self.diagnostics = diagnostics

    def reference(self, ref: str) -> TypeRef:
        return TypeRef.named(reference_name(self.spec, ref))

    def map(self, schema: dict[str, Any], name: str = "") -> TypeRef:
        kind = classify(schema)

        if kind is SchemaKind.REF:
            return self.reference(schema["$ref"])

        if kind is SchemaKind.ALL_OF:
            branches = schema["allOf"]
            if len(branches) > 1:
                self.diagnostics.warn("allOf with more than one branch is not supported here", name=name)
                return TypeRef.any()
            return self.map(branches[0], name)

        if kind is SchemaKind.ENUM:
            scalar = scalar_kind({k: v for k, v in schema.items() if k != "enum"})
            return TypeRef.scalar(scalar or ScalarKind.STRING)

        scalar = scalar_kind(schema)
        if scalar is not None:
            return TypeRef.scalar(scalar)

        if kind is SchemaKind.ARRAY:
            return TypeRef.sequence(self.map(schema.get("items") or {}, name))

        if kind is SchemaKind.OBJECT and is_free_form(schema):
            additional = schema.get("additionalProperties")
            if isinstance(additional, dict) and additional:
                return TypeRef.mapping(self.map(additional, name))
            return TypeRef.mapping(TypeRef.any())

        self.diagnostics.warn("unsupported parameter schema, falling back to any", name=name, kind=kind.value)
        return TypeRef.any()
