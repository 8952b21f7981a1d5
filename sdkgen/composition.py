"""Composition rules: allOf merges, oneOf sum types, anyOf, enumerations.

Only a pragmatic subset of composition is supported:
- allOf merges branch properties left to right; a property name already
  taken by an earlier branch is dropped from later branches
- oneOf becomes a sum type with one accessor per branch
- anyOf always degrades to ``any``
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator

from .diagnostics import Diagnostics
from .ir import (
    DeclarationKind,
    EnumDeclaration,
    EnumVariant,
    RefKind,
    ScalarKind,
    StructField,
    SumTypeDeclaration,
    SumVariant,
    TypeDeclaration,
    TypeRef,
)
from .loader import deref
from .naming import to_camel, unique_by
from .schema_parser import Resolution, SchemaKind, classify, describe, schema_type

if TYPE_CHECKING:
    from .resolver import SchemaResolver

_ENUM_SCALARS: dict[str | None, ScalarKind] = {
    None: ScalarKind.STRING,
    "string": ScalarKind.STRING,
    "integer": ScalarKind.INTEGER,
    "number": ScalarKind.FLOAT,
}


# Keys that carry no structure of their own in an allOf branch
_ANNOTATION_KEYS = {"required", "description", "title", "nullable"}


def enum_scalar(schema: dict[str, Any]) -> ScalarKind | None:
    """Scalar kind of an enum; enums without a type are string enums."""
    return _ENUM_SCALARS.get(schema_type(schema))


def _matches(scalar: ScalarKind, value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if scalar is ScalarKind.STRING:
        return isinstance(value, str)
    if scalar is ScalarKind.INTEGER:
        return isinstance(value, int)
    return isinstance(value, (int, float))


def enumeration(
    schema: dict[str, Any], name: str, scalar: ScalarKind, diagnostics: Diagnostics,
) -> EnumDeclaration:
    """Build an enum; literals of the wrong runtime type are skipped."""
    variants: list[EnumVariant] = []
    for value in schema["enum"]:
        if not _matches(scalar, value):
            diagnostics.warn(
                "invalid enum value",
                enum=name,
                expected=scalar.value,
                got=type(value).__name__,
            )
            continue
        if scalar is ScalarKind.FLOAT:
            value = float(value)
        variants.append(EnumVariant(name=name + (to_camel(str(value)) or "Empty"), value=value))

    unique = unique_by(variants, lambda v: v.name)
    if len(unique) != len(variants):
        diagnostics.warn("enum values collapse to the same variant name", enum=name)

    return EnumDeclaration(
        name=name,
        scalar=scalar,
        variants=tuple(sorted(unique, key=lambda v: v.name)),
        description=describe(schema),
        origin=schema,
    )


def _flatten_branches(spec: dict[str, Any], schema: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Branches in order with nested allOf inlined; a level's own properties come after its branches."""
    for branch in schema.get("allOf") or []:
        branch = deref(spec, branch)
        if branch.get("allOf"):
            yield from _flatten_branches(spec, branch)
        else:
            yield branch
    if schema.get("properties"):
        yield {"properties": schema["properties"], "required": schema.get("required", [])}


def all_of(resolver: SchemaResolver, schema: dict[str, Any], name: str) -> Resolution:
    """Merge allOf branches into one struct; the first occurrence of a property wins."""
    name, done = resolver.claim(name, schema)
    if done:
        return Resolution(TypeRef.named(name), [])

    branches = list(_flatten_branches(resolver.spec, schema))
    outer_required = set(schema.get("required") or [])
    for branch in branches:
        if not branch.get("properties"):
            outer_required.update(branch.get("required") or [])

    fields: list[StructField] = []
    declarations = []
    seen: set[str] = set()

    for branch in branches:
        if not branch.get("properties"):
            if set(branch) - _ANNOTATION_KEYS and classify(branch) is not SchemaKind.OBJECT:
                resolver.diagnostics.warn("allOf branch without properties ignored", name=name)
            continue

        # Properties consumed by an earlier branch are never re-emitted or re-typed.
        properties = {k: v for k, v in (branch.get("properties") or {}).items() if k not in seen}
        required = outer_required | set(branch.get("required") or [])
        branch_fields, branch_declarations = resolver.fields(properties, name, required, nested_all_of=True)
        fields.extend(branch_fields)
        declarations.extend(branch_declarations)
        seen.update(properties)

    decl = TypeDeclaration(
        name=name,
        kind=DeclarationKind.STRUCT,
        fields=tuple(sorted(unique_by(fields, lambda f: f.name), key=lambda f: f.name)),
        description=describe(schema),
        origin=schema,
    )
    resolver.register(decl)
    return Resolution(TypeRef.named(name), [decl, *declarations])


def nested_all_of(resolver: SchemaResolver, schema: dict[str, Any], name: str) -> Resolution:
    """An allOf inside a property of another allOf: single branch only."""
    branches = schema["allOf"]
    if len(branches) == 1:
        return resolver.resolve(branches[0], name)
    resolver.diagnostics.warn("nested allOf with more than one branch, falling back to any", name=name)
    return Resolution(TypeRef.any(), [])


def variant_name(ref: TypeRef) -> str:
    """Accessor name of a sum type variant, derived from its type."""
    if ref.kind is RefKind.NAMED:
        return ref.name
    if ref.kind is RefKind.SCALAR:
        return to_camel(ref.name)
    if ref.kind is RefKind.SEQUENCE:
        return variant_name(ref.item) + "List"
    if ref.kind is RefKind.MAP:
        return variant_name(ref.item) + "Map"
    return "Any"


def one_of(resolver: SchemaResolver, schema: dict[str, Any], name: str) -> Resolution:
    """Turn a oneOf into a sum type over the resolved branch types."""
    name, done = resolver.claim(name, schema)
    if done:
        return Resolution(TypeRef.named(name), [])

    variants: list[SumVariant] = []
    declarations = []
    for i, branch in enumerate(schema["oneOf"], start=1):
        suffix = to_camel(str(branch.get("title", ""))) if isinstance(branch, dict) else ""
        resolution = resolver.resolve(branch, name + (suffix or f"Option{i}"))
        variants.append(SumVariant(name=variant_name(resolution.type), type=resolution.type))
        declarations.extend(resolution.declarations)

    # TODO: decode a raw payload into the matching variant (discriminator or trial decoding).
    decl = SumTypeDeclaration(
        name=name,
        variants=tuple(unique_by(variants, lambda v: v.name)),
        description=describe(schema),
        origin=schema,
    )
    resolver.register(decl)
    return Resolution(TypeRef.named(name), [decl, *declarations])


def any_of(resolver: SchemaResolver, schema: dict[str, Any], name: str) -> Resolution:
    resolver.diagnostics.warn("anyOf not supported, falling back to any", name=name)
    return Resolution(TypeRef.any(), [])
