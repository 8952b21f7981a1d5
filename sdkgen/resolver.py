"""Recursive schema resolution into type references and declarations.

resolve(schema, name) returns the schema's TypeRef plus every declaration
discovered on the way: arrays recurse into their items under the singular
name, objects recurse into their properties (sorted by key). Named
components go through declare(), which always emits a declaration.
"""

from __future__ import annotations

from typing import Any

from . import composition
from .diagnostics import Diagnostics
from .ir import Declaration, DeclarationKind, RefKind, StructField, TypeDeclaration, TypeRef
from .naming import NameAllocator, identifier, make_singular, to_camel, unique_by
from .schema_parser import (
    Resolution,
    SchemaKind,
    TypeMapper,
    classify,
    describe,
    is_free_form,
    scalar_kind,
)


class SchemaResolver:
    """Resolves schemas against one document, memoizing declared names."""

    def __init__(self, spec: dict[str, Any], diagnostics: Diagnostics | None = None) -> None:
        self.spec = spec
        self.diagnostics = diagnostics or Diagnostics()
        self.mapper = TypeMapper(spec, self.diagnostics)
        self.names = NameAllocator()
        self.declared: dict[str, Declaration] = {}
        self._owners: dict[str, dict[str, Any]] = {}
        self._claimed: dict[int, tuple[dict[str, Any], str]] = {}

    # -- name table ---------------------------------------------------------

    def reserve(self, name: str, schema: dict[str, Any]) -> None:
        """Reserve a component name so inline declarations cannot take it."""
        owner = self._owners.get(name)
        if owner is not None and owner is not schema:
            self.diagnostics.warn("two components map to the same name", name=name)
            return
        self._owners[name] = schema
        self.names.reserve(name)

    def claim(self, name: str, schema: dict[str, Any]) -> tuple[str, bool]:
        """Return the name to declare ``schema`` under and whether it already is.

        A schema node reached twice (e.g. an inline property copied into an
        allOf) keeps the name it was first claimed under.
        """
        claimed = self._claimed.get(id(schema))
        if claimed is not None and claimed[0] is schema:
            return claimed[1], True

        owner = self._owners.get(name)
        if owner is schema:
            self._claimed[id(schema)] = (schema, name)
            return name, name in self.declared
        if owner is None:
            self._owners[name] = schema
            self._claimed[id(schema)] = (schema, name)
            self.names.reserve(name)
            return name, False

        renamed = self.names.allocate(name)
        self._owners[renamed] = schema
        self._claimed[id(schema)] = (schema, renamed)
        self.diagnostics.warn("declaration name already taken", name=name, renamed=renamed)
        return renamed, False

    def register(self, decl: Declaration) -> None:
        self.declared[decl.name] = decl

    # -- resolution ---------------------------------------------------------

    def resolve(self, schema: dict[str, Any], name: str, nested_all_of: bool = False) -> Resolution:
        """Resolve an inline schema to a TypeRef plus new declarations."""
        kind = classify(schema)

        if kind is SchemaKind.REF:
            return Resolution(self.mapper.reference(schema["$ref"]), [])
        if kind is SchemaKind.ENUM:
            return self._enum(schema, make_singular(name))
        if kind is SchemaKind.ALL_OF:
            if nested_all_of:
                return composition.nested_all_of(self, schema, name)
            return composition.all_of(self, schema, name)
        if kind is SchemaKind.ONE_OF:
            return composition.one_of(self, schema, name)
        if kind is SchemaKind.ANY_OF:
            return composition.any_of(self, schema, name)

        scalar = scalar_kind(schema)
        if scalar is not None:
            return Resolution(TypeRef.scalar(scalar), [])

        if kind is SchemaKind.ARRAY:
            item = self.resolve(schema.get("items") or {}, make_singular(name), nested_all_of)
            return Resolution(TypeRef.sequence(item.type), item.declarations)
        if kind is SchemaKind.OBJECT:
            return self._object(schema, name)

        self.diagnostics.warn("unknown schema shape, falling back to any", name=name)
        return Resolution(TypeRef.any(), [])

    def declare(self, name: str, schema: dict[str, Any]) -> Resolution:
        """Declare a named type; every shape yields a declaration.

        Unlike resolve(), scalars, arrays and references are not inlined:
        they become scalar, sequence and alias declarations. The returned
        type is always a named reference, possibly under a suffixed name.
        """
        kind = classify(schema)

        if kind is SchemaKind.REF:
            return self._simple(name, schema, DeclarationKind.ALIAS, self.mapper.reference(schema["$ref"]))
        if kind is SchemaKind.ENUM:
            resolution = self._enum(schema, name)
            if resolution.type.kind is RefKind.NAMED:
                return resolution
            return self._simple(name, schema, DeclarationKind.SCALAR, resolution.type)
        if kind is SchemaKind.ANY_OF:
            composition.any_of(self, schema, name)
            return self._simple(name, schema, DeclarationKind.ANY, TypeRef.any())

        scalar = scalar_kind(schema)
        if scalar is not None:
            return self._simple(name, schema, DeclarationKind.SCALAR, TypeRef.scalar(scalar))

        if kind is SchemaKind.ARRAY:
            item = self.resolve(schema.get("items") or {}, make_singular(name))
            sequence = self._simple(name, schema, DeclarationKind.SEQUENCE, TypeRef.sequence(item.type))
            return Resolution(sequence.type, [*sequence.declarations, *item.declarations])

        if kind in (SchemaKind.OBJECT, SchemaKind.ALL_OF, SchemaKind.ONE_OF):
            resolution = self.resolve(schema, name)
            if resolution.type.kind is RefKind.NAMED:
                return resolution

        self.diagnostics.warn("unknown schema shape, falling back to any", name=name)
        return self._simple(name, schema, DeclarationKind.ANY, TypeRef.any())

    def fields(
        self,
        properties: dict[str, Any],
        owner: str,
        required: set[str] | list[str],
        nested_all_of: bool = False,
    ) -> tuple[list[StructField], list[Declaration]]:
        """Resolve object properties, sorted by key, into struct fields."""
        fields: list[StructField] = []
        declarations: list[Declaration] = []
        for key in sorted(properties):
            prop = properties[key]
            resolution = self.resolve(prop, owner + to_camel(key), nested_all_of)
            fields.append(StructField(
                name=identifier(key),
                type=resolution.type,
                key=key,
                optional=key not in required,
                description=describe(prop),
            ))
            declarations.extend(resolution.declarations)
        return unique_by(fields, lambda f: f.name), declarations

    # -- helpers ------------------------------------------------------------

    def _simple(
        self, name: str, schema: dict[str, Any], kind: DeclarationKind, underlying: TypeRef,
    ) -> Resolution:
        name, done = self.claim(name, schema)
        if done:
            return Resolution(TypeRef.named(name), [])
        decl = TypeDeclaration(
            name=name,
            kind=kind,
            underlying=underlying,
            description=describe(schema),
            origin=schema,
        )
        self.register(decl)
        return Resolution(TypeRef.named(name), [decl])

    def _enum(self, schema: dict[str, Any], name: str) -> Resolution:
        scalar = composition.enum_scalar(schema)
        if scalar is None:
            self.diagnostics.warn("unsupported enum type, using its scalar type", name=name)
            base = scalar_kind({k: v for k, v in schema.items() if k != "enum"})
            return Resolution(TypeRef.scalar(base) if base else TypeRef.any(), [])

        name, done = self.claim(name, schema)
        if not done:
            self.register(composition.enumeration(schema, name, scalar, self.diagnostics))
            return Resolution(TypeRef.named(name), [self.declared[name]])
        return Resolution(TypeRef.named(name), [])

    def _object(self, schema: dict[str, Any], name: str) -> Resolution:
        name, done = self.claim(name, schema)
        if done:
            return Resolution(TypeRef.named(name), [])

        # Free-form maps take precedence over empty structs.
        if is_free_form(schema):
            additional = schema.get("additionalProperties")
            value = Resolution(TypeRef.any(), [])
            if isinstance(additional, dict) and additional:
                value = self.resolve(additional, name + "Value")
            decl = TypeDeclaration(
                name=name,
                kind=DeclarationKind.MAP,
                underlying=TypeRef.mapping(value.type),
                description=describe(schema),
                origin=schema,
            )
            self.register(decl)
            return Resolution(TypeRef.named(name), [decl, *value.declarations])

        fields, declarations = self.fields(
            schema.get("properties") or {}, name, set(schema.get("required") or []),
        )
        decl = TypeDeclaration(
            name=name,
            kind=DeclarationKind.STRUCT,
            fields=tuple(sorted(fields, key=lambda f: f.name)),
            description=describe(schema),
            origin=schema,
        )
        self.register(decl)
        return Resolution(TypeRef.named(name), [decl, *declarations])


def component_name(name: str, schema: dict[str, Any]) -> str:
    """Declaration name of a schema component; enums are singular."""
    if classify(schema) is SchemaKind.ENUM:
        return identifier(make_singular(name))
    return identifier(name)
