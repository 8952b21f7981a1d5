"""Serialization plan for params structs.

Each params struct gets a QueryEncoding listing, per field, the query key,
whether the value is repeated (one entry per element) and how the value is
converted to text:
  - timestamp  -> RFC 3339
  - date, time -> ISO form
  - integer, boolean, float -> canonical text
  - enum / scalar alias -> cast through the underlying scalar
  - anything else -> plain string
"""

from __future__ import annotations

from typing import Mapping

from .ir import (
    Conversion,
    Declaration,
    DeclarationKind,
    EnumDeclaration,
    QueryEncoding,
    QueryFieldEncoding,
    RefKind,
    ScalarKind,
    TypeDeclaration,
    TypeRef,
)

_CONVERSIONS: dict[ScalarKind, Conversion] = {
    ScalarKind.STRING: Conversion.STRING,
    ScalarKind.INTEGER: Conversion.INTEGER,
    ScalarKind.FLOAT: Conversion.FLOAT,
    ScalarKind.BOOLEAN: Conversion.BOOLEAN,
    ScalarKind.TIMESTAMP: Conversion.TIMESTAMP,
    ScalarKind.DATE: Conversion.DATE,
    ScalarKind.TIME: Conversion.TIME,
}


def conversion(ref: TypeRef, declarations: Mapping[str, Declaration]) -> tuple[Conversion, bool]:
    """Return the text conversion for a single value and whether it needs a cast."""
    seen: set[str] = set()
    cast = False
    while ref.kind is RefKind.NAMED and ref.name not in seen:
        seen.add(ref.name)
        decl = declarations.get(ref.name)
        if isinstance(decl, EnumDeclaration):
            return _CONVERSIONS[decl.scalar], True
        if (
            isinstance(decl, TypeDeclaration)
            and decl.kind in (DeclarationKind.SCALAR, DeclarationKind.ALIAS)
            and decl.underlying is not None
        ):
            ref = decl.underlying
            cast = True
            continue
        return Conversion.STRING, cast

    scalar = ref.scalar_kind
    if scalar is None:
        return Conversion.STRING, cast
    return _CONVERSIONS[scalar], cast


def element_type(ref: TypeRef, declarations: Mapping[str, Declaration]) -> TypeRef | None:
    """Item type of a sequence, also reached through sequence and alias declarations."""
    seen: set[str] = set()
    while ref.kind is RefKind.NAMED and ref.name not in seen:
        seen.add(ref.name)
        decl = declarations.get(ref.name)
        if not (
            isinstance(decl, TypeDeclaration)
            and decl.kind in (DeclarationKind.SEQUENCE, DeclarationKind.ALIAS)
            and decl.underlying is not None
        ):
            return None
        ref = decl.underlying

    if ref.kind is not RefKind.SEQUENCE:
        return None
    return ref.item or TypeRef.any()


def build_query_encoding(
    decl: TypeDeclaration, declarations: Mapping[str, Declaration],
) -> QueryEncoding:
    """Build the serialization plan for one params struct."""
    fields = []
    for f in decl.fields:
        item = element_type(f.type, declarations)
        repeated = item is not None
        conv, cast = conversion(item or f.type, declarations)
        fields.append(QueryFieldEncoding(
            attribute=f.name,
            key=f.key,
            conversion=conv,
            repeated=repeated,
            required=not f.optional,
            cast=cast,
        ))
    return QueryEncoding(type_name=decl.name, fields=tuple(fields))
