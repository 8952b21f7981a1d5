"""Language-agnostic intermediate representation of a generated client.

Schema resolution and operation mapping produce these nodes; a renderer
consumes them. Every node is immutable once built and every collection is
a tuple in its final, deterministic order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ScalarKind(Enum):
    """Target scalar types."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"


class RefKind(Enum):
    SCALAR = "scalar"
    NAMED = "named"
    SEQUENCE = "sequence"
    MAP = "map"
    ANY = "any"


@dataclass(frozen=True)
class TypeRef:
    """A resolved type: a scalar, a declared name, a container, or ``any``."""

    kind: RefKind
    name: str = ""
    item: TypeRef | None = None

    @classmethod
    def scalar(cls, kind: ScalarKind) -> TypeRef:
        return cls(RefKind.SCALAR, kind.value)

    @classmethod
    def named(cls, name: str) -> TypeRef:
        return cls(RefKind.NAMED, name)

    @classmethod
    def sequence(cls, item: TypeRef) -> TypeRef:
        return cls(RefKind.SEQUENCE, item=item)

    @classmethod
    def mapping(cls, value: TypeRef) -> TypeRef:
        return cls(RefKind.MAP, item=value)

    @classmethod
    def any(cls) -> TypeRef:
        return cls(RefKind.ANY)

    @property
    def scalar_kind(self) -> ScalarKind | None:
        if self.kind is RefKind.SCALAR:
            return ScalarKind(self.name)
        return None

    def __str__(self) -> str:
        if self.kind is RefKind.SEQUENCE:
            return f"[]{self.item}"
        if self.kind is RefKind.MAP:
            return f"map[string]{self.item}"
        if self.kind is RefKind.ANY:
            return "any"
        return self.name

    def referenced_names(self) -> set[str]:
        """Names of declarations this type depends on."""
        if self.kind is RefKind.NAMED:
            return {self.name}
        if self.item is not None:
            return self.item.referenced_names()
        return set()


class DeclarationKind(Enum):
    SCALAR = "scalar"
    STRUCT = "struct"
    MAP = "map"
    SUM = "sum"
    RAW_BYTES = "rawBytes"
    SEQUENCE = "sequence"
    ALIAS = "alias"
    ANY = "any"


@dataclass(frozen=True)
class StructField:
    name: str
    type: TypeRef
    key: str
    optional: bool = True
    description: str = ""


class Conversion(Enum):
    """How one query value is turned into text."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"


@dataclass(frozen=True)
class QueryFieldEncoding:
    attribute: str
    key: str
    conversion: Conversion
    repeated: bool = False
    required: bool = False
    cast: bool = False


@dataclass(frozen=True)
class QueryEncoding:
    """Serialization of a params struct into a multi-valued string map."""

    type_name: str
    fields: tuple[QueryFieldEncoding, ...] = ()


@dataclass(frozen=True)
class TypeDeclaration:
    """A named type: struct, map, scalar alias, sequence, or placeholder."""

    name: str
    kind: DeclarationKind
    underlying: TypeRef | None = None
    fields: tuple[StructField, ...] = ()
    description: str = ""
    origin: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    is_error: bool = False
    query_encoding: QueryEncoding | None = None

    def referenced_names(self) -> set[str]:
        names: set[str] = set()
        if self.underlying is not None:
            names |= self.underlying.referenced_names()
        for f in self.fields:
            names |= f.type.referenced_names()
        return names


@dataclass(frozen=True)
class EnumVariant:
    name: str
    value: str | int | float


@dataclass(frozen=True)
class EnumDeclaration:
    name: str
    scalar: ScalarKind
    variants: tuple[EnumVariant, ...] = ()
    description: str = ""
    origin: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    is_error: bool = False

    def referenced_names(self) -> set[str]:
        return set()


@dataclass(frozen=True)
class SumVariant:
    """One alternative of a sum type, exposed through ``as_<name>``."""

    name: str
    type: TypeRef


@dataclass(frozen=True)
class SumTypeDeclaration:
    """A oneOf: at most one variant is populated at a time.

    Nothing enforces exactly one; constructing it correctly is up to the
    caller. Decoding a raw payload into a variant is not implemented.
    """

    name: str
    variants: tuple[SumVariant, ...] = ()
    description: str = ""
    origin: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    is_error: bool = False

    def referenced_names(self) -> set[str]:
        names: set[str] = set()
        for v in self.variants:
            names |= v.type.referenced_names()
        return names


Declaration = Union[TypeDeclaration, EnumDeclaration, SumTypeDeclaration]


@dataclass(frozen=True)
class Parameter:
    name: str
    type: TypeRef


@dataclass(frozen=True)
class PathTemplate:
    """A path with ``{}`` markers filled positionally from ``arguments``."""

    pattern: str
    arguments: tuple[str, ...] = ()

    def expand(self, *values: Any) -> str:
        return self.pattern.format(*values)


class StatusClass(Enum):
    EXPLICIT = "explicit"
    PATTERN = "pattern"
    DEFAULT = "default"


@dataclass(frozen=True)
class Response:
    code: str
    status: StatusClass
    sort_key: int
    is_error: bool
    type: TypeRef | None = None
    description: str = ""
    is_unexpected: bool = False

    @property
    def is_default(self) -> bool:
        return self.status is StatusClass.DEFAULT


@dataclass(frozen=True)
class Method:
    operation_id: str
    name: str
    http_verb: str
    path: PathTemplate
    path_params: tuple[Parameter, ...] = ()
    query_params: Parameter | None = None
    has_body: bool = False
    body: Parameter | None = None
    response_type: TypeRef | None = None
    responses: tuple[Response, ...] = ()
    description: str = ""
    deprecated: bool = False


@dataclass(frozen=True)
class TagGroup:
    name: str
    description: str = ""
    declarations: tuple[Declaration, ...] = ()
    methods: tuple[Method, ...] = ()


@dataclass(frozen=True)
class Diagnostic:
    message: str
    context: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class Sdk:
    """Everything a renderer needs for one generation run."""

    package: str
    title: str = ""
    version: str = ""
    shared: tuple[Declaration, ...] = ()
    groups: tuple[TagGroup, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = field(default=(), compare=False)

    @property
    def tags(self) -> list[str]:
        return [g.name for g in self.groups]

    def declarations(self) -> dict[str, Declaration]:
        """All declarations by name, shared ones included."""
        table: dict[str, Declaration] = {}
        for decl in self.shared:
            table.setdefault(decl.name, decl)
        for group in self.groups:
            for decl in group.declarations:
                table.setdefault(decl.name, decl)
        return table
