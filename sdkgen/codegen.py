"""Render the client IR into a Python package and write it to disk.

Produces, under ``<output_dir>/<package>/``:
  _shared.py   runtime helpers plus declarations used by several tags
  <tag>.py     one module per tag group: types and a <Tag>Service
  client.py    Client aggregating one service per tag
  __init__.py  package exports
"""

from __future__ import annotations

import keyword
import logging
from pathlib import Path
from typing import Any

import jinja2

from .context_builder import closure, method_references
from .diagnostics import OutputError
from .ir import (
    Conversion,
    Declaration,
    DeclarationKind,
    EnumDeclaration,
    Method,
    RefKind,
    Response,
    ScalarKind,
    Sdk,
    StatusClass,
    SumTypeDeclaration,
    TagGroup,
    TypeDeclaration,
    TypeRef,
)
from .naming import to_camel, to_snake

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

RUNTIME_MODULE = "_shared"

_SCALAR_TYPES: dict[ScalarKind, str] = {
    ScalarKind.STRING: "str",
    ScalarKind.INTEGER: "int",
    ScalarKind.FLOAT: "float",
    ScalarKind.BOOLEAN: "bool",
    ScalarKind.TIMESTAMP: "datetime.datetime",
    ScalarKind.DATE: "datetime.date",
    ScalarKind.TIME: "datetime.time",
}

# Scalars that JSON cannot carry natively; None means the value is used as is
_SCALAR_DECODERS: dict[ScalarKind, str] = {
    ScalarKind.TIMESTAMP: "parse_timestamp",
    ScalarKind.DATE: "parse_date",
    ScalarKind.TIME: "parse_time",
}

_FORMATTERS: dict[Conversion, str] = {
    Conversion.STRING: "format_string",
    Conversion.INTEGER: "format_integer",
    Conversion.FLOAT: "format_float",
    Conversion.BOOLEAN: "format_bool",
    Conversion.TIMESTAMP: "format_timestamp",
    Conversion.DATE: "format_date",
    Conversion.TIME: "format_time",
}

# Attribute names the generated classes already use
_RESERVED_ATTRIBUTES = {"to_dict", "from_dict", "query_values", "raw", "close"}
_RESERVED_ARGUMENTS = {"self", "params", "body", "response", "status"}
_RESERVED_MODULES = {"client", RUNTIME_MODULE, "__init__"}


def _escape(name: str, reserved: set[str]) -> str:
    if keyword.iskeyword(name) or name in reserved:
        return name + "_"
    return name


def attribute_name(name: str) -> str:
    """snake_case attribute for a CamelCase IR name."""
    return _escape(to_snake(name) or "value", _RESERVED_ATTRIBUTES)


def argument_name(name: str) -> str:
    return _escape(to_snake(name) or "value", _RESERVED_ARGUMENTS)


def module_name(tag: str) -> str:
    """Module file stem for a tag group."""
    name = to_snake(tag) or "default"
    if name[0].isdigit():
        name = "tag_" + name
    return _escape(name, _RESERVED_MODULES)


def service_name(tag: str) -> str:
    camel = to_camel(tag) or "Default"
    if camel[0].isdigit():
        camel = "Tag" + camel
    return camel + "Service"


def member_name(variant: str) -> str:
    """UPPER_SNAKE enum member for a variant name."""
    name = to_snake(variant).upper() or "EMPTY"
    if name[0].isdigit():
        name = "N" + name
    return name


def py_type(ref: TypeRef | None) -> str:
    """Python annotation for a type reference."""
    if ref is None:
        return "None"
    if ref.kind is RefKind.SCALAR:
        return _SCALAR_TYPES[ScalarKind(ref.name)]
    if ref.kind is RefKind.NAMED:
        return ref.name
    if ref.kind is RefKind.SEQUENCE:
        return f"list[{py_type(ref.item)}]"
    if ref.kind is RefKind.MAP:
        return f"dict[str, {py_type(ref.item)}]"
    return "Any"


def docstring(text: str) -> str:
    """Make text safe to place between triple double quotes."""
    text = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if text.endswith('"'):
        text += " "
    return text


def declaration_kind(decl: Declaration) -> str:
    if isinstance(decl, EnumDeclaration):
        return "enum"
    if isinstance(decl, SumTypeDeclaration):
        return "sum"
    if decl.kind is DeclarationKind.STRUCT:
        return "params" if decl.query_encoding is not None else "struct"
    if decl.kind is DeclarationKind.RAW_BYTES:
        return "bytes"
    return "alias"


def enum_base(decl: EnumDeclaration) -> str:
    if decl.scalar is ScalarKind.INTEGER:
        return "int"
    if decl.scalar is ScalarKind.FLOAT:
        return "float"
    return "str"


def formatter(conversion: Conversion) -> str:
    return _FORMATTERS[conversion]


def status_test(response: Response) -> str:
    if response.status is StatusClass.PATTERN:
        return f"{response.sort_key} <= status < {response.sort_key + 100}"
    return f"status == {response.sort_key}"


def dispatch_order(responses: tuple[Response, ...]) -> list[Response]:
    """Explicit codes before NXX classes so that 404 is tested before 4XX."""
    rank = {StatusClass.EXPLICIT: 0, StatusClass.PATTERN: 1, StatusClass.DEFAULT: 2}
    return sorted(responses, key=lambda r: (rank[r.status], r.sort_key, r.code))


class Renderer:
    """Renders one Sdk; holds the declaration table for type lookups."""

    def __init__(self, sdk: Sdk, base_url: str = "") -> None:
        self.sdk = sdk
        self.base_url = base_url
        self.table = sdk.declarations()
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters.update(
            py_type=py_type,
            attr=attribute_name,
            arg=argument_name,
            member=member_name,
            pyrepr=repr,
            docstring=docstring,
            decl_kind=declaration_kind,
            enum_base=enum_base,
            formatter=formatter,
            status_test=status_test,
            dispatch_order=dispatch_order,
            decoder=self.decoder,
            outcome=self.outcome,
            return_type=self.return_type,
            params_required=self.params_required,
            is_error_payload=self.is_error_payload,
        )

    # -- filters ------------------------------------------------------------

    def decoder(self, ref: TypeRef, rt: str = "", seen: frozenset[str] = frozenset()) -> str:
        """Expression for a callable turning a JSON value into ``ref``, or "None"."""
        if ref.kind is RefKind.SCALAR:
            scalar = ScalarKind(ref.name)
            if scalar is ScalarKind.FLOAT:
                return "float"
            if scalar in _SCALAR_DECODERS:
                return rt + _SCALAR_DECODERS[scalar]
            return "None"
        if ref.kind in (RefKind.SEQUENCE, RefKind.MAP) and ref.item is not None:
            inner = self.decoder(ref.item, rt, seen)
            if inner == "None":
                return "None"
            wrapper = "list_of" if ref.kind is RefKind.SEQUENCE else "map_of"
            return f"{rt}{wrapper}({inner})"
        if ref.kind is not RefKind.NAMED or ref.name in seen:
            return "None"

        decl = self.table.get(ref.name)
        if isinstance(decl, EnumDeclaration):
            return ref.name
        if isinstance(decl, SumTypeDeclaration):
            return f"{ref.name}.from_dict"
        if isinstance(decl, TypeDeclaration):
            if decl.kind is DeclarationKind.STRUCT:
                return f"{ref.name}.from_dict"
            if decl.underlying is not None:
                return self.decoder(decl.underlying, rt, seen | {ref.name})
        return "None"

    def is_raw(self, ref: TypeRef | None) -> bool:
        if ref is None or ref.kind is not RefKind.NAMED:
            return False
        decl = self.table.get(ref.name)
        return isinstance(decl, TypeDeclaration) and decl.kind is DeclarationKind.RAW_BYTES

    def is_error_payload(self, decl: Declaration) -> bool:
        return decl.is_error and declaration_kind(decl) in ("struct", "sum")

    def payload(self, ref: TypeRef | None, rt: str) -> str:
        if ref is None:
            return "None"
        if self.is_raw(ref):
            return "response.content"
        return f"{rt}read_json(response, {self.decoder(ref, rt)})"

    def outcome(self, response: Response, rt: str = "") -> str:
        """Statement run when ``response`` matches the received status."""
        if response.is_unexpected:
            return f"raise {rt}UnexpectedResponseError(response)"
        payload = self.payload(response.type, rt)
        if response.is_error:
            return f"raise {rt}APIError(response, {payload})"
        return f"return {payload}"

    def return_type(self, method: Method) -> str:
        successes = [r for r in method.responses if not r.is_error]
        types = {py_type(r.type) for r in successes if r.type is not None}
        if not types:
            return "None"
        if len(types) > 1:
            return "Any"
        (annotation,) = types
        if any(r.type is None for r in successes):
            return f"{annotation} | None"
        return annotation

    def params_required(self, method: Method) -> bool:
        if method.query_params is None:
            return False
        decl = self.table.get(method.query_params.type.name)
        return isinstance(decl, TypeDeclaration) and any(not f.optional for f in decl.fields)

    # -- files --------------------------------------------------------------

    def shared_imports(self, group: TagGroup) -> list[str]:
        """Shared names a tag module uses, including alias targets its decoders name."""
        shared = {d.name for d in self.sdk.shared}
        roots: set[str] = set()
        for decl in group.declarations:
            roots |= decl.referenced_names()
        for method in group.methods:
            roots |= method_references(method)
        graph = {name: decl.referenced_names() for name, decl in self.table.items()}
        return sorted(closure(roots, graph) & shared)

    def group_context(self, group: TagGroup) -> dict[str, Any]:
        return {
            "group": group,
            "module": module_name(group.name),
            "service": service_name(group.name),
            "attribute": attribute_name(group.name),
            "shared_imports": self.shared_imports(group),
        }

    def render(self) -> dict[str, str]:
        """Return file name -> source for the whole package."""
        groups = [self.group_context(g) for g in self.sdk.groups]
        modules: dict[str, str] = {}
        for context in groups:
            tag = context["group"].name
            other = modules.setdefault(context["module"], tag)
            if other != tag:
                raise OutputError(f"tags {other!r} and {tag!r} both map to module {context['module']}.py")
        common = {
            "sdk": self.sdk,
            "runtime": RUNTIME_MODULE,
            "base_url": self.base_url,
            "groups": groups,
        }
        files = {
            f"{RUNTIME_MODULE}.py": self.env.get_template("_shared.py.j2").render(**common),
            "client.py": self.env.get_template("client.py.j2").render(**common),
            "__init__.py": self.env.get_template("__init__.py.j2").render(**common),
        }
        tag_template = self.env.get_template("tag.py.j2")
        for context in groups:
            logger.info(
                "generating file %s.py (%d declarations, %d methods)",
                context["module"], len(context["group"].declarations), len(context["group"].methods),
            )
            files[f"{context['module']}.py"] = tag_template.render(**common, **context)
        return files


def generate(sdk: Sdk, output_dir: Path | str, base_url: str = "") -> list[Path]:
    """Render the Sdk and write it to ``<output_dir>/<package>/``."""
    if not sdk.package.isidentifier() or keyword.iskeyword(sdk.package):
        raise OutputError(f"package name {sdk.package!r} is not a valid Python identifier")

    files = Renderer(sdk, base_url).render()

    package_dir = Path(output_dir) / sdk.package
    try:
        package_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputError(f"cannot create {package_dir}: {e}") from e

    written: list[Path] = []
    for name, source in sorted(files.items()):
        output_path = package_dir / name
        try:
            output_path.write_text(source, encoding="utf-8")
        except OSError as e:
            raise OutputError(f"cannot write {output_path}: {e}") from e
        written.append(output_path)

    logger.info("generated %s (%d files, %d groups)", package_dir, len(written), len(sdk.groups))
    return written
