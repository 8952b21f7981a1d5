"""Build the client IR from a parsed OpenAPI document.

Declares every component, maps every operation to a method in its tag
group, and decides which declarations live in a tag module and which are
shared:
  - an operation belongs to its first tag (untagged -> default tag)
  - a declaration reached by exactly one tag belongs to that tag
  - anything reached by no tag, by several tags, or from a shared
    declaration is shared
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterable

from .config import GeneratorConfig
from .diagnostics import Diagnostics
from .ir import (
    Declaration,
    DeclarationKind,
    Method,
    RefKind,
    Sdk,
    TagGroup,
    TypeDeclaration,
    TypeRef,
)
from .loader import get_responses, get_schemas, get_tags, iter_operations
from .operations import MappedOperation, OperationMapper, json_media, response_component_name
from .resolver import SchemaResolver, component_name
from .schema_parser import describe

logger = logging.getLogger(__name__)

SHARED = ""


def method_references(method: Method) -> set[str]:
    """Declaration names a method's signature and responses use."""
    refs: list[TypeRef] = [p.type for p in method.path_params]
    if method.query_params is not None:
        refs.append(method.query_params.type)
    if method.body is not None:
        refs.append(method.body.type)
    refs.extend(r.type for r in method.responses if r.type is not None)

    names: set[str] = set()
    for ref in refs:
        names |= ref.referenced_names()
    return names


def closure(roots: Iterable[str], graph: dict[str, set[str]]) -> set[str]:
    """Every name reachable from ``roots``, roots included."""
    seen: set[str] = set()
    stack = list(roots)
    while stack:
        name = stack.pop()
        if name in seen:
            continue
        seen.add(name)
        stack.extend(graph.get(name, ()))
    return seen


def assign_owners(
    declared: dict[str, Declaration],
    methods_by_tag: dict[str, list[Method]],
    fixed: dict[str, str],
) -> dict[str, str]:
    """Map each declaration name to its owning tag, or SHARED.

    ``fixed`` pins operation-level declarations (bodies, params, inline
    responses) to the tag of the operation that introduced them.
    """
    graph = {name: decl.referenced_names() for name, decl in declared.items()}
    reached_by: dict[str, set[str]] = {name: set() for name in declared}
    for tag, methods in methods_by_tag.items():
        roots: set[str] = set()
        for method in methods:
            roots |= method_references(method)
        for name in closure(roots, graph):
            if name in reached_by:
                reached_by[name].add(tag)

    owners: dict[str, str] = {}
    for name, tags in reached_by.items():
        if name in fixed:
            owners[name] = fixed[name]
        elif len(tags) == 1:
            owners[name] = next(iter(tags))
        else:
            owners[name] = SHARED

    shared_roots = [name for name, owner in owners.items() if owner == SHARED]
    for name in closure(shared_roots, graph):
        if name in owners:
            owners[name] = SHARED
    return owners


def error_names(methods: Iterable[Method], declared: dict[str, Declaration]) -> set[str]:
    """Names of declarations used as error response payloads.

    An alias passes the flag on to its target, so ``ErrorResponse = Error``
    marks both.
    """
    names: set[str] = set()
    for method in methods:
        for response in method.responses:
            if response.is_error and response.type is not None and response.type.kind is RefKind.NAMED:
                names.add(response.type.name)

    pending = list(names)
    while pending:
        decl = declared.get(pending.pop())
        if not isinstance(decl, TypeDeclaration) or decl.kind is not DeclarationKind.ALIAS:
            continue
        target = decl.underlying
        if target is not None and target.kind is RefKind.NAMED and target.name not in names:
            names.add(target.name)
            pending.append(target.name)
    return names


def _declare_response(resolver: SchemaResolver, name: str, response: dict[str, Any]) -> list[Declaration]:
    """Declare a reusable response: a JSON payload, raw bytes, or nothing."""
    content = response.get("content") or {}
    media = json_media(content)
    schema = content[media].get("schema") if media else None
    if isinstance(schema, dict):
        return resolver.declare(name, schema).declarations

    kind = DeclarationKind.RAW_BYTES if content else DeclarationKind.STRUCT
    name, done = resolver.claim(name, response)
    if done:
        return []
    decl = TypeDeclaration(name=name, kind=kind, description=describe(response), origin=response)
    resolver.register(decl)
    return [decl]


def _response_owner(response: dict[str, Any]) -> dict[str, Any]:
    content = response.get("content") or {}
    media = json_media(content)
    schema = content[media].get("schema") if media else None
    return schema if isinstance(schema, dict) else response


def build_context(
    spec: dict[str, Any],
    config: GeneratorConfig | None = None,
    diagnostics: Diagnostics | None = None,
) -> Sdk:
    """Resolve the whole document into an Sdk."""
    config = config or GeneratorConfig()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    resolver = SchemaResolver(spec, diagnostics)
    mapper = OperationMapper(resolver, config.method_name_extension)

    schemas = get_schemas(spec)
    responses = get_responses(spec)

    # Component names are reserved first so inline types never take them.
    for key in sorted(schemas):
        resolver.reserve(component_name(key, schemas[key]), schemas[key])
    for key in sorted(responses):
        resolver.reserve(response_component_name(key), _response_owner(responses[key]))

    components: list[Declaration] = []
    for key in sorted(schemas):
        components.extend(resolver.declare(component_name(key, schemas[key]), schemas[key]).declarations)

    response_components: list[Declaration] = []
    for key in sorted(responses):
        response_components.extend(_declare_response(resolver, response_component_name(key), responses[key]))

    mapped: list[tuple[str, MappedOperation]] = []
    for path, verb, operation, path_item in iter_operations(spec):
        tags = operation.get("tags") or [config.default_tag]
        mapped.append((str(tags[0]), mapper.map_operation(verb, path, operation, path_item)))

    methods_by_tag: dict[str, list[Method]] = {}
    fixed: dict[str, str] = {}
    for tag, op in mapped:
        methods_by_tag.setdefault(tag, []).append(op.method)
        for decl in op.declarations:
            fixed[decl.name] = tag

    # Later edits (query encodings) live in the resolver's table.
    declared = dict(resolver.declared)
    errors = error_names((m for methods in methods_by_tag.values() for m in methods), declared)
    for name in sorted(errors & set(declared)):
        declared[name] = dataclasses.replace(declared[name], is_error=True)

    ordered = [
        *sorted({d.name for d in components}),
        *[d.name for _, op in mapped for d in op.bodies],
        *[d.name for _, op in mapped for d in op.params],
        *[d.name for _, op in mapped for d in op.responses],
        *sorted({d.name for d in response_components}),
    ]
    owners = assign_owners(declared, methods_by_tag, fixed)

    def owned_by(tag: str) -> tuple[Declaration, ...]:
        seen: set[str] = set()
        result = []
        for name in ordered:
            if name in seen or owners.get(name) != tag:
                continue
            seen.add(name)
            result.append(declared[name])
        return tuple(result)

    tag_descriptions = get_tags(spec)
    groups = tuple(
        TagGroup(
            name=tag,
            description=tag_descriptions.get(tag, ""),
            declarations=owned_by(tag),
            methods=tuple(methods_by_tag[tag]),
        )
        for tag in sorted(methods_by_tag)
    )

    info = spec.get("info") or {}
    sdk = Sdk(
        package=config.package_name,
        title=str(info.get("title", "")),
        version=str(info.get("version", "")),
        shared=owned_by(SHARED),
        groups=groups,
        diagnostics=diagnostics.records,
    )
    logger.info(
        "built %d methods in %d groups, %d shared declarations, %d warnings",
        sum(len(g.methods) for g in groups), len(groups), len(sdk.shared), len(diagnostics),
    )
    return sdk
