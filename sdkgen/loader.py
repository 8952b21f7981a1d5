"""Load an OpenAPI document and resolve its local references.

Reads JSON or YAML and exposes paths, component schemas, responses and
parameters of the parsed document.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

import yaml

from .diagnostics import SpecLoadError, UnresolvedReferenceError

HTTP_METHODS = ("delete", "get", "head", "options", "patch", "post", "put", "trace")

SCHEMA_PREFIX = "#/components/schemas/"
RESPONSE_PREFIX = "#/components/responses/"
PARAMETER_PREFIX = "#/components/parameters/"


def load_spec(path: Path | str) -> dict[str, Any]:
    """Load the OpenAPI document from disk."""
    spec_file = Path(path)
    try:
        text = spec_file.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"cannot read {spec_file}: {e}") from e

    try:
        if spec_file.suffix.lower() == ".json":
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SpecLoadError(f"cannot parse {spec_file}: {e}") from e

    if not isinstance(document, dict) or "paths" not in document:
        raise SpecLoadError(f"{spec_file} is not an OpenAPI document")
    return document


def get_paths(spec: dict[str, Any]) -> dict[str, Any]:
    """Extract paths from the spec."""
    return spec.get("paths") or {}


def get_schemas(spec: dict[str, Any]) -> dict[str, Any]:
    """Extract component schemas from the spec."""
    return spec.get("components", {}).get("schemas") or {}


def get_responses(spec: dict[str, Any]) -> dict[str, Any]:
    """Extract component responses from the spec."""
    return spec.get("components", {}).get("responses") or {}


def get_tags(spec: dict[str, Any]) -> dict[str, str]:
    """Map declared tag names to their descriptions."""
    return {t["name"]: t.get("description", "") for t in spec.get("tags") or [] if "name" in t}


def iter_operations(spec: dict[str, Any]) -> Iterator[tuple[str, str, dict[str, Any], dict[str, Any]]]:
    """Yield (path, verb, operation, path item) sorted by path, then verb."""
    for path, path_item in sorted(get_paths(spec).items()):
        if not isinstance(path_item, dict):
            continue
        for verb in HTTP_METHODS:
            operation = path_item.get(verb)
            if isinstance(operation, dict):
                yield path, verb, operation, path_item


def ref_name(ref: str) -> str:
    """Return the last segment of a ``$ref`` pointer."""
    return ref.rsplit("/", 1)[-1]


def resolve_ref(spec: dict[str, Any], ref: str) -> dict[str, Any]:
    """Resolve a local $ref pointer in the spec."""
    if not ref.startswith("#/"):
        raise UnresolvedReferenceError(f"only local references are supported: {ref!r}")
    node: Any = spec
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            raise UnresolvedReferenceError(f"unresolved reference {ref!r}")
        node = node[part]
    return node


def try_resolve(spec: dict[str, Any], ref: str) -> dict[str, Any] | None:
    """Like resolve_ref, but return None when the target is missing."""
    try:
        return resolve_ref(spec, ref)
    except UnresolvedReferenceError:
        return None


def deref(spec: dict[str, Any], schema: dict[str, Any]) -> dict[str, Any]:
    """Follow ``$ref`` chains until a concrete node is reached."""
    seen: set[str] = set()
    while "$ref" in schema:
        ref = schema["$ref"]
        if ref in seen:
            raise UnresolvedReferenceError(f"reference cycle through {ref!r}")
        seen.add(ref)
        schema = resolve_ref(spec, ref)
    return schema
