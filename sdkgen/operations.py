"""Map OpenAPI operations to client methods.

Handles:
- Path templating: "/users/{userId}/orders/{orderId}" becomes
  "/users/{}/orders/{}" with arguments ["userId", "orderId"]
- Merging path-item and operation parameters; every non-path parameter
  goes into one "{Op}Params" struct with a query serialization plan
- JSON request bodies declared as "{Op}Body"
- Response status parsing, ordering (default last) and payload naming
- Method name overrides through the ``x-codegen`` extension
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, NamedTuple

from .diagnostics import StatusCodeError
from .ir import (
    Declaration,
    Method,
    Parameter,
    PathTemplate,
    Response,
    ScalarKind,
    StatusClass,
    TypeDeclaration,
    TypeRef,
)
from .loader import RESPONSE_PREFIX, ref_name, resolve_ref, try_resolve
from .naming import identifier, to_camel, to_lower_camel
from .query import build_query_encoding
from .resolver import SchemaResolver
from .schema_parser import describe, strip_html

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")
_STATUS_PATTERN = re.compile(r"^([1-5])XX$", re.IGNORECASE)
_STATUS_CODE = re.compile(r"^[0-9]{3}$")

DEFAULT_METHOD_NAME_EXTENSION = "x-codegen"


class MappedOperation(NamedTuple):
    """A method plus the declarations its operation introduced, by role."""

    method: Method
    bodies: list[Declaration]
    params: list[Declaration]
    responses: list[Declaration]

    @property
    def declarations(self) -> list[Declaration]:
        return [*self.bodies, *self.params, *self.responses]


def path_template(path: str) -> PathTemplate:
    """Replace each ``{name}`` placeholder with a positional ``{}`` marker."""
    segments: list[str] = []
    arguments: list[str] = []
    for segment in path.split("/"):
        parts = _PLACEHOLDER.split(segment)
        out = []
        # split() alternates literal text and placeholder names
        for i, part in enumerate(parts):
            if i % 2:
                out.append("{}")
                arguments.append(part)
            else:
                out.append(part.replace("{", "{{").replace("}", "}}"))
        segments.append("".join(out))
    return PathTemplate(pattern="/".join(segments), arguments=tuple(arguments))


def parse_status(code: str) -> tuple[StatusClass, int]:
    """Return the status class and sort key of a response code token.

    Examples:
      "200"     -> (EXPLICIT, 200)
      "4XX"     -> (PATTERN, 400)
      "default" -> (DEFAULT, 0)
    """
    if code == "default":
        return StatusClass.DEFAULT, 0
    match = _STATUS_PATTERN.match(code)
    if match:
        return StatusClass.PATTERN, int(match.group(1)) * 100
    if _STATUS_CODE.match(code):
        return StatusClass.EXPLICIT, int(code)
    raise StatusCodeError(f"cannot parse response status {code!r}")


def sort_responses(responses: list[Response]) -> list[Response]:
    return sorted(responses, key=lambda r: (r.is_default, r.sort_key, r.code))


def primary_response_type(responses: list[Response]) -> TypeRef | None:
    """Payload type of the first successful response, in sorted order."""
    for response in sort_responses(responses):
        if response.is_default or response.type is None:
            continue
        if 200 <= response.sort_key < 300:
            return response.type
    return None


def json_media(content: dict[str, Any]) -> str | None:
    for media in sorted(content):
        base = media.split(";", 1)[0].strip().lower()
        if base == "application/json" or base.endswith("+json"):
            return media
    return None


def operation_name(verb: str, path: str, operation: dict[str, Any]) -> str:
    """The operation id, or one derived from verb and path."""
    return operation.get("operationId") or f"{verb} {path}"


class OperationMapper:
    """Turns operations into Methods, declaring the types they need."""

    def __init__(
        self,
        resolver: SchemaResolver,
        method_name_extension: str = DEFAULT_METHOD_NAME_EXTENSION,
    ) -> None:
        self.resolver = resolver
        self.spec = resolver.spec
        self.diagnostics = resolver.diagnostics
        self.method_name_extension = method_name_extension

    def method_name(self, operation_id: str, operation: dict[str, Any]) -> str:
        extension = operation.get(self.method_name_extension)
        if isinstance(extension, dict) and extension.get("method_name"):
            return identifier(str(extension["method_name"]))
        return identifier(operation_id)

    def map_operation(
        self,
        verb: str,
        path: str,
        operation: dict[str, Any],
        path_item: dict[str, Any] | None = None,
    ) -> MappedOperation:
        operation_id = operation_name(verb, path, operation)
        prefix = identifier(operation_id)
        name = self.method_name(operation_id, operation)
        logger.info("generating method %s (%s %s)", name, verb.upper(), path)

        template = path_template(path)
        parameters = self._parameters(operation, path_item or {}, operation_id)
        path_params = self._path_params(template, parameters, operation_id)

        params_ref, params = self._params_struct(prefix, parameters)
        body_ref, bodies = self._body(prefix, operation, operation_id)
        responses, response_decls = self._responses(prefix, operation)

        method = Method(
            operation_id=operation_id,
            name=name,
            http_verb=verb.upper(),
            path=PathTemplate(
                pattern=template.pattern,
                arguments=tuple(to_lower_camel(a) for a in template.arguments),
            ),
            path_params=tuple(path_params),
            query_params=Parameter("params", params_ref) if params_ref else None,
            has_body=body_ref is not None,
            body=Parameter("body", body_ref) if body_ref else None,
            response_type=primary_response_type(responses),
            responses=tuple(responses),
            description=strip_html(str(operation.get("summary") or operation.get("description") or "")),
            deprecated=bool(operation.get("deprecated", False)),
        )
        return MappedOperation(method, bodies, params, response_decls)

    # -- parameters ---------------------------------------------------------

    def _parameters(
        self, operation: dict[str, Any], path_item: dict[str, Any], operation_id: str,
    ) -> list[dict[str, Any]]:
        """Path-item parameters overridden by operation ones on (name, in)."""
        merged: dict[tuple[str, str], dict[str, Any]] = {}
        for raw in [*(path_item.get("parameters") or []), *(operation.get("parameters") or [])]:
            param = raw
            if "$ref" in raw:
                param = try_resolve(self.spec, raw["$ref"])
                if param is None:
                    self.diagnostics.warn(
                        "unresolved parameter reference", operation=operation_id, ref=raw["$ref"],
                    )
                    continue
            if not param.get("name"):
                self.diagnostics.warn("parameter without a name skipped", operation=operation_id)
                continue
            merged[(param["name"], param.get("in", "query"))] = param
        return list(merged.values())

    def _path_params(
        self, template: PathTemplate, parameters: list[dict[str, Any]], operation_id: str,
    ) -> list[Parameter]:
        declared = {p["name"]: p for p in parameters if p.get("in") == "path"}
        result: list[Parameter] = []
        for argument in template.arguments:
            param = declared.pop(argument, None)
            if param is None:
                self.diagnostics.warn(
                    "path placeholder without a parameter, typed as string",
                    operation=operation_id,
                    placeholder=argument,
                )
                ref = TypeRef.scalar(ScalarKind.STRING)
            else:
                ref = self.resolver.mapper.map(param.get("schema") or {"type": "string"}, argument)
            result.append(Parameter(to_lower_camel(argument), ref))

        for unused in sorted(declared):
            self.diagnostics.warn("path parameter not in the path template", operation=operation_id, parameter=unused)
        return result

    def _params_struct(
        self, prefix: str, parameters: list[dict[str, Any]],
    ) -> tuple[TypeRef | None, list[Declaration]]:
        """Collect every non-path parameter into one ``{Op}Params`` struct."""
        others = [p for p in parameters if p.get("in") != "path"]
        if not others:
            return None, []

        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in others:
            schema = param.get("schema") or {"type": "string"}
            if param.get("description") and "$ref" not in schema:
                schema = {**schema, "description": param["description"]}
            properties[param["name"]] = schema
            if param.get("required"):
                required.append(param["name"])

        resolution = self.resolver.resolve(
            {"type": "object", "properties": properties, "required": required},
            prefix + "Params",
        )
        declarations = list(resolution.declarations)
        struct = declarations[0]
        if isinstance(struct, TypeDeclaration):
            struct = dataclasses.replace(
                struct, query_encoding=build_query_encoding(struct, self.resolver.declared),
            )
            self.resolver.register(struct)
            declarations[0] = struct
        return resolution.type, declarations

    # -- request body -------------------------------------------------------

    def _body(
        self, prefix: str, operation: dict[str, Any], operation_id: str,
    ) -> tuple[TypeRef | None, list[Declaration]]:
        body = operation.get("requestBody")
        if not isinstance(body, dict):
            return None, []
        if "$ref" in body:
            body = resolve_ref(self.spec, body["$ref"])

        content = body.get("content") or {}
        media = json_media(content)
        if media is None:
            if content:
                self.diagnostics.warn(
                    "non-JSON request body skipped", operation=operation_id, media=", ".join(sorted(content)),
                )
            return None, []

        schema = content[media].get("schema")
        if not isinstance(schema, dict):
            return None, []
        resolution = self.resolver.declare(prefix + "Body", schema)
        return resolution.type, resolution.declarations

    # -- responses ----------------------------------------------------------

    def _responses(
        self, prefix: str, operation: dict[str, Any],
    ) -> tuple[list[Response], list[Declaration]]:
        responses: list[Response] = []
        declarations: list[Declaration] = []

        parsed = []
        for code, response in (operation.get("responses") or {}).items():
            code = str(code)
            status, sort_key = parse_status(code)
            parsed.append((status is StatusClass.DEFAULT, sort_key, code, status, response))

        # Inline payloads are declared in status order, not document order.
        for _, sort_key, code, status, response in sorted(parsed, key=lambda p: p[:3]):
            ref, decls, description = self._response_payload(prefix, code, response)
            declarations.extend(decls)
            responses.append(Response(
                code=code,
                status=status,
                sort_key=sort_key,
                is_error=not code.startswith("2"),
                type=ref,
                description=description,
            ))

        if not any(r.is_default for r in responses):
            responses.append(Response(
                code="default",
                status=StatusClass.DEFAULT,
                sort_key=0,
                is_error=True,
                description="Unexpected response",
                is_unexpected=True,
            ))
        return sort_responses(responses), declarations

    def _response_payload(
        self, prefix: str, code: str, response: dict[str, Any],
    ) -> tuple[TypeRef | None, list[Declaration], str]:
        if "$ref" in response:
            ref = response["$ref"]
            target = resolve_ref(self.spec, ref)
            if ref.startswith(RESPONSE_PREFIX):
                return TypeRef.named(response_component_name(ref_name(ref))), [], describe(target)
            response = target

        description = describe(response)
        content = response.get("content") or {}
        media = json_media(content)
        schema = content[media].get("schema") if media else None
        if not isinstance(schema, dict):
            return None, [], description

        if "$ref" in schema:
            return self.resolver.mapper.reference(schema["$ref"]), [], description

        title = to_camel(str(schema.get("title", ""))) or to_camel(code)
        resolution = self.resolver.declare(prefix + title + "Response", schema)
        return resolution.type, resolution.declarations, description


def response_component_name(name: str) -> str:
    """Declaration name of a reusable response component."""
    return identifier(name) + "Response"
