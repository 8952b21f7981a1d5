"""Tests for the context_builder module."""

from sdkgen.config import GeneratorConfig
from sdkgen.context_builder import (
    SHARED,
    assign_owners,
    build_context,
    closure,
    error_names,
    method_references,
)
from sdkgen.diagnostics import Diagnostics
from sdkgen.ir import (
    DeclarationKind,
    EnumDeclaration,
    Method,
    Parameter,
    PathTemplate,
    Response,
    ScalarKind,
    StatusClass,
    TypeDeclaration,
    TypeRef,
)


def _group(sdk, name):
    return next(g for g in sdk.groups if g.name == name)


def _methods(sdk, name):
    return {m.name: m for m in _group(sdk, name).methods}


def _decls(sdk, name):
    return {d.name: d for d in _group(sdk, name).declarations}


class TestBuildContext:
    """The full pipeline over the shop document."""

    def test_package_and_info(self, shop_sdk):
        assert shop_sdk.package == "shop"
        assert shop_sdk.title == "Shop"
        assert shop_sdk.version == "1.2.0"

    def test_groups_sorted(self, shop_sdk):
        assert shop_sdk.tags == ["default", "pets", "store"]

    def test_tag_descriptions(self, shop_sdk):
        assert _group(shop_sdk, "pets").description == "Pet catalogue"
        assert _group(shop_sdk, "default").description == ""

    def test_untagged_operation_in_default_group(self, shop_sdk):
        assert list(_methods(shop_sdk, "default")) == ["Health"]

    def test_methods_in_document_order(self, shop_sdk):
        assert [m.name for m in _group(shop_sdk, "pets").methods] == ["ListPets", "AddPet", "DeletePet", "GetPet"]
        assert [m.name for m in _group(shop_sdk, "store").methods] == ["GetInventory", "PlaceOrder", "GetOrder"]

    def test_no_warnings(self, shop_diagnostics, shop_sdk):
        assert shop_diagnostics.messages() == []
        assert shop_sdk.diagnostics == ()


class TestDeclarationOwnership:
    def test_shared(self, shop_sdk):
        assert [d.name for d in shop_sdk.shared] == ["Error", "ErrorResponse"]

    def test_pets_declarations_in_order(self, shop_sdk):
        assert [d.name for d in _group(shop_sdk, "pets").declarations] == [
            "Color",
            "NewPet",
            "NewPetAttributes",
            "Pet",
            "PetStatus",
            "CreatePetBody",
            "ListPetsParams",
            "ListPets200Response",
        ]

    def test_store_declarations_in_order(self, shop_sdk):
        assert [d.name for d in _group(shop_sdk, "store").declarations] == [
            "Order",
            "OrderStatus",
            "PlaceOrderBody",
            "GetInventory200Response",
            "GetOrderServerFailureResponse",
        ]

    def test_every_declaration_emitted_once(self, shop_sdk):
        names = [d.name for d in shop_sdk.shared]
        for group in shop_sdk.groups:
            names.extend(d.name for d in group.declarations)
        assert len(names) == len(set(names))

    def test_default_group_has_no_declarations(self, shop_sdk):
        assert _group(shop_sdk, "default").declarations == ()


class TestDeclarations:
    def test_enum_singular_and_sorted(self, shop_sdk):
        color = _decls(shop_sdk, "pets")["Color"]
        assert isinstance(color, EnumDeclaration)
        assert [v.name for v in color.variants] == ["ColorDarkBlue", "ColorGreen", "ColorRed"]

    def test_all_of_merge(self, shop_sdk):
        pet = _decls(shop_sdk, "pets")["Pet"]
        fields = {f.name: f for f in pet.fields}
        assert list(fields) == ["Attributes", "Colors", "Id", "Name", "Status", "Tag"]
        assert fields["Name"].type == TypeRef.scalar(ScalarKind.STRING)
        assert not fields["Name"].optional
        assert not fields["Id"].optional
        assert fields["Colors"].type == TypeRef.sequence(TypeRef.named("Color"))
        assert fields["Attributes"].type == TypeRef.named("NewPetAttributes")

    def test_free_form_attributes(self, shop_sdk):
        attributes = _decls(shop_sdk, "pets")["NewPetAttributes"]
        assert attributes.kind is DeclarationKind.MAP
        assert attributes.underlying == TypeRef.mapping(TypeRef.any())

    def test_inline_property_enum(self, shop_sdk):
        status = _decls(shop_sdk, "store")["OrderStatus"]
        assert isinstance(status, EnumDeclaration)
        assert _decls(shop_sdk, "store")["Order"].fields[-1].type == TypeRef.named("OrderStatus")

    def test_ref_body_is_alias(self, shop_sdk):
        body = _decls(shop_sdk, "pets")["CreatePetBody"]
        assert body.kind is DeclarationKind.ALIAS
        assert body.underlying == TypeRef.named("NewPet")

    def test_params_struct(self, shop_sdk):
        params = _decls(shop_sdk, "pets")["ListPetsParams"]
        assert [f.name for f in params.fields] == ["BornAfter", "Limit", "Status", "Tags"]
        encoding = {f.key: f for f in params.query_encoding.fields}
        assert encoding["status"].required and encoding["status"].cast
        assert encoding["tags"].repeated
        assert encoding["bornAfter"].conversion.value == "timestamp"
        assert {f.key: f.description for f in params.fields}["limit"] == "Maximum number of results"

    def test_inline_response_map(self, shop_sdk):
        inventory = _decls(shop_sdk, "store")["GetInventory200Response"]
        assert inventory.kind is DeclarationKind.MAP
        assert str(inventory.underlying) == "map[string]integer"

    def test_inline_response_sequence(self, shop_sdk):
        pets = _decls(shop_sdk, "pets")["ListPets200Response"]
        assert pets.kind is DeclarationKind.SEQUENCE
        assert pets.underlying == TypeRef.sequence(TypeRef.named("Pet"))


class TestErrors:
    def test_error_flags_follow_aliases(self, shop_sdk):
        shared = {d.name: d for d in shop_sdk.shared}
        assert shared["ErrorResponse"].is_error
        assert shared["Error"].is_error

    def test_inline_error_payload(self, shop_sdk):
        assert _decls(shop_sdk, "store")["GetOrderServerFailureResponse"].is_error

    def test_success_payloads_not_errors(self, shop_sdk):
        assert not _decls(shop_sdk, "pets")["Pet"].is_error
        assert not _decls(shop_sdk, "store")["Order"].is_error


class TestMethods:
    def test_list_pets(self, shop_sdk):
        method = _methods(shop_sdk, "pets")["ListPets"]
        assert method.http_verb == "GET"
        assert method.query_params.type == TypeRef.named("ListPetsParams")
        assert method.response_type == TypeRef.named("ListPets200Response")
        assert [r.code for r in method.responses] == ["200", "default"]
        assert method.responses[-1].type == TypeRef.named("ErrorResponse")
        assert not method.responses[-1].is_unexpected

    def test_method_name_override(self, shop_sdk):
        method = _methods(shop_sdk, "pets")["AddPet"]
        assert method.operation_id == "createPet"
        assert method.body.type == TypeRef.named("CreatePetBody")
        assert [r.code for r in method.responses] == ["201", "4XX", "default"]
        assert method.responses[-1].is_unexpected

    def test_path_parameter_from_path_item(self, shop_sdk):
        method = _methods(shop_sdk, "pets")["GetPet"]
        assert method.path.pattern == "/pets/{}"
        assert [(p.name, p.type) for p in method.path_params] == [("petId", TypeRef.scalar(ScalarKind.INTEGER))]
        assert [r.code for r in method.responses] == ["200", "404", "default"]

    def test_deprecated(self, shop_sdk):
        method = _methods(shop_sdk, "pets")["DeletePet"]
        assert method.deprecated
        assert method.response_type is None

    def test_pattern_response(self, shop_sdk):
        method = _methods(shop_sdk, "store")["GetOrder"]
        assert [(r.code, r.status) for r in method.responses] == [
            ("200", StatusClass.EXPLICIT),
            ("5XX", StatusClass.PATTERN),
            ("default", StatusClass.DEFAULT),
        ]

    def test_non_json_response_has_no_type(self, shop_sdk):
        method = _methods(shop_sdk, "default")["Health"]
        assert method.responses[0].type is None


class TestDeterminism:
    def test_building_twice_gives_equal_results(self, shop_spec):
        first = build_context(shop_spec, GeneratorConfig(package_name="shop"))
        second = build_context(shop_spec, GeneratorConfig(package_name="shop"))
        assert first == second

    def test_response_map_order_ignored(self):
        def spec(responses):
            return {
                "openapi": "3.0.3",
                "info": {"title": "Orders", "version": "1"},
                "paths": {"/orders": {"get": {"operationId": "getO", "tags": ["store"], "responses": responses}}},
                "components": {"schemas": {}},
            }

        def payload(prop):
            return {"description": prop, "content": {"application/json": {
                "schema": {"type": "object", "properties": {prop: {"type": "integer"}}},
            }}}

        ok, missing = payload("id"), payload("reason")
        first = build_context(spec({"200": ok, "404": missing}), GeneratorConfig(), Diagnostics())
        second = build_context(spec({"404": missing, "200": ok}), GeneratorConfig(), Diagnostics())
        assert first == second
        assert [d.name for d in _group(first, "store").declarations] == ["GetO200Response", "GetO404Response"]

    def test_custom_default_tag(self, shop_spec):
        sdk = build_context(shop_spec, GeneratorConfig(default_tag="misc"), Diagnostics())
        assert sdk.tags == ["misc", "pets", "store"]
        assert sdk.package == "client"


def _method(name: str, *responses: Response, body: TypeRef | None = None) -> Method:
    return Method(
        operation_id=name,
        name=name,
        http_verb="GET",
        path=PathTemplate("/x"),
        body=Parameter("body", body) if body else None,
        responses=responses,
    )


class TestOwnershipRules:
    """Ownership over a hand-built declaration table."""

    def setup_method(self):
        self.declared = {
            "A": TypeDeclaration(name="A", kind=DeclarationKind.STRUCT),
            "B": TypeDeclaration(name="B", kind=DeclarationKind.ALIAS, underlying=TypeRef.named("C")),
            "C": TypeDeclaration(name="C", kind=DeclarationKind.STRUCT),
            "Unused": TypeDeclaration(name="Unused", kind=DeclarationKind.STRUCT),
        }

    def test_closure(self):
        graph = {"A": {"B"}, "B": {"C"}, "C": {"A"}}
        assert closure(["A"], graph) == {"A", "B", "C"}

    def test_method_references(self):
        ok = Response("200", StatusClass.EXPLICIT, 200, False, TypeRef.sequence(TypeRef.named("A")))
        method = _method("M", ok, body=TypeRef.named("B"))
        assert method_references(method) == {"A", "B"}

    def test_single_tag_owns(self):
        ok = Response("200", StatusClass.EXPLICIT, 200, False, TypeRef.named("A"))
        owners = assign_owners(self.declared, {"t": [_method("M", ok)]}, {})
        assert owners["A"] == "t"
        assert owners["Unused"] == SHARED

    def test_two_tags_share(self):
        ok = Response("200", StatusClass.EXPLICIT, 200, False, TypeRef.named("B"))
        owners = assign_owners(self.declared, {"t": [_method("M", ok)], "u": [_method("N", ok)]}, {})
        assert owners["B"] == SHARED
        assert owners["C"] == SHARED

    def test_reachable_from_shared_is_shared(self):
        ok = Response("200", StatusClass.EXPLICIT, 200, False, TypeRef.named("B"))
        owners = assign_owners(self.declared, {"t": [_method("M", ok)]}, {"B": "t"})
        assert owners["C"] == "t"
        owners = assign_owners(self.declared, {"t": [_method("M", ok)]}, {"B": SHARED})
        assert owners["C"] == SHARED

    def test_error_names(self):
        bad = Response("400", StatusClass.EXPLICIT, 400, True, TypeRef.named("B"))
        ok = Response("200", StatusClass.EXPLICIT, 200, False, TypeRef.named("A"))
        assert error_names([_method("M", ok, bad)], self.declared) == {"B", "C"}
