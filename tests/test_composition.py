"""Tests for allOf merging, oneOf sum types, anyOf and enumerations."""

from sdkgen.composition import enum_scalar, enumeration, variant_name
from sdkgen.diagnostics import Diagnostics
from sdkgen.ir import (
    DeclarationKind,
    EnumDeclaration,
    ScalarKind,
    SumTypeDeclaration,
    TypeDeclaration,
    TypeRef,
)
from sdkgen.resolver import SchemaResolver

_SPEC: dict = {
    "paths": {},
    "components": {
        "schemas": {
            "Base": {
                "type": "object",
                "required": ["id"],
                "properties": {
                    "id": {"type": "string"},
                    "created": {"type": "string", "format": "date-time"},
                },
            },
            "Extended": {
                "allOf": [
                    {"$ref": "#/components/schemas/Base"},
                    {
                        "type": "object",
                        "properties": {
                            "id": {"type": "integer"},
                            "size": {"type": "integer"},
                        },
                    },
                ],
            },
            "Cat": {"type": "object", "properties": {"meows": {"type": "boolean"}}},
            "Dog": {"type": "object", "properties": {"barks": {"type": "boolean"}}},
        }
    },
}


def _fields(decl):
    return {f.name: f for f in decl.fields}


class TestEnumeration:
    def setup_method(self):
        self.diagnostics = Diagnostics()

    def test_variant_names(self):
        decl = enumeration({"enum": ["red", "dark-blue"]}, "Color", ScalarKind.STRING, self.diagnostics)
        assert [v.name for v in decl.variants] == ["ColorDarkBlue", "ColorRed"]
        assert [v.value for v in decl.variants] == ["dark-blue", "red"]

    def test_integer_values(self):
        decl = enumeration({"type": "integer", "enum": [1, 2]}, "Level", ScalarKind.INTEGER, self.diagnostics)
        assert [v.name for v in decl.variants] == ["Level1", "Level2"]

    def test_mismatched_literal_skipped(self):
        decl = enumeration({"type": "integer", "enum": [1, "two", True]}, "Level", ScalarKind.INTEGER, self.diagnostics)
        assert [v.value for v in decl.variants] == [1]
        assert self.diagnostics.messages() == ["invalid enum value", "invalid enum value"]

    def test_colliding_variant_names_deduplicated(self):
        decl = enumeration({"enum": ["a-b", "a_b"]}, "Kind", ScalarKind.STRING, self.diagnostics)
        assert len(decl.variants) == 1
        assert len({v.name for v in decl.variants}) == len(decl.variants)

    def test_empty_string_value(self):
        decl = enumeration({"enum": [""]}, "Mode", ScalarKind.STRING, self.diagnostics)
        assert decl.variants[0].name == "ModeEmpty"

    def test_enum_scalar(self):
        assert enum_scalar({"enum": ["a"]}) is ScalarKind.STRING
        assert enum_scalar({"type": "number", "enum": [1.5]}) is ScalarKind.FLOAT
        assert enum_scalar({"type": "boolean", "enum": [True]}) is None


class TestAllOf:
    """allOf merges left to right; the first occurrence of a property wins."""

    def setup_method(self):
        self.resolver = SchemaResolver(_SPEC)

    def test_first_occurrence_wins(self):
        schema = _SPEC["components"]["schemas"]["Extended"]
        decls = self.resolver.declare("Extended", schema).declarations
        extended = decls[0]
        fields = _fields(extended)
        assert list(fields) == ["Created", "Id", "Size"]
        assert fields["Id"].type == TypeRef.scalar(ScalarKind.STRING)

    def test_required_carried_from_branch(self):
        schema = _SPEC["components"]["schemas"]["Extended"]
        extended = self.resolver.declare("Extended", schema).declarations[0]
        fields = _fields(extended)
        assert not fields["Id"].optional
        assert fields["Size"].optional

    def test_outer_required(self):
        schema = {
            "required": ["size"],
            "allOf": [{"type": "object", "properties": {"size": {"type": "integer"}}}],
        }
        decl = self.resolver.resolve(schema, "Sized").declarations[0]
        assert not _fields(decl)["Size"].optional

    def test_required_only_branch(self):
        schema = {
            "allOf": [
                {"type": "object", "properties": {"size": {"type": "integer"}}},
                {"required": ["size"]},
            ],
        }
        decl = self.resolver.resolve(schema, "Sized").declarations[0]
        assert not _fields(decl)["Size"].optional
        assert not self.resolver.diagnostics.messages()

    def test_own_properties_merged_after_branches(self):
        schema = {
            "allOf": [{"$ref": "#/components/schemas/Base"}],
            "required": ["name"],
            "properties": {
                "name": {"type": "string"},
                "id": {"type": "integer"},
            },
        }
        decl = self.resolver.declare("Named", schema).declarations[0]
        fields = _fields(decl)
        assert list(fields) == ["Created", "Id", "Name"]
        assert fields["Id"].type == TypeRef.scalar(ScalarKind.STRING)
        assert not fields["Name"].optional
        assert not self.resolver.diagnostics.messages()

    def test_nested_all_of_branches_flattened(self):
        schema = {
            "allOf": [
                {"allOf": [{"$ref": "#/components/schemas/Base"}]},
                {"type": "object", "properties": {"extra": {"type": "boolean"}}},
            ],
        }
        decl = self.resolver.resolve(schema, "Flat").declarations[0]
        assert list(_fields(decl)) == ["Created", "Extra", "Id"]

    def test_property_all_of_single_branch(self):
        schema = {
            "allOf": [
                {
                    "type": "object",
                    "properties": {"base": {"allOf": [{"$ref": "#/components/schemas/Base"}]}},
                }
            ],
        }
        decl = self.resolver.resolve(schema, "Wrapper").declarations[0]
        assert _fields(decl)["Base"].type == TypeRef.named("Base")

    def test_property_all_of_multiple_branches_degrades(self):
        schema = {
            "allOf": [
                {
                    "type": "object",
                    "properties": {
                        "both": {
                            "allOf": [
                                {"$ref": "#/components/schemas/Cat"},
                                {"$ref": "#/components/schemas/Dog"},
                            ]
                        }
                    },
                }
            ],
        }
        decl = self.resolver.resolve(schema, "Wrapper").declarations[0]
        assert _fields(decl)["Both"].type == TypeRef.any()
        assert self.resolver.diagnostics.messages()


class TestOneOf:
    def setup_method(self):
        self.resolver = SchemaResolver(_SPEC)

    def test_sum_type_over_refs(self):
        schema = {"oneOf": [{"$ref": "#/components/schemas/Cat"}, {"$ref": "#/components/schemas/Dog"}]}
        decl = self.resolver.resolve(schema, "Pet").declarations[0]
        assert isinstance(decl, SumTypeDeclaration)
        assert [v.name for v in decl.variants] == ["Cat", "Dog"]

    def test_inline_branches_named_by_title(self):
        schema = {
            "oneOf": [
                {"title": "by id", "type": "object", "properties": {"id": {"type": "string"}}},
                {"type": "object", "properties": {"name": {"type": "string"}}},
            ]
        }
        decls = self.resolver.resolve(schema, "Lookup").declarations
        names = [d.name for d in decls]
        assert names == ["Lookup", "LookupById", "LookupOption2"]

    def test_scalar_branches(self):
        schema = {"oneOf": [{"type": "string"}, {"type": "array", "items": {"type": "integer"}}]}
        decl = self.resolver.resolve(schema, "Value").declarations[0]
        assert [v.name for v in decl.variants] == ["String", "IntegerList"]

    def test_duplicate_variants_dropped(self):
        schema = {"oneOf": [{"type": "string"}, {"type": "string", "format": "email"}]}
        decl = self.resolver.resolve(schema, "Contact").declarations[0]
        assert len(decl.variants) == 1

    def test_variant_name(self):
        assert variant_name(TypeRef.mapping(TypeRef.named("Pet"))) == "PetMap"
        assert variant_name(TypeRef.any()) == "Any"


class TestAnyOf:
    def test_degrades_to_any(self):
        resolver = SchemaResolver(_SPEC)
        resolution = resolver.resolve({"anyOf": [{"type": "string"}]}, "Loose")
        assert resolution.type == TypeRef.any()
        assert resolution.declarations == []
        assert resolver.diagnostics.messages() == ["anyOf not supported, falling back to any"]

    def test_component_declared_as_any(self):
        resolver = SchemaResolver(_SPEC)
        decls = resolver.declare("Loose", {"anyOf": [{"type": "string"}]}).declarations
        assert isinstance(decls[0], TypeDeclaration)
        assert decls[0].kind is DeclarationKind.ANY


class TestInlineEnums:
    def test_property_enum_declared_singular(self):
        resolver = SchemaResolver(_SPEC)
        schema = {"type": "object", "properties": {"colors": {"type": "array", "items": {"enum": ["red"]}}}}
        decls = resolver.resolve(schema, "Palette").declarations
        enum = next(d for d in decls if isinstance(d, EnumDeclaration))
        assert enum.name == "PaletteColor"
