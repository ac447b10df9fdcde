import datetime

import pytest

from conftest import find_operation
from openapi_tool_adapter.models import (
    ApiDocument,
    ApiOperation,
    ParameterDecl,
    ParameterLayout,
    RequestBodyDecl,
)
from openapi_tool_adapter.schema import ArrayNode, ObjectNode, PrimitiveNode
from openapi_tool_adapter.translator import (
    ARRAY_NOTE,
    SchemaTranslationError,
    SchemaTranslator,
    resolve_schema_ref,
)


def _schema(document, operation_id, optimize=True):
    operation = find_operation(document, operation_id)
    schema, _, shape = SchemaTranslator().build_input_schema(document, operation, optimize)
    return schema, shape


class TestParameterGrouping:
    def test_unique_parameters_without_body_are_flat_at_root(self, petstore):
        schema, shape = _schema(petstore, "listPets")

        assert shape.layout is ParameterLayout.SINGLE_FLAT_ROOT
        assert shape.has_parameters and shape.is_unique_parameters
        assert not shape.has_request_body
        assert set(schema["properties"]) == {"limit", "tags", "X-Request-Id"}
        assert schema["properties"]["limit"] == {"type": "integer", "format": "int32"}
        assert "required" not in schema

    def test_unique_parameters_with_body_nest_under_parameters(self, petstore):
        schema, shape = _schema(petstore, "updatePet")

        assert shape.layout is ParameterLayout.SINGLE_FLAT_NESTED
        assert set(schema["properties"]) == {"requestBody", "parameters"}
        nested = schema["properties"]["parameters"]
        assert set(nested["properties"]) == {"petId", "dryRun"}
        assert nested["required"] == ["petId"]
        assert nested["properties"]["dryRun"] == {"type": "boolean", "default": False}
        assert schema["required"] == ["parameters"]

    def test_optimization_disabled_splits_by_location(self, petstore):
        schema, shape = _schema(petstore, "listPets", optimize=False)

        assert shape.layout is ParameterLayout.THREE_WAY_SEPARATE
        assert set(schema["properties"]) == {"queries", "headers"}
        assert set(schema["properties"]["queries"]["properties"]) == {"limit", "tags"}
        assert set(schema["properties"]["headers"]["properties"]) == {"X-Request-Id"}
        assert schema["required"] == ["queries", "headers"]

    def test_colliding_names_split_by_location_and_drop_unsupported(self, petstore):
        schema, shape = _schema(petstore, "getStorePet")

        assert not shape.is_unique_parameters
        assert shape.layout is ParameterLayout.THREE_WAY_SEPARATE
        assert set(schema["properties"]) == {"parameters", "queries"}
        assert schema["properties"]["parameters"]["required"] == ["id"]
        assert "required" not in schema["properties"]["queries"]

    def test_operation_without_parameters_or_body(self):
        document = ApiDocument("t", "1", ("/",), ())
        root, shape = SchemaTranslator().build(document, ApiOperation("ping", "GET", "/ping"))

        assert root.to_dict() == {"type": "object", "properties": {}}
        assert not shape.has_parameters
        assert not shape.has_request_body

    def test_uniqueness_counts_names_across_locations(self):
        operation = ApiOperation(
            "op",
            "GET",
            "/things/{a}",
            parameters=(
                ParameterDecl("a", "path", True),
                ParameterDecl("b", "query"),
                ParameterDecl("a", "header"),
            ),
        )
        _, shape = SchemaTranslator().build(ApiDocument("t", "1", (), ()), operation)

        assert shape.is_unique_parameters is False


class TestParameterLeaves:
    def test_array_parameter_becomes_comma_separated_string(self, petstore):
        schema, _ = _schema(petstore, "listPets")

        tags = schema["properties"]["tags"]
        assert tags["type"] == "string"
        assert tags["description"] == f"Tags to filter by ({ARRAY_NOTE})"

    def test_array_parameter_without_description(self):
        operation = ApiOperation(
            "op",
            "GET",
            "/x",
            parameters=(
                ParameterDecl(
                    "ids", "query", schema={"type": "array", "items": {"type": "integer"}, "default": [1, 2]}
                ),
            ),
        )
        schema, _, _ = SchemaTranslator().build_input_schema(
            ApiDocument("t", "1", (), ()), operation
        )

        assert schema["properties"]["ids"] == {
            "type": "string",
            "description": ARRAY_NOTE,
            "default": "1,2",
        }

    def test_parameter_without_schema_defaults_to_string(self):
        operation = ApiOperation("op", "GET", "/x", parameters=(ParameterDecl("q", "query"),))
        schema, _, _ = SchemaTranslator().build_input_schema(
            ApiDocument("t", "1", (), ()), operation
        )

        assert schema["properties"]["q"] == {"type": "string"}

    def test_referenced_parameter_schema_keeps_type_and_enum(self):
        document = ApiDocument(
            "t",
            "1",
            (),
            (),
            component_schemas={
                "Status": {"type": "integer", "enum": [1, 2, 3], "description": "Order status"},
                "Labels": {"type": "array", "items": {"type": "string"}},
            },
        )
        operation = ApiOperation(
            "op",
            "GET",
            "/orders",
            parameters=(
                ParameterDecl("status", "query", schema={"$ref": "#/components/schemas/Status"}),
                ParameterDecl("labels", "query", schema={"$ref": "#/components/schemas/Labels"}),
            ),
        )

        schema, _, _ = SchemaTranslator().build_input_schema(document, operation)

        assert schema["properties"]["status"] == {
            "type": "integer",
            "description": "Order status",
            "enum": [1, 2, 3],
        }
        assert schema["properties"]["labels"] == {"type": "string", "description": ARRAY_NOTE}

    def test_required_flags_follow_declarations(self, petstore):
        schema, _ = _schema(petstore, "getPet")

        assert schema["required"] == ["petId"]


class TestRequestBody:
    def test_body_reference_is_resolved_recursively(self, petstore):
        schema, shape = _schema(petstore, "createPet")

        assert shape.has_request_body
        assert schema["required"] == ["requestBody"]
        body = schema["properties"]["requestBody"]
        assert body["type"] == "object"
        assert body["required"] == ["name"]
        assert body["properties"]["status"] == {
            "type": "string",
            "enum": ["available", "sold"],
            "default": "available",
        }
        assert body["properties"]["tags"] == {
            "type": "array",
            "items": {"type": "object", "properties": {"label": {"type": "string"}}},
        }

    def test_optional_body_is_not_required(self, petstore):
        schema, _ = _schema(petstore, "updatePet")

        assert "requestBody" not in schema["required"]

    def test_all_of_merges_properties_and_required(self, petstore):
        schema, _ = _schema(petstore, "updatePet")

        body = schema["properties"]["requestBody"]
        assert set(body["properties"]) == {"name", "status", "tags", "id"}
        assert body["required"] == ["name", "id"]

    def test_unresolved_body_reference_is_dropped(self):
        operation = ApiOperation(
            "op",
            "POST",
            "/x",
            parameters=(ParameterDecl("a", "query"),),
            request_body=RequestBodyDecl({"$ref": "#/components/schemas/Missing"}, required=True),
        )
        schema, _, shape = SchemaTranslator().build_input_schema(
            ApiDocument("t", "1", (), ()), operation
        )

        assert not shape.has_request_body
        assert shape.layout is ParameterLayout.SINGLE_FLAT_ROOT
        assert set(schema["properties"]) == {"a"}

    def test_recursive_reference_stops(self):
        document = ApiDocument(
            "t",
            "1",
            (),
            (),
            component_schemas={
                "Node": {
                    "type": "object",
                    "properties": {
                        "value": {"type": "string"},
                        "next": {"$ref": "#/components/schemas/Node"},
                    },
                }
            },
        )
        node = SchemaTranslator().translate(document, {"$ref": "#/components/schemas/Node"})

        assert isinstance(node, ObjectNode)
        assert set(node.properties) == {"value"}

    def test_required_names_without_properties_are_ignored(self):
        node = SchemaTranslator().translate(
            ApiDocument("t", "1", (), ()),
            {"type": "object", "required": ["ghost"], "properties": {"a": {"type": "integer"}}},
        )

        assert node.required == []

    def test_boolean_property_schemas_are_skipped(self):
        node = SchemaTranslator().translate(
            ApiDocument("t", "1", (), ()),
            {"type": "object", "properties": {"anything": True, "name": {"type": "string"}}},
        )

        assert set(node.properties) == {"name"}

    def test_non_list_required_is_ignored(self):
        node = SchemaTranslator().translate(
            ApiDocument("t", "1", (), ()),
            {"type": "object", "required": True, "properties": {"name": {"type": "string"}}},
        )

        assert node.required == []

    def test_scalar_and_array_nodes(self):
        translator = SchemaTranslator()
        document = ApiDocument("t", "1", (), ())

        scalar = translator.translate(document, {"type": ["string", "null"], "format": "uuid"})
        array = translator.translate(document, {"type": "array", "items": {"type": "number"}})

        assert scalar == PrimitiveNode(type="string", format="uuid")
        assert isinstance(array, ArrayNode)
        assert array.items == PrimitiveNode(type="number")

    def test_unserializable_default_fails_the_operation(self):
        operation = ApiOperation(
            "op",
            "GET",
            "/x",
            parameters=(
                ParameterDecl(
                    "since", "query", schema={"type": "string", "default": datetime.date(2024, 1, 1)}
                ),
            ),
        )

        with pytest.raises(SchemaTranslationError):
            SchemaTranslator().build_input_schema(ApiDocument("t", "1", (), ()), operation)


def test_resolve_schema_ref_rejects_foreign_references(petstore):
    assert resolve_schema_ref(petstore, "#/definitions/Pet") is None
    assert resolve_schema_ref(petstore, "#/components/schemas/Nope") is None
    assert resolve_schema_ref(petstore, "#/components/schemas/Tag")["type"] == "object"
