"""Tests for shape tree -> OpenAPI schema compilation."""

import json
import logging

from jbuilder_openapi.compiler import build_response, compile_components, compile_schema, missing_comments
from jbuilder_openapi.nodes import (
    MISSING_COMMENT,
    UNANNOTATED,
    Annotation,
    ArrayNode,
    ObjectNode,
    PartialRef,
    SimpleNode,
)


def simple(name, type_name="string", **kwargs):
    return SimpleNode(name, Annotation(type=type_name, **kwargs))


class TestSimple:
    """Leaf properties."""

    def test_missing_annotation(self):
        assert compile_schema(SimpleNode("x", UNANNOTATED)) == {"type": MISSING_COMMENT}

    def test_full_annotation(self):
        node = simple("status", description="State", enum=("a", "b"), example="a")
        assert compile_schema(node) == {
            "type": "string",
            "description": "State",
            "enum": ["a", "b"],
            "example": "a",
        }

    def test_pseudo_type(self):
        assert compile_schema(simple("at", "date-time")) == {"type": "string", "format": "date-time"}

    def test_ref(self):
        node = simple("author", "object", ref="User", description="ignored")
        assert compile_schema(node) == {"$ref": "#/components/schemas/User"}

    def test_array_typed_leaf(self):
        assert compile_schema(simple("tags", "array")) == {"type": "array", "items": {"type": "object"}}
        node = simple("ids", "array", items={"type": "integer"})
        assert compile_schema(node) == {"type": "array", "items": {"type": "integer"}}

    def test_passthrough_keywords(self):
        node = simple("age", "integer", extras={"minimum": 0, "nullable": True, "unknown": "x"})
        assert compile_schema(node) == {"type": "integer", "minimum": 0, "nullable": True}


class TestObject:
    """Objects, ordering and the required list."""

    def test_empty_object_has_no_collections(self):
        assert compile_schema(ObjectNode("x")) == {"type": "object"}

    def test_order_preserved(self):
        obj = ObjectNode(children=[simple("c"), simple("a"), simple("b", required=False), simple("d")])
        schema = compile_schema(obj)
        assert list(schema["properties"]) == ["c", "a", "b", "d"]
        assert schema["required"] == ["c", "a", "d"]

    def test_conditional_dominates_required(self):
        node = simple("role", required=True)
        node.is_conditional = True
        schema = compile_schema(ObjectNode(children=[simple("id", "integer"), node]))
        assert schema["required"] == ["id"]
        assert "role" in schema["properties"]

    def test_no_required_when_all_optional(self):
        schema = compile_schema(ObjectNode(children=[simple("a", required=False)]))
        assert "required" not in schema

    def test_annotated_object_description(self):
        obj = ObjectNode("meta", Annotation(type="object", description="Meta"), children=[simple("a")])
        assert compile_schema(obj)["description"] == "Meta"

    def test_unnamed_child_is_skipped(self, caplog):
        obj = ObjectNode(children=[simple("a"), ArrayNode(is_root=True)])
        with caplog.at_level(logging.WARNING, logger="jbuilder_openapi.compiler"):
            schema = compile_schema(obj)
        assert list(schema["properties"]) == ["a"]


class TestArray:
    """Item templates, oneOf and fallbacks."""

    def test_single_item_template(self):
        array = ArrayNode("rows", items=[ObjectNode(children=[simple("id", "integer")])])
        assert compile_schema(array) == {
            "type": "array",
            "items": {"type": "object", "properties": {"id": {"type": "integer"}}, "required": ["id"]},
        }

    def test_identical_items_merge(self):
        array = ArrayNode(items=[simple(None, "integer"), simple(None, "integer")])
        assert compile_schema(array)["items"] == {"type": "integer"}

    def test_heterogeneous_items(self):
        array = ArrayNode(items=[simple(None, "integer"), simple(None, "string")])
        assert compile_schema(array)["items"] == {"oneOf": [{"type": "integer"}, {"type": "string"}]}

    def test_no_items_falls_back_to_annotation(self):
        array = ArrayNode("ids", Annotation(type="array", items={"type": "integer"}))
        assert compile_schema(array)["items"] == {"type": "integer"}

    def test_no_items_no_annotation(self):
        assert compile_schema(ArrayNode("x")) == {"type": "array", "items": {"type": "object"}}


class TestPartialRef:
    """PartialRef nodes should never reach the compiler."""

    def test_unresolved_is_empty_object(self, caplog):
        with caplog.at_level(logging.WARNING, logger="jbuilder_openapi.compiler"):
            assert compile_schema(PartialRef("user")) == {"type": "object"}
        assert caplog.records

    def test_resolved_compiles_children(self):
        ref = PartialRef("user")
        ref.splice([simple("id", "integer")])
        assert compile_schema(ref)["properties"] == {"id": {"type": "integer"}}


class TestPurity:
    """Compilation is a pure function of the tree."""

    def test_idempotent(self):
        tree = ObjectNode(children=[
            simple("id", "integer"),
            ArrayNode("tags", items=[ObjectNode(children=[simple("label", enum=("x", "y"))])]),
        ])
        first = compile_schema(tree)
        second = compile_schema(tree)
        assert json.dumps(first) == json.dumps(second)
        first["properties"]["tags"]["items"]["properties"]["label"]["enum"].append("z")
        assert compile_schema(tree) == second

    def test_annotation_items_not_shared(self):
        ann = Annotation(type="array", items={"type": "integer"})
        schema = compile_schema(ArrayNode("ids", ann))
        schema["items"]["type"] = "string"
        assert ann.items == {"type": "integer"}


class TestResponse:
    """Response wrapping and missing-comment reporting."""

    def test_defaults(self):
        response = build_response(ObjectNode(children=[simple("id")]))
        assert list(response) == ["200"]
        assert response["200"]["description"] == "Successful response"
        assert response["200"]["content"]["application/json"]["schema"]["properties"] == {"id": {"type": "string"}}

    def test_operation_overrides(self):
        response = build_response(ObjectNode(), {"status": "201", "responseDescription": "Created"})
        assert response == {
            "201": {
                "description": "Created",
                "content": {"application/json": {"schema": {"type": "object"}}},
            }
        }

    def test_missing_comments(self):
        tree = ObjectNode(children=[
            simple("id"),
            SimpleNode("name"),
            ArrayNode("posts", items=[ObjectNode(children=[SimpleNode("title")])]),
        ])
        assert missing_comments(tree) == [
            {"path": "name", "name": "name", "kind": "simple"},
            {"path": "posts", "name": "posts", "kind": "array"},
            {"path": "posts[].title", "name": "title", "kind": "simple"},
        ]

    def test_components_sorted_by_name(self):
        components = {
            "UsersUser": ObjectNode(children=[simple("id", "integer")]),
            "Address": ObjectNode(children=[simple("city")]),
        }
        compiled = compile_components(components)
        assert list(compiled) == ["Address", "UsersUser"]
        assert compiled["UsersUser"]["properties"] == {"id": {"type": "integer"}}
