"""Tests for annotation comment rendering."""

from jbuilder_openapi.comment_parser import parse_comment
from jbuilder_openapi.comments import comment_stubs, render_operation_comment, render_property_comment
from jbuilder_openapi.properties import flatten_properties
from jbuilder_openapi.walker import parse_template


class TestRenderPropertyComment:
    """Rendered lines parse back to the same attributes."""

    def test_minimal(self):
        line = render_property_comment({"name": "id", "type": "integer", "required": True})
        assert line == "# @openapi id:integer"

    def test_all_keys_round_trip(self):
        prop = {
            "name": "status",
            "type": "string",
            "required": False,
            "description": 'Current "state"',
            "enum": ["active", "inactive"],
            "format": "slug",
            "minimum": 0,
        }
        line = render_property_comment(prop)
        assert parse_comment(line) == {
            "field_name": "status",
            "type": "string",
            "required": False,
            "description": "Current 'state'",
            "enum": ["active", "inactive"],
            "format": "slug",
            "minimum": 0,
        }

    def test_array_items(self):
        line = render_property_comment({"name": "tags", "type": "array", "items": "string"})
        assert line == "# @openapi tags:array items:string"

    def test_missing_type_becomes_string(self):
        line = render_property_comment({"name": "title", "type": "TODO: MISSING COMMENT"})
        assert line == "# @openapi title:string"

    def test_bounds_from_annotation(self, views):
        path = views.write("show.json.jbuilder", """
            # @openapi age:integer minimum:0 maximum:150
            json.age @user.age
        """)
        prop = flatten_properties(parse_template(path).root)[0]
        assert (prop["minimum"], prop["maximum"]) == (0, 150)
        assert render_property_comment(prop) == "# @openapi age:integer minimum:0 maximum:150"


class TestRenderOperationComment:
    """Operation comments."""

    def test_round_trip(self):
        op = {"summary": "List users", "tags": ["users", "admin"], "status": "200"}
        line = render_operation_comment(op)
        assert line == '# @openapi_operation summary:"List users" tags:[users,admin] status:200'
        assert parse_comment(line) == {"operation": op}

    def test_empty(self):
        assert render_operation_comment({}) is None


class TestCommentStubs:
    """Stubs for unannotated properties, keyed by source line."""

    def test_stubs(self, views):
        views.write("users/_user.json.jbuilder", "json.secret 1\n")
        path = views.write("users/show.json.jbuilder", """
            # @openapi id:integer
            json.id @user.id
            json.name @user.name
            json.profile do
              json.bio @user.bio
            end
            json.partial! "user"
        """)
        stubs = comment_stubs(parse_template(path))
        assert stubs == {
            3: "# @openapi name:string",
            4: "# @openapi profile:object",
            5: "# @openapi bio:string",
        }
