"""Tests for the annotation comment parser."""

from jbuilder_openapi.comment_parser import (
    coerce_example,
    parse_comment,
    parse_field_comment,
    parse_operation_comment,
)


class TestFieldAnnotations:
    """``# @openapi name:type key:value ...``"""

    def test_name_and_type(self):
        assert parse_comment("# @openapi id:integer") == {"field_name": "id", "type": "integer"}

    def test_quoted_description(self):
        parsed = parse_comment('# @openapi id:integer description:"User ID: primary key"')
        assert parsed["description"] == "User ID: primary key"

    def test_enum_list(self):
        parsed = parse_comment("# @openapi status:string enum:[active,inactive,suspended]")
        assert parsed["enum"] == ["active", "inactive", "suspended"]

    def test_enum_elements_trimmed_and_unquoted(self):
        parsed = parse_comment('# @openapi kind:string enum:["a b", c ]')
        assert parsed["enum"] == ["a b", "c"]

    def test_required_false_is_bool(self):
        parsed = parse_comment("# @openapi bio:string required:false")
        assert parsed["required"] is False

    def test_required_true_is_bool(self):
        parsed = parse_comment("# @openapi name:string required:true")
        assert parsed["required"] is True

    def test_unknown_keys_kept_as_strings(self):
        parsed = parse_comment("# @openapi name:string pattern:^[a-z]+$ flag:true")
        assert parsed["pattern"] == "^[a-z]+$"
        assert parsed["flag"] == "true"

    def test_numeric_keys(self):
        parsed = parse_comment("# @openapi age:integer minimum:0 maximum:150.5")
        assert parsed["minimum"] == 0
        assert parsed["maximum"] == 150.5

    def test_example_coerced_to_type(self):
        assert parse_comment("# @openapi count:integer example:5")["example"] == 5
        assert parse_comment("# @openapi ok:boolean example:false")["example"] is False
        assert parse_comment("# @openapi name:string example:5")["example"] == "5"

    def test_trailing_comment_text(self):
        parsed = parse_field_comment("json.id 1 # @openapi id:integer")
        assert parsed == {"field_name": "id", "type": "integer"}


class TestConditionalMarker:
    """The bare marker versus a field literally named ``conditional``."""

    def test_bare_marker(self):
        assert parse_comment("# @openapi conditional:true") == {"conditional": True}

    def test_bare_marker_trailing_space(self):
        assert parse_comment("# @openapi conditional:true   ") == {"conditional": True}

    def test_marker_with_more_keys_is_a_field(self):
        parsed = parse_comment('# @openapi conditional:true description:"flag"')
        assert parsed == {"field_name": "conditional", "type": "true", "description": "flag"}

    def test_conditional_key_on_field(self):
        parsed = parse_comment("# @openapi role:string conditional:true")
        assert parsed["conditional"] is True


class TestOperationAnnotations:
    """``# @openapi_operation key:value ...``"""

    def test_summary_and_tags(self):
        parsed = parse_comment('# @openapi_operation summary:"List users" tags:[users,admin]')
        assert parsed == {"operation": {"summary": "List users", "tags": ["users", "admin"]}}

    def test_status_aliases_normalised(self):
        for key in ("status", "statusCode", "status_code"):
            parsed = parse_operation_comment(f"# @openapi_operation {key}:201")
            assert parsed == {"operation": {"status": "201"}}

    def test_unknown_keys_pass_through(self):
        parsed = parse_comment('# @openapi_operation operationId:listUsers responseDescription:"A list"')
        assert parsed["operation"] == {"operationId": "listUsers", "responseDescription": "A list"}

    def test_operation_is_not_a_field(self):
        assert parse_field_comment("# @openapi_operation summary:x") is None


class TestNotAnnotations:
    """Anything else yields None and never raises."""

    def test_plain_comment(self):
        assert parse_comment("# just a note") is None

    def test_empty_and_none(self):
        assert parse_comment("") is None
        assert parse_comment(None) is None

    def test_tag_without_pairs(self):
        assert parse_comment("# @openapi") is None
        assert parse_comment("# @openapi nothing here") is None

    def test_empty_operation(self):
        assert parse_comment("# @openapi_operation   ") is None


class TestCoerceExample:
    """Example values follow the declared scalar type."""

    def test_unparseable_integer_kept(self):
        assert coerce_example("abc", "integer") == "abc"

    def test_number(self):
        assert coerce_example("1.5", "number") == 1.5

    def test_non_string_untouched(self):
        assert coerce_example(3, "string") == 3
