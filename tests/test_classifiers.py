"""Tests for call classification."""

import pytest

from jbuilder_openapi.classifiers import (
    CallKind,
    check_call_shape,
    classify,
    has_partial_keyword,
    is_array_emission,
    is_attribute_extraction,
    is_directive,
    is_document_property,
    is_partial_inclusion,
)
from jbuilder_openapi.errors import MalformedTemplateError
from jbuilder_openapi.template_ast import Call, HashLiteral, Literal, Name


def json_call(method, *args, receiver="json"):
    recv = Name(receiver, 1) if receiver else None
    return Call(receiver=recv, method=method, args=list(args), line=1)


def partial_hash():
    return HashLiteral([(Literal("sym", "partial", 1), Literal("str", "posts/post", 1))], 1)


class TestPredicates:
    """Each predicate in isolation."""

    def test_array_emission(self):
        assert is_array_emission(json_call("array!"))
        assert is_array_emission(json_call("array!", receiver=None))
        assert not is_array_emission(json_call("array!", receiver="@items"))

    def test_partial_inclusion_any_receiver(self):
        assert is_partial_inclusion(json_call("partial!"))
        assert is_partial_inclusion(json_call("partial!", receiver="builder"))

    @pytest.mark.parametrize("method", [
        "cache!", "cache_if!", "cache_root!", "key_format!", "deep_format_keys!",
        "ignore_nil!", "nil!", "null!", "merge!", "set!", "child!",
    ])
    def test_reserved_methods_are_not_properties(self, method):
        call = json_call(method)
        assert not is_document_property(call)
        assert is_directive(call)

    def test_document_property(self):
        assert is_document_property(json_call("name"))
        assert is_document_property(json_call("name", receiver=None))
        assert not is_document_property(json_call("name", receiver="@user"))
        assert not is_document_property(json_call("array!"))
        assert not is_document_property(json_call("partial!"))

    def test_builder_itself_is_not_a_property(self):
        assert not is_document_property(json_call("json", receiver=None))

    def test_attribute_extraction(self):
        assert is_attribute_extraction(json_call("extract!"))
        assert is_attribute_extraction(json_call("call"))
        assert not is_attribute_extraction(json_call("call", receiver=None))

    def test_has_partial_keyword(self):
        assert has_partial_keyword(json_call("array!", Name("@posts", 1), partial_hash()))
        assert not has_partial_keyword(json_call("array!", Name("@posts", 1)))

    def test_custom_builder_name(self):
        call = json_call("name", receiver="builder")
        assert is_document_property(call, builder="builder")
        assert not is_document_property(call)

    def test_predicates_are_total(self):
        junk = object()
        assert not is_array_emission(junk)
        assert not is_document_property(junk)
        assert not has_partial_keyword(junk)


class TestClassify:
    """Priority-ordered classification."""

    def test_kinds(self):
        assert classify(json_call("array!")) is CallKind.ARRAY
        assert classify(json_call("partial!", Literal("str", "x", 1))) is CallKind.PARTIAL
        assert classify(json_call("extract!")) is CallKind.EXTRACT
        assert classify(json_call("cache!")) is CallKind.DIRECTIVE
        assert classify(json_call("title")) is CallKind.PROPERTY
        assert classify(json_call("each", receiver="@items")) is CallKind.OTHER

    def test_array_with_partial_is_still_array(self):
        assert classify(json_call("array!", Name("@posts", 1), partial_hash())) is CallKind.ARRAY

    def test_malformed_node(self):
        with pytest.raises(MalformedTemplateError):
            classify(Name("json", 3))

    def test_missing_method(self):
        with pytest.raises(MalformedTemplateError, match="line 4"):
            check_call_shape(Call(receiver=None, method=None, args=[], line=4))

    def test_missing_args(self):
        with pytest.raises(MalformedTemplateError):
            check_call_shape(Call(receiver=None, method="name", args=None, line=1))
