"""Classify template calls by shape.

Every predicate takes a :class:`~jbuilder_openapi.template_ast.Call` and
the builder identifier (``json`` by default) and returns a bool; none of
them raise. :func:`classify` folds them into one :class:`CallKind`, checked
in priority order so the walker can dispatch on a single value.
"""

from __future__ import annotations

from enum import Enum

from .errors import MalformedTemplateError
from .template_ast import Call, HashLiteral, Name, Node, literal_text

ARRAY_METHOD = "array!"
PARTIAL_METHOD = "partial!"

CACHE_METHODS = frozenset({"cache!", "cache_if!", "cache_root!"})
KEY_FORMAT_METHODS = frozenset({"key_format!", "deep_format_keys!"})
NULL_HANDLING_METHODS = frozenset({"ignore_nil!", "nil!", "null!"})
MANIPULATION_METHODS = frozenset({"merge!", "set!", "child!", "attributes!", "target!"})
EXTRACT_METHODS = frozenset({"extract!", "call"})

RESERVED_METHODS = (
    CACHE_METHODS
    | KEY_FORMAT_METHODS
    | NULL_HANDLING_METHODS
    | MANIPULATION_METHODS
    | EXTRACT_METHODS
    | {ARRAY_METHOD, PARTIAL_METHOD}
)


class CallKind(Enum):
    ARRAY = "array"
    PARTIAL = "partial"
    EXTRACT = "extract"
    DIRECTIVE = "directive"
    PROPERTY = "property"
    OTHER = "other"


def is_builder_receiver(receiver: Node | None, builder: str = "json") -> bool:
    """True for an implicit receiver or the builder identifier itself."""
    if receiver is None:
        return True
    if isinstance(receiver, Name):
        return receiver.identifier == builder
    if isinstance(receiver, Call):
        return receiver.receiver is None and receiver.method == builder and not receiver.args
    return False


def _method(call: Call) -> str | None:
    method = getattr(call, "method", None)
    return method if isinstance(method, str) else None


def is_array_emission(call: Call, builder: str = "json") -> bool:
    return _method(call) == ARRAY_METHOD and is_builder_receiver(getattr(call, "receiver", None), builder)


def is_partial_inclusion(call: Call, builder: str = "json") -> bool:
    return _method(call) == PARTIAL_METHOD


def is_cache_directive(call: Call, builder: str = "json") -> bool:
    return _method(call) in CACHE_METHODS and is_builder_receiver(getattr(call, "receiver", None), builder)


def is_key_format_directive(call: Call, builder: str = "json") -> bool:
    return _method(call) in KEY_FORMAT_METHODS and is_builder_receiver(getattr(call, "receiver", None), builder)


def is_null_handling_directive(call: Call, builder: str = "json") -> bool:
    return _method(call) in NULL_HANDLING_METHODS and is_builder_receiver(getattr(call, "receiver", None), builder)


def is_manipulation_directive(call: Call, builder: str = "json") -> bool:
    return _method(call) in MANIPULATION_METHODS and is_builder_receiver(getattr(call, "receiver", None), builder)


def is_directive(call: Call, builder: str = "json") -> bool:
    """Cache, key-format, null-handling and merge/manipulation calls."""
    return (
        is_cache_directive(call, builder)
        or is_key_format_directive(call, builder)
        or is_null_handling_directive(call, builder)
        or is_manipulation_directive(call, builder)
    )


def is_attribute_extraction(call: Call, builder: str = "json") -> bool:
    """``json.extract! obj, :a, :b`` and the ``json.(obj, :a, :b)`` shorthand."""
    receiver = getattr(call, "receiver", None)
    method = _method(call)
    if method == "call":
        # ``call`` only means extraction on the explicit builder
        return receiver is not None and is_builder_receiver(receiver, builder)
    return method == "extract!" and is_builder_receiver(receiver, builder)


def is_document_property(call: Call, builder: str = "json") -> bool:
    method = _method(call)
    if method is None or method in RESERVED_METHODS:
        return False
    receiver = getattr(call, "receiver", None)
    if receiver is None and method == builder:
        return False
    return is_builder_receiver(receiver, builder)


def has_partial_keyword(call: Call) -> bool:
    """True when a hash argument carries a ``partial:`` key."""
    for arg in getattr(call, "args", None) or []:
        if isinstance(arg, HashLiteral):
            if any(literal_text(key) == "partial" for key, _ in arg.pairs):
                return True
    return False


def check_call_shape(call: object) -> Call:
    """Raise :class:`MalformedTemplateError` unless ``call`` is a usable call node."""
    line = getattr(call, "line", None)
    if not isinstance(call, Call):
        raise MalformedTemplateError(f"expected a call node, got {type(call).__name__}", line)
    if not isinstance(call.method, str) or not call.method:
        raise MalformedTemplateError("call node has no method name", line)
    if not isinstance(call.args, list):
        raise MalformedTemplateError(f"call to {call.method!r} has no argument list", line)
    return call


def classify(call: Call, builder: str = "json") -> CallKind:
    """Return the kind of ``call``; first match wins."""
    check_call_shape(call)
    if is_array_emission(call, builder):
        return CallKind.ARRAY
    if is_partial_inclusion(call, builder):
        return CallKind.PARTIAL
    if is_attribute_extraction(call, builder):
        return CallKind.EXTRACT
    if is_directive(call, builder):
        return CallKind.DIRECTIVE
    if is_document_property(call, builder):
        return CallKind.PROPERTY
    return CallKind.OTHER
