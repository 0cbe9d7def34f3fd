"""Parse ``@openapi`` annotation comments into attribute records.

Handles:
- Field annotations: ``# @openapi name:type key:value key:"quoted" key:[a,b]``
- Operation annotations: ``# @openapi_operation summary:"..." tags:[a,b]``
- The bare conditional marker: ``# @openapi conditional:true``
- Boolean and numeric coercion for the keys that take them
- ``example`` coercion to the declared scalar type

Anything that is not an annotation yields None; this module never raises
on comment content.
"""

from __future__ import annotations

import re
from typing import Any

FIELD_RE = re.compile(r"@openapi\s+(.+)$")
OPERATION_RE = re.compile(r"@openapi_operation\s+(.+)$")
CONDITIONAL_RE = re.compile(r"@openapi\s+conditional:true\s*$")

# key:value where value is "quoted", [a,b,c] or a bare word
_PAIR_RE = re.compile(r'(\w+):("[^"]*"|\[[^\]]*\]|\S+)')

_BOOLEAN_KEYS = {"required", "conditional", "nullable", "deprecated", "readOnly", "writeOnly"}
_NUMERIC_KEYS = {"minimum", "maximum", "minLength", "maxLength", "minItems", "maxItems", "multipleOf"}
_LIST_KEYS = {"enum", "tags"}

_STATUS_ALIASES = ("status", "statusCode", "status_code")


def _clean_value(value: str) -> str:
    """Strip surrounding double quotes."""
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _parse_list(value: str) -> list[str] | str:
    """Split ``[a, "b", c]`` into its trimmed, unquoted elements."""
    if not (value.startswith("[") and value.endswith("]")):
        return value
    inner = value[1:-1].strip()
    if not inner:
        return []
    return [_clean_value(item) for item in inner.split(",")]


def _parse_bool(value: str) -> bool | str:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _parse_number(value: str) -> int | float | str:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def coerce_example(value: Any, type_name: str | None) -> Any:
    """Convert an example string to the declared scalar type where possible."""
    if not isinstance(value, str):
        return value
    if type_name == "integer":
        try:
            return int(value)
        except ValueError:
            return value
    if type_name == "number":
        try:
            return float(value)
        except ValueError:
            return value
    if type_name == "boolean":
        return _parse_bool(value)
    return value


def _coerce(key: str, raw: str) -> Any:
    if key in _LIST_KEYS:
        return _parse_list(_clean_value(raw))
    value = _clean_value(raw)
    if key in _BOOLEAN_KEYS:
        return _parse_bool(value)
    if key in _NUMERIC_KEYS:
        return _parse_number(value)
    return value


def parse_pairs(content: str) -> list[tuple[str, str]]:
    """Return the raw ``(key, value)`` pairs found in annotation content."""
    return _PAIR_RE.findall(content)


def parse_field_comment(text: str) -> dict[str, Any] | None:
    """Parse an ``@openapi`` field annotation.

    The first pair is always ``field_name:type``. A lone
    ``conditional:true`` is the conditional marker instead.
    """
    if OPERATION_RE.search(text):
        return None
    if CONDITIONAL_RE.search(text):
        return {"conditional": True}
    match = FIELD_RE.search(text)
    if not match:
        return None
    pairs = parse_pairs(match.group(1).strip())
    if not pairs:
        return None

    first_key, first_value = pairs[0]
    attributes: dict[str, Any] = {
        "field_name": first_key,
        "type": _clean_value(first_value),
    }
    for key, raw in pairs[1:]:
        attributes[key] = _coerce(key, raw)

    if "example" in attributes:
        attributes["example"] = coerce_example(attributes["example"], attributes["type"])
    if "default" in attributes:
        attributes["default"] = coerce_example(attributes["default"], attributes["type"])
    return attributes


def parse_operation_comment(text: str) -> dict[str, Any] | None:
    """Parse an ``@openapi_operation`` annotation into ``{"operation": {...}}``."""
    match = OPERATION_RE.search(text)
    if not match:
        return None
    operation: dict[str, Any] = {}
    for key, raw in parse_pairs(match.group(1).strip()):
        if key in _STATUS_ALIASES:
            operation["status"] = _clean_value(raw)
        else:
            operation[key] = _coerce(key, raw)
    if not operation:
        return None
    return {"operation": operation}


def parse_comment(text: str | None) -> dict[str, Any] | None:
    """Parse one comment line; None when it is not an annotation."""
    if not text:
        return None
    return parse_operation_comment(text) or parse_field_comment(text)
