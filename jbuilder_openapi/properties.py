"""Flatten a shape tree into a serializable property list.

Each entry describes one named node::

    {"path": "posts[].title", "name": "title", "type": "string",
     "description": None, "required": True, "conditional": False,
     "line": 12, "annotated": True, ...}

This is the list comment-sync tooling works from.
"""

from __future__ import annotations

from typing import Any

from .nodes import MISSING_COMMENT, ArrayNode, ShapeNode, SimpleNode, iter_named


def property_type(node: ShapeNode) -> str:
    """Type as written in an annotation; containers use their structural type."""
    if isinstance(node, ArrayNode):
        return "array"
    if isinstance(node, SimpleNode):
        if not node.annotation.annotated:
            return MISSING_COMMENT
        return node.annotation.type or "string"
    return "object"


def item_type(node: ShapeNode) -> str | None:
    if not isinstance(node, ArrayNode):
        items = node.annotation.items
        return items.get("type") if items and property_type(node) == "array" else None
    if node.items:
        first = node.items[0]
        return "array" if isinstance(first, ArrayNode) else "object"
    if node.annotation.items:
        return node.annotation.items.get("type")
    return None


def describe(path: str, node: ShapeNode) -> dict[str, Any]:
    annotation = node.annotation
    return {
        "path": path,
        "name": node.name,
        "type": property_type(node),
        "description": annotation.description,
        "required": node.is_required(),
        "conditional": node.is_conditional,
        "line": node.line,
        "annotated": annotation.annotated,
        "enum": list(annotation.enum) if annotation.enum else None,
        "format": annotation.format,
        "items": item_type(node),
        "minimum": annotation.extras.get("minimum"),
        "maximum": annotation.extras.get("maximum"),
    }


def flatten_properties(root: ShapeNode) -> list[dict[str, Any]]:
    """Return one dict per named node, in document order."""
    return [describe(path, node) for path, node in iter_named(root)]
