"""Compile a shape tree into OpenAPI schema objects.

Output is made of plain dicts, lists and scalars only. Compilation is a
pure function of the tree: property and ``required`` order follow the
order the walker inserted children in.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from .nodes import (
    MISSING_COMMENT,
    PASSTHROUGH_KEYS,
    Annotation,
    ArrayNode,
    ObjectNode,
    PartialRef,
    ShapeNode,
    SimpleNode,
    iter_named,
)

logger = logging.getLogger(__name__)

COMPONENTS_PREFIX = "#/components/schemas/"
DEFAULT_STATUS = "200"
DEFAULT_RESPONSE_DESCRIPTION = "Successful response"
CONTENT_TYPE = "application/json"


def _annotation_fields(annotation: Annotation, schema: dict[str, Any]) -> dict[str, Any]:
    """Add description and pass-through keywords from an annotation."""
    if not annotation.annotated:
        return schema
    if annotation.description:
        schema["description"] = annotation.description
    for key in PASSTHROUGH_KEYS:
        if key in annotation.extras:
            schema[key] = copy.deepcopy(annotation.extras[key])
    return schema


def _annotation_items(annotation: Annotation) -> dict[str, Any]:
    if annotation.items:
        return copy.deepcopy(dict(annotation.items))
    return {"type": "object"}


def compile_simple(node: SimpleNode) -> dict[str, Any]:
    annotation = node.annotation
    if node.component:
        return {"$ref": f"{COMPONENTS_PREFIX}{node.component}"}
    if not annotation.annotated:
        return {"type": MISSING_COMMENT}

    schema: dict[str, Any] = {"type": annotation.openapi_type or "string"}
    _annotation_fields(annotation, schema)
    if annotation.enum:
        schema["enum"] = list(annotation.enum)
    if annotation.openapi_format:
        schema["format"] = annotation.openapi_format
    if annotation.example is not None:
        schema["example"] = copy.deepcopy(annotation.example)
    if schema["type"] == "array":
        schema["items"] = _annotation_items(annotation)
    return schema


def compile_properties(children: list[ShapeNode], schema: dict[str, Any]) -> dict[str, Any]:
    """Fill ``properties``/``required``; empty collections are left out."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for child in children:
        if child.name is None:
            logger.warning("skipping unnamed %s node inside an object", child.kind)
            continue
        properties[child.name] = compile_schema(child)
        if child.is_required() and child.name not in required:
            required.append(child.name)
    if properties:
        schema["properties"] = properties
    if required:
        schema["required"] = required
    return schema


def compile_object(node: ObjectNode) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object"}
    _annotation_fields(node.annotation, schema)
    return compile_properties(node.children, schema)


def compile_array(node: ArrayNode) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "array"}
    _annotation_fields(node.annotation, schema)

    item_schemas: list[dict[str, Any]] = []
    for item in node.items:
        compiled = compile_schema(item)
        if compiled not in item_schemas:
            item_schemas.append(compiled)

    if len(item_schemas) == 1:
        schema["items"] = item_schemas[0]
    elif item_schemas:
        schema["items"] = {"oneOf": item_schemas}
    else:
        schema["items"] = _annotation_items(node.annotation)
    return schema


def compile_partial(node: PartialRef) -> dict[str, Any]:
    if not node.resolved:
        logger.warning("unresolved partial %r reached the compiler", node.partial)
        return {"type": "object"}
    return compile_properties(node.nodes, {"type": "object"})


def compile_schema(root: ShapeNode) -> dict[str, Any]:
    """Compile ``root`` and everything below it into a schema object."""
    if isinstance(root, SimpleNode):
        return compile_simple(root)
    if isinstance(root, ObjectNode):
        return compile_object(root)
    if isinstance(root, ArrayNode):
        return compile_array(root)
    if isinstance(root, PartialRef):
        return compile_partial(root)
    logger.warning("unknown shape node %r", root)
    return {"type": "object"}


def build_response(root: ShapeNode, operation: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap the compiled schema as an OpenAPI ``responses`` entry."""
    operation = operation or {}
    status = str(operation.get("status") or DEFAULT_STATUS)
    description = operation.get("responseDescription") or DEFAULT_RESPONSE_DESCRIPTION
    return {
        status: {
            "description": description,
            "content": {CONTENT_TYPE: {"schema": compile_schema(root)}},
        }
    }


def compile_components(components: dict[str, ShapeNode]) -> dict[str, Any]:
    """``components.schemas`` entries for the partials a template included."""
    return {name: compile_schema(node) for name, node in sorted(components.items())}


def missing_comments(root: ShapeNode) -> list[dict[str, Any]]:
    """List every named node that still has no ``@openapi`` annotation."""
    return [
        {"path": path, "name": node.name, "kind": node.kind}
        for path, node in iter_named(root)
        if not node.annotation.annotated
    ]
