"""Shape tree built by the walker and consumed by the compiler.

A tree mirrors the JSON document a template would emit. Every node carries
an :class:`Annotation`; nodes with no ``@openapi`` comment carry the
:data:`UNANNOTATED` sentinel, which the compiler reports as
``TODO: MISSING COMMENT``.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

MISSING_COMMENT = "TODO: MISSING COMMENT"

# Types accepted in annotations that OpenAPI spells as string + format
PSEUDO_TYPE_FORMATS: dict[str, str] = {
    "date": "date",
    "date-time": "date-time",
    "datetime": "date-time",
    "time": "time",
}

# Annotation keys copied verbatim into the compiled schema
PASSTHROUGH_KEYS = (
    "nullable",
    "minimum",
    "maximum",
    "minLength",
    "maxLength",
    "minItems",
    "maxItems",
    "multipleOf",
    "pattern",
    "default",
    "deprecated",
    "readOnly",
    "writeOnly",
)

_CORE_KEYS = {
    "type", "description", "required", "enum", "format", "example",
    "items", "field_name", "ref", "conditional",
}


def type_schema(type_name: str | None) -> dict[str, Any]:
    """Return ``{"type": ...}`` for a type name, expanding pseudo-types."""
    if not type_name:
        return {"type": "object"}
    if type_name in PSEUDO_TYPE_FORMATS:
        return {"type": "string", "format": PSEUDO_TYPE_FORMATS[type_name]}
    return {"type": type_name}


@dataclass(frozen=True)
class Annotation:
    """Metadata from one ``@openapi`` comment. Immutable."""

    type: str | None = None
    description: str | None = None
    required: bool | str | None = True
    enum: tuple[str, ...] | None = None
    format: str | None = None
    example: Any = None
    items: Mapping[str, Any] | None = None
    field_name: str | None = None
    ref: str | None = None
    conditional: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict)
    annotated: bool = True

    @classmethod
    def from_comment(cls, parsed: Mapping[str, Any] | None) -> Annotation:
        """Build an annotation from a parsed field comment, or the sentinel."""
        if not parsed or "operation" in parsed:
            return UNANNOTATED
        if set(parsed) == {"conditional"}:
            # the bare conditional marker describes a branch, not a field
            return UNANNOTATED

        enum = parsed.get("enum")
        if isinstance(enum, str):
            enum = [enum]
        items = parsed.get("items")
        if isinstance(items, str):
            items = type_schema(items)
        extras = {k: v for k, v in parsed.items() if k not in _CORE_KEYS}
        return cls(
            type=parsed.get("type") or None,
            description=parsed.get("description"),
            required=parsed.get("required", True),
            enum=tuple(enum) if enum is not None else None,
            format=parsed.get("format"),
            example=parsed.get("example"),
            items=items,
            field_name=parsed.get("field_name"),
            ref=parsed.get("ref"),
            conditional=parsed.get("conditional") is True,
            extras=extras,
        )

    def is_required(self) -> bool:
        return self.required is not False and self.required != "false"

    @property
    def openapi_type(self) -> str | None:
        if self.type in PSEUDO_TYPE_FORMATS:
            return "string"
        return self.type

    @property
    def openapi_format(self) -> str | None:
        return PSEUDO_TYPE_FORMATS.get(self.type or "", self.format)


UNANNOTATED = Annotation(required=True, annotated=False)


# ---------------------------------------------------------------------------
# Shape nodes
# ---------------------------------------------------------------------------

class ShapeNode:
    """Base class for one node of the inferred document shape."""

    kind = "node"

    def __init__(
        self,
        name: str | None = None,
        annotation: Annotation = UNANNOTATED,
        is_conditional: bool = False,
        line: int | None = None,
    ) -> None:
        self.name = name
        self.annotation = annotation
        self.is_conditional = is_conditional or annotation.conditional
        self.line = line
        self._parent: weakref.ReferenceType[ShapeNode] | None = None

    def __repr__(self) -> str:
        extra = " conditional" if self.is_conditional else ""
        return f"<{type(self).__name__} {self.name!r}{extra}>"

    @property
    def parent(self) -> ShapeNode | None:
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node: ShapeNode | None) -> None:
        self._parent = weakref.ref(node) if node is not None else None

    @property
    def children(self) -> list[ShapeNode]:
        return []

    def is_required(self) -> bool:
        """A conditional node is optional whatever its annotation says."""
        return self.annotation.is_required() and not self.is_conditional

    def mark_conditional(self) -> None:
        """Flag this node and everything below it as conditional."""
        for node in self.walk():
            node.is_conditional = True

    def clone(self) -> ShapeNode:
        """Copy of this subtree, detached from any parent."""
        return type(self)(self.name, self.annotation, self.is_conditional, self.line)

    def walk(self) -> Iterator[ShapeNode]:
        """Depth-first pre-order traversal, self included."""
        yield self
        for child in self.children:
            yield from child.walk()


class SimpleNode(ShapeNode):
    """A scalar (or opaque) property, typed only by its annotation."""

    kind = "simple"

    @property
    def component(self) -> str | None:
        """Name of the schema component this property refers to, if any."""
        return self.annotation.ref


class ObjectNode(ShapeNode):
    kind = "object"

    def __init__(self, name: str | None = None, annotation: Annotation = UNANNOTATED,
                 is_conditional: bool = False, line: int | None = None,
                 children: list[ShapeNode] | None = None) -> None:
        super().__init__(name, annotation, is_conditional, line)
        self._children: list[ShapeNode] = []
        for child in children or []:
            self.add(child)

    @property
    def children(self) -> list[ShapeNode]:
        return self._children

    def add(self, child: ShapeNode) -> ShapeNode:
        """Append ``child``; a same-name child is replaced in place."""
        child.parent = self
        if child.name is not None:
            for index, existing in enumerate(self._children):
                if existing.name == child.name:
                    self._children[index] = child
                    return child
        self._children.append(child)
        return child

    def extend(self, children: list[ShapeNode]) -> None:
        for child in children:
            self.add(child)

    def get(self, name: str) -> ShapeNode | None:
        for child in self._children:
            if child.name == name:
                return child
        return None

    def clone(self) -> ObjectNode:
        return ObjectNode(self.name, self.annotation, self.is_conditional, self.line,
                          children=[child.clone() for child in self._children])


class ArrayNode(ShapeNode):
    """An array; ``items`` holds the item templates (normally exactly one)."""

    kind = "array"

    def __init__(self, name: str | None = None, annotation: Annotation = UNANNOTATED,
                 is_conditional: bool = False, line: int | None = None,
                 items: list[ShapeNode] | None = None, is_root: bool = False) -> None:
        super().__init__(name, annotation, is_conditional, line)
        self.is_root = is_root
        self._items: list[ShapeNode] = []
        for item in items or []:
            self.add_item(item)

    @property
    def items(self) -> list[ShapeNode]:
        return self._items

    @property
    def children(self) -> list[ShapeNode]:
        return self._items

    def add_item(self, item: ShapeNode) -> ShapeNode:
        item.parent = self
        self._items.append(item)
        return item

    def clone(self) -> ArrayNode:
        return ArrayNode(self.name, self.annotation, self.is_conditional, self.line,
                         items=[item.clone() for item in self._items], is_root=self.is_root)


class PartialRef(ShapeNode):
    """A ``json.partial!`` inclusion.

    Once resolved, ``nodes`` holds the shape parsed from the partial file,
    which the walker splices into the including context.
    """

    kind = "partial"

    def __init__(self, partial: str, bindings: dict[str, str] | None = None,
                 line: int | None = None, resolved_path: Any = None) -> None:
        super().__init__(None, UNANNOTATED, False, line)
        self.partial = partial
        self.bindings = dict(bindings or {})
        self.resolved_path = resolved_path
        self.resolved = False
        self.nodes: list[ShapeNode] = []

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "unresolved"
        return f"<PartialRef {self.partial!r} {state}>"

    @property
    def children(self) -> list[ShapeNode]:
        return self.nodes

    @property
    def spliced_names(self) -> list[str]:
        return [node.name for node in self.nodes if node.name is not None]

    def splice(self, nodes: list[ShapeNode]) -> list[ShapeNode]:
        """Record the parsed partial shape and return it for grafting."""
        self.nodes = list(nodes)
        self.resolved = True
        return self.nodes

    def clone(self) -> PartialRef:
        ref = PartialRef(self.partial, self.bindings, self.line, self.resolved_path)
        if self.resolved:
            ref.splice([node.clone() for node in self.nodes])
        return ref


def iter_named(node: ShapeNode, prefix: str = "") -> Iterator[tuple[str, ShapeNode]]:
    """Yield ``(path, node)`` for every named node below ``node``.

    Paths are dotted; array items add ``[]``, e.g. ``posts[].author.name``.
    """
    for child in node.children:
        if isinstance(node, ArrayNode):
            path = f"{prefix}[]"
        elif child.name is not None:
            path = f"{prefix}.{child.name}" if prefix else child.name
        else:
            path = prefix
        if child.name is not None and not isinstance(node, ArrayNode):
            yield path, child
        yield from iter_named(child, path)
