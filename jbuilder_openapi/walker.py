"""Walk a template AST and rebuild the shape of the JSON it emits.

Each body is walked by a recursive function that returns the nodes it
produced, so nested blocks never share accumulation state. Calls are
dispatched on their :class:`~jbuilder_openapi.classifiers.CallKind`:

- property calls become Simple nodes, Object nodes (block, no params) or
  named Array nodes (block with an item param, or a ``partial:`` keyword)
- ``json.array!`` becomes an array root whose item template is the block
  body or the ``partial:`` file
- ``json.partial!`` parses the partial file and splices its nodes in place
- ``extract!`` / ``json.(obj, ...)`` emit one Simple node per attribute
- cache, key-format, null-handling and merge directives are walked through

Partial files are parsed by a fresh walker that carries the inclusion
chain, so a partial that includes itself raises ``CyclicPartialError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .classifiers import CallKind, classify, has_partial_keyword
from .comment_parser import parse_comment
from .config import DEFAULT_SETTINGS, Settings
from .errors import CyclicPartialError
from .nodes import (
    UNANNOTATED,
    Annotation,
    ArrayNode,
    ObjectNode,
    PartialRef,
    ShapeNode,
    SimpleNode,
)
from .partials import component_name, resolve_partial_path
from .ruby_reader import read_template
from .template_ast import (
    Block,
    Call,
    Conditional,
    Expression,
    HashLiteral,
    Node,
    Template,
    hash_get,
    literal_text,
)

logger = logging.getLogger(__name__)

# Hash keys of a partial call that are options rather than locals
_PARTIAL_OPTIONS = {"partial", "locals", "as", "collection", "cached", "object", "spacer_template"}


@dataclass
class ParseResult:
    """Everything learned from one template file."""

    path: Path
    root: ShapeNode
    operation: dict[str, Any] | None = None
    partials: list[PartialRef] = field(default_factory=list)
    # partial shapes keyed by schema component name, e.g. ``UsersUser``
    components: dict[str, ShapeNode] = field(default_factory=dict)


def _is_array_root(node: ShapeNode) -> bool:
    return isinstance(node, ArrayNode) and node.is_root


class TemplateWalker:
    """Builds the shape tree for one template file."""

    def __init__(
        self,
        path: str | Path,
        settings: Settings | None = None,
        chain: tuple[Path, ...] = (),
    ) -> None:
        self.path = Path(path)
        self.settings = settings or DEFAULT_SETTINGS
        self.chain = chain + (self.path.resolve(),)
        self.template = Template(body=[])
        self.partials: list[PartialRef] = []
        self.components: dict[str, ShapeNode] = {}

    # -- entry points ------------------------------------------------------

    def load(self) -> Template:
        """Read and parse the template file."""
        text = self.path.read_text(encoding=self.settings.encoding)
        self.template = read_template(text)
        return self.template

    def parse(self) -> ParseResult:
        template = self.load()
        root = self.walk_root(template.body)
        return ParseResult(
            path=self.path,
            root=root,
            operation=self.operation(),
            partials=self.partials,
            components=self.components,
        )

    def walk_root(self, body: list[Node]) -> ShapeNode:
        """Walk the top level; an array root replaces the root object."""
        nodes = self.walk_body(body)
        roots = [node for node in nodes if _is_array_root(node)]
        if roots:
            if len(nodes) > 1:
                logger.debug(
                    "%s: array root replaces %d sibling node(s)", self.path, len(nodes) - 1,
                )
            return roots[-1]
        return ObjectNode(children=nodes)

    def operation(self) -> dict[str, Any] | None:
        """Return the first ``@openapi_operation`` annotation in the file."""
        for line in sorted(self.template.comments):
            parsed = parse_comment(self.template.comments[line])
            if parsed and "operation" in parsed:
                return parsed["operation"]
        return None

    # -- annotation lookup -------------------------------------------------

    def parsed_comment_for(self, line: int) -> dict[str, Any] | None:
        """Parsed annotation trailing ``line``, else on its own on the line above."""
        for text in (self.template.comment_for_line(line), self.template.own_line_comment(line - 1)):
            parsed = parse_comment(text)
            if parsed and "operation" not in parsed:
                return parsed
        return None

    def annotation_for(self, line: int) -> Annotation:
        return Annotation.from_comment(self.parsed_comment_for(line))

    def is_conditional_marker(self, line: int) -> bool:
        parsed = self.parsed_comment_for(line)
        return parsed == {"conditional": True}

    def annotations_above(self, line: int) -> dict[str, Annotation]:
        """Annotations in the contiguous comment lines above ``line``, by field name."""
        found: dict[str, Annotation] = {}
        current = line - 1
        while self.template.own_line_comment(current) is not None:
            parsed = parse_comment(self.template.own_line_comment(current))
            if parsed and parsed.get("field_name"):
                found.setdefault(parsed["field_name"], Annotation.from_comment(parsed))
            current -= 1
        trailing = parse_comment(self.template.comment_for_line(line))
        if trailing and trailing.get("field_name"):
            found.setdefault(trailing["field_name"], Annotation.from_comment(trailing))
        return found

    # -- bodies and statements ---------------------------------------------

    def walk_body(self, body: list[Node]) -> list[ShapeNode]:
        """Walk statements in order and return the nodes they produce."""
        acc = ObjectNode()
        for statement in body:
            for node in self.walk_statement(statement):
                if node.name is not None and acc.get(node.name) is not None:
                    logger.debug("%s: %r defined again, keeping the later one", self.path, node.name)
                acc.add(node)
        nodes = list(acc.children)
        for node in nodes:
            node.parent = None
        return nodes

    def walk_statement(self, node: Node) -> list[ShapeNode]:
        if isinstance(node, Conditional):
            return self.walk_conditional(node)
        if isinstance(node, Block):
            return self.walk_call(node.call, node)
        if isinstance(node, Call):
            return self.walk_call(node, None)
        if isinstance(node, Expression):
            # ``x = foo do ... end`` and friends
            nested = [part for part in node.parts if isinstance(part, (Block, Conditional))]
            return [child for part in nested for child in self.walk_statement(part)]
        return []

    def walk_conditional(self, node: Conditional) -> list[ShapeNode]:
        conditional = self.is_conditional_marker(node.line)
        produced: list[ShapeNode] = []
        for branch in node.branches:
            produced.extend(self.walk_body(branch))
        if conditional:
            for child in produced:
                child.mark_conditional()
        return produced

    def walk_call(self, call: Call, block: Block | None) -> list[ShapeNode]:
        kind = classify(call, self.settings.builder)
        if kind is CallKind.ARRAY:
            return [self.walk_array(call, block)]
        if kind is CallKind.PARTIAL:
            return self.walk_partial(call)
        if kind is CallKind.EXTRACT:
            return self.walk_extract(call)
        if kind is CallKind.PROPERTY:
            return [self.walk_property(call, block)]
        # directives and unrelated calls: only a block body can emit keys
        if block is not None:
            return self.walk_body(block.body)
        return []

    # -- properties --------------------------------------------------------

    def walk_property(self, call: Call, block: Block | None) -> ShapeNode:
        name = call.method
        annotation = self.annotation_for(call.line)

        if has_partial_keyword(call):
            items = self.partial_item(call)
            if annotation.openapi_type == "object":
                children = items.children if isinstance(items, ObjectNode) else [items]
                return ObjectNode(name, annotation, line=call.line, children=list(children))
            return ArrayNode(name, annotation, line=call.line, items=[items])

        if block is not None and block.params:
            item = self.item_from_body(block.body)
            return ArrayNode(name, annotation, line=call.line, items=[item])

        if block is not None:
            children = self.walk_body(block.body)
            if len(children) == 1 and _is_array_root(children[0]):
                return self.collapse_array(name, annotation, call.line, children[0])
            for child in children:
                if _is_array_root(child):
                    child.name = "items"
                    child.is_root = False
            return ObjectNode(name, annotation, line=call.line, children=children)

        attributes = self.attribute_nodes(call.args[1:], call.line)
        if attributes:
            # json.author @author, :id, :name
            item = ObjectNode(children=attributes)
            if annotation.openapi_type == "array":
                return ArrayNode(name, annotation, line=call.line, items=[item])
            return ObjectNode(name, annotation, line=call.line, children=attributes)

        return SimpleNode(name, annotation, line=call.line)

    def collapse_array(self, name: str, annotation: Annotation, line: int, array: ArrayNode) -> ArrayNode:
        """``json.tags do json.array! ... end`` becomes a plain array property."""
        array.name = name
        array.is_root = False
        array.line = line
        if annotation.annotated or not array.annotation.annotated:
            conditional = array.is_conditional
            array.annotation = annotation
            array.is_conditional = conditional or annotation.conditional
        return array

    def item_from_body(self, body: list[Node]) -> ShapeNode:
        return self.item_from_nodes(self.walk_body(body))

    @staticmethod
    def item_from_nodes(nodes: list[ShapeNode]) -> ShapeNode:
        """Wrap produced nodes as one array item template."""
        if len(nodes) == 1 and _is_array_root(nodes[0]):
            nested = nodes[0]
            nested.is_root = False
            return nested
        return ObjectNode(children=nodes)

    # -- arrays ------------------------------------------------------------

    def walk_array(self, call: Call, block: Block | None) -> ArrayNode:
        annotation = self.annotation_for(call.line)
        array = ArrayNode(annotation=annotation, line=call.line, is_root=True)
        if has_partial_keyword(call):
            array.add_item(self.partial_item(call))
        elif block is not None:
            array.add_item(self.item_from_body(block.body))
        else:
            attributes = self.attribute_nodes(call.args[1:], call.line)
            if attributes:
                # json.array! @people, :id, :name
                array.add_item(ObjectNode(children=attributes))
        return array

    # -- attribute extraction ----------------------------------------------

    def walk_extract(self, call: Call) -> list[ShapeNode]:
        return self.attribute_nodes(call.args[1:], call.line)

    def attribute_nodes(self, args: list[Node], line: int) -> list[ShapeNode]:
        names = [text for text in (literal_text(arg) for arg in args) if text is not None]
        if not names:
            return []
        annotations = self.annotations_above(line)
        return [SimpleNode(name, annotations.get(name, UNANNOTATED), line=line) for name in names]

    # -- partials ----------------------------------------------------------

    def walk_partial(self, call: Call) -> list[ShapeNode]:
        args = self.partial_options(call)
        if args is not None and hash_get(args, "collection") is not None:
            # json.partial! "x", collection: items, as: :item
            annotation = self.annotation_for(call.line)
            array = ArrayNode(annotation=annotation, line=call.line, is_root=True)
            array.add_item(self.partial_item(call))
            return [array]
        ref = self.include_partial(call)
        return list(ref.nodes) if ref is not None else []

    def partial_item(self, call: Call) -> ShapeNode:
        ref = self.include_partial(call)
        return self.item_from_nodes(list(ref.nodes) if ref is not None else [])

    @staticmethod
    def partial_options(call: Call) -> HashLiteral | None:
        for arg in call.args:
            if isinstance(arg, HashLiteral):
                return arg
        return None

    def partial_name(self, call: Call) -> str | None:
        if call.method == "partial!" and call.args:
            name = literal_text(call.args[0])
            if name is not None:
                return name
        options = self.partial_options(call)
        if options is not None:
            return literal_text(hash_get(options, "partial"))
        return None

    def partial_locals(self, call: Call) -> dict[str, str]:
        options = self.partial_options(call)
        if options is None:
            return {}
        bound: dict[str, str] = {}
        nested = hash_get(options, "locals")
        if isinstance(nested, HashLiteral):
            for key, value in nested.pairs:
                name = literal_text(key)
                if name is not None:
                    bound[name] = value.source
        for key, value in options.pairs:
            name = literal_text(key)
            if name is not None and name not in _PARTIAL_OPTIONS:
                bound[name] = value.source
        item_name = literal_text(hash_get(options, "as"))
        collection = hash_get(options, "collection")
        if collection is None and call.method != "partial!" and call.args[0] is not options:
            # json.array! @posts, partial: ..., as: :post
            collection = call.args[0]
        if item_name is not None and collection is not None:
            bound[item_name] = collection.source
        return bound

    def include_partial(self, call: Call) -> PartialRef | None:
        """Resolve, parse and record the partial named by ``call``."""
        name = self.partial_name(call)
        if name is None:
            logger.warning("%s:%d: partial name is not a literal, skipping", self.path, call.line)
            return None

        path = resolve_partial_path(name, self.path, self.settings)
        ref = PartialRef(name, self.partial_locals(call), line=call.line, resolved_path=path)
        self.partials.append(ref)

        if path.resolve() in self.chain:
            raise CyclicPartialError([*self.chain, path.resolve()])

        if not path.is_file():
            logger.warning("%s:%d: partial %r not found at %s", self.path, call.line, name, path)
            return ref

        sub = TemplateWalker(path, self.settings, self.chain)
        try:
            template = sub.load()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("%s:%d: cannot read partial %s: %s", self.path, call.line, path, exc)
            return ref
        nodes = sub.walk_body(template.body)
        self.partials.extend(sub.partials)
        for key, component in sub.components.items():
            self.components.setdefault(key, component)
        self.components.setdefault(component_name(name), self.component_for(nodes))
        ref.splice(nodes)
        return ref

    @staticmethod
    def component_for(nodes: list[ShapeNode]) -> ShapeNode:
        """Standalone copy of a partial's shape, before any conditional marking."""
        roots = [node for node in nodes if _is_array_root(node)]
        if roots:
            return roots[-1].clone()
        return ObjectNode(children=[node.clone() for node in nodes])


def parse_template(path: str | Path, settings: Settings | None = None) -> ParseResult:
    """Parse one template file into a shape tree.

    Raises :class:`~jbuilder_openapi.errors.TemplateError` subclasses for
    syntax errors, malformed call shapes and cyclic partials.
    """
    return TemplateWalker(path, settings).parse()
