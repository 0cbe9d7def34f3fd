"""Generic template AST produced by the front end.

The walker only relies on call and block nodes (receiver, method name,
arguments, line, block parameters, body). Everything else is kept as
opaque expression text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class Name:
    """A bare identifier, instance variable, constant or ``self``."""

    identifier: str
    line: int
    source: str = ""


@dataclass
class Literal:
    """A string, symbol, number, ``true``/``false`` or ``nil`` literal.

    ``kind`` is one of ``str``, ``sym``, ``int``, ``float``, ``true``,
    ``false``, ``nil``. Interpolated strings keep their raw text as value
    and are marked ``dynamic``.
    """

    kind: str
    value: Any
    line: int
    source: str = ""
    dynamic: bool = False


@dataclass
class HashLiteral:
    pairs: list[tuple[Node, Node]]
    line: int
    source: str = ""


@dataclass
class ArrayLiteral:
    elements: list[Node]
    line: int
    source: str = ""


@dataclass
class Expression:
    """Anything not interpreted structurally (operators, ternaries, ...).

    ``parts`` keeps the operand nodes so nested calls stay reachable.
    """

    parts: list[Node]
    line: int
    source: str = ""


@dataclass
class Call:
    receiver: Node | None
    method: str
    args: list[Node]
    line: int
    source: str = ""


@dataclass
class Block:
    call: Call
    params: list[str]
    body: list[Node]
    line: int
    source: str = ""


@dataclass
class Conditional:
    """``if``/``unless``/``case`` statement or modifier.

    ``branches`` holds the body of every arm in source order, the ``else``
    arm last when present.
    """

    keyword: str
    condition: Node | None
    branches: list[list[Node]]
    line: int
    source: str = ""


Node = Union[Name, Literal, HashLiteral, ArrayLiteral, Expression, Call, Block, Conditional]


@dataclass
class Template:
    body: list[Node]
    comments: dict[int, str] = field(default_factory=dict)
    trailing: set[int] = field(default_factory=set)

    def comment_for_line(self, line: int) -> str | None:
        return self.comments.get(line)

    def own_line_comment(self, line: int) -> str | None:
        """The comment on ``line`` unless it trails code on that line."""
        if line in self.trailing:
            return None
        return self.comments.get(line)


def literal_text(node: Node | None) -> str | None:
    """Return the text of a static string or symbol literal, else None."""
    if isinstance(node, Literal) and node.kind in ("str", "sym") and not node.dynamic:
        return str(node.value)
    return None


def hash_get(node: HashLiteral, key: str) -> Node | None:
    """Look up a pair whose key is the symbol/string ``key``."""
    for pair_key, value in node.pairs:
        if literal_text(pair_key) == key:
            return value
    return None
