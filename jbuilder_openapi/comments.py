"""Render ``@openapi`` comment lines from property and operation dicts.

Rendered lines parse back through
:func:`~jbuilder_openapi.comment_parser.parse_comment`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jinja2

from .nodes import MISSING_COMMENT, iter_named
from .properties import describe

TEMPLATE_DIR = Path(__file__).parent / "templates"


def _environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_property_comment(prop: dict[str, Any]) -> str:
    """Render ``# @openapi name:type ...`` for one flattened property."""
    template = _environment().get_template("property_comment.j2")
    return template.render(prop=prop, missing=MISSING_COMMENT).strip()


def render_operation_comment(operation: dict[str, Any]) -> str | None:
    """Render ``# @openapi_operation ...``; None when there is nothing to say."""
    template = _environment().get_template("operation_comment.j2")
    line = template.render(op=operation).strip()
    if line == "# @openapi_operation":
        return None
    return line


def comment_stubs(result: Any) -> dict[int, str]:
    """Map source line -> stub comment for each unannotated property.

    ``result`` is a :class:`~jbuilder_openapi.walker.ParseResult`. Nodes
    spliced in from partials are skipped: their lines belong to other files.
    """
    spliced = {id(node) for ref in result.partials for top in ref.nodes for node in top.walk()}
    stubs: dict[int, str] = {}
    for path, node in iter_named(result.root):
        if node.annotation.annotated or node.line is None or id(node) in spliced:
            continue
        stubs.setdefault(node.line, render_property_comment(describe(path, node)))
    return dict(sorted(stubs.items()))
