"""Exceptions raised while inferring schemas from templates.

Only fatal conditions are exceptions. Missing annotations and unreadable
partials are absorbed by the walker and surface as placeholder data or
log lines instead.
"""

from __future__ import annotations

from pathlib import Path


class TemplateError(Exception):
    """Base class for errors that abort processing of one template."""


class MalformedTemplateError(TemplateError):
    """The template AST does not have the call/block shape the walker expects."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class TemplateSyntaxError(MalformedTemplateError):
    """The front end could not read the template source."""


class CyclicPartialError(TemplateError):
    """A partial includes itself, directly or through other partials."""

    def __init__(self, chain: list[Path]) -> None:
        self.chain = chain
        rendered = " -> ".join(str(p) for p in chain)
        super().__init__(f"cyclic partial inclusion: {rendered}")
