"""Shared fixtures for template parsing tests.

Templates are written into a throwaway Rails-like tree under
``tmp_path/app/views`` so partial resolution sees a real views root.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest


class ViewTree:
    """Writes templates below a views root."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def write(self, relpath: str, source: str) -> Path:
        """Write ``source`` (dedented, leading newline dropped) to ``relpath``.

        Line 1 of the file is the first line of ``source`` after the
        opening newline, so tests can refer to line numbers directly.
        """
        path = self.root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
        return path


@pytest.fixture
def views(tmp_path: Path) -> ViewTree:
    """An empty ``app/views`` directory."""
    root = tmp_path / "app" / "views"
    root.mkdir(parents=True)
    return ViewTree(root)
