"""Map partial names to template files.

Rails conventions:
  "user"          -> <current dir>/_user.json.jbuilder
  "users/user"    -> <views root>/users/_user.json.jbuilder
  "/abs/_x.json.jbuilder" is returned unchanged

The views root is the nearest ancestor directory named ``views``; when
there is none, namespaced names resolve against the current directory.
Nothing here touches the filesystem.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePath

from .config import DEFAULT_SETTINGS, Settings


def find_views_root(current: PurePath, settings: Settings | None = None) -> PurePath | None:
    """Return the nearest ancestor of ``current`` named like the views dir."""
    settings = settings or DEFAULT_SETTINGS
    for ancestor in current.parents:
        if ancestor.name == settings.views_dirname:
            return ancestor
    return None


def partial_filename(segment: str, settings: Settings | None = None) -> str:
    """``user`` -> ``_user.json.jbuilder``."""
    settings = settings or DEFAULT_SETTINGS
    name = segment if segment.startswith("_") else f"_{segment}"
    if not name.endswith(settings.template_extension):
        name += settings.template_extension
    return name


def resolve_partial_path(name: str, current: str | PurePath, settings: Settings | None = None) -> Path:
    """Resolve partial ``name`` referenced from template ``current``."""
    settings = settings or DEFAULT_SETTINGS
    current = Path(current)
    if Path(name).is_absolute():
        return Path(name)

    parts = [p for p in re.split(r"[\\/]", name) if p]
    if not parts:
        return current.parent / partial_filename(name, settings)
    filename = partial_filename(parts[-1], settings)
    if len(parts) == 1:
        return current.parent / filename

    base = find_views_root(current, settings) or current.parent
    return Path(base, *parts[:-1], filename)


def component_name(name: str) -> str:
    """PascalCase component name for a partial: ``api/users/user`` -> ``ApiUsersUser``."""
    words = [w for w in re.split(r"[\\/_\-\s.]+", name) if w]
    return "".join(w[:1].upper() + w[1:] for w in words)
