"""Settings shared by the reader, walker and path resolver.

Defaults follow the Rails conventions: templates are ``*.json.jbuilder``
files under an ``app/views`` tree and the document builder is ``json``.
Each value can be overridden with a ``JBUILDER_OPENAPI_*`` env var.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

ENV_PREFIX = "JBUILDER_OPENAPI_"


@dataclass(frozen=True)
class Settings:
    builder: str = "json"
    views_dirname: str = "views"
    template_extension: str = ".json.jbuilder"
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from the environment, keeping defaults for unset keys."""
        env = os.environ if environ is None else environ
        overrides = {}
        for name in ("builder", "views_dirname", "template_extension", "encoding"):
            value = env.get(ENV_PREFIX + name.upper())
            if value:
                overrides[name] = value
        return cls(**overrides)


DEFAULT_SETTINGS = Settings()
