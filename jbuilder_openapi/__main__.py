"""Entry point: python -m jbuilder_openapi TEMPLATE...

Parses each Jbuilder template and prints its OpenAPI response entry as
JSON. ``--properties`` prints the flat property list instead, ``--stubs``
prints comment stubs for unannotated properties, and ``--components``
prints the schemas of the partials each template includes.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .comments import comment_stubs, render_operation_comment
from .compiler import build_response, compile_components, missing_comments
from .config import Settings
from .errors import TemplateError
from .properties import flatten_properties
from .walker import parse_template

logger = logging.getLogger("jbuilder_openapi")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jbuilder_openapi",
        description="Infer OpenAPI response schemas from annotated Jbuilder templates.",
    )
    parser.add_argument("templates", nargs="+", metavar="TEMPLATE")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--properties", action="store_true", help="print the flat property list")
    mode.add_argument("--stubs", action="store_true", help="print comment stubs for unannotated properties")
    mode.add_argument("--components", action="store_true", help="print component schemas for included partials")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()

    failed = 0
    for path in args.templates:
        try:
            result = parse_template(path, settings)
        except (TemplateError, OSError, UnicodeDecodeError) as exc:
            logger.error("%s: %s", path, exc)
            failed += 1
            continue

        if args.properties:
            output: object = flatten_properties(result.root)
        elif args.stubs:
            output = {str(line): text for line, text in comment_stubs(result).items()}
            if result.operation is None:
                stub = render_operation_comment({"summary": "TODO"})
                output = {"operation": stub, **output}
        elif args.components:
            output = compile_components(result.components)
        else:
            output = build_response(result.root, result.operation)
        print(json.dumps({path: output}, indent=2))

        missing = missing_comments(result.root)
        print(
            f"Parsed {path} ({len(flatten_properties(result.root))} properties, "
            f"{len(missing)} missing comments, {len(result.partials)} partials)",
            file=sys.stderr,
        )

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
