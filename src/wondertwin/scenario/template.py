"""
``{{ ... }}`` expansion for scenario strings.

Expressions:
    twins.<name>.port / twins.<name>.admin_port   ports from the manifest
    env.<VAR>                                      environment (empty if unset)
    <name>                                         a captured or initial variable

Expansion repeats until no ``{{`` remains, so expanding an already expanded
string is a no-op.
"""

from __future__ import annotations

import json
import os
from typing import Any

from wondertwin.errors import NotFoundError, TemplateError
from wondertwin.fleet.manifest import Manifest

MAX_SUBSTITUTIONS = 1000


def expand(text: str, manifest: Manifest | None, variables: dict[str, str]) -> str:
    """Expand every template expression in ``text``.

    Each value is spliced in and the text is searched again from the start,
    so a value holding ``{{...}}`` is itself expanded.

    Raises:
        TemplateError: Unterminated ``{{``, unknown variable, bad twin field,
            a twin the manifest does not declare, or a self-referencing value.
    """
    result = text
    for _ in range(MAX_SUBSTITUTIONS):
        start = result.find("{{")
        if start == -1:
            return result

        end = result.find("}}", start + 2)
        if end == -1:
            raise TemplateError(f"unterminated template expression at position {start}")

        value = _resolve(result[start + 2 : end].strip(), manifest, variables)
        result = result[:start] + value + result[end + 2 :]
    raise TemplateError(
        f"template expansion did not settle after {MAX_SUBSTITUTIONS} substitutions"
    )


def _resolve(expr: str, manifest: Manifest | None, variables: dict[str, str]) -> str:
    if expr.startswith("twins."):
        return resolve_twin(expr, manifest)
    if expr.startswith("env."):
        return os.environ.get(expr[4:], "")
    if expr in variables:
        return variables[expr]
    raise TemplateError(f'unresolved template expression: "{expr}"')


def resolve_twin(expr: str, manifest: Manifest | None) -> str:
    parts = expr.split(".", 2)
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise TemplateError(
            f'invalid twin template expression: "{expr}" (expected twins.<name>.<field>)'
        )
    if manifest is None:
        raise TemplateError(f'template "{expr}": no manifest loaded')

    _, name, field = parts
    try:
        twin = manifest.twin(name)
    except NotFoundError as e:
        raise TemplateError(f'template "{expr}": {e}') from e

    if field == "port":
        return str(twin.port)
    if field == "admin_port":
        return str(twin.admin_port or twin.port)
    raise TemplateError(f'template "{expr}": unknown field "{field}" (expected port or admin_port)')


def format_value(value: Any) -> str:
    """Stringify a decoded JSON value the way captures and ``contains`` see it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"))
    return str(value)
