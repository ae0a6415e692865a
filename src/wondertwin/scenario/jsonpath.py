"""
Minimal JSONPath: ``$``, ``.key`` navigation and ``[i]`` array indexes.

A missing key or an out-of-range index is "no match" (an empty result), not
an error; only a malformed path raises.
"""

from __future__ import annotations

import json
from typing import Any

from wondertwin.errors import ValidationError

_MISSING = object()


def split_segments(path: str) -> list[str]:
    """Split on ``.`` outside of brackets: ``a.b[0].c`` -> ``["a", "b[0]", "c"]``."""
    segments: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in path:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        elif ch == "." and depth == 0:
            segments.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        segments.append("".join(current))
    return segments


def _field(doc: Any, key: str) -> Any:
    if isinstance(doc, dict) and key in doc:
        return doc[key]
    return _MISSING


def query(doc: Any, path: str) -> list[Any]:
    """Evaluate ``path`` against a decoded document.

    Returns:
        ``[value]`` on a match, ``[]`` on no match.

    Raises:
        ValidationError: If the path does not start with ``$`` or has a
            non-integer index.
    """
    if not path.startswith("$"):
        raise ValidationError(f'JSONPath must start with $: "{path}"')

    rest = path[1:]
    if not rest:
        return [doc]
    rest = rest.removeprefix(".")

    current = doc
    for segment in split_segments(rest):
        if not segment:
            continue

        bracket = segment.find("[")
        if bracket >= 0:
            key = segment[:bracket]
            index_text = segment[bracket + 1 :].removesuffix("]")
            if key:
                current = _field(current, key)
                if current is _MISSING:
                    return []
            try:
                index = int(index_text)
            except ValueError:
                raise ValidationError(f'invalid array index in "{segment}"') from None
            if not isinstance(current, list) or not 0 <= index < len(current):
                return []
            current = current[index]
            continue

        current = _field(current, segment)
        if current is _MISSING:
            return []

    return [current]


def parse_document(body: bytes | str) -> Any:
    try:
        return json.loads(body)
    except ValueError as e:
        raise ValidationError(f"response body is not valid JSON: {e}") from e


def extract(body: bytes | str, path: str) -> Any:
    """Decode ``body`` and return the single value at ``path``.

    Raises:
        ValidationError: Invalid JSON, an invalid path, or no match.
    """
    results = query(parse_document(body), path)
    if not results:
        raise ValidationError(f'JSONPath "{path}": no match found')
    return results[0]
