"""JSONPath body assertions: literal equality or operator objects."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from wondertwin.errors import AssertionFailure, ValidationError
from wondertwin.scenario.jsonpath import parse_document, query
from wondertwin.scenario.template import format_value


def to_number(value: Any) -> float | None:
    """Numeric value of ``value``; None for anything else (booleans included)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def values_equal(actual: Any, expected: Any) -> bool:
    """Numbers compare as floats; a number never equals a non-number."""
    a, e = to_number(actual), to_number(expected)
    if a is not None and e is not None:
        return a == e
    if (a is None) != (e is None):
        return False
    return format_value(actual) == format_value(expected)


def evaluate_body(body: bytes | str, assertions: dict[str, Any]) -> None:
    """Check every ``path -> expectation`` against the decoded body.

    Raises:
        AssertionFailure: On the first failing expectation or an unusable body.
    """
    try:
        doc = parse_document(body)
    except ValidationError as e:
        raise AssertionFailure(e.message) from e

    for path, expected in assertions.items():
        evaluate_one(doc, path, expected)


def evaluate_one(doc: Any, path: str, expected: Any) -> None:
    try:
        results = query(doc, path)
    except ValidationError as e:
        raise AssertionFailure(f'invalid JSONPath "{path}": {e}') from e

    if isinstance(expected, dict):
        _evaluate_operators(path, results, expected)
        return

    if not results:
        raise AssertionFailure(f'JSONPath "{path}": no match found')
    actual = results[0]
    if not values_equal(actual, expected):
        raise AssertionFailure(
            f'JSONPath "{path}": expected {format_value(expected)} '
            f"({type(expected).__name__}), got {format_value(actual)} ({type(actual).__name__})"
        )


def _first(path: str, results: list[Any], op: str) -> Any:
    if not results:
        raise AssertionFailure(f"JSONPath \"{path}\": no match found for '{op}' check")
    return results[0]


def _numbers(path: str, op: str, actual: Any, expected: Any) -> tuple[float, float]:
    a = to_number(actual)
    if a is None:
        raise AssertionFailure(
            f"JSONPath \"{path}\": '{op}' requires numeric actual value, got {format_value(actual)}"
        )
    e = to_number(expected)
    if e is None:
        raise AssertionFailure(
            f"JSONPath \"{path}\": '{op}' requires numeric expected value, "
            f"got {format_value(expected)}"
        )
    return a, e


def _op_exists(path: str, results: list[Any], expected: Any) -> None:
    if not isinstance(expected, bool):
        raise AssertionFailure(f"JSONPath \"{path}\": 'exists' operator requires a boolean value")
    if expected and not results:
        raise AssertionFailure(f'JSONPath "{path}": expected to exist but no match found')
    if not expected and results:
        raise AssertionFailure(
            f'JSONPath "{path}": expected not to exist but found {format_value(results[0])}'
        )


def _op_eq(path: str, results: list[Any], expected: Any) -> None:
    actual = _first(path, results, "eq")
    if not values_equal(actual, expected):
        raise AssertionFailure(
            f'JSONPath "{path}": expected eq {format_value(expected)}, got {format_value(actual)}'
        )


def _op_gte(path: str, results: list[Any], expected: Any) -> None:
    a, e = _numbers(path, "gte", _first(path, results, "gte"), expected)
    if a < e:
        raise AssertionFailure(
            f'JSONPath "{path}": expected >= {format_value(e)}, got {format_value(a)}'
        )


def _op_lte(path: str, results: list[Any], expected: Any) -> None:
    a, e = _numbers(path, "lte", _first(path, results, "lte"), expected)
    if a > e:
        raise AssertionFailure(
            f'JSONPath "{path}": expected <= {format_value(e)}, got {format_value(a)}'
        )


def _op_contains(path: str, results: list[Any], expected: Any) -> None:
    actual = format_value(_first(path, results, "contains"))
    needle = format_value(expected)
    if needle not in actual:
        raise AssertionFailure(
            f'JSONPath "{path}": expected to contain "{needle}", got "{actual}"'
        )


def _op_regex(path: str, results: list[Any], expected: Any) -> None:
    actual = format_value(_first(path, results, "regex"))
    if not isinstance(expected, str):
        raise AssertionFailure(f"JSONPath \"{path}\": 'regex' operator requires a string pattern")
    try:
        pattern = re.compile(expected)
    except re.error as e:
        raise AssertionFailure(
            f'JSONPath "{path}": invalid regex pattern "{expected}": {e}'
        ) from e
    if not pattern.search(actual):
        raise AssertionFailure(
            f'JSONPath "{path}": value "{actual}" does not match regex "{expected}"'
        )


OPERATORS: dict[str, Callable[[str, list[Any], Any], None]] = {
    "exists": _op_exists,
    "eq": _op_eq,
    "gte": _op_gte,
    "lte": _op_lte,
    "contains": _op_contains,
    "regex": _op_regex,
}


def _evaluate_operators(path: str, results: list[Any], ops: dict[str, Any]) -> None:
    for op, expected in ops.items():
        check = OPERATORS.get(op)
        if check is None:
            raise AssertionFailure(f'JSONPath "{path}": unknown operator "{op}"')
        check(path, results, expected)
