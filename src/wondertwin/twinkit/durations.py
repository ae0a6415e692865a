"""
Duration strings in the ``1h30m``/``250ms`` notation.

Twin flags, ``/admin/config`` and ``/admin/time/advance`` all accept and
return durations in this form, so seeds and scenarios written for any twin
read the same.
"""

from __future__ import annotations

import re
from datetime import timedelta

# Unit -> microseconds
_UNITS: dict[str, float] = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"744h"``, ``"1h30m"`` or ``"-1.5s"``.

    Raises:
        ValueError: If the string is empty, has no unit, or has an unknown unit.
    """
    s = text.strip()
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f'invalid duration "{text}"')

    total = 0.0
    pos = 0
    while pos < len(s):
        match = _COMPONENT.match(s, pos)
        if match is None:
            raise ValueError(f'invalid duration "{text}"')
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()

    return timedelta(microseconds=sign * total)


def _fraction(value: int, unit: int, width: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    return f"{whole}." + f"{frac:0{width}d}".rstrip("0")


def format_duration(value: timedelta) -> str:
    """Render a timedelta as ``"744h0m0s"``, ``"1m30s"``, ``"250ms"`` or ``"0s"``."""
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"

    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_fraction(micros, 1_000, 3)}ms"

    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds = _fraction(rem, 1_000_000, 6)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"
