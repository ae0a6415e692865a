"""
WonderTwin - behavioral twins of third-party APIs for local development.

Runs a fleet of twin processes that speak vendor wire protocols, and
provides the kit, registry, scenario engine, and agent bridge around them.
"""

from __future__ import annotations

import re
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _metadata_version
from pathlib import Path as _Path

from .errors import (
    NotFoundError,
    TierLockedError,
    ValidationError,
    WonderTwinError,
)


def _get_version() -> str:
    """Get version from pyproject.toml (editable) or importlib.metadata (installed)."""
    pyproject = _Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject.exists():
        content = pyproject.read_text()
        if match := re.search(r'^version\s*=\s*["\']([^"\']+)["\']', content, re.MULTILINE):
            return match.group(1)

    try:
        return _metadata_version("wondertwin")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _get_version()

__all__ = [
    "__version__",
    "WonderTwinError",
    "ValidationError",
    "NotFoundError",
    "TierLockedError",
]
