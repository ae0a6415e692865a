"""Load v2 scenarios from ``.json`` files."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from wondertwin.errors import ValidationError
from wondertwin.scenario.legacy import is_legacy
from wondertwin.scenario.models import Scenario


def load_scenario(path: str | Path) -> Scenario:
    """Parse one scenario file.

    Raises:
        ValidationError: Wrong extension, unreadable or ill-formed JSON,
            missing name, or no steps.
    """
    path = Path(path)
    ext = path.suffix.lower()
    if ext != ".json":
        raise ValidationError(f'v2 runner only supports .json scenarios, got "{ext}"')

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ValidationError(f"reading scenario {path}: {e}") from e

    try:
        scenario = Scenario.model_validate_json(data)
    except PydanticValidationError as e:
        raise ValidationError(f"parsing scenario {path}: {e}") from e

    if not scenario.name:
        raise ValidationError(f"scenario {path}: name is required")
    if not scenario.steps:
        raise ValidationError(f"scenario {path}: at least one step is required")
    return scenario


def scenario_paths(directory: str | Path) -> list[Path]:
    """Scenario files directly in ``directory``: legacy YAML first, then JSON.

    Each group is in name order; other files are ignored.
    """
    directory = Path(directory)
    try:
        files = sorted(entry for entry in directory.iterdir() if entry.is_file())
    except OSError as e:
        raise ValidationError(f"reading scenario directory {directory}: {e}") from e

    legacy = [path for path in files if is_legacy(path)]
    current = [path for path in files if path.suffix.lower() == ".json"]
    return legacy + current
