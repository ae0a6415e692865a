"""``wondertwin-lock.json``: the resolved versions of an install, for reproducibility."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from wondertwin.errors import ValidationError

LOCK_FILE = "wondertwin-lock.json"


def _now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def _rfc3339(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class LockedTwin(BaseModel):
    version: str
    resolved_from: str
    sdk_package: str = ""
    sdk_version: str = ""
    checksum: str = ""
    binary_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Required fields first; empty optional fields omitted."""
        result: dict[str, Any] = {"version": self.version, "resolved_from": self.resolved_from}
        result.update(self.model_dump(exclude_defaults=True, exclude={"version", "resolved_from"}))
        return result


class LockFile(BaseModel):
    generated_at: datetime = Field(default_factory=_now)
    registry_fetched_at: datetime = Field(default_factory=_now)
    twins: dict[str, LockedTwin] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": _rfc3339(self.generated_at),
            "registry_fetched_at": _rfc3339(self.registry_fetched_at),
            "twins": {name: twin.to_dict() for name, twin in sorted(self.twins.items())},
        }


def lock_path(directory: str | Path) -> Path:
    return Path(directory) / LOCK_FILE


def exists(directory: str | Path) -> bool:
    return lock_path(directory).exists()


def load(directory: str | Path) -> LockFile:
    """Raises FileNotFoundError if absent, ValidationError if unparseable."""
    data = lock_path(directory).read_text(encoding="utf-8")
    try:
        return LockFile.model_validate_json(data)
    except PydanticValidationError as e:
        raise ValidationError(f"parsing {LOCK_FILE}: {e}") from e


def save(directory: str | Path, lock: LockFile) -> Path:
    path = lock_path(directory)
    path.write_text(json.dumps(lock.to_dict(), indent=2) + "\n", encoding="utf-8")
    return path
