"""
Fleet manifest (``wondertwin.yaml`` / ``wondertwin.json``).

Declares which twins a project runs, where their binaries live, and on
which ports. Relative binary paths resolve against the manifest directory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wondertwin.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST = "wondertwin.yaml"
JSON_MANIFEST = "wondertwin.json"
DEFAULT_LOG_DIR = ".wt/logs"
DEFAULT_BINARY_DIR = "~/.wondertwin/bin"
DEFAULT_REGISTRY = "public"


@dataclass
class TwinSpec:
    """One twin entry of the manifest, with paths resolved."""

    name: str
    port: int
    binary: str = ""
    version: str = ""
    registry: str = DEFAULT_REGISTRY
    admin_port: int = 0
    seed: str = ""
    env: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def admin_url(self) -> str:
        return f"http://localhost:{self.admin_port or self.port}"


@dataclass
class Settings:
    binary_dir: str = DEFAULT_BINARY_DIR
    log_dir: str = DEFAULT_LOG_DIR
    verbose: bool = False


@dataclass
class Manifest:
    twins: dict[str, TwinSpec]
    settings: Settings = field(default_factory=Settings)
    path: Path | None = None

    @property
    def directory(self) -> Path:
        return self.path.parent if self.path is not None else Path.cwd()

    def twin(self, name: str) -> TwinSpec:
        """Raises NotFoundError for a name the manifest does not declare."""
        try:
            return self.twins[name]
        except KeyError:
            raise NotFoundError(f'twin "{name}" not found in manifest') from None

    def twin_names(self) -> list[str]:
        return sorted(self.twins)

    def lock_path(self) -> Path:
        from wondertwin.registry.lockfile import LOCK_FILE

        return self.directory / LOCK_FILE


def expand_path(path: str) -> str:
    if path.startswith("~/"):
        return str(Path.home() / path[2:])
    return path


def resolve_manifest_path(path: str | Path) -> Path:
    """Prefer ``wondertwin.json`` next to a default-named YAML path when it exists."""
    path = Path(path)
    if path.name == DEFAULT_MANIFEST:
        candidate = path.with_name(JSON_MANIFEST)
        if candidate.exists():
            return candidate
    return path


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest.

    Raises:
        ValidationError: If the file is missing, unparseable, or incomplete.
    """
    path = resolve_manifest_path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"reading manifest {path}: {e}") from e

    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"parsing manifest {path}: {e}") from e

    try:
        return parse_manifest(data, path.resolve())
    except ValidationError as e:
        raise ValidationError(f"manifest {path}: {e.message}") from e


def parse_manifest(data: Any, path: Path | None = None) -> Manifest:
    if not isinstance(data, dict) or not data.get("twins"):
        raise ValidationError("manifest has no twins defined")
    if not isinstance(data["twins"], dict):
        raise ValidationError("manifest: twins must be a mapping")

    raw_settings = data.get("settings") or {}
    if not isinstance(raw_settings, dict):
        raise ValidationError("manifest: settings must be a mapping")
    settings = Settings(
        binary_dir=raw_settings.get("binary_dir") or DEFAULT_BINARY_DIR,
        log_dir=raw_settings.get("log_dir") or DEFAULT_LOG_DIR,
        verbose=bool(raw_settings.get("verbose", False)),
    )
    directory = path.parent if path is not None else Path.cwd()

    twins: dict[str, TwinSpec] = {}
    for name, raw in data["twins"].items():
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ValidationError(f'twin "{name}": entry must be a mapping')
        twins[name] = _parse_twin(name, raw, settings, directory)

    return Manifest(twins=twins, settings=settings, path=path)


def _parse_twin(name: str, raw: dict[str, Any], settings: Settings, directory: Path) -> TwinSpec:
    binary = str(raw.get("binary") or "")
    version = str(raw.get("version") or "")
    if not binary and not version:
        raise ValidationError(f'twin "{name}": binary path or version is required')

    if binary:
        binary = _resolve_binary(binary, directory)
    else:
        binary = os.path.join(expand_path(settings.binary_dir), f"twin-{name}")

    port = raw.get("port")
    if not isinstance(port, int) or isinstance(port, bool) or port <= 0:
        raise ValidationError(f'twin "{name}": port is required')

    admin_port = raw.get("admin_port") or port
    raw_env = raw.get("env") or {}
    if not isinstance(raw_env, dict):
        raise ValidationError(f'twin "{name}": env must be a mapping')
    env = {str(k): str(v) for k, v in raw_env.items()}

    return TwinSpec(
        name=name,
        port=port,
        binary=binary,
        version=version,
        registry=raw.get("registry") or DEFAULT_REGISTRY,
        admin_port=admin_port,
        seed=str(raw.get("seed") or ""),
        env=env,
    )


def _resolve_binary(binary: str, directory: Path) -> str:
    if os.path.isabs(binary):
        return binary
    if binary.startswith("~/"):
        return expand_path(binary)
    return str(directory / binary)
