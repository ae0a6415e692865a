"""
CLI configuration and license keys.

The ``wt`` command keeps per-user state in ``~/.wondertwin/config.yaml``
(``config.json`` is read too): the license key and the named registries.
``WT_HOME`` relocates the directory, which tests and sandboxes rely on.

License keys look like ``wt_{tier}_{org}_{random}_{check}`` where ``check``
is the two-digit lowercase hex of the byte sum of everything before it.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from wondertwin.errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".wondertwin"
CONFIG_FILE = "config.yaml"
CONFIG_FILE_JSON = "config.json"

PUBLIC_REGISTRY = "public"
PUBLIC_REGISTRY_URL = "https://raw.githubusercontent.com/wondertwin-ai/registry/main/registry.json"

PAID_TIERS = ("com", "ent")
TIER_NAMES = {"com": "commercial", "ent": "enterprise"}


# =============================================================================
# Config file
# =============================================================================


class RegistryEntry(BaseModel):
    url: str
    token: str = ""


class CLIConfig(BaseModel):
    """Contents of ``~/.wondertwin/config.yaml``."""

    license_key: str = ""
    registries: dict[str, RegistryEntry] = Field(default_factory=dict)

    def model_post_init(self, __context: object) -> None:
        self.registries.setdefault(PUBLIC_REGISTRY, RegistryEntry(url=PUBLIC_REGISTRY_URL))

    def license(self) -> LicenseInfo | None:
        return parse_license_key(self.license_key)

    def has_valid_license(self) -> bool:
        return self.license() is not None

    def registry(self, name: str) -> RegistryEntry | None:
        """Look up a registry; ``public`` honours ``WT_REGISTRY_URL``."""
        entry = self.registries.get(name)
        if name == PUBLIC_REGISTRY:
            override = os.environ.get("WT_REGISTRY_URL")
            if override:
                return RegistryEntry(url=override, token=entry.token if entry else "")
        return entry


def config_dir() -> Path:
    home = os.environ.get("WT_HOME")
    if home:
        return Path(home)
    return Path.home() / CONFIG_DIR_NAME


def config_path() -> Path:
    """The config file in use: YAML unless only a JSON file exists."""
    directory = config_dir()
    yaml_path = directory / CONFIG_FILE
    json_path = directory / CONFIG_FILE_JSON
    if not yaml_path.exists() and json_path.exists():
        return json_path
    return yaml_path


def load_config() -> CLIConfig:
    """Read the CLI config; a missing file yields the defaults.

    Raises:
        ValidationError: If the file exists but cannot be parsed.
    """
    path = config_path()
    if not path.exists():
        return CLIConfig()

    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"parsing config {path}: {e}") from e

    try:
        return CLIConfig.model_validate(data or {})
    except PydanticValidationError as e:
        raise ValidationError(f"invalid config {path}: {e}") from e


def save_config(config: CLIConfig) -> Path:
    """Write the config back to the file it was loaded from (YAML by default)."""
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump()
    for entry in data["registries"].values():
        if not entry.get("token"):
            entry.pop("token", None)

    if path.suffix == ".json":
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(data, sort_keys=True), encoding="utf-8")
    logger.debug("Saved CLI config to %s", path)
    return path


# =============================================================================
# License keys
# =============================================================================


@dataclass(frozen=True)
class LicenseInfo:
    tier: str
    org: str
    raw: str

    @property
    def tier_name(self) -> str:
        return tier_name(self.tier)

    @property
    def masked(self) -> str:
        """The key shortened to ``wt_com...abcd`` for display."""
        if len(self.raw) <= 10:
            return self.raw
        return f"{self.raw[:6]}...{self.raw[-4:]}"


def license_checksum(payload: str) -> str:
    return f"{sum(payload.encode()) % 256:02x}"


def parse_license_key(key: str) -> LicenseInfo | None:
    """Parse ``wt_{tier}_{org}_{random}_{check}``; None for any malformed key.

    The random part may itself contain underscores.
    """
    if not key:
        return None

    parts = key.split("_")
    if len(parts) < 5 or parts[0] != "wt":
        return None

    tier, org = parts[1], parts[2]
    if tier not in PAID_TIERS or not org:
        return None

    check = parts[-1]
    if len(check) != 2:
        return None

    random_part = "_".join(parts[3:-1])
    if len(random_part) < 6:
        return None

    if check != license_checksum("_".join(parts[:-1])):
        return None

    return LicenseInfo(tier=tier, org=org, raw=key)


def tier_name(tier: str) -> str:
    return TIER_NAMES.get(tier, "free")
