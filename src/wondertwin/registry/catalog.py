"""
Twin registry catalog.

The catalog is a JSON document listing every published twin, its versions,
and per-platform binary URLs with their sha256 checksums. Unknown fields are
ignored so older clients keep working against newer catalogs.
"""

from __future__ import annotations

import logging
import re

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from wondertwin.config import CLIConfig
from wondertwin.errors import DownloadError, NotFoundError, TierLockedError, ValidationError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 30.0
REQUIRED_PLATFORMS = ("darwin-amd64", "darwin-arm64", "linux-amd64", "linux-arm64")
CHECKSUM_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")
FREE_TIERS = ("", "free")


class VersionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    released: str = ""
    sdk_package: str = ""
    sdk_version: str = ""
    api_version: str | None = None
    tier: str = ""
    checksums: dict[str, str] = Field(default_factory=dict)
    binary_urls: dict[str, str] = Field(default_factory=dict)


class TwinEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = ""
    repo: str = ""
    category: str = ""
    author: str = ""
    latest: str = ""
    versions: dict[str, VersionRecord] = Field(default_factory=dict)


class Catalog(BaseModel):
    """Top-level registry document."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = 1
    twins: dict[str, TwinEntry] = Field(default_factory=dict)

    def resolve_version(self, twin: str, spec: str = "") -> tuple[str, VersionRecord]:
        """Resolve ``latest`` / empty / an exact version for ``twin``.

        Raises:
            NotFoundError: For an unknown twin or version.
        """
        entry = self.twins.get(twin)
        if entry is None:
            raise NotFoundError(f'twin "{twin}" not found in registry')

        version = spec
        if spec in ("", "latest"):
            if not entry.latest:
                raise NotFoundError(f'twin "{twin}" has no latest version defined')
            version = entry.latest

        record = entry.versions.get(version)
        if record is None:
            raise NotFoundError(f'twin "{twin}" version "{version}" not found in registry')
        return version, record

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True) + "\n"


def parse_catalog(data: str | bytes) -> Catalog:
    """Raises ValidationError for a document that is not a catalog."""
    try:
        return Catalog.model_validate_json(data)
    except PydanticValidationError as e:
        raise ValidationError(f"parsing registry: {e}") from e


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def fetch_catalog(
    url: str,
    token: str = "",
    *,
    client: httpx.Client | None = None,
) -> Catalog:
    """GET and parse a catalog.

    Args:
        url: Catalog URL.
        token: Bearer token for private registries.
        client: Optional httpx client (tests inject a mock transport).

    Raises:
        DownloadError: If the request fails or returns non-200.
        ValidationError: If the body is not a catalog.
    """
    owned = client is None
    http = client or httpx.Client(timeout=FETCH_TIMEOUT)
    try:
        response = http.get(url, headers=auth_headers(token), timeout=FETCH_TIMEOUT)
    except httpx.HTTPError as e:
        raise DownloadError(f"fetching registry: {e}") from e
    finally:
        if owned:
            http.close()

    if response.status_code != 200:
        raise DownloadError(f"registry returned HTTP {response.status_code}")

    catalog = parse_catalog(response.content)
    logger.debug("Fetched registry %s (%d twins)", url, len(catalog.twins))
    return catalog


def check_tier_access(
    twin: str,
    version: str,
    record: VersionRecord,
    config: CLIConfig | None,
) -> None:
    """Raises TierLockedError when a paid version is requested without a license."""
    if record.tier in FREE_TIERS:
        return
    if config is None or not config.has_valid_license():
        raise TierLockedError(
            f"twin-{twin} v{version} requires a {record.tier} license.\n"
            f"Run `wt auth login` to activate, or use `wt install {twin}@latest` (free)."
        )
