"""
Catalog updater, run by CI after a twin release is built.

Reads ``twin-<name>/twin-manifest.json`` for the twin's metadata, parses the
release checksum file, and upserts the version into ``registry.json``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from wondertwin.errors import ValidationError
from wondertwin.registry.catalog import (
    REQUIRED_PLATFORMS,
    Catalog,
    TwinEntry,
    VersionRecord,
    parse_catalog,
)

logger = logging.getLogger(__name__)

DEFAULT_REPO = "wondertwin-ai/registry"
TWIN_REPO_URL = "https://github.com/wondertwin-ai/wondertwin"
DEFAULT_AUTHOR = "WonderTwin"
BINARY_URL_TEMPLATE = (
    "https://github.com/{repo}/releases/download/"
    "twin-{twin}-v{version}/twin-{twin}-{platform}"
)


def read_twin_manifest(twin: str, root: str | Path = ".") -> dict[str, Any]:
    """Read ``<root>/twin-<name>/twin-manifest.json``.

    Raises:
        ValidationError: If the file is missing or not a JSON object.
    """
    path = Path(root) / f"twin-{twin}" / "twin-manifest.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValidationError(f"reading manifest: {e}") from e
    except ValueError as e:
        raise ValidationError(f"parsing {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"parsing {path}: expected a JSON object")
    return data


def parse_checksums(text: str, twin: str) -> dict[str, str]:
    """Parse ``<sha256hex>  <filename>`` lines into platform -> ``sha256:<hex>``.

    Lines for other twins' files are skipped; a single space separator is
    accepted too.

    Raises:
        ValidationError: If no line matches the twin.
    """
    prefix = f"twin-{twin}-"
    checksums: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        parts = line.split("  ", 1)
        if len(parts) != 2:
            parts = line.split(" ", 1)
            if len(parts) != 2:
                continue
        digest, filename = parts[0].strip(), parts[1].strip()
        if not filename.startswith(prefix):
            continue
        checksums[filename[len(prefix) :]] = f"sha256:{digest}"

    if not checksums:
        raise ValidationError(f'no checksums found for twin "{twin}"')
    return checksums


def build_version(
    twin: str,
    version: str,
    repo: str,
    manifest: dict[str, Any],
    checksums: dict[str, str],
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> VersionRecord:
    primary = (manifest.get("sdk_target") or {}).get("primary") or {}
    return VersionRecord(
        released=now().astimezone(UTC).strftime("%Y-%m-%d"),
        sdk_package=primary.get("package", ""),
        sdk_version=primary.get("version", ""),
        tier="free",
        checksums=checksums,
        binary_urls={
            p: BINARY_URL_TEMPLATE.format(repo=repo, twin=twin, version=version, platform=p)
            for p in REQUIRED_PLATFORMS
        },
    )


def upsert(
    catalog: Catalog,
    twin: str,
    version: str,
    manifest: dict[str, Any],
    record: VersionRecord,
    *,
    prerelease: bool = False,
) -> None:
    """Insert or replace ``version``; ``latest`` moves unless this is a prerelease.

    The first release of a twin always becomes ``latest``.
    """
    entry = catalog.twins.get(twin)
    if entry is None:
        entry = TwinEntry(
            description=manifest.get("description", ""),
            repo=TWIN_REPO_URL,
            category=manifest.get("category", ""),
            author=DEFAULT_AUTHOR,
        )
        catalog.twins[twin] = entry

    if not prerelease or not entry.latest:
        entry.latest = version
    entry.versions[version] = record


def update_registry(
    twin: str,
    version: str,
    checksums_file: str | Path,
    registry_file: str | Path,
    *,
    repo: str = DEFAULT_REPO,
    prerelease: bool = False,
    root: str | Path = ".",
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> int:
    """Run the whole update; returns the number of platforms recorded."""
    manifest = read_twin_manifest(twin, root)

    try:
        checksums = parse_checksums(Path(checksums_file).read_text(encoding="utf-8"), twin)
    except OSError as e:
        raise ValidationError(f"parsing checksums: {e}") from e

    registry_path = Path(registry_file)
    try:
        catalog = parse_catalog(registry_path.read_bytes())
    except OSError as e:
        raise ValidationError(f"loading registry: {e}") from e

    record = build_version(twin, version, repo, manifest, checksums, now)
    upsert(catalog, twin, version, manifest, record, prerelease=prerelease)
    registry_path.write_text(catalog.to_json(), encoding="utf-8")

    logger.info("Updated registry %s with %s v%s", registry_path, twin, version)
    return len(checksums)
