"""
Catalog verifier.

Fetches a live catalog and checks that it is well formed: a schema version,
at least one twin, ``latest`` pointing at a real version, all four platforms
present with well-formed checksums, and every binary URL reachable.
"""

from __future__ import annotations

import json
import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from wondertwin.checks import CheckResult
from wondertwin.config import PUBLIC_REGISTRY_URL
from wondertwin.registry.catalog import (
    CHECKSUM_PATTERN,
    FETCH_TIMEOUT,
    REQUIRED_PLATFORMS,
    Catalog,
    TwinEntry,
    VersionRecord,
)

logger = logging.getLogger(__name__)

HEAD_TIMEOUT = 15.0
DEFAULT_REGISTRY_URL = PUBLIC_REGISTRY_URL


def valid_checksum(checksum: str) -> bool:
    return CHECKSUM_PATTERN.match(checksum) is not None


def verify(url: str, *, client: httpx.Client | None = None) -> list[CheckResult]:
    """Run every check against the catalog at ``url``.

    Stops early only when the catalog cannot be fetched or parsed, or lists
    no twins.
    """
    owned = client is None
    http = client or httpx.Client(follow_redirects=True)
    try:
        return _verify(url, http)
    finally:
        if owned:
            http.close()


def _verify(url: str, http: httpx.Client) -> list[CheckResult]:
    results: list[CheckResult] = []

    try:
        response = http.get(url, timeout=FETCH_TIMEOUT)
    except httpx.HTTPError as e:
        return [CheckResult("Fetch registry", False, f"fetching registry: {e}")]
    if response.status_code != 200:
        detail = f"registry returned HTTP {response.status_code}"
        return [CheckResult("Fetch registry", False, detail)]
    results.append(CheckResult("Fetch registry", True, url))

    try:
        raw = json.loads(response.content)
        catalog = Catalog.model_validate(raw)
    except (ValueError, PydanticValidationError) as e:
        results.append(CheckResult("Parse JSON", False, str(e)))
        return results
    results.append(CheckResult("Parse JSON", True))

    schema_version = raw.get("schema_version", 0) if isinstance(raw, dict) else 0
    if not isinstance(schema_version, int) or schema_version < 1:
        results.append(
            CheckResult("Schema version", False, f"got {schema_version}, expected >= 1")
        )
    else:
        results.append(CheckResult("Schema version", True, str(schema_version)))

    if not catalog.twins:
        results.append(CheckResult("Twins present", False, "registry has no twins"))
        return results
    results.append(CheckResult("Twins present", True, f"{len(catalog.twins)} twin(s)"))

    for name in sorted(catalog.twins):
        results.extend(_check_twin(name, catalog.twins[name], http))
    return results


def _check_twin(name: str, entry: TwinEntry, http: httpx.Client) -> list[CheckResult]:
    results: list[CheckResult] = []
    if not entry.latest:
        results.append(CheckResult(f"[{name}] latest defined", False, "latest is empty"))
    elif entry.latest not in entry.versions:
        results.append(
            CheckResult(
                f"[{name}] latest exists in versions",
                False,
                f'latest="{entry.latest}" not found in versions',
            )
        )
    else:
        results.append(CheckResult(f"[{name}] latest exists in versions", True, entry.latest))

    for version in sorted(entry.versions):
        results.extend(_check_version(name, version, entry.versions[version], http))
    return results


def _check_version(
    name: str, version: str, record: VersionRecord, http: httpx.Client
) -> list[CheckResult]:
    prefix = f"[{name}@{version}]"
    results = [
        _check_platforms(f"{prefix} binary_urls", record.binary_urls),
        _check_platforms(f"{prefix} checksums", record.checksums),
    ]

    for platform, checksum in sorted(record.checksums.items()):
        if not valid_checksum(checksum):
            results.append(CheckResult(f"{prefix} checksum format {platform}", False, checksum))

    for platform, url in sorted(record.binary_urls.items()):
        ok, detail = head_check(url, http)
        results.append(CheckResult(f"{prefix} reachable {platform}", ok, detail))
    return results


def _check_platforms(label: str, mapping: dict[str, str]) -> CheckResult:
    missing = [p for p in REQUIRED_PLATFORMS if p not in mapping]
    if missing:
        return CheckResult(f"{label} platforms", False, "missing: " + ", ".join(missing))
    return CheckResult(f"{label} platforms", True, f"{len(mapping)} platforms")


def head_check(url: str, http: httpx.Client) -> tuple[bool, str]:
    """HEAD the URL; on 403/405 retry as a one-byte ranged GET."""
    try:
        response = http.head(url, timeout=HEAD_TIMEOUT)
    except httpx.HTTPError as e:
        return False, str(e)
    if response.status_code == 200:
        return True, "200 OK"

    if response.status_code in (403, 405):
        try:
            retry = http.get(url, headers={"Range": "bytes=0-0"}, timeout=HEAD_TIMEOUT)
        except httpx.HTTPError as e:
            return False, str(e)
        if retry.status_code in (200, 206):
            return True, f"{retry.status_code} (GET range fallback)"
        return False, f"HTTP {retry.status_code}"

    return False, f"HTTP {response.status_code}"
