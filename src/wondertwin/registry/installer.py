"""
Twin binary installer.

Downloads the binary for the host platform, verifies its sha256 against the
catalog, and places it at ``<binary_dir>/twin-<name>`` with a ``.version``
sidecar recording the installed version. Nothing is written unless the
checksum matches.
"""

from __future__ import annotations

import hashlib
import logging
import os
import platform
from collections.abc import Callable
from pathlib import Path

import httpx

from wondertwin.errors import ChecksumMismatchError, DownloadError, UnsupportedPlatformError
from wondertwin.registry.catalog import VersionRecord, auth_headers

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 300.0

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def host_platform() -> str:
    """``{os}-{arch}`` of this machine in catalog terms, e.g. ``linux-amd64``."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    return f"{system}-{_ARCH_ALIASES.get(machine, machine)}"


def binary_path(twin: str, binary_dir: str | Path) -> Path:
    return Path(binary_dir) / f"twin-{twin}"


def sha256_checksum(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def is_already_installed(twin: str, version: str, binary_dir: str | Path) -> bool:
    """True when the binary and a sidecar naming ``version`` are both present."""
    path = binary_path(twin, binary_dir)
    if not path.exists():
        return False
    try:
        installed = path.with_name(path.name + ".version").read_text(encoding="utf-8")
    except OSError:
        return False
    return installed.strip() == version


def install(
    twin: str,
    version: str,
    record: VersionRecord,
    binary_dir: str | Path,
    *,
    token: str = "",
    platform_tag: str | None = None,
    client: httpx.Client | None = None,
    echo: Callable[[str], None] | None = None,
) -> Path:
    """Download, verify and place one twin binary.

    Args:
        twin: Twin name.
        version: Resolved version string.
        record: Catalog record for that version.
        binary_dir: Destination directory (created if missing).
        token: Registry bearer token, sent with the download.
        platform_tag: Override of the host platform (tests).
        client: Optional httpx client.
        echo: Progress callback; defaults to the module logger.

    Returns:
        Path of the installed binary.

    Raises:
        UnsupportedPlatformError: No binary or checksum for this platform.
        DownloadError: Transport failure or non-200 response.
        ChecksumMismatchError: Downloaded bytes do not match the catalog.
    """
    say = echo or logger.info
    tag = platform_tag or host_platform()

    url = record.binary_urls.get(tag)
    expected = record.checksums.get(tag)
    if not url or not expected:
        raise UnsupportedPlatformError(f"no binary available for platform {tag}")

    say(f"  Downloading twin-{twin} v{version} ({tag})...")
    owned = client is None
    http = client or httpx.Client(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
    try:
        response = http.get(url, headers=auth_headers(token), timeout=DOWNLOAD_TIMEOUT)
    except httpx.HTTPError as e:
        raise DownloadError(f"downloading binary: {e}") from e
    finally:
        if owned:
            http.close()

    if response.status_code != 200:
        raise DownloadError(f"download returned HTTP {response.status_code}")

    data = response.content
    say("  Verifying checksum...")
    actual = sha256_checksum(data)
    if actual != expected:
        raise ChecksumMismatchError(f"checksum mismatch: expected {expected}, got {actual}")

    directory = Path(binary_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = binary_path(twin, directory)
    path.write_bytes(data)
    os.chmod(path, 0o755)
    path.with_name(path.name + ".version").write_text(version, encoding="utf-8")

    say(f"  Installed twin-{twin} v{version} -> {path}")
    return path
