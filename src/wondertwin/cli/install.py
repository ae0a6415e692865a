"""
``wt install``: fetch twin binaries from registries.

With a ``twin@version`` argument, installs that one twin from the public
registry. Without, installs every manifest twin that declares a version,
fetching each named registry at most once, and records the resolved
versions in ``wondertwin-lock.json`` beside the manifest.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated

import typer

from wondertwin.cli.common import fail, get_manifest
from wondertwin.config import PUBLIC_REGISTRY, CLIConfig, load_config
from wondertwin.errors import NotFoundError, TierLockedError, WonderTwinError
from wondertwin.fleet.manifest import DEFAULT_BINARY_DIR, expand_path
from wondertwin.registry import lockfile
from wondertwin.registry.catalog import Catalog, check_tier_access, fetch_catalog
from wondertwin.registry.installer import host_platform, install, is_already_installed
from wondertwin.registry.lockfile import LockedTwin, LockFile

logger = logging.getLogger(__name__)


def parse_install_spec(spec: str) -> tuple[str, str]:
    """``twin@version`` -> ``(twin, version)``; no ``@`` gives an empty version."""
    name, sep, version = spec.rpartition("@")
    if not sep:
        return spec, ""
    return name, version


def _load_cli_config() -> CLIConfig:
    try:
        return load_config()
    except WonderTwinError as e:
        logger.warning("Ignoring unreadable CLI config: %s", e.message)
        return CLIConfig()


def install_one(config: CLIConfig, spec: str) -> None:
    twin, version_spec = parse_install_spec(spec)
    entry = config.registry(PUBLIC_REGISTRY)
    if entry is None:
        raise NotFoundError(f'registry "{PUBLIC_REGISTRY}" not configured')

    typer.echo("Fetching twin registry...")
    catalog = fetch_catalog(entry.url, entry.token)
    version, record = catalog.resolve_version(twin, version_spec or "latest")
    check_tier_access(twin, version, record, config)

    binary_dir = expand_path(DEFAULT_BINARY_DIR)
    if is_already_installed(twin, version, binary_dir):
        typer.echo(f"  twin-{twin} v{version} already installed, skipping.")
        return
    install(twin, version, record, binary_dir, token=entry.token, echo=typer.echo)


def install_manifest(config: CLIConfig) -> list[str]:
    """Install every versioned manifest twin; returns the names that failed."""
    manifest = get_manifest()
    binary_dir = expand_path(manifest.settings.binary_dir)
    cache: dict[str, Catalog] = {}
    fetched_at = datetime.now(UTC).replace(microsecond=0)
    lock = LockFile(generated_at=fetched_at, registry_fetched_at=fetched_at)
    failed: list[str] = []

    typer.echo("")
    for name in manifest.twin_names():
        twin = manifest.twins[name]
        if not twin.version:
            typer.echo(f"  {name:<20} skipped (no version specified, using binary path)")
            continue

        entry = config.registry(twin.registry)
        if entry is None:
            typer.echo(
                f'  {name:<20} FAILED - registry "{twin.registry}" not configured '
                f"(run `wt registry add {twin.registry} <url>`)"
            )
            failed.append(name)
            continue

        catalog = cache.get(twin.registry)
        if catalog is None:
            typer.echo(f'  Fetching registry "{twin.registry}"...')
            try:
                catalog = fetch_catalog(entry.url, entry.token)
            except WonderTwinError as e:
                typer.echo(f"  {name:<20} FAILED - {e.message}")
                failed.append(name)
                continue
            cache[twin.registry] = catalog

        try:
            version, record = catalog.resolve_version(name, twin.version)
            check_tier_access(name, version, record, config)
        except TierLockedError as e:
            typer.echo(f"  {name:<20} BLOCKED - {e.message}")
            failed.append(name)
            continue
        except WonderTwinError as e:
            typer.echo(f"  {name:<20} FAILED - {e.message}")
            failed.append(name)
            continue

        tag = host_platform()
        lock.twins[name] = LockedTwin(
            version=version,
            resolved_from=twin.version,
            sdk_package=record.sdk_package,
            sdk_version=record.sdk_version,
            checksum=record.checksums.get(tag, ""),
            binary_url=record.binary_urls.get(tag, ""),
        )

        if is_already_installed(name, version, binary_dir):
            typer.echo(f"  {name:<20} v{version} already installed, skipping.")
            continue

        try:
            install(name, version, record, binary_dir, token=entry.token, echo=typer.echo)
        except WonderTwinError as e:
            typer.echo(f"  {name:<20} FAILED - {e.message}")
            failed.append(name)
            lock.twins.pop(name, None)

    if lock.twins:
        path = lockfile.save(manifest.directory, lock)
        logger.debug("Wrote %s", path)
    return failed


def install_command(
    spec: Annotated[
        str | None, typer.Argument(help="twin@version (omit to install the manifest)")
    ] = None,
) -> None:
    """Install twins from the manifest, or one twin@version."""
    config = _load_cli_config()

    if spec:
        try:
            install_one(config, spec)
        except WonderTwinError as e:
            fail(e.message)
        return

    failed = install_manifest(config)
    typer.echo("")
    if failed:
        fail(f"failed to install: {', '.join(failed)}")
    typer.echo("All twins installed.")
