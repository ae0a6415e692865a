"""
Catalog maintenance tools, installed as ``wt-gen-registry`` and
``wt-verify-registry``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from wondertwin.checks import all_passed, format_results
from wondertwin.errors import WonderTwinError
from wondertwin.registry.updater import DEFAULT_REPO, update_registry
from wondertwin.registry.verifier import DEFAULT_REGISTRY_URL, verify

gen_app = typer.Typer(help="Add a released twin version to a registry.json")
verify_app = typer.Typer(help="Validate a published registry.json")


@gen_app.command()
def gen_registry(
    twin: Annotated[str, typer.Option("--twin", help="Twin name (e.g. stripe)")],
    version: Annotated[str, typer.Option("--version", help="Version string (e.g. 0.1.0)")],
    checksums_file: Annotated[
        Path, typer.Option("--checksums-file", help="Path to checksums file")
    ],
    registry_file: Annotated[Path, typer.Option("--registry-file", help="Path to registry.json")],
    repo: Annotated[
        str, typer.Option("--repo", help="GitHub repo for download URLs")
    ] = DEFAULT_REPO,
    prerelease: Annotated[
        bool, typer.Option("--prerelease", help="Do not move 'latest' to this version")
    ] = False,
) -> None:
    """Upsert one version into the catalog file."""
    try:
        platforms = update_registry(
            twin,
            version,
            checksums_file,
            registry_file,
            repo=repo,
            prerelease=prerelease,
        )
    except WonderTwinError as e:
        typer.echo(f"gen-registry: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    except OSError as e:
        typer.echo(f"gen-registry: writing registry: {e}", err=True)
        raise typer.Exit(code=1) from e

    typer.echo(f"Updated registry: {twin} v{version} ({platforms} platforms)")


@verify_app.command()
def verify_registry(
    registry_url: Annotated[
        str, typer.Option("--registry-url", help="URL of the registry.json to validate")
    ] = DEFAULT_REGISTRY_URL,
) -> None:
    """Check structure, checksums, and binary reachability of a catalog."""
    results = verify(registry_url)
    for line in format_results(results):
        typer.echo(line)
    if not all_passed(results):
        raise typer.Exit(code=1)


def gen_main() -> None:
    gen_app()


def verify_main() -> None:
    verify_app()
