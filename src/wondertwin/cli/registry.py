"""
``wt registry``: manage named twin registries in the CLI config.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from wondertwin.cli.common import console, fail
from wondertwin.config import PUBLIC_REGISTRY, RegistryEntry, load_config, save_config
from wondertwin.errors import WonderTwinError

registry_app = typer.Typer(
    help="Manage twin registries",
    no_args_is_help=True,
)


@registry_app.command(name="add")
def add_registry(
    name: Annotated[str, typer.Argument(help="Registry name")],
    url: Annotated[str, typer.Argument(help="Catalog URL")],
    token: Annotated[str, typer.Option("--token", help="Bearer token for a private registry")] = "",
) -> None:
    """Add or replace a named registry."""
    if name == PUBLIC_REGISTRY:
        fail("cannot override the built-in public registry")

    try:
        config = load_config()
        config.registries[name] = RegistryEntry(url=url, token=token)
        save_config(config)
    except WonderTwinError as e:
        fail(e.message)
    except OSError as e:
        fail(f"saving config: {e}")

    typer.echo(f'Registry "{name}" added ({url})')
    if token:
        typer.echo("  Token: configured")


@registry_app.command(name="remove")
def remove_registry(name: Annotated[str, typer.Argument(help="Registry name")]) -> None:
    """Remove a named registry."""
    if name == PUBLIC_REGISTRY:
        fail("cannot remove the built-in public registry")

    try:
        config = load_config()
        if name not in config.registries:
            fail(f'registry "{name}" not found')
        del config.registries[name]
        save_config(config)
    except WonderTwinError as e:
        fail(e.message)
    except OSError as e:
        fail(f"saving config: {e}")

    typer.echo(f'Registry "{name}" removed.')


@registry_app.command(name="list")
def list_registries() -> None:
    """List configured registries."""
    try:
        config = load_config()
    except WonderTwinError as e:
        fail(e.message)

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("NAME")
    table.add_column("URL")
    table.add_column("AUTH")
    for name, entry in sorted(config.registries.items()):
        table.add_row(name, entry.url, "token" if entry.token else "-")
    console.print()
    console.print(table)
    console.print()
