"""
``wt auth``: activate, show, and clear the license key.
"""

from __future__ import annotations

from typing import Annotated

import typer

from wondertwin.cli.common import fail
from wondertwin.config import load_config, parse_license_key, save_config
from wondertwin.errors import WonderTwinError

auth_app = typer.Typer(
    help="Manage the license key",
    no_args_is_help=True,
)

INDIVIDUAL_ORG = "ind"


@auth_app.command(name="login")
def login(
    key: Annotated[
        str | None, typer.Option("--key", help="License key (prompted when omitted)")
    ] = None,
) -> None:
    """Activate a license key."""
    if key is None:
        key = typer.prompt("Enter license key", default="", show_default=False)
    key = key.strip()
    if not key:
        fail("no license key provided")

    info = parse_license_key(key)
    if info is None:
        fail("invalid license key format")

    try:
        config = load_config()
        config.license_key = key
        save_config(config)
    except WonderTwinError as e:
        fail(e.message)
    except OSError as e:
        fail(f"saving config: {e}")

    if info.org == INDIVIDUAL_ORG:
        typer.echo(f"Activated {info.tier_name} license (individual).")
    else:
        typer.echo(f'Activated {info.tier_name} license for org "{info.org}".')


@auth_app.command(name="status")
def status() -> None:
    """Show the current license tier and org."""
    try:
        config = load_config()
    except WonderTwinError as e:
        fail(e.message)

    if not config.license_key:
        typer.echo("Tier: free (no license key)")
        return

    info = config.license()
    if info is None:
        typer.echo("Tier: free (invalid license key)")
        return

    typer.echo(f"Tier: {info.tier_name}")
    if info.org != INDIVIDUAL_ORG:
        typer.echo(f"Org:  {info.org}")
    typer.echo(f"Key:  {info.masked}")


@auth_app.command(name="logout")
def logout() -> None:
    """Clear the license key."""
    try:
        config = load_config()
        if not config.license_key:
            typer.echo("No license key configured.")
            return
        config.license_key = ""
        save_config(config)
    except WonderTwinError as e:
        fail(e.message)
    except OSError as e:
        fail(f"saving config: {e}")

    typer.echo("License key removed.")
