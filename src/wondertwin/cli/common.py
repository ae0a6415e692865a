"""
Shared helpers for ``wt`` commands.

Global options set by the root callback live in :data:`options`; commands
read the manifest path from there.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn

import typer
from rich.console import Console

from wondertwin.errors import WonderTwinError
from wondertwin.fleet.manifest import DEFAULT_MANIFEST, Manifest, load_manifest

console = Console()


@dataclass
class GlobalOptions:
    config: str = DEFAULT_MANIFEST
    verbose: bool = False


options = GlobalOptions()


def configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def fail(message: str, code: int = 1) -> NoReturn:
    """Print ``Error: <message>`` to stderr and exit."""
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=code)


def get_manifest() -> Manifest:
    try:
        return load_manifest(options.config)
    except WonderTwinError as e:
        fail(e.message)
