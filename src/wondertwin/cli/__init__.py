"""
WonderTwin CLI.

This package contains the ``wt`` commands:

- fleet.py: up, down, status, reset, seed, logs, inspect
- testing.py: scenario runs
- install.py: registry installs and the lock file
- registry.py / auth.py: CLI config subcommands
- harness.py: agent bridge and conformance hand-offs
- catalog.py: the ``wt-gen-registry`` and ``wt-verify-registry`` tools
"""

from __future__ import annotations

import sys
from typing import Annotated

import typer

from wondertwin import __version__
from wondertwin.cli.auth import auth_app
from wondertwin.cli.common import configure_logging, options
from wondertwin.cli.fleet import (
    down_command,
    inspect_command,
    logs_command,
    reset_command,
    seed_command,
    status_command,
    up_command,
)
from wondertwin.cli.harness import conformance_command, mcp_command
from wondertwin.cli.install import install_command
from wondertwin.cli.registry import registry_app
from wondertwin.cli.testing import test_command
from wondertwin.fleet.manifest import DEFAULT_MANIFEST

app = typer.Typer(
    help="""wt - WonderTwin CLI

Run behavioral twins of third-party APIs locally.

Environment:
  WT_CONFIG         Override default manifest path
  WT_REGISTRY_URL   Override registry URL
""",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    config: Annotated[
        str,
        typer.Option(
            "--config",
            "-c",
            envvar="WT_CONFIG",
            help="Path to manifest (wondertwin.json is preferred next to the default)",
        ),
    ] = DEFAULT_MANIFEST,
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging")] = False,
) -> None:
    """wt main callback for global options."""
    options.config = config
    options.verbose = verbose
    configure_logging(verbose)


@app.command(name="version")
def version_command() -> None:
    """Print the wt version."""
    typer.echo(f"wt {__version__}")


app.command(name="up")(up_command)
app.command(name="down")(down_command)
app.command(name="status")(status_command)
app.command(name="reset")(reset_command)
app.command(name="seed")(seed_command)
app.command(name="logs")(logs_command)
app.command(name="inspect")(inspect_command)
app.command(name="test")(test_command)
app.command(name="install")(install_command)
app.command(name="mcp")(mcp_command)
app.command(name="conformance")(conformance_command)
app.add_typer(registry_app, name="registry")
app.add_typer(auth_app, name="auth")


def main(argv: list[str] | None = None) -> None:
    app(args=argv, standalone_mode=True)


__all__ = ["app", "main"]


if __name__ == "__main__":
    main(sys.argv[1:])
