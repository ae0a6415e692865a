"""
``wt mcp`` and ``wt conformance``: hand-offs to the agent bridge and the
conformance harness.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from wondertwin.cli.common import fail, get_manifest, options
from wondertwin.errors import WonderTwinError


def mcp_command() -> None:
    """Start the agent bridge over stdio (for coding agents)."""
    from wondertwin.mcp.server import run

    manifest = get_manifest()
    try:
        run(manifest, verbose=options.verbose)
    except WonderTwinError as e:
        fail(e.message)


def conformance_command(
    binary: Annotated[Path, typer.Argument(help="Twin binary to test")],
    port: Annotated[int, typer.Option("--port", help="Port to run the twin on")] = 19876,
) -> None:
    """Run the admin-contract conformance suite against a twin binary."""
    from wondertwin.conformance import run

    typer.echo(f"Running conformance suite against {binary} on port {port}...")
    typer.echo("")
    try:
        report = run(binary.absolute(), port)
    except WonderTwinError as e:
        fail(e.message)

    for r in report.results:
        if r.passed:
            typer.echo(f"  PASS  {r.name} - {r.detail}")
        else:
            typer.echo(f"  FAIL  {r.name}")
            typer.echo(f"        {r.detail}")

    typer.echo("")
    typer.echo(
        f"Results: {report.passed} passed, {report.failed} failed, "
        f"{report.passed + report.failed} total"
    )
    if report.failed:
        raise typer.Exit(code=1)
