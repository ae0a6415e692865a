"""
Fleet commands: up, down, status, reset, seed, logs, inspect.
"""

from __future__ import annotations

import json
import shutil
import signal
import subprocess
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from wondertwin.cli.common import console, fail, get_manifest
from wondertwin.errors import WonderTwinError
from wondertwin.fleet import operations
from wondertwin.fleet.client import AdminClient

INSPECT_RESOURCES = ("state", "requests", "faults", "time")


def up_command() -> None:
    """Start all twins defined in the manifest."""
    manifest = get_manifest()

    typer.echo("Starting twins...")
    typer.echo("")
    try:
        outcomes = operations.start_fleet(manifest)
    except WonderTwinError as e:
        fail(e.message)

    for o in outcomes:
        if o.status == "running":
            typer.echo(f"  {o.name:<20} already running (pid {o.pid})")
        elif o.failed:
            typer.echo(f"  {o.name:<20} FAILED - {o.detail}")
        else:
            typer.echo(f"  {o.name:<20} started (pid {o.pid}, port {o.port})")

    typer.echo("")
    typer.echo("Waiting for health checks...")
    typer.echo("")
    with AdminClient() as client:
        statuses = operations.wait_for_health(manifest, client)
    for s in statuses:
        typer.echo(f"  {s.name:<20} {s.health:<10} {s.url}")

    typer.echo("")
    if all(s.health == "healthy" for s in statuses):
        typer.echo("All twins up and healthy.")
    else:
        typer.echo("Some twins failed health check. Use 'wt logs <twin>' to investigate.")

    if any(o.failed for o in outcomes):
        raise typer.Exit(code=1)


def down_command() -> None:
    """Stop all running twins."""
    try:
        outcomes = operations.stop_fleet()
    except WonderTwinError as e:
        fail(e.message)

    if not outcomes:
        typer.echo("No twins running.")
        return

    typer.echo("Stopping twins...")
    typer.echo("")
    for o in outcomes:
        if o.status == "already-stopped":
            typer.echo(f"  {o.name:<20} already stopped")
        elif o.failed:
            typer.echo(f"  {o.name:<20} FAILED - {o.detail}")
        else:
            typer.echo(f"  {o.name:<20} stopped (was pid {o.pid})")
    typer.echo("")
    typer.echo("All twins stopped.")


_HEALTH_STYLES = {"healthy": "green", "unhealthy": "red", "stopped": "dim"}


def status_command() -> None:
    """Health check all twins."""
    manifest = get_manifest()
    try:
        with AdminClient() as client:
            statuses = operations.fleet_status(manifest, client)
    except WonderTwinError as e:
        fail(e.message)

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("TWIN")
    table.add_column("PID")
    table.add_column("PORT")
    table.add_column("HEALTH")
    table.add_column("URL")
    for s in statuses:
        style = _HEALTH_STYLES.get(s.health, "")
        table.add_row(
            s.name,
            str(s.pid) if s.pid is not None else "-",
            str(s.port),
            f"[{style}]{s.health}[/{style}]" if style else s.health,
            s.url,
        )
    console.print()
    console.print(table)
    console.print()


def reset_command() -> None:
    """Reset state on all running twins."""
    manifest = get_manifest()
    typer.echo("Resetting twins...")
    typer.echo("")
    try:
        with AdminClient() as client:
            outcomes = operations.reset_fleet(manifest, client)
    except WonderTwinError as e:
        fail(e.message)

    for o in outcomes:
        if o.status == "skipped":
            typer.echo(f"  {o.name:<20} skipped (not running)")
        elif o.failed:
            typer.echo(f"  {o.name:<20} FAILED - {o.detail}")
        else:
            typer.echo(f"  {o.name:<20} reset   {o.detail}")
    typer.echo("")


def seed_command(
    twin: Annotated[str, typer.Argument(help="Twin name")],
    file: Annotated[Path, typer.Argument(help="JSON seed file")],
) -> None:
    """POST seed data to a twin's /admin/state."""
    manifest = get_manifest()
    try:
        spec = manifest.twin(twin)
        with AdminClient() as client:
            response = client.seed(spec.admin_port, file)
    except WonderTwinError as e:
        fail(e.message)
    typer.echo(f"Seeded {twin}: {response}")


def logs_command(twin: Annotated[str, typer.Argument(help="Twin name")]) -> None:
    """Follow a twin's log file."""
    manifest = get_manifest()
    try:
        manifest.twin(twin)
    except WonderTwinError as e:
        fail(e.message)

    log_path = Path(manifest.settings.log_dir) / f"{twin}.log"
    if not log_path.exists():
        fail(f"no logs found for {twin} (expected {log_path})")

    tail = shutil.which("tail")
    if tail is None:
        fail("tail not found on PATH")

    proc = subprocess.Popen([tail, "-f", "-n", "100", str(log_path)])

    def _forward(signum: int, frame: object) -> None:
        proc.kill()

    previous_int = signal.signal(signal.SIGINT, _forward)
    previous_term = signal.signal(signal.SIGTERM, _forward)
    try:
        proc.wait()
    finally:
        signal.signal(signal.SIGINT, previous_int)
        signal.signal(signal.SIGTERM, previous_term)


def pretty_json(raw: str) -> str | None:
    """Indented JSON, or None when ``raw`` does not parse."""
    try:
        return json.dumps(json.loads(raw), indent=2)
    except ValueError:
        return None


def inspect_command(
    twin: Annotated[str, typer.Argument(help="Twin name")],
    resource: Annotated[
        str, typer.Argument(help="state, requests, faults, or time")
    ] = "state",
) -> None:
    """Query a twin's admin state."""
    if resource not in INSPECT_RESOURCES:
        fail(f'unknown resource "{resource}" (expected state, requests, faults, or time)')

    manifest = get_manifest()
    try:
        spec = manifest.twin(twin)
        with AdminClient() as client:
            response = client.get(spec.admin_port, f"/{resource}")
    except WonderTwinError as e:
        fail(e.message)

    if response.status_code != 200:
        fail(
            f"inspecting {twin}/{resource}: returned status {response.status_code}: "
            f"{response.text.strip()}"
        )

    pretty = pretty_json(response.text)
    if pretty is None:
        typer.echo(response.text, nl=False)
    else:
        typer.echo(pretty)
