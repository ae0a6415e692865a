"""
``wt test``: run scenario files against the running fleet.

JSON files run through the v2 runner, YAML files through the legacy runner.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer

from wondertwin.cli.common import fail, get_manifest
from wondertwin.errors import WonderTwinError
from wondertwin.fleet.manifest import Manifest
from wondertwin.scenario.legacy import LegacyRunner, is_legacy, load_legacy
from wondertwin.scenario.loader import load_scenario, scenario_paths
from wondertwin.scenario.runner import Runner, ScenarioResult

DEFAULT_SCENARIO_DIR = "./scenarios/"


@dataclass
class Tally:
    passed: int = 0
    failed: int = 0

    def add(self, other: Tally) -> None:
        self.passed += other.passed
        self.failed += other.failed


def _ms(seconds: float) -> str:
    return f"{round(seconds * 1000)}ms"


def print_result(
    name: str, description: str, result: ScenarioResult | None, error: str = ""
) -> Tally:
    """Print one scenario's steps; a scenario-level error counts as one failure."""
    typer.echo(f"\n--- {name} ---")
    if description:
        typer.echo(f"    {description}")
    typer.echo("")

    tally = Tally()
    if result is None:
        typer.echo(f"  ERROR: {error}")
        tally.failed = 1
        return tally

    for step in result.steps:
        label = f"{step.name:<50} ({_ms(step.duration)})"
        if step.passed:
            typer.echo(f"  PASS  {label}")
            tally.passed += 1
        else:
            typer.echo(f"  FAIL  {label}")
            typer.echo(f"        {step.error}")
            tally.failed += 1

    outcome = "PASSED" if result.passed else "FAILED"
    typer.echo(f"\n  Scenario: {outcome} ({_ms(result.duration)})")
    return tally


def run_file(manifest: Manifest, path: Path) -> Tally:
    legacy = is_legacy(path)
    try:
        scenario = load_legacy(path) if legacy else load_scenario(path)
    except WonderTwinError as e:
        typer.echo(f"\n  ERROR loading {path.name}: {e.message}")
        return Tally(failed=1)

    runner = LegacyRunner(manifest) if legacy else Runner(manifest)
    with runner:
        try:
            result = runner.run(scenario)
        except WonderTwinError as e:
            return print_result(scenario.name, scenario.description, None, e.message)
    return print_result(scenario.name, scenario.description, result)


def run_dir(manifest: Manifest, directory: Path) -> Tally:
    tally = Tally()
    for path in scenario_paths(directory):
        tally.add(run_file(manifest, path))
    return tally


def test_command(
    path: Annotated[
        Path, typer.Argument(help="Scenario file or directory")
    ] = Path(DEFAULT_SCENARIO_DIR),
) -> None:
    """Run scenarios (default: ./scenarios/)."""
    manifest = get_manifest()
    if not path.exists():
        fail(f"scenario path {path}: no such file or directory")

    if path.is_dir():
        tally = run_dir(manifest, path)
    else:
        ext = path.suffix.lower()
        if ext != ".json" and not is_legacy(path):
            fail(f'unsupported scenario format "{ext}"')
        tally = run_file(manifest, path)

    typer.echo("")
    typer.echo(
        f"Results: {tally.passed} passed, {tally.failed} failed, "
        f"{tally.passed + tally.failed} total"
    )
    if tally.failed:
        raise typer.Exit(code=1)
