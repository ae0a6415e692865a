"""
Fleet-wide operations shared by the ``wt`` CLI and the agent bridge.

Each function does the work and returns plain outcome records; callers decide
how to render them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from wondertwin.errors import WonderTwinError
from wondertwin.fleet import supervisor
from wondertwin.fleet.client import AdminClient
from wondertwin.fleet.manifest import Manifest
from wondertwin.fleet.supervisor import PID_FILE, PidEntry

logger = logging.getLogger(__name__)

# Time given to freshly started twins to bind their ports.
SETTLE_DELAY = 1.5


@dataclass
class Outcome:
    """What happened to one twin.

    ``status`` is one of ``started``, ``running`` (already), ``stopped``,
    ``already-stopped``, ``reset``, ``skipped``, or ``failed``.
    """

    name: str
    status: str
    pid: int = 0
    port: int = 0
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status == "failed"


@dataclass
class TwinStatus:
    name: str
    pid: int | None
    port: int
    health: str
    url: str


def running_entry(pids: dict[str, PidEntry], name: str) -> PidEntry | None:
    entry = pids.get(name)
    if entry is not None and supervisor.is_running(entry.pid):
        return entry
    return None


def start_fleet(manifest: Manifest, pid_file: Path = PID_FILE) -> list[Outcome]:
    """Start every twin that is not already running and persist the PID map.

    Raises:
        WonderTwinError: If the PID file cannot be read or written.
    """
    pids = supervisor.load_pids(pid_file)
    outcomes = []
    for name in manifest.twin_names():
        twin = manifest.twins[name]
        entry = running_entry(pids, name)
        if entry is not None:
            outcomes.append(Outcome(name, "running", pid=entry.pid, port=twin.port))
            continue

        try:
            pid = supervisor.start(
                name, twin, manifest.settings.log_dir, manifest.settings.verbose
            )
        except WonderTwinError as e:
            logger.warning("Failed to start %s: %s", name, e.message)
            outcomes.append(Outcome(name, "failed", port=twin.port, detail=e.message))
            continue

        pids[name] = PidEntry(pid=pid, port=twin.port, binary=twin.binary)
        outcomes.append(Outcome(name, "started", pid=pid, port=twin.port))

    try:
        supervisor.save_pids(pids, pid_file)
    except OSError as e:
        raise WonderTwinError(f"saving pid state: {e}") from e
    return outcomes


def wait_for_health(
    manifest: Manifest, client: AdminClient, settle: float = SETTLE_DELAY
) -> list[TwinStatus]:
    """Pause for port binding, then probe every twin's health once."""
    if settle > 0:
        time.sleep(settle)
    return [
        TwinStatus(
            name=name,
            pid=None,
            port=twin.port,
            health="healthy" if client.health(twin.admin_port)[0] else "unhealthy",
            url=twin.url,
        )
        for name, twin in sorted(manifest.twins.items())
    ]


def stop_fleet(pid_file: Path = PID_FILE) -> list[Outcome]:
    """Stop every process in the PID file, then remove the file."""
    pids = supervisor.load_pids(pid_file)
    outcomes = []
    for name in sorted(pids):
        entry = pids[name]
        if not supervisor.is_running(entry.pid):
            outcomes.append(Outcome(name, "already-stopped", pid=entry.pid, port=entry.port))
            continue
        try:
            supervisor.stop(name, entry)
        except WonderTwinError as e:
            outcomes.append(Outcome(name, "failed", pid=entry.pid, detail=e.message))
        else:
            outcomes.append(Outcome(name, "stopped", pid=entry.pid, port=entry.port))

    if pids:
        supervisor.remove_pid_file(pid_file)
    return outcomes


def fleet_status(
    manifest: Manifest, client: AdminClient, pid_file: Path = PID_FILE
) -> list[TwinStatus]:
    """PID, port, and health for every manifest twin; unknown or dead PIDs are stopped."""
    pids = supervisor.load_pids(pid_file)
    statuses = []
    for name in manifest.twin_names():
        twin = manifest.twins[name]
        entry = running_entry(pids, name)
        if entry is None:
            statuses.append(TwinStatus(name, None, twin.port, "stopped", twin.url))
            continue
        healthy, _ = client.health(twin.admin_port)
        statuses.append(
            TwinStatus(name, entry.pid, twin.port, "healthy" if healthy else "unhealthy", twin.url)
        )
    return statuses


def reset_fleet(
    manifest: Manifest,
    client: AdminClient,
    names: list[str] | None = None,
    pid_file: Path = PID_FILE,
) -> list[Outcome]:
    """Reset the named twins (all by default); twins not running are skipped.

    Raises:
        NotFoundError: If a requested name is not in the manifest.
    """
    targets = names or manifest.twin_names()
    for name in targets:
        manifest.twin(name)

    pids = supervisor.load_pids(pid_file)
    outcomes = []
    for name in targets:
        twin = manifest.twins[name]
        if running_entry(pids, name) is None:
            outcomes.append(Outcome(name, "skipped", port=twin.port, detail="not running"))
            continue
        try:
            response = client.reset(twin.admin_port)
        except WonderTwinError as e:
            outcomes.append(Outcome(name, "failed", port=twin.port, detail=e.message))
        else:
            outcomes.append(Outcome(name, "reset", port=twin.port, detail=response))
    return outcomes
