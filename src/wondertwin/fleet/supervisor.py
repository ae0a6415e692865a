"""
Twin process supervisor.

Starts twin binaries as detached background processes with their output in
``<log_dir>/<name>.log``, stops them with SIGTERM (SIGKILL after 5 s), and
persists what is running in ``.wt/pids.json`` so later ``wt`` invocations can
find the processes again.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
import tempfile
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from wondertwin.errors import ValidationError, WonderTwinError
from wondertwin.fleet.manifest import TwinSpec

logger = logging.getLogger(__name__)

PID_FILE = Path(".wt/pids.json")
STOP_TIMEOUT = 5.0
POLL_INTERVAL = 0.1


@dataclass
class PidEntry:
    pid: int
    port: int
    binary: str


PidMap = dict[str, PidEntry]


# =============================================================================
# PID file
# =============================================================================


def load_pids(path: Path = PID_FILE) -> PidMap:
    """Read the PID file; a missing file is an empty map.

    Raises:
        ValidationError: If the file exists but is not valid JSON.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except ValueError as e:
        raise ValidationError(f"parsing {path}: {e}") from e

    return {
        name: PidEntry(pid=int(e["pid"]), port=int(e.get("port", 0)), binary=e.get("binary", ""))
        for name, e in raw.items()
    }


def save_pids(pids: PidMap, path: Path = PID_FILE) -> None:
    """Write the PID file whole, via a temp file and an atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps({name: asdict(e) for name, e in pids.items()}, indent=2)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".pids.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def remove_pid_file(path: Path = PID_FILE) -> None:
    path.unlink(missing_ok=True)


# =============================================================================
# Processes
# =============================================================================


def is_running(pid: int) -> bool:
    """Probe a process with signal 0."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def start(name: str, twin: TwinSpec, log_dir: str | Path, verbose: bool = False) -> int:
    """Launch a twin binary in its own session and return its PID.

    Args:
        name: Twin name; the log file is ``<log_dir>/<name>.log``.
        twin: Manifest entry (binary, port, seed file, env overrides).
        log_dir: Directory for log files; created if missing.
        verbose: Pass ``--verbose`` to the twin.

    Raises:
        WonderTwinError: If the binary is missing or cannot be started.
    """
    binary = Path(twin.binary).absolute()
    if not binary.exists():
        raise WonderTwinError(f"binary not found: {binary}")
    if binary.is_dir():
        raise WonderTwinError(f"binary path is a directory: {binary}")

    args = [str(binary), "--port", str(twin.port)]
    if verbose:
        args.append("--verbose")
    if twin.seed:
        args += ["--seed-file", str(Path(twin.seed).absolute())]

    env = {**os.environ, **twin.env}

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = open(log_dir / f"{name}.log", "wb")  # noqa: SIM115 - closed by the waiter
    try:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        log_file.close()
        raise WonderTwinError(f"starting {name}: {e}") from e

    def wait() -> None:
        proc.wait()
        log_file.close()

    threading.Thread(target=wait, name=f"wait-{name}", daemon=True).start()
    logger.debug("Started %s (pid %d) on port %d", name, proc.pid, twin.port)
    return proc.pid


def stop(name: str, entry: PidEntry) -> None:
    """SIGTERM the process, wait up to 5 s, then SIGKILL. No-op when not running."""
    if not is_running(entry.pid):
        return

    try:
        os.kill(entry.pid, signal.SIGTERM)
    except ProcessLookupError:
        return

    deadline = time.monotonic() + STOP_TIMEOUT
    while time.monotonic() < deadline:
        if not is_running(entry.pid):
            logger.debug("Stopped %s (pid %d)", name, entry.pid)
            return
        time.sleep(POLL_INTERVAL)

    logger.warning("%s did not exit after SIGTERM, killing pid %d", name, entry.pid)
    try:
        os.kill(entry.pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    time.sleep(POLL_INTERVAL)
