"""Tests for the fleet supervisor, admin client and fleet-wide operations."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from wondertwin.errors import NotFoundError, ValidationError, WonderTwinError
from wondertwin.fleet import operations, supervisor
from wondertwin.fleet.client import AdminClient
from wondertwin.fleet.manifest import Manifest, TwinSpec
from wondertwin.fleet.supervisor import PidEntry


class FakeTwins:
    """MockTransport handler standing in for twins' admin endpoints."""

    def __init__(self, down: tuple[int, ...] = ()) -> None:
        self.down = down
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, str(request.url)))
        if request.url.port in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path == "/admin/health":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/admin/reset":
            return httpx.Response(200, json={"status": "reset"})
        if path == "/admin/state" and request.method == "POST":
            return httpx.Response(200, json={"status": "loaded", "bytes": len(request.content)})
        if path == "/admin/config" and request.method == "PUT":
            return httpx.Response(200, content=request.content)
        if path.startswith("/admin/quirks/"):
            status = "enabled" if request.method == "PUT" else "disabled"
            return httpx.Response(200, json={"status": status})
        return httpx.Response(404, json={"error": {"message": "not found"}})


@pytest.fixture
def fake() -> FakeTwins:
    return FakeTwins()


@pytest.fixture
def client(fake: FakeTwins) -> AdminClient:
    return AdminClient(transport=httpx.MockTransport(fake))


@pytest.fixture
def pid_file(tmp_path: Path) -> Path:
    return tmp_path / ".wt" / "pids.json"


# =============================================================================
# PID file
# =============================================================================


class TestPidFile:
    def test_round_trip(self, pid_file: Path) -> None:
        pids = {"stripe": PidEntry(pid=123, port=4111, binary="/b/twin-stripe")}
        supervisor.save_pids(pids, pid_file)
        assert supervisor.load_pids(pid_file) == pids
        assert json.loads(pid_file.read_text())["stripe"]["port"] == 4111

    def test_missing_file_is_empty(self, pid_file: Path) -> None:
        assert supervisor.load_pids(pid_file) == {}

    def test_corrupt_file(self, pid_file: Path) -> None:
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text("{not json")
        with pytest.raises(ValidationError, match="parsing"):
            supervisor.load_pids(pid_file)

    def test_save_leaves_no_temp_files(self, pid_file: Path) -> None:
        supervisor.save_pids({}, pid_file)
        assert [p.name for p in pid_file.parent.iterdir()] == ["pids.json"]

    def test_remove_is_idempotent(self, pid_file: Path) -> None:
        supervisor.remove_pid_file(pid_file)
        supervisor.save_pids({}, pid_file)
        supervisor.remove_pid_file(pid_file)
        assert not pid_file.exists()


# =============================================================================
# Processes
# =============================================================================


class TestProcesses:
    def test_is_running(self) -> None:
        assert supervisor.is_running(os.getpid()) is True
        assert supervisor.is_running(0) is False

    def test_start_missing_binary(self, tmp_path: Path) -> None:
        twin = TwinSpec(name="ghost", port=4999, binary=str(tmp_path / "twin-ghost"))
        with pytest.raises(WonderTwinError, match="binary not found"):
            supervisor.start("ghost", twin, tmp_path / "logs")

    def test_start_directory(self, tmp_path: Path) -> None:
        twin = TwinSpec(name="dir", port=4999, binary=str(tmp_path))
        with pytest.raises(WonderTwinError, match="is a directory"):
            supervisor.start("dir", twin, tmp_path / "logs")

    def test_start_and_stop(self, tmp_path: Path) -> None:
        script = tmp_path / "twin-echo"
        script.write_text('#!/bin/sh\necho "args: $*"\necho "mode: $TWIN_MODE"\nexec sleep 30\n')
        script.chmod(0o755)
        twin = TwinSpec(
            name="echo", port=4998, binary=str(script), seed="seed.json", env={"TWIN_MODE": "x"}
        )
        log_dir = tmp_path / "logs"

        pid = supervisor.start("echo", twin, log_dir, verbose=True)
        try:
            assert supervisor.is_running(pid)
        finally:
            supervisor.stop("echo", PidEntry(pid=pid, port=4998, binary=str(script)))
        assert not supervisor.is_running(pid)

        log = (log_dir / "echo.log").read_text()
        assert f"--port 4998 --verbose --seed-file {Path('seed.json').absolute()}" in log
        assert "mode: x" in log


# =============================================================================
# Admin client
# =============================================================================


class TestAdminClient:
    def test_url(self) -> None:
        assert AdminClient().url(4101, "/state") == "http://localhost:4101/admin/state"

    def test_health(self, client: AdminClient) -> None:
        healthy, body = client.health(4100)
        assert healthy is True
        assert json.loads(body) == {"status": "ok"}

    def test_health_unreachable(self) -> None:
        client = AdminClient(transport=httpx.MockTransport(FakeTwins(down=(4100,))))
        healthy, message = client.health(4100)
        assert healthy is False
        assert "connection refused" in message

    def test_reset(self, client: AdminClient, fake: FakeTwins) -> None:
        assert "reset" in client.reset(4101)
        assert fake.calls == [("POST", "http://localhost:4101/admin/reset")]

    def test_non_200_raises(self, client: AdminClient) -> None:
        with pytest.raises(WonderTwinError, match="config returned status 404"):
            client.get_config(4100)

    def test_seed_posts_file(self, client: AdminClient, tmp_path: Path) -> None:
        seed = tmp_path / "seed.json"
        seed.write_text('{"resources": {}}')
        assert json.loads(client.seed(4100, seed))["bytes"] == len('{"resources": {}}')

    def test_seed_missing_file(self, client: AdminClient, tmp_path: Path) -> None:
        with pytest.raises(WonderTwinError, match="reading seed file"):
            client.seed(4100, tmp_path / "missing.json")

    def test_update_config(self, client: AdminClient) -> None:
        assert json.loads(client.update_config(4100, {"latency": "1s"})) == {"latency": "1s"}

    def test_set_quirk(self, client: AdminClient, fake: FakeTwins) -> None:
        client.set_quirk(4100, "q1", True)
        client.set_quirk(4100, "q1", False)
        assert [m for m, _ in fake.calls] == ["PUT", "DELETE"]


# =============================================================================
# Fleet operations
# =============================================================================


class TestStartFleet:
    def test_starts_stopped_twins(self, manifest: Manifest, pid_file: Path) -> None:
        with (
            patch.object(supervisor, "start", side_effect=[1001, 1002]) as start,
            patch.object(supervisor, "is_running", return_value=False),
        ):
            outcomes = operations.start_fleet(manifest, pid_file)

        assert [(o.name, o.status, o.pid) for o in outcomes] == [
            ("acme", "started", 1001),
            ("stripe", "started", 1002),
        ]
        assert start.call_count == 2
        pids = supervisor.load_pids(pid_file)
        assert pids["acme"] == PidEntry(pid=1001, port=4100, binary="/opt/twins/twin-acme")

    def test_running_twins_are_left_alone(self, manifest: Manifest, pid_file: Path) -> None:
        supervisor.save_pids({"acme": PidEntry(pid=555, port=4100, binary="")}, pid_file)
        with (
            patch.object(supervisor, "start", return_value=1002),
            patch.object(supervisor, "is_running", side_effect=lambda pid: pid == 555),
        ):
            outcomes = operations.start_fleet(manifest, pid_file)

        assert [(o.name, o.status) for o in outcomes] == [
            ("acme", "running"),
            ("stripe", "started"),
        ]

    def test_failure_is_reported_and_others_continue(
        self, manifest: Manifest, pid_file: Path
    ) -> None:
        with (
            patch.object(
                supervisor,
                "start",
                side_effect=[WonderTwinError("binary not found: /opt/twins/twin-acme"), 1002],
            ),
            patch.object(supervisor, "is_running", return_value=False),
        ):
            outcomes = operations.start_fleet(manifest, pid_file)

        assert outcomes[0].failed
        assert outcomes[0].detail == "binary not found: /opt/twins/twin-acme"
        assert set(supervisor.load_pids(pid_file)) == {"stripe"}


class TestStopFleet:
    def test_stops_and_removes_pid_file(self, pid_file: Path) -> None:
        supervisor.save_pids(
            {
                "stripe": PidEntry(pid=2, port=4111, binary=""),
                "acme": PidEntry(pid=1, port=4100, binary=""),
            },
            pid_file,
        )
        with (
            patch.object(supervisor, "is_running", side_effect=lambda pid: pid == 1),
            patch.object(supervisor, "stop") as stop,
        ):
            outcomes = operations.stop_fleet(pid_file)

        assert [(o.name, o.status) for o in outcomes] == [
            ("acme", "stopped"),
            ("stripe", "already-stopped"),
        ]
        stop.assert_called_once()
        assert not pid_file.exists()

    def test_nothing_running(self, pid_file: Path) -> None:
        assert operations.stop_fleet(pid_file) == []


class TestStatusAndReset:
    def test_status(self, manifest: Manifest, client: AdminClient, pid_file: Path) -> None:
        supervisor.save_pids({"acme": PidEntry(pid=10, port=4100, binary="")}, pid_file)
        with patch.object(supervisor, "is_running", return_value=True):
            statuses = operations.fleet_status(manifest, client, pid_file)

        assert [(s.name, s.pid, s.health) for s in statuses] == [
            ("acme", 10, "healthy"),
            ("stripe", None, "stopped"),
        ]

    def test_wait_for_health(self, manifest: Manifest) -> None:
        client = AdminClient(transport=httpx.MockTransport(FakeTwins(down=(4111,))))
        statuses = operations.wait_for_health(manifest, client, settle=0)
        assert {s.name: s.health for s in statuses} == {"acme": "healthy", "stripe": "unhealthy"}

    def test_reset_skips_stopped_twins(
        self, manifest: Manifest, client: AdminClient, fake: FakeTwins, pid_file: Path
    ) -> None:
        supervisor.save_pids({"acme": PidEntry(pid=10, port=4100, binary="")}, pid_file)
        with patch.object(supervisor, "is_running", return_value=True):
            outcomes = operations.reset_fleet(manifest, client, pid_file=pid_file)

        assert [(o.name, o.status) for o in outcomes] == [("acme", "reset"), ("stripe", "skipped")]
        assert fake.calls == [("POST", "http://localhost:4101/admin/reset")]

    def test_reset_unknown_twin(self, manifest: Manifest, client: AdminClient) -> None:
        with pytest.raises(NotFoundError):
            operations.reset_fleet(manifest, client, ["ghost"])
