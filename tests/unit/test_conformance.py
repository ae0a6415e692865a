"""Tests for the admin-contract conformance harness."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from wondertwin.conformance import Harness, check_clean_shutdown, run
from wondertwin.errors import NotFoundError


class ContractTwin:
    """MockTransport handler implementing the admin contract, with switchable breakage."""

    def __init__(self, broken: tuple[str, ...] = ()) -> None:
        self.broken = broken
        self.state: dict = {}
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        if path in self.broken:
            return httpx.Response(500, text="broken")
        if path == "/admin/health":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/admin/reset":
            self.state = {}
            return httpx.Response(200, json={"status": "reset"})
        if path == "/admin/state":
            if request.method == "POST":
                self.state = json.loads(request.content)
                return httpx.Response(200, json={"status": "loaded"})
            return httpx.Response(200, json=self.state)
        if path.startswith("/admin/fault/") or path == "/admin/time/advance":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(404)


def harness(twin: ContractTwin, health_timeout: float = 1.0) -> Harness:
    client = httpx.Client(transport=httpx.MockTransport(twin))
    return Harness("http://localhost:19876/", client=client, health_timeout=health_timeout)


class TestHarness:
    def test_all_checks_pass(self) -> None:
        twin = ContractTwin()
        results = harness(twin).run_contract()

        assert len(results) == 7
        assert all(r.passed for r in results), [r for r in results if not r.passed]
        assert ("POST", "/admin/fault/test-endpoint") in twin.calls
        assert ("POST", "/admin/time/advance") in twin.calls

    def test_unhealthy_twin_stops_after_health(self) -> None:
        twin = ContractTwin(broken=("/admin/health",))
        results = harness(twin, health_timeout=0.3).run_contract()

        assert len(results) == 1
        assert results[0].passed is False
        assert "did not return 200 within 5s" in results[0].detail

    def test_unreachable_twin(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(refuse))
        check = Harness("http://localhost:1", client=client).check_reset()
        assert check.passed is False
        assert check.detail == "request failed: connection refused"

    def test_state_must_be_json(self) -> None:
        def text_state(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<state/>")

        client = httpx.Client(transport=httpx.MockTransport(text_state))
        check = Harness("http://localhost:1", client=client).check_state_get()
        assert check.detail == "response body is not valid JSON"

    def test_broken_fault_endpoint(self) -> None:
        twin = ContractTwin(broken=("/admin/fault/test-endpoint",))
        results = harness(twin).run_contract()
        failed = [r for r in results if not r.passed]
        assert [r.name for r in failed] == ["POST /admin/fault/{endpoint} injects faults"]
        assert failed[0].detail == "expected 200, got 500"

    def test_close_only_owned_client(self) -> None:
        borrowed = httpx.Client(transport=httpx.MockTransport(ContractTwin()))
        Harness("http://localhost:1", client=borrowed).close()
        assert borrowed.is_closed is False

        owned = Harness("http://localhost:1")
        owned.close()
        assert owned.client.is_closed is True


class TestRun:
    def test_missing_binary(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError, match="binary not found"):
            run(tmp_path / "twin-missing")

    def test_runs_contract_and_shutdown(self, tmp_path: Path) -> None:
        binary = tmp_path / "twin-fake"
        binary.write_text("")
        proc = MagicMock(pid=4242)
        proc.poll.return_value = 0
        client = httpx.Client(transport=httpx.MockTransport(ContractTwin()))

        with patch("wondertwin.conformance.subprocess.Popen", return_value=proc) as popen:
            report = run(binary, 19999, client=client)

        assert popen.call_args.args[0] == [str(binary), "--port", "19999"]
        assert report.passed == 8
        assert report.failed == 0
        assert report.results[-1].name == "Twin shuts down cleanly on SIGTERM within 5s"
        proc.kill.assert_not_called()


class TestCleanShutdown:
    @pytest.mark.integration
    def test_sigterm_stops_process(self) -> None:
        proc = subprocess.Popen(["sleep", "30"])
        result = check_clean_shutdown(proc, timeout=5.0)
        assert result.passed is True
        assert proc.returncode is not None

    def test_timeout_kills(self) -> None:
        proc = MagicMock()
        proc.wait.side_effect = [subprocess.TimeoutExpired("twin", 0.1), 0]
        result = check_clean_shutdown(proc, timeout=0.1)
        assert result.passed is False
        assert result.detail == "twin did not exit within 5s after SIGTERM"
        proc.kill.assert_called_once()
