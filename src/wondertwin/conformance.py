"""
Conformance harness.

Launches a twin binary on a fixed port and checks that it honours the admin
contract: health, reset, state round trip, fault injection, time advance, and
a clean exit on SIGTERM.
"""

from __future__ import annotations

import json
import logging
import signal
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from wondertwin.checks import CheckResult
from wondertwin.errors import NotFoundError, WonderTwinError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 19876
HEALTH_TIMEOUT = 5.0
HEALTH_INTERVAL = 0.2
SHUTDOWN_TIMEOUT = 5.0


@dataclass
class Report:
    binary: str
    port: int
    results: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return len(self.results) - self.passed


class Harness:
    """Runs the admin-contract checks against one started twin.

    Args:
        base_url: Twin origin, e.g. ``http://localhost:19876``.
        client: httpx client; tests pass one with a mock transport.
        health_timeout: How long to poll ``/admin/health`` before giving up.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.Client | None = None,
        health_timeout: float = HEALTH_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=5.0)
        self.health_timeout = health_timeout

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _post(self, path: str, payload: dict | None = None) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", json=payload)

    def _expect_ok(
        self, name: str, method: str, path: str, payload: dict | None = None, ok: str = ""
    ) -> CheckResult:
        try:
            if method == "GET":
                response = self.client.get(f"{self.base_url}{path}")
            else:
                response = self._post(path, payload)
        except httpx.HTTPError as e:
            return CheckResult(name, False, f"request failed: {e}")
        if response.status_code != 200:
            return CheckResult(name, False, f"expected 200, got {response.status_code}")
        return CheckResult(name, True, ok or f"{method} {path} returned 200")

    def check_health(self) -> CheckResult:
        name = "Twin starts and responds to health check within 5s"
        deadline = time.monotonic() + self.health_timeout
        while time.monotonic() < deadline:
            try:
                response = self.client.get(f"{self.base_url}/admin/health")
            except httpx.HTTPError:
                pass
            else:
                if response.status_code == 200:
                    return CheckResult(name, True, "GET /admin/health returned 200")
            time.sleep(HEALTH_INTERVAL)
        return CheckResult(name, False, "GET /admin/health did not return 200 within 5s")

    def check_reset(self) -> CheckResult:
        return self._expect_ok("POST /admin/reset returns 200", "POST", "/admin/reset")

    def check_state_post(self) -> CheckResult:
        return self._expect_ok(
            "POST /admin/state accepts JSON seed data", "POST", "/admin/state", {"test": True}
        )

    def check_state_get(self) -> CheckResult:
        name = "GET /admin/state returns valid JSON"
        try:
            response = self.client.get(f"{self.base_url}/admin/state")
        except httpx.HTTPError as e:
            return CheckResult(name, False, f"request failed: {e}")
        if response.status_code != 200:
            return CheckResult(name, False, f"expected 200, got {response.status_code}")
        try:
            json.loads(response.content)
        except ValueError:
            return CheckResult(name, False, "response body is not valid JSON")
        return CheckResult(name, True, "GET /admin/state returned valid JSON")

    def check_reset_clears_state(self) -> CheckResult:
        name = "POST /admin/reset clears state"
        try:
            response = self._post("/admin/reset")
        except httpx.HTTPError as e:
            return CheckResult(name, False, f"reset request failed: {e}")
        if response.status_code != 200:
            return CheckResult(name, False, f"reset expected 200, got {response.status_code}")

        try:
            response = self.client.get(f"{self.base_url}/admin/state")
        except httpx.HTTPError as e:
            return CheckResult(name, False, f"state request failed: {e}")
        if response.status_code != 200:
            return CheckResult(name, False, f"state expected 200, got {response.status_code}")
        return CheckResult(name, True, "reset + state check passed")

    def check_fault_injection(self) -> CheckResult:
        return self._expect_ok(
            "POST /admin/fault/{endpoint} injects faults",
            "POST",
            "/admin/fault/test-endpoint",
            {"status": 500, "message": "test fault"},
            ok="POST /admin/fault returned 200",
        )

    def check_time_advance(self) -> CheckResult:
        return self._expect_ok(
            "POST /admin/time/advance advances simulated clock",
            "POST",
            "/admin/time/advance",
            {"seconds": 3600},
        )

    def run_contract(self) -> list[CheckResult]:
        """Health first; the remaining checks only run against a healthy twin."""
        results = [self.check_health()]
        if not results[0].passed:
            return results
        results.append(self.check_reset())
        results.append(self.check_state_post())
        results.append(self.check_state_get())
        results.append(self.check_reset_clears_state())
        results.append(self.check_fault_injection())
        results.append(self.check_time_advance())
        return results


def check_clean_shutdown(proc: subprocess.Popen, timeout: float = SHUTDOWN_TIMEOUT) -> CheckResult:
    name = "Twin shuts down cleanly on SIGTERM within 5s"
    try:
        proc.send_signal(signal.SIGTERM)
    except OSError as e:
        return CheckResult(name, False, f"failed to send SIGTERM: {e}")
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        return CheckResult(name, False, "twin did not exit within 5s after SIGTERM")
    return CheckResult(name, True, "twin exited cleanly after SIGTERM")


def run(
    binary: str | Path,
    port: int = DEFAULT_PORT,
    *,
    client: httpx.Client | None = None,
    health_timeout: float = HEALTH_TIMEOUT,
) -> Report:
    """Start ``binary`` on ``port``, run every check, and stop it.

    Raises:
        NotFoundError: If the binary does not exist.
        WonderTwinError: If the process cannot be started.
    """
    path = Path(binary)
    if not path.exists():
        raise NotFoundError(f"binary not found: {binary}")

    report = Report(binary=str(binary), port=port)
    try:
        proc = subprocess.Popen(
            [str(path), "--port", str(port)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        raise WonderTwinError(f"starting twin: {e}") from e

    logger.debug("Started %s (pid %d) on port %d", binary, proc.pid, port)
    harness = Harness(f"http://localhost:{port}", client=client, health_timeout=health_timeout)
    try:
        report.results.extend(harness.run_contract())
        report.results.append(check_clean_shutdown(proc))
    finally:
        harness.close()
        if proc.poll() is None:
            proc.kill()
            proc.wait()

    return report
