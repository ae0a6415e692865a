"""HTTP client for the ``/admin/*`` endpoints of running twins."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from wondertwin.errors import WonderTwinError

logger = logging.getLogger(__name__)

ADMIN_TIMEOUT = 5.0


class AdminClient:
    """Talks to twins on ``localhost`` by admin port.

    Args:
        host: Host the twins listen on.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a ``MockTransport``).
    """

    def __init__(
        self,
        host: str = "localhost",
        timeout: float = ADMIN_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.host = host
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def url(self, admin_port: int, path: str) -> str:
        return f"http://{self.host}:{admin_port}/admin{path}"

    def request(self, method: str, admin_port: int, path: str, **kwargs: Any) -> httpx.Response:
        """Raw admin request.

        Raises:
            WonderTwinError: If the twin cannot be reached.
        """
        try:
            return self._client.request(method, self.url(admin_port, path), **kwargs)
        except httpx.HTTPError as e:
            raise WonderTwinError(str(e) or type(e).__name__) from e

    def _expect_ok(self, response: httpx.Response, action: str) -> str:
        body = response.text.strip()
        if response.status_code != 200:
            raise WonderTwinError(f"{action} returned status {response.status_code}: {body}")
        return body

    def health(self, admin_port: int) -> tuple[bool, str]:
        """Returns (healthy, body or error message); never raises."""
        try:
            response = self.request("GET", admin_port, "/health")
        except WonderTwinError as e:
            return False, e.message
        if response.status_code == 200:
            return True, response.text.strip()
        return False, f"status {response.status_code}: {response.text.strip()}"

    def reset(self, admin_port: int) -> str:
        return self._expect_ok(self.request("POST", admin_port, "/reset"), "reset")

    def seed(self, admin_port: int, file_path: str | Path) -> str:
        """POST a JSON file's bytes to ``/admin/state``."""
        try:
            data = Path(file_path).read_bytes()
        except OSError as e:
            raise WonderTwinError(f"reading seed file: {e}") from e

        response = self.request(
            "POST",
            admin_port,
            "/state",
            content=data,
            headers={"Content-Type": "application/json"},
        )
        if response.status_code != 200:
            raise WonderTwinError(
                f"seed failed (status {response.status_code}): {response.text.strip()}"
            )
        return response.text.strip()

    def get(self, admin_port: int, path: str) -> httpx.Response:
        return self.request("GET", admin_port, path)

    def get_config(self, admin_port: int) -> str:
        return self._expect_ok(self.get(admin_port, "/config"), "config")

    def update_config(self, admin_port: int, updates: dict[str, Any]) -> str:
        response = self.request("PUT", admin_port, "/config", json=updates)
        return self._expect_ok(response, "config update")

    def list_quirks(self, admin_port: int) -> str:
        return self._expect_ok(self.get(admin_port, "/quirks"), "quirks")

    def set_quirk(self, admin_port: int, quirk_id: str, enabled: bool) -> str:
        method = "PUT" if enabled else "DELETE"
        response = self.request(method, admin_port, f"/quirks/{quirk_id}")
        return self._expect_ok(response, "enable quirk" if enabled else "disable quirk")
