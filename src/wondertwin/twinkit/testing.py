"""
Test helpers for twins.

Wraps either an in-process ``TestClient`` (or any httpx client) or the base
URL of a running twin::

    server = TwinServer(TwinConfig(name="twin-acme"))
    state = build(server)
    twin = TwinClient(TestClient(server.app))
    twin.admin.reset()
    twin.admin.inject_fault("/v1/charges", status_code=503)
    assert twin.post("/v1/charges", json={}).status_code == 503
"""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_TIMEOUT = 10.0


def _as_client(target: httpx.Client | str) -> httpx.Client:
    if isinstance(target, str):
        return httpx.Client(base_url=target, timeout=DEFAULT_TIMEOUT)
    return target


class AdminClient:
    """Calls ``/admin/*`` on one twin and decodes JSON responses.

    Each call raises ``httpx.HTTPStatusError`` on a non-2xx answer.
    """

    def __init__(self, target: httpx.Client | str) -> None:
        self.client = _as_client(target)

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.client.request(method, f"/admin{path}", **kwargs)
        response.raise_for_status()
        return response.json() if response.content else None

    def health(self) -> dict[str, Any]:
        return self._json("GET", "/health")

    def reset(self) -> dict[str, Any]:
        return self._json("POST", "/reset")

    def get_state(self) -> Any:
        return self._json("GET", "/state")

    def load_state(self, state: Any) -> dict[str, Any]:
        return self._json("POST", "/state", json=state)

    def inject_fault(
        self,
        endpoint: str,
        *,
        status_code: int = 500,
        body: str = "",
        delay: str = "",
        rate: float = 1.0,
    ) -> dict[str, Any]:
        """Register a fault at ``endpoint`` (a full request path)."""
        payload: dict[str, Any] = {"status_code": status_code, "rate": rate}
        if body:
            payload["body"] = body
        if delay:
            payload["delay"] = delay
        return self._json("POST", f"/fault/{endpoint.lstrip('/')}", json=payload)

    def remove_fault(self, endpoint: str) -> dict[str, Any]:
        return self._json("DELETE", f"/fault/{endpoint.lstrip('/')}")

    def get_faults(self) -> dict[str, Any]:
        return self._json("GET", "/faults")

    def get_requests(self) -> list[dict[str, Any]]:
        return self._json("GET", "/requests")

    def flush_webhooks(self) -> dict[str, Any]:
        return self._json("POST", "/webhooks/flush")

    def advance_time(self, duration: str) -> dict[str, Any]:
        return self._json("POST", "/time/advance", json={"duration": duration})

    def get_time(self) -> dict[str, Any]:
        return self._json("GET", "/time")


class TwinClient:
    """Vendor-side HTTP calls plus an :class:`AdminClient` on the same twin."""

    def __init__(self, target: httpx.Client | str, *, api_key: str = "") -> None:
        self.client = _as_client(target)
        self.admin = AdminClient(self.client)
        self.api_key = api_key

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        merged = dict(headers or {})
        if self.api_key and "Authorization" not in merged:
            merged["Authorization"] = f"Bearer {self.api_key}"
        return merged

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return self.client.request(method, path, headers=self._headers(headers), **kwargs)

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)
