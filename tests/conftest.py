"""Shared pytest fixtures for WonderTwin tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from wondertwin.config import license_checksum
from wondertwin.fleet.manifest import Manifest, parse_manifest
from wondertwin.twinkit.config import TwinConfig
from wondertwin.twinkit.server import TwinServer
from wondertwin.twinkit.testing import TwinClient
from wondertwin.twins.template import create_app


@pytest.fixture
def wt_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI config directory at a temp dir."""
    home = tmp_path / "wt-home"
    monkeypatch.setenv("WT_HOME", str(home))
    monkeypatch.delenv("WT_REGISTRY_URL", raising=False)
    return home


@pytest.fixture
def manifest() -> Manifest:
    """Two-twin manifest; ``acme`` has a separate admin port."""
    return parse_manifest(
        {
            "twins": {
                "acme": {"binary": "/opt/twins/twin-acme", "port": 4100, "admin_port": 4101},
                "stripe": {"binary": "/opt/twins/twin-stripe", "port": 4111},
            }
        },
        Path("/project/wondertwin.yaml"),
    )


@pytest.fixture
def twin_server() -> TwinServer:
    server = TwinServer(TwinConfig(name="twin-template", port=4200))
    create_app(server)
    return server


@pytest.fixture
def twin(twin_server: TwinServer) -> TwinClient:
    """Client for an in-process template twin, authenticated with a sandbox key."""
    return TwinClient(TestClient(twin_server.app), api_key="sk_test_123")


def make_license_key(tier: str = "com", org: str = "acme", random: str = "a1b2c3d4") -> str:
    payload = f"wt_{tier}_{org}_{random}"
    return f"{payload}_{license_checksum(payload)}"


@pytest.fixture
def license_key() -> str:
    return make_license_key()
