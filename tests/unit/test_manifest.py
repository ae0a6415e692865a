"""Tests for the fleet manifest loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from wondertwin.errors import NotFoundError, ValidationError
from wondertwin.fleet.manifest import (
    DEFAULT_LOG_DIR,
    Manifest,
    load_manifest,
    parse_manifest,
)

MANIFEST_YAML = """\
twins:
  stripe:
    binary: ./bin/twin-stripe
    port: 4111
    seed: seeds/stripe.json
    env:
      STRIPE_MODE: test
      RETRIES: 3
  resend:
    version: latest
    port: 4112
    admin_port: 4212
settings:
  binary_dir: /opt/twins
  verbose: true
"""


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    path = tmp_path / "wondertwin.yaml"
    path.write_text(MANIFEST_YAML)
    return path


class TestLoadManifest:
    def test_load_yaml(self, manifest_path: Path) -> None:
        manifest = load_manifest(manifest_path)
        assert manifest.twin_names() == ["resend", "stripe"]
        assert manifest.path == manifest_path.resolve()
        assert manifest.settings.verbose is True
        assert manifest.settings.log_dir == DEFAULT_LOG_DIR

    def test_relative_binary_resolves_against_manifest(self, manifest_path: Path) -> None:
        stripe = load_manifest(manifest_path).twin("stripe")
        assert stripe.binary == str(manifest_path.resolve().parent / "bin" / "twin-stripe")

    def test_version_only_twin_uses_binary_dir(self, manifest_path: Path) -> None:
        resend = load_manifest(manifest_path).twin("resend")
        assert resend.binary == "/opt/twins/twin-resend"
        assert resend.version == "latest"
        assert resend.registry == "public"

    def test_ports_and_urls(self, manifest_path: Path) -> None:
        manifest = load_manifest(manifest_path)
        stripe, resend = manifest.twin("stripe"), manifest.twin("resend")
        assert stripe.admin_port == 4111
        assert stripe.url == "http://localhost:4111"
        assert resend.admin_url == "http://localhost:4212"

    def test_env_values_are_strings(self, manifest_path: Path) -> None:
        stripe = load_manifest(manifest_path).twin("stripe")
        assert stripe.env == {"STRIPE_MODE": "test", "RETRIES": "3"}
        assert stripe.seed == "seeds/stripe.json"

    def test_json_preferred_next_to_default_yaml(self, manifest_path: Path) -> None:
        json_path = manifest_path.with_name("wondertwin.json")
        json_path.write_text(json.dumps({"twins": {"only": {"binary": "/b", "port": 1}}}))
        assert load_manifest(manifest_path).twin_names() == ["only"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="reading manifest"):
            load_manifest(tmp_path / "nope.yaml")

    def test_bad_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "fleet.yaml"
        path.write_text("twins: [")
        with pytest.raises(ValidationError, match="parsing manifest"):
            load_manifest(path)

    def test_malformed_twin_names_file(self, tmp_path: Path) -> None:
        path = tmp_path / "fleet.yaml"
        path.write_text("twins:\n  stripe: oops\n")
        with pytest.raises(ValidationError) as exc:
            load_manifest(path)
        assert exc.value.message == f'manifest {path}: twin "stripe": entry must be a mapping'

    def test_lock_path(self, manifest_path: Path) -> None:
        manifest = load_manifest(manifest_path)
        assert manifest.lock_path() == manifest_path.resolve().parent / "wondertwin-lock.json"


class TestParseManifest:
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({}, "no twins defined"),
            ({"twins": {}}, "no twins defined"),
            ({"twins": ["a"]}, "twins must be a mapping"),
            ({"twins": {"a": {"port": 1}}}, "binary path or version is required"),
            ({"twins": {"a": {"binary": "/b"}}}, "port is required"),
            ({"twins": {"a": {"binary": "/b", "port": 0}}}, "port is required"),
            ({"twins": {"stripe": "oops"}}, 'twin "stripe": entry must be a mapping'),
            ({"twins": {"a": {"binary": "/b", "port": 1, "env": ["X"]}}}, "env must be a mapping"),
            ({"twins": {"a": {"binary": "/b", "port": 1}}, "settings": ["a"]}, "settings must"),
        ],
    )
    def test_validation(self, data: dict, message: str) -> None:
        with pytest.raises(ValidationError, match=message):
            parse_manifest(data)

    def test_unknown_twin(self, manifest: Manifest) -> None:
        with pytest.raises(NotFoundError, match='twin "ghost" not found in manifest'):
            manifest.twin("ghost")

    def test_home_relative_binary(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        manifest = parse_manifest({"twins": {"a": {"binary": "~/bin/twin-a", "port": 1}}})
        assert manifest.twin("a").binary == str(tmp_path / "bin" / "twin-a")
