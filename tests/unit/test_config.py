"""Tests for the CLI config file and license key parsing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from wondertwin.config import (
    PUBLIC_REGISTRY,
    PUBLIC_REGISTRY_URL,
    CLIConfig,
    RegistryEntry,
    config_dir,
    config_path,
    license_checksum,
    load_config,
    parse_license_key,
    save_config,
    tier_name,
)
from wondertwin.errors import ValidationError


def key_for(payload: str) -> str:
    return f"{payload}_{license_checksum(payload)}"


# =============================================================================
# Config file
# =============================================================================


class TestConfigFile:
    def test_wt_home_relocates_directory(self, wt_home: Path) -> None:
        assert config_dir() == wt_home
        assert config_path() == wt_home / "config.yaml"

    def test_missing_file_gives_defaults(self, wt_home: Path) -> None:
        config = load_config()
        assert config.license_key == ""
        assert config.registries[PUBLIC_REGISTRY].url == PUBLIC_REGISTRY_URL

    def test_save_and_load(self, wt_home: Path) -> None:
        config = CLIConfig(license_key="wt_com_x")
        config.registries["internal"] = RegistryEntry(url="https://reg.example/r.json", token="tk")
        path = save_config(config)

        assert path == wt_home / "config.yaml"
        raw = yaml.safe_load(path.read_text())
        assert "token" not in raw["registries"][PUBLIC_REGISTRY]

        loaded = load_config()
        assert loaded.license_key == "wt_com_x"
        assert loaded.registries["internal"].token == "tk"

    def test_json_file_is_read(self, wt_home: Path) -> None:
        wt_home.mkdir(parents=True)
        (wt_home / "config.json").write_text(json.dumps({"license_key": "abc"}))
        assert config_path() == wt_home / "config.json"
        assert load_config().license_key == "abc"

        save_config(CLIConfig(license_key="def"))
        assert json.loads((wt_home / "config.json").read_text())["license_key"] == "def"

    def test_unparseable_file(self, wt_home: Path) -> None:
        wt_home.mkdir(parents=True)
        (wt_home / "config.yaml").write_text("registries: [unclosed")
        with pytest.raises(ValidationError, match="parsing config"):
            load_config()

    def test_public_registry_env_override(
        self, wt_home: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WT_REGISTRY_URL", "http://localhost:9000/registry.json")
        entry = CLIConfig().registry(PUBLIC_REGISTRY)
        assert entry.url == "http://localhost:9000/registry.json"

    def test_env_override_only_affects_public(
        self, wt_home: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WT_REGISTRY_URL", "http://localhost:9000/registry.json")
        config = CLIConfig(registries={"private": RegistryEntry(url="https://p/r.json")})
        assert config.registry("private").url == "https://p/r.json"
        assert config.registry("nope") is None


# =============================================================================
# License keys
# =============================================================================


class TestLicenseKey:
    def test_valid_key(self, license_key: str) -> None:
        info = parse_license_key(license_key)
        assert info is not None
        assert info.tier == "com"
        assert info.org == "acme"
        assert info.tier_name == "commercial"

    def test_random_part_may_contain_underscores(self) -> None:
        info = parse_license_key(key_for("wt_ent_ind_abc_def_ghi"))
        assert info is not None
        assert info.tier_name == "enterprise"
        assert info.org == "ind"

    @pytest.mark.parametrize(
        "key",
        [
            "",
            "not-a-key",
            key_for("wt_pro_acme_a1b2c3d4"),
            key_for("wt_com__a1b2c3d4"),
            key_for("wt_com_acme_abc"),
            key_for("xx_com_acme_a1b2c3d4"),
            "wt_com_acme_a1b2c3d4_zz",
        ],
    )
    def test_invalid_keys(self, key: str) -> None:
        assert parse_license_key(key) is None

    def test_checksum_is_byte_sum(self) -> None:
        assert license_checksum("wt") == f"{(ord('w') + ord('t')) % 256:02x}"

    def test_masked(self, license_key: str) -> None:
        masked = parse_license_key(license_key).masked
        assert masked.startswith("wt_com...")
        assert masked.endswith(license_key[-4:])

    def test_config_license(self, license_key: str) -> None:
        assert CLIConfig(license_key=license_key).has_valid_license() is True
        assert CLIConfig(license_key="junk").has_valid_license() is False

    def test_unknown_tier_name(self) -> None:
        assert tier_name("xyz") == "free"
