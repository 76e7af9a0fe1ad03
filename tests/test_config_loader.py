"""Tests for delphix_client.config_loader.

Tests cover:
- YAML loading into ClientConfig
- ${ENV_VAR} substitution
- Error reporting for missing files, bad YAML and bad structure
- Command-line style overrides
"""

from pathlib import Path

import pytest

from delphix_client.config_loader import ConfigError, load_client_config, merge_overrides
from delphix_client.models import ApiVersion, ClientConfig


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "delphix.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadClientConfig:
    def test_full_config(self, tmp_path: Path):
        path = write_config(
            tmp_path,
            """
server: delphix.example.com
api_user: delphix_admin
api_password: secret
api_version: "1.4.3"
timeout: 30
default_headers:
  X-Tenant: blue
body_mode: raw
""",
        )
        config = load_client_config(path)
        assert config.server == "delphix.example.com"
        assert config.api_version == ApiVersion(major=1, minor=4, micro=3)
        assert config.timeout == 30
        assert config.default_headers == {"X-Tenant": "blue"}
        assert config.body_mode.value == "raw"

    def test_unquoted_float_version(self, tmp_path: Path):
        config = load_client_config(write_config(tmp_path, "api_version: 1.4\n"))
        assert str(config.api_version) == "1.4.0"

    def test_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DELPHIX_PASSWORD", "from-env")
        path = write_config(tmp_path, "api_password: ${DELPHIX_PASSWORD}\n")
        assert load_client_config(path).api_password == "from-env"

    def test_nested_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TENANT", "green")
        path = write_config(tmp_path, "default_headers:\n  X-Tenant: tenant-${TENANT}\n")
        assert load_client_config(path).default_headers == {"X-Tenant": "tenant-green"}

    def test_missing_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("DELPHIX_UNSET_VAR", raising=False)
        path = write_config(tmp_path, "api_password: ${DELPHIX_UNSET_VAR}\n")
        with pytest.raises(ConfigError, match="DELPHIX_UNSET_VAR"):
            load_client_config(path)

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        assert load_client_config(write_config(tmp_path, "")) == ClientConfig()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_client_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_client_config(write_config(tmp_path, "server: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="must be a YAML mapping"):
            load_client_config(write_config(tmp_path, "- a\n- b\n"))

    def test_invalid_structure(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_client_config(write_config(tmp_path, "timeout: -5\n"))

    def test_unknown_key(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            load_client_config(write_config(tmp_path, "hostname: x\n"))


class TestMergeOverrides:
    def test_none_values_ignored(self):
        base = ClientConfig(server="a.example.com", timeout=5)
        merged = merge_overrides(base, server=None, timeout=None)
        assert merged == base

    def test_overrides_applied(self):
        base = ClientConfig(server="a.example.com", api_version="1.0.0")
        merged = merge_overrides(base, server="b.example.com", api_version="1.4.3")
        assert merged.server == "b.example.com"
        assert str(merged.api_version) == "1.4.3"
        assert base.server == "a.example.com"

    def test_invalid_override(self):
        with pytest.raises(ConfigError, match="Invalid setting"):
            merge_overrides(ClientConfig(), timeout=-1)
