"""Tests for client config loading.

Tests cover:
- YAML parsing into ClientConfig with defaults
- ${ENV_VAR} substitution and missing variables
- structural errors (bad YAML, non-mapping, unknown keys, invalid values)
- Client.from_config wiring
"""

from pathlib import Path

import pytest

from request_pipeline.client import Client
from request_pipeline.config_loader import ConfigError, load_client_config
from request_pipeline.models import ClientConfig


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "client.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadClientConfig:
    def test_full_config(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            """
prefix: https://api.example.com
headers:
  Accept: application/json
cookies:
  session: abc
content_type: application/json
basic_auth:
  username: user
  password: pw
agent: pipeline/1.0
retry:
  count: 2
  interval: 0.5
timeout: 10
browser_mode: true
""",
        )
        config = load_client_config(path)
        assert config.prefix == "https://api.example.com"
        assert config.headers == {"Accept": "application/json"}
        assert config.cookies == {"session": "abc"}
        assert config.basic_auth.username == "user"
        assert config.retry.count == 2
        assert config.retry.interval == 0.5
        assert config.timeout == 10.0
        assert config.browser_mode is True

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_client_config(_write(tmp_path, "")) == ClientConfig()

    def test_env_var_substitution(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("API_TOKEN", "secret")
        path = _write(tmp_path, "headers:\n  Authorization: Bearer ${API_TOKEN}\n")
        assert load_client_config(path).headers["Authorization"] == "Bearer secret"

    def test_missing_env_var(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        path = _write(tmp_path, "agent: ${NOT_SET_ANYWHERE}\n")
        with pytest.raises(ConfigError, match="NOT_SET_ANYWHERE"):
            load_client_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_client_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_client_config(_write(tmp_path, "headers: [unclosed\n"))

    def test_non_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_client_config(_write(tmp_path, "- a\n- b\n"))

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_client_config(_write(tmp_path, "retries: 3\n"))

    def test_negative_retry_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_client_config(_write(tmp_path, "retry:\n  count: -1\n"))

    def test_cert_without_key_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_client_config(_write(tmp_path, "cert: /tmp/client.pem\n"))


class TestClientFromConfig:
    def test_from_config(self, tmp_path: Path, transport) -> None:
        path = _write(tmp_path, "prefix: http://api.test\nagent: a/1\nretry:\n  count: 1\n")
        client = Client.from_config(path, transport=transport.client)
        client.get("/x").close()
        assert str(transport.last.url) == "http://api.test/x"
        assert transport.last.headers["user-agent"] == "a/1"
