"""Unit tests for ARIConfig."""

import json
from urllib.parse import parse_qs, urlsplit

import pytest
from pydantic import ValidationError

from asterisk_ari.config import ARIConfig


class TestARIConfig:
    """Test cases for configuration validation and helpers."""

    def test_defaults(self, ari_config: ARIConfig):
        assert ari_config.port == 8088
        assert ari_config.max_reconnect_attempts is None
        assert ari_config.reconnect_backoff_factor == 2.0
        assert ari_config.log_level == "INFO"

    def test_urls(self, ari_config: ARIConfig):
        assert ari_config.base_url == "http://localhost:8088"
        assert ari_config.ari_url == "http://localhost:8088/ari"
        assert ari_config.websocket_url == "ws://localhost:8088/ari/events"

    def test_ssl_urls(self, ari_test_config):
        config = ARIConfig(**ari_test_config, use_ssl=True)

        assert config.base_url.startswith("https://")
        assert config.websocket_url.startswith("wss://")

    def test_build_websocket_url_subscribes_all(self, ari_config: ARIConfig):
        url = ari_config.build_websocket_url(["app1", "app2"])

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        assert parts.path == "/ari/events"
        assert query == {
            "app": ["app1,app2"],
            "api_key": ["test_user:test_password"],
            "subscribeAll": ["true"],
        }

    def test_build_websocket_url_with_event_filter(self, ari_config: ARIConfig):
        url = ari_config.build_websocket_url(["app1"], ["StasisStart", "StasisEnd"])

        query = parse_qs(urlsplit(url).query)
        assert query["event"] == ["StasisStart,StasisEnd"]
        assert "subscribeAll" not in query

    @pytest.mark.parametrize("field, value", [
        ("host", ""),
        ("username", "   "),
        ("password", ""),
        ("port", 0),
        ("log_level", "VERBOSE"),
        ("reconnect_backoff_factor", 0.5),
        ("max_reconnect_attempts", -1),
    ])
    def test_invalid_values(self, ari_test_config, field, value):
        with pytest.raises(ValidationError):
            ARIConfig(**{**ari_test_config, field: value})

    def test_initial_reconnect_delay_above_cap(self, ari_test_config):
        with pytest.raises(ValidationError):
            ARIConfig(**ari_test_config, reconnect_initial_delay=60, reconnect_max_delay=30)

    def test_retry_backoff_above_cap(self, ari_test_config):
        with pytest.raises(ValidationError):
            ARIConfig(**ari_test_config, retry_backoff=20, max_retry_delay=10)

    def test_log_level_normalized(self, ari_test_config):
        assert ARIConfig(**ari_test_config, log_level="warning").log_level == "WARNING"

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ASTERISK_ARI_HOST", "pbx.example.com")
        monkeypatch.setenv("ASTERISK_ARI_PORT", "8089")
        monkeypatch.setenv("ASTERISK_ARI_USERNAME", "env_user")
        monkeypatch.setenv("ASTERISK_ARI_PASSWORD", "env_password")
        monkeypatch.setenv("ASTERISK_ARI_MAX_RECONNECT_ATTEMPTS", "5")

        config = ARIConfig.from_env()

        assert config.host == "pbx.example.com"
        assert config.port == 8089
        assert config.username == "env_user"
        assert config.max_reconnect_attempts == 5

    def test_from_json_file(self, tmp_path, ari_test_config):
        path = tmp_path / "ari.json"
        path.write_text(json.dumps(ari_test_config))

        config = ARIConfig.from_file(str(path))

        assert config.username == "test_user"

    def test_from_toml_file(self, tmp_path):
        path = tmp_path / "ari.toml"
        path.write_text(
            'host = "pbx.local"\n'
            'username = "toml_user"\n'
            'password = "toml_password"\n'
            "reconnect_initial_delay = 0.5\n"
        )

        config = ARIConfig.from_file(str(path))

        assert config.host == "pbx.local"
        assert config.reconnect_initial_delay == 0.5

    def test_from_file_missing_and_unsupported(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ARIConfig.from_file(str(tmp_path / "missing.json"))

        path = tmp_path / "ari.yaml"
        path.write_text("host: pbx")
        with pytest.raises(ValueError):
            ARIConfig.from_file(str(path))

    def test_password_masked(self, ari_config: ARIConfig):
        masked = ari_config.mask_sensitive_data()

        assert masked["password"] == "*" * len("test_password")
        assert "test_password" not in repr(ari_config)

    def test_websocket_kwargs(self, ari_test_config):
        config = ARIConfig(**ari_test_config, use_ssl=True, verify_ssl=False, websocket_ping_interval=15)

        kwargs = config.get_websocket_kwargs()

        assert kwargs["heartbeat"] == 15
        assert kwargs["ssl"] is False
        assert kwargs["max_msg_size"] == config.websocket_max_size

    def test_display_name(self, ari_test_config):
        assert ARIConfig(**ari_test_config).display_name == "localhost:8088"
        assert ARIConfig(**ari_test_config, client_name="billing").display_name == "billing"
