"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Default values are applied when nothing is configured
- Environment names are normalized and resolved to URLs
- Validation catches invalid configurations

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest

from core.config import Settings, settings, validate_configuration
from exchanges.paradex.urls import Environment


class TestConfigurationDefaults:
    """Defaults of a Settings instance built without a .env file"""

    def test_default_environment_is_testnet(self):
        s = Settings(_env_file=None)
        assert s.paradex_environment == "testnet"
        assert s.environment_url is Environment.TESTNET

    def test_websocket_defaults(self):
        s = Settings(_env_file=None)
        assert s.ws_heartbeat_interval == 30.0
        assert s.ws_max_missed_pongs == 3
        assert s.ws_reconnect_delay == 1.0

    def test_rest_and_signing_defaults(self):
        s = Settings(_env_file=None)
        assert s.jwt_refresh_interval == 240
        assert s.request_timeout == 30
        assert s.domain_hash_cache_size == 100

    def test_public_only_without_key(self):
        s = Settings(_env_file=None, paradex_private_key=None)
        assert s.is_private is False


class TestConfigurationProperties:
    """Validators and computed properties"""

    def test_environment_name_normalized(self):
        s = Settings(_env_file=None, paradex_environment="  PRODUCTION ")
        assert s.paradex_environment == "production"
        assert s.environment_url is Environment.PRODUCTION

    def test_empty_private_key_is_none(self):
        s = Settings(_env_file=None, paradex_private_key="   ")
        assert s.paradex_private_key is None
        assert s.is_private is False

    def test_private_key_enables_private(self):
        s = Settings(_env_file=None, paradex_private_key="0x1234")
        assert s.is_private is True

    def test_unknown_environment_raises(self):
        s = Settings(_env_file=None, paradex_environment="staging")
        with pytest.raises(ValueError):
            _ = s.environment_url


class TestConfigurationValidation:
    """validate_configuration() against the global settings"""

    def test_validate_configuration_succeeds(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "paradex_private_key", None)
        monkeypatch.setattr(settings, "log_level", "INFO")
        validate_configuration()

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "devnet")
        with pytest.raises(ValueError, match="PARADEX_ENVIRONMENT"):
            validate_configuration()

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "VERBOSE")
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            validate_configuration()

    def test_non_positive_heartbeat(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "INFO")
        monkeypatch.setattr(settings, "ws_heartbeat_interval", 0)
        with pytest.raises(ValueError, match="WS_HEARTBEAT_INTERVAL"):
            validate_configuration()

    def test_zero_missed_pongs(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "INFO")
        monkeypatch.setattr(settings, "ws_max_missed_pongs", 0)
        with pytest.raises(ValueError, match="WS_MAX_MISSED_PONGS"):
            validate_configuration()

    def test_non_hex_private_key(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "INFO")
        monkeypatch.setattr(settings, "paradex_private_key", "not-a-key")
        with pytest.raises(ValueError, match="hex"):
            validate_configuration()

    @pytest.mark.parametrize("key", ["abcdef12", "12345678", "0x12345678"])
    def test_hex_private_key_with_or_without_prefix(self, monkeypatch, key):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "INFO")
        monkeypatch.setattr(settings, "paradex_private_key", key)
        validate_configuration()

    def test_zero_private_key(self, monkeypatch):
        monkeypatch.setattr(settings, "paradex_environment", "testnet")
        monkeypatch.setattr(settings, "log_level", "INFO")
        monkeypatch.setattr(settings, "paradex_private_key", "0x0")
        with pytest.raises(ValueError, match="PARADEX_PRIVATE_KEY"):
            validate_configuration()


class TestEnvironmentUrls:

    @pytest.mark.parametrize("name, expected", [
        ("production", Environment.PRODUCTION),
        ("prod", Environment.PRODUCTION),
        ("mainnet", Environment.PRODUCTION),
        ("testnet", Environment.TESTNET),
    ])
    def test_from_name(self, name, expected):
        assert Environment.from_name(name) is expected

    def test_url_pairs(self):
        assert Environment.PRODUCTION.rest == "https://api.prod.paradex.trade"
        assert Environment.PRODUCTION.websocket == "wss://ws.api.prod.paradex.trade/v1"
        assert Environment.TESTNET.rest == "https://api.testnet.paradex.trade"
        assert Environment.TESTNET.websocket == "wss://ws.api.testnet.paradex.trade/v1"
