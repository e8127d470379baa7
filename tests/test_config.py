"""
Tests for Configuration
"""

import json

import pytest

from nwc_bridge.config import (
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    BridgeConfig,
    ConfigError,
    load_config,
)

MACAROON = "0201036c6e64"

BASE_ENV = {
    "NWC_RELAY": "wss://relay.example.com",
    "LND_REST_HOST": "localhost:8080",
    "LND_MACAROON_HEX": MACAROON,
}


class TestBridgeConfig:
    """Tests for BridgeConfig."""

    def test_defaults(self):
        """Test default values."""
        config = BridgeConfig()

        assert config.keys_file == "keys.json"
        assert config.max_amount == 100_000
        assert config.daily_limit == 100_000
        assert config.refresh_interval == DEFAULT_REFRESH_INTERVAL == 900
        assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT == 60
        assert config.route_hints is False

    def test_frozen(self):
        """Test configuration cannot be modified."""
        config = BridgeConfig()

        with pytest.raises(AttributeError):
            config.max_amount = 1

    def test_from_dict(self):
        """Test parsing camelCase JSON keys."""
        config = BridgeConfig.from_dict(
            {
                "relay": "wss://relay.example.com",
                "maxAmount": 5000,
                "dailyLimit": 20000,
                "routeHints": "true",
                "requestTimeout": 30,
            }
        )

        assert config.relay == "wss://relay.example.com"
        assert config.max_amount == 5000
        assert config.daily_limit == 20000
        assert config.route_hints is True
        assert config.request_timeout == 30
        assert config.keys_file == "keys.json"

    def test_to_dict_redacts_macaroon(self):
        """Test the macaroon is not serialized."""
        config = BridgeConfig(lnd_macaroon_hex=MACAROON)

        assert config.to_dict()["lndMacaroonHex"] == "***"

    def test_with_overrides_ignores_none(self):
        """Test None overrides keep the current value."""
        config = BridgeConfig(max_amount=10).with_overrides(max_amount=None, daily_limit=5)

        assert config.max_amount == 10
        assert config.daily_limit == 5

    def test_with_overrides_rejects_unknown(self):
        """Test unknown settings are rejected."""
        with pytest.raises(ConfigError, match="Unknown settings"):
            BridgeConfig().with_overrides(colour="red")


class TestValidate:
    """Tests for BridgeConfig.validate."""

    def valid(self, **kwargs) -> BridgeConfig:
        values = {
            "relay": "wss://relay.example.com",
            "lnd_rest_host": "localhost:8080",
            "lnd_macaroon_hex": MACAROON,
        }
        values.update(kwargs)
        return BridgeConfig(**values)

    def test_valid(self):
        """Test a complete configuration validates."""
        config = self.valid()

        assert config.validate() is config

    def test_missing_relay(self):
        """Test a relay is required."""
        with pytest.raises(ConfigError, match="relay is required"):
            self.valid(relay="").validate()

    def test_relay_scheme(self):
        """Test the relay must be a websocket URL."""
        with pytest.raises(ConfigError, match="ws:// or wss://"):
            self.valid(relay="https://relay.example.com").validate()

    def test_negative_limits(self):
        """Test negative limits are rejected."""
        with pytest.raises(ConfigError, match="maxAmount"):
            self.valid(max_amount=-1).validate()
        with pytest.raises(ConfigError, match="dailyLimit"):
            self.valid(daily_limit=-1).validate()

    def test_zero_limits_allowed(self):
        """Test 0 (disabled) limits are valid."""
        self.valid(max_amount=0, daily_limit=0).validate()

    def test_missing_macaroon(self):
        """Test the LND macaroon is required."""
        with pytest.raises(ConfigError, match="macaroon is required"):
            self.valid(lnd_macaroon_hex="").validate()

    def test_macaroon_not_hex(self):
        """Test the LND macaroon must be hex."""
        with pytest.raises(ConfigError, match="hex"):
            self.valid(lnd_macaroon_hex="xyz").validate()

    def test_missing_tls_cert(self, tmp_path):
        """Test a configured TLS certificate must exist."""
        with pytest.raises(ConfigError, match="certificate not found"):
            self.valid(lnd_tls_cert=str(tmp_path / "tls.cert")).validate()

    def test_bad_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ConfigError, match="log level"):
            self.valid(log_level="LOUD").validate()


class TestLoadConfig:
    """Tests for load_config."""

    def test_from_env(self):
        """Test settings come from environment variables."""
        env = dict(BASE_ENV, NWC_MAX_AMOUNT="5000", NWC_ROUTE_HINTS="1")

        config = load_config(env=env)

        assert config.relay == "wss://relay.example.com"
        assert config.max_amount == 5000
        assert config.route_hints is True

    def test_bad_int_env(self):
        """Test non-integer limits are rejected."""
        with pytest.raises(ConfigError, match="NWC_DAILY_LIMIT"):
            load_config(env=dict(BASE_ENV, NWC_DAILY_LIMIT="lots"))

    def test_precedence(self, tmp_path):
        """Test file < environment < overrides."""
        config_file = tmp_path / "config.json"
        config_file.write_text(
            json.dumps({"maxAmount": 1, "dailyLimit": 2, "keysFile": "file-keys.json"})
        )
        env = dict(BASE_ENV, NWC_MAX_AMOUNT="10", NWC_DAILY_LIMIT="20")

        config = load_config(str(config_file), env=env, daily_limit=200)

        assert config.keys_file == "file-keys.json"
        assert config.max_amount == 10
        assert config.daily_limit == 200

    def test_unreadable_file(self, tmp_path):
        """Test a broken config file raises ConfigError."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with pytest.raises(ConfigError, match="Could not load config"):
            load_config(str(config_file), env=BASE_ENV)

    def test_missing_required(self):
        """Test validation runs after loading."""
        with pytest.raises(ConfigError):
            load_config(env={})
