"""
Configuration

Bridge settings loaded from an optional JSON file, environment variables
and command line overrides, validated once at startup.
Configuration is immutable at runtime.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger("nwc-bridge.config")

DEFAULT_REFRESH_INTERVAL = 15 * 60
DEFAULT_REQUEST_TIMEOUT = 60


class ConfigError(Exception):
    """Exception for missing or invalid configuration."""

    pass


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BridgeConfig:
    """
    Bridge settings.

    Note: This dataclass is frozen (immutable) - no request can modify it.
    """

    relay: str = ""
    """Relay used for communicating with the client (ws:// or wss://)."""

    keys_file: str = "keys.json"
    """Location of the keys file."""

    max_amount: int = 100_000
    """Max invoice payment amount, in satoshis. 0 disables the check."""

    daily_limit: int = 100_000
    """Max payment amount per day, in satoshis. 0 disables the check."""

    lnd_rest_host: str = ""
    """LND REST API host, e.g. "localhost:8080"."""

    lnd_macaroon_hex: str = ""
    """LND admin macaroon in hex."""

    lnd_tls_cert: Optional[str] = None
    """Path to LND's tls.cert. System CAs are used when unset."""

    route_hints: bool = False
    """Include private channel route hints in created invoices."""

    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    """Seconds before a relay connection is torn down and re-established."""

    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    """Seconds a single request may take before it is abandoned."""

    reconnect_backoff_max: int = 60
    """Upper bound, in seconds, for the delay between failed connects."""

    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BridgeConfig":
        """Create BridgeConfig from a (camelCase) JSON dictionary."""
        defaults = cls()
        return cls(
            relay=data.get("relay", defaults.relay),
            keys_file=data.get("keysFile", defaults.keys_file),
            max_amount=int(data.get("maxAmount", defaults.max_amount)),
            daily_limit=int(data.get("dailyLimit", defaults.daily_limit)),
            lnd_rest_host=data.get("lndRestHost", defaults.lnd_rest_host),
            lnd_macaroon_hex=data.get("lndMacaroonHex", defaults.lnd_macaroon_hex),
            lnd_tls_cert=data.get("lndTlsCert", defaults.lnd_tls_cert),
            route_hints=_parse_bool(data.get("routeHints", defaults.route_hints)),
            refresh_interval=int(data.get("refreshInterval", defaults.refresh_interval)),
            request_timeout=int(data.get("requestTimeout", defaults.request_timeout)),
            reconnect_backoff_max=int(
                data.get("reconnectBackoffMax", defaults.reconnect_backoff_max)
            ),
            log_level=data.get("logLevel", defaults.log_level),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (macaroon redacted)."""
        return {
            "relay": self.relay,
            "keysFile": self.keys_file,
            "maxAmount": self.max_amount,
            "dailyLimit": self.daily_limit,
            "lndRestHost": self.lnd_rest_host,
            "lndMacaroonHex": "***" if self.lnd_macaroon_hex else "",
            "lndTlsCert": self.lnd_tls_cert,
            "routeHints": self.route_hints,
            "refreshInterval": self.refresh_interval,
            "requestTimeout": self.request_timeout,
            "reconnectBackoffMax": self.reconnect_backoff_max,
            "logLevel": self.log_level,
        }

    def with_overrides(self, **overrides: Any) -> "BridgeConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> "BridgeConfig":
        """
        Check every setting.

        Returns:
            self, for chaining

        Raises:
            ConfigError: On the first invalid setting
        """
        if not self.relay:
            raise ConfigError("A relay is required (NWC_RELAY or --relay)")
        if not self.relay.startswith(("ws://", "wss://")):
            raise ConfigError(f"Relay must be a ws:// or wss:// URL, got: {self.relay}")
        if self.max_amount < 0:
            raise ConfigError("maxAmount must not be negative")
        if self.daily_limit < 0:
            raise ConfigError("dailyLimit must not be negative")
        if self.refresh_interval <= 0:
            raise ConfigError("refreshInterval must be positive")
        if self.request_timeout <= 0:
            raise ConfigError("requestTimeout must be positive")
        if self.reconnect_backoff_max <= 0:
            raise ConfigError("reconnectBackoffMax must be positive")
        if not self.lnd_rest_host:
            raise ConfigError("An LND REST host is required (LND_REST_HOST)")
        if not self.lnd_macaroon_hex:
            raise ConfigError("An LND macaroon is required (LND_MACAROON_HEX)")
        try:
            bytes.fromhex(self.lnd_macaroon_hex)
        except ValueError as e:
            raise ConfigError("LND macaroon must be hex encoded") from e
        if self.lnd_tls_cert and not Path(self.lnd_tls_cert).is_file():
            raise ConfigError(f"LND TLS certificate not found: {self.lnd_tls_cert}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")
        return self


# Environment variable -> BridgeConfig field
ENV_VARS = {
    "NWC_RELAY": "relay",
    "NWC_KEYS_FILE": "keys_file",
    "NWC_MAX_AMOUNT": "max_amount",
    "NWC_DAILY_LIMIT": "daily_limit",
    "LND_REST_HOST": "lnd_rest_host",
    "LND_MACAROON_HEX": "lnd_macaroon_hex",
    "LND_TLS_CERT": "lnd_tls_cert",
    "NWC_ROUTE_HINTS": "route_hints",
    "NWC_REFRESH_INTERVAL": "refresh_interval",
    "NWC_REQUEST_TIMEOUT": "request_timeout",
    "NWC_LOG_LEVEL": "log_level",
}

_INT_FIELDS = {"max_amount", "daily_limit", "refresh_interval", "request_timeout"}


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, name in ENV_VARS.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        if name in _INT_FIELDS:
            try:
                overrides[name] = int(value)
            except ValueError as e:
                raise ConfigError(f"{var} must be an integer, got: {value}") from e
        elif name == "route_hints":
            overrides[name] = _parse_bool(value)
        else:
            overrides[name] = value
    return overrides


def load_config(
    config_file: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> BridgeConfig:
    """
    Build and validate the bridge configuration.

    Precedence, lowest first: defaults, JSON file, environment, overrides.

    Args:
        config_file: Optional path to a JSON configuration file
        env: Environment mapping, defaults to os.environ
        **overrides: Field values (e.g. from the command line); None is ignored

    Returns:
        Validated BridgeConfig

    Raises:
        ConfigError: If the file cannot be read or a value is invalid
    """
    config = BridgeConfig()

    if config_file:
        path = Path(config_file)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = BridgeConfig.from_dict(data)
        except (OSError, json.JSONDecodeError, ValueError, TypeError) as e:
            raise ConfigError(f"Could not load config from {path}: {e}") from e
        logger.info(f"Loaded config from {path}")

    config = config.with_overrides(**_env_overrides(os.environ if env is None else env))
    config = config.with_overrides(**overrides)

    config.validate()

    max_payment = f"{config.max_amount} sats" if config.max_amount else "unlimited"
    daily = f"{config.daily_limit} sats" if config.daily_limit else "unlimited"
    logger.info(f"Limits: max/payment={max_payment}, max/day={daily}")
    return config
