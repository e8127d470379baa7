"""
NIP-47 Keys

Server and user key material, persisted as JSON, plus the
nostr+walletconnect:// connection URI handed to the client.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote

from .nostr import Keys, NostrError

logger = logging.getLogger("nwc-bridge.keys")

URI_SCHEME = "nostr+walletconnect://"


class KeyStoreError(Exception):
    """Exception for unreadable or unwritable key files."""

    pass


@dataclass
class NWCConnection:
    """What a client needs to reach the bridge."""

    wallet_pubkey: str
    relay_url: str
    secret: str

    def to_uri(self) -> str:
        return (
            f"{URI_SCHEME}{self.wallet_pubkey}"
            f"?relay={quote(self.relay_url, safe='')}&secret={self.secret}"
        )


@dataclass
class NWCKeys:
    """
    Nip47 Nostr Wallet Connect keys.

    Attributes:
        server_key: Hex secret key the bridge signs responses with
        user_key: Hex secret key handed to the client
        sent_info: Whether the capability announcement was published for
            this key material
    """

    server_key: str = field(repr=False)
    user_key: str = field(repr=False)
    sent_info: bool = False

    def __post_init__(self) -> None:
        self._server_keys = Keys.from_hex(self.server_key)
        self._user_keys = Keys.from_hex(self.user_key)

    @classmethod
    def generate(cls) -> "NWCKeys":
        """Generate new NWCKeys with fresh server and user keys."""
        return cls(
            server_key=Keys.generate().secret_hex,
            user_key=Keys.generate().secret_hex,
        )

    def server_keys(self) -> Keys:
        return self._server_keys

    def user_keys(self) -> Keys:
        return self._user_keys

    def connection(self, relay: str) -> NWCConnection:
        return NWCConnection(
            wallet_pubkey=self._server_keys.public_key,
            relay_url=relay,
            secret=self.user_key,
        )

    def to_dict(self) -> dict:
        return {
            "server_key": self.server_key,
            "user_key": self.user_key,
            "sent_info": self.sent_info,
        }

    @classmethod
    def load_or_generate(cls, keys_file: str | Path) -> "NWCKeys":
        """
        Read keys from a file, or generate and write new keys if the file
        does not exist.
        """
        path = Path(keys_file)
        if not path.exists():
            keys = cls.generate()
            keys.write(path)
            logger.info(f"Generated new keys at {path}")
            return keys

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(
                server_key=data["server_key"],
                user_key=data["user_key"],
                sent_info=bool(data.get("sent_info", False)),
            )
        except (OSError, json.JSONDecodeError, KeyError, TypeError, NostrError) as e:
            raise KeyStoreError(f"Could not parse keys file {path}: {e}") from e

    def write(self, keys_file: str | Path) -> None:
        """Serialize the keys and write them to the specified path."""
        path = Path(keys_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f)
        except OSError as e:
            raise KeyStoreError(f"Could not write keys file {path}: {e}") from e
