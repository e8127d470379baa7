"""
Nostr Primitives

Keys, signed events (NIP-01) and NIP-04 shared-secret encryption.
"""

import base64
import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

from coincurve import PrivateKey, PublicKey, PublicKeyXOnly
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger("nwc-bridge.nostr")


class NostrError(Exception):
    """Exception for Nostr key and event errors."""

    pass


class InvalidEventError(NostrError):
    """Exception for events whose id or signature does not verify."""

    pass


class DecryptionError(NostrError):
    """Exception for NIP-04 content that cannot be decrypted."""

    pass


def _sha256(data: bytes) -> bytes:
    """Compute SHA256 hash."""
    return hashlib.sha256(data).digest()


class Keys:
    """A secp256k1 keypair identified by its x-only public key."""

    def __init__(self, secret_key: bytes) -> None:
        if len(secret_key) != 32:
            raise NostrError("Secret key must be 32 bytes")
        try:
            self._private_key = PrivateKey(secret_key)
        except ValueError as e:
            raise NostrError(f"Invalid secret key: {e}") from e
        # x-only pubkey: drop the parity prefix byte
        self.public_key = self._private_key.public_key.format(compressed=True)[1:].hex()

    @classmethod
    def generate(cls) -> "Keys":
        return cls(PrivateKey().secret)

    @classmethod
    def from_hex(cls, secret_hex: str) -> "Keys":
        try:
            return cls(bytes.fromhex(secret_hex))
        except ValueError as e:
            raise NostrError(f"Invalid secret key hex: {e}") from e

    @property
    def secret_key(self) -> bytes:
        return self._private_key.secret

    @property
    def secret_hex(self) -> str:
        return self._private_key.secret.hex()

    def sign(self, message: bytes) -> str:
        """
        Create a BIP-340 Schnorr signature.

        Args:
            message: 32-byte message (an event id)

        Returns:
            Hex-encoded 64-byte signature
        """
        return self._private_key.sign_schnorr(message, os.urandom(32)).hex()

    def __repr__(self) -> str:
        return f"Keys(public_key={self.public_key!r})"


@dataclass
class Event:
    """A Nostr event as defined by NIP-01."""

    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    id: str = ""
    sig: str = ""

    @classmethod
    def build(
        cls,
        keys: Keys,
        kind: int,
        content: str,
        tags: list[list[str]] | None = None,
        created_at: int | None = None,
    ) -> "Event":
        """
        Create and sign an event authored by ``keys``.

        Args:
            keys: Author keypair
            kind: Event kind
            content: Event content
            tags: Event tags
            created_at: Unix timestamp, defaults to now

        Returns:
            Signed Event
        """
        event = cls(
            pubkey=keys.public_key,
            created_at=created_at if created_at is not None else int(time.time()),
            kind=kind,
            tags=[list(tag) for tag in tags or []],
            content=content,
        )
        event.id = event.compute_id()
        event.sig = keys.sign(bytes.fromhex(event.id))
        return event

    def compute_id(self) -> str:
        """Compute the NIP-01 event id."""
        serialized = json.dumps(
            [0, self.pubkey, self.created_at, self.kind, self.tags, self.content],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return _sha256(serialized.encode()).hex()

    def verify(self) -> None:
        """
        Check the event id and signature.

        Raises:
            InvalidEventError: If either does not match
        """
        if self.compute_id() != self.id:
            raise InvalidEventError(f"Event id mismatch for {self.id}")
        try:
            pubkey = PublicKeyXOnly(bytes.fromhex(self.pubkey))
            valid = pubkey.verify(bytes.fromhex(self.sig), bytes.fromhex(self.id))
        except ValueError as e:
            raise InvalidEventError(f"Malformed key or signature: {e}") from e
        if not valid:
            raise InvalidEventError(f"Bad signature on event {self.id}")

    def is_valid(self) -> bool:
        try:
            self.verify()
        except InvalidEventError:
            return False
        return True

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called ``name``."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": self.tags,
            "content": self.content,
            "sig": self.sig,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        """
        Build an Event from relay JSON.

        Raises:
            InvalidEventError: If a required field is missing or mistyped
        """
        if not isinstance(data, dict):
            raise InvalidEventError(f"Malformed event: expected an object, got {type(data).__name__}")
        try:
            tags = data.get("tags", [])
            if not isinstance(tags, list) or not all(isinstance(t, list) for t in tags):
                raise TypeError("tags must be a list of lists")
            event = cls(
                id=str(data["id"]),
                pubkey=str(data["pubkey"]),
                created_at=int(data["created_at"]),
                kind=int(data["kind"]),
                tags=[[str(v) for v in tag] for tag in tags],
                content=str(data.get("content", "")),
                sig=str(data["sig"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidEventError(f"Malformed event: {e}") from e
        return event


def get_shared_secret(secret_key: bytes, pubkey_hex: str) -> bytes:
    """
    Compute the NIP-04 shared secret.

    The secret is the x coordinate of the ECDH point, not hashed.

    Args:
        secret_key: Own 32-byte secret key
        pubkey_hex: Counterparty's x-only public key (hex)

    Returns:
        32-byte shared secret
    """
    try:
        pubkey = PublicKey(b"\x02" + bytes.fromhex(pubkey_hex))
    except ValueError as e:
        raise NostrError(f"Invalid public key: {pubkey_hex[:16]}...") from e
    shared_point = pubkey.multiply(secret_key)
    return shared_point.format(compressed=True)[1:33]


def nip04_encrypt(secret_key: bytes, pubkey_hex: str, plaintext: str) -> str:
    """
    Encrypt content using NIP-04 (shared secret + AES-256-CBC).

    Args:
        secret_key: Sender's 32-byte secret key
        pubkey_hex: Recipient's hex-encoded public key
        plaintext: Content to encrypt

    Returns:
        Encrypted content in NIP-04 format: base64(ciphertext)?iv=base64(iv)
    """
    shared_secret = get_shared_secret(secret_key, pubkey_hex)
    iv = os.urandom(16)

    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(shared_secret), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return f"{base64.b64encode(ciphertext).decode()}?iv={base64.b64encode(iv).decode()}"


def nip04_decrypt(secret_key: bytes, pubkey_hex: str, content: str) -> str:
    """
    Decrypt content using NIP-04.

    Args:
        secret_key: Recipient's 32-byte secret key
        pubkey_hex: Sender's hex-encoded public key
        content: Encrypted content in NIP-04 format

    Returns:
        Decrypted plaintext

    Raises:
        DecryptionError: If the content is malformed or the key is wrong
    """
    parts = content.split("?iv=")
    if len(parts) != 2:
        raise DecryptionError("Invalid NIP-04 encrypted content")

    try:
        ciphertext = base64.b64decode(parts[0], validate=True)
        iv = base64.b64decode(parts[1], validate=True)
        shared_secret = get_shared_secret(secret_key, pubkey_hex)

        decryptor = Cipher(algorithms.AES(shared_secret), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(128).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (ValueError, NostrError) as e:
        raise DecryptionError(f"Could not decrypt content: {e}") from e
