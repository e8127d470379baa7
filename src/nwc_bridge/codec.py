"""
Command Codec

Turns request events into Request objects and Response objects into
signed, encrypted, correctly tagged response events.
"""

import logging

from .keys import NWCKeys
from .nostr import Event, nip04_decrypt, nip04_encrypt
from .protocol import INFO_KIND, RESPONSE_KIND, Request, Response, supported_method_names

logger = logging.getLogger("nwc-bridge.codec")


def decrypt_request(event: Event, keys: NWCKeys) -> Request:
    """
    Decrypt and parse a request event.

    Args:
        event: Request event authored by the user key
        keys: Bridge key material

    Returns:
        Parsed Request

    Raises:
        DecryptionError: If the content cannot be decrypted
        ProtocolError: If the plaintext is not a request
    """
    plaintext = nip04_decrypt(
        keys.server_keys().secret_key,
        keys.user_keys().public_key,
        event.content,
    )
    return Request.from_json(plaintext)


def encrypt_response(
    response: Response,
    request_event: Event,
    keys: NWCKeys,
    d_tag: str | None = None,
) -> Event:
    """
    Build the response event for a request.

    Args:
        response: Result or error to send back
        request_event: The request being answered
        keys: Bridge key material
        d_tag: Correlation id of a batch entry, if it had one

    Returns:
        Signed response event
    """
    server_keys = keys.server_keys()
    encrypted = nip04_encrypt(
        server_keys.secret_key,
        keys.user_keys().public_key,
        response.to_json(),
    )

    tags = [["p", request_event.pubkey], ["e", request_event.id]]
    if d_tag is not None:
        tags.append(["d", d_tag])

    return Event.build(server_keys, RESPONSE_KIND, encrypted, tags)


def build_info_event(keys: NWCKeys) -> Event:
    """Capability announcement listing the supported methods."""
    content = " ".join(supported_method_names())
    return Event.build(keys.server_keys(), INFO_KIND, content, [])
