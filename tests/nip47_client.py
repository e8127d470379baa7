"""
Client side of NIP-47, for building requests and reading responses in tests.
"""

from nwc_bridge.keys import NWCKeys
from nwc_bridge.nostr import Event, nip04_decrypt, nip04_encrypt
from nwc_bridge.protocol import REQUEST_KIND, Response


def make_request_event(keys: NWCKeys, payload: str, tags=None) -> Event:
    """A request event as the client would send it."""
    user = keys.user_keys()
    server_pubkey = keys.server_keys().public_key
    content = nip04_encrypt(user.secret_key, server_pubkey, payload)
    return Event.build(user, REQUEST_KIND, content, tags or [["p", server_pubkey]])


def read_response(keys: NWCKeys, event: Event) -> Response:
    """Decrypt a response event the way the client would."""
    plaintext = nip04_decrypt(
        keys.user_keys().secret_key,
        keys.server_keys().public_key,
        event.content,
    )
    return Response.from_json(plaintext)
