"""
NWC Bridge

A Nostr Wallet Connect (NIP-47) bridge that lets a client drive a Lightning
node over a Nostr relay, with per-payment and daily spending limits.

Supported methods:
- get_info - Node metadata and supported methods
- get_balance - Remaining daily allowance
- make_invoice - Create an invoice
- lookup_invoice - Look up an invoice by hash or bolt11
- pay_invoice / multi_pay_invoice - Pay bolt11 invoices
- pay_keysend / multi_pay_keysend - Spontaneous payments
"""

__version__ = "0.1.0"

from .backend import (
    BackendError,
    InvoiceNotFoundError,
    LndRestBackend,
    PaymentBackend,
    PaymentBackendError,
)
from .config import BridgeConfig, ConfigError, load_config
from .dispatcher import CommandDispatcher
from .keys import KeyStoreError, NWCConnection, NWCKeys
from .nostr import DecryptionError, Event, Keys, NostrError
from .payments import PaymentRecord, PaymentTracker
from .protocol import ErrorCode, Method, ProtocolError, Request, Response
from .relay import RelayClient, RelayConnectionError, RelayError
from .server import NWCBridgeServer, main
from .session import SessionController
from .shutdown import ShutdownCoordinator

__all__ = [
    # Server
    "NWCBridgeServer",
    "main",
    # Session
    "SessionController",
    "ShutdownCoordinator",
    "CommandDispatcher",
    # Relay
    "RelayClient",
    "RelayError",
    "RelayConnectionError",
    # Nostr
    "Event",
    "Keys",
    "NostrError",
    "DecryptionError",
    # Protocol
    "ErrorCode",
    "Method",
    "ProtocolError",
    "Request",
    "Response",
    # Keys
    "NWCKeys",
    "NWCConnection",
    "KeyStoreError",
    # Payments
    "PaymentRecord",
    "PaymentTracker",
    # Backend
    "PaymentBackend",
    "LndRestBackend",
    "BackendError",
    "PaymentBackendError",
    "InvoiceNotFoundError",
    # Configuration
    "BridgeConfig",
    "ConfigError",
    "load_config",
    # Version
    "__version__",
]
