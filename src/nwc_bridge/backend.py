"""
Payment Backend

The node the bridge pays from and invoices through. ``LndRestBackend``
talks to LND's REST API; anything implementing ``PaymentBackend`` can take
its place.

Configuration: LND_REST_HOST, LND_MACAROON_HEX and optionally LND_TLS_CERT.
"""

import base64
import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from .protocol import KeysendTLVRecord

logger = logging.getLogger("nwc-bridge.backend")

KEYSEND_RECORD_TYPE = 5482373484
DEFAULT_INVOICE_EXPIRY = 86_400


class BackendError(Exception):
    """Exception for payment backend errors."""

    pass


class PaymentBackendError(BackendError):
    """Exception for payment failures."""

    pass


class InvoiceNotFoundError(BackendError):
    """Exception when an invoice lookup finds nothing."""

    pass


@dataclass
class NodeInfo:
    alias: str
    color: str
    pubkey: str
    network: str
    block_height: int
    block_hash: str


@dataclass
class InvoiceInfo:
    """An incoming invoice as reported by the backend."""

    invoice: str
    payment_hash: str
    amount_msat: int
    created_at: int
    expires_at: int
    settled_at: int | None = None
    preimage: str | None = None
    description: str | None = None
    description_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """NIP-47 transaction object; unset optional fields are omitted."""
        result: dict[str, Any] = {
            "type": "incoming",
            "invoice": self.invoice,
            "payment_hash": self.payment_hash,
            "amount": self.amount_msat,
            "fees_paid": 0,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "metadata": {},
        }
        optional = {
            "description": self.description,
            "description_hash": self.description_hash,
            "preimage": self.preimage,
            "settled_at": self.settled_at,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass
class PaymentResult:
    preimage: str
    fee_msat: int = 0


class PaymentBackend(Protocol):
    """Operations the bridge needs from a Lightning node."""

    async def get_info(self) -> NodeInfo: ...

    async def get_balance(self) -> int: ...

    async def make_invoice(
        self,
        amount_msat: int,
        description: str | None,
        description_hash: str | None,
        expiry: int | None,
    ) -> InvoiceInfo: ...

    async def lookup_invoice(self, payment_hash: str) -> InvoiceInfo: ...

    async def pay_invoice(self, invoice: str, amount_msat: int | None = None) -> PaymentResult: ...

    async def pay_keysend(
        self,
        pubkey: str,
        amount_msat: int,
        preimage: str | None = None,
        tlv_records: list[KeysendTLVRecord] | None = None,
    ) -> PaymentResult: ...

    async def close(self) -> None: ...


def _b64_to_hex(value: str | None) -> str:
    if not value:
        return ""
    return base64.b64decode(value).hex()


def _hex_to_b64(value: str) -> str:
    return base64.b64encode(bytes.fromhex(value)).decode()


def _int(value: Any) -> int:
    """LND encodes int64 fields as strings."""
    return int(value or 0)


class LndRestBackend:
    """
    LND REST client.

    Byte fields in LND JSON are base64; this class converts them to hex so
    callers only ever see hex.
    """

    def __init__(
        self,
        host: str,
        macaroon_hex: str,
        tls_cert: str | None = None,
        route_hints: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the LND client.

        Args:
            host: REST host, e.g. "localhost:8080" (https:// is implied)
            macaroon_hex: Admin macaroon in hex
            tls_cert: Path to LND's tls.cert, or None for system CAs
            route_hints: Include private channel hints in new invoices
            transport: Optional httpx transport, used by tests
        """
        base_url = host if host.startswith(("http://", "https://")) else f"https://{host}"
        self.route_hints = route_hints
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Grpc-Metadata-macaroon": macaroon_hex,
                "Accept": "application/json",
            },
            verify=tls_cert if tls_cert else True,
            timeout=60.0,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request to LND.

        Args:
            method: HTTP method
            path: API path (without base URL)
            json_data: Request body data

        Returns:
            Response data dict
        """
        try:
            response = await self._client.request(method=method, url=path, json=json_data)
        except httpx.HTTPError as e:
            raise BackendError(f"LND request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            if response.status_code == 404 or "unable to locate invoice" in message:
                raise InvoiceNotFoundError(message)
            raise BackendError(f"API error ({response.status_code}): {message}")

        return response.json()

    async def get_info(self) -> NodeInfo:
        data = await self._request("GET", "/v1/getinfo")
        chains = data.get("chains") or [{}]
        return NodeInfo(
            alias=data.get("alias", ""),
            color=data.get("color", ""),
            pubkey=data.get("identity_pubkey", ""),
            network=chains[0].get("network", ""),
            block_height=_int(data.get("block_height")),
            block_hash=data.get("block_hash", ""),
        )

    async def get_balance(self) -> int:
        """Spendable channel balance in msats."""
        data = await self._request("GET", "/v1/balance/channels")
        local = data.get("local_balance") or {}
        if "msat" in local:
            return _int(local["msat"])
        return _int(data.get("balance")) * 1000

    async def make_invoice(
        self,
        amount_msat: int,
        description: str | None,
        description_hash: str | None,
        expiry: int | None,
    ) -> InvoiceInfo:
        body: dict[str, Any] = {
            "memo": description or "",
            "value_msat": str(amount_msat),
            "expiry": str(expiry or DEFAULT_INVOICE_EXPIRY),
            "private": self.route_hints,
        }
        if description_hash:
            body["description_hash"] = _hex_to_b64(description_hash)

        data = await self._request("POST", "/v1/invoices", body)
        payment_hash = _b64_to_hex(data.get("r_hash"))
        logger.info(f"Created invoice: {data.get('payment_request', '')[:30]}...")

        created_at = int(time.time())
        return InvoiceInfo(
            invoice=data.get("payment_request", ""),
            payment_hash=payment_hash,
            amount_msat=amount_msat,
            created_at=created_at,
            expires_at=created_at + (expiry or DEFAULT_INVOICE_EXPIRY),
            description=description,
            description_hash=description_hash,
        )

    async def lookup_invoice(self, payment_hash: str) -> InvoiceInfo:
        data = await self._request("GET", f"/v1/invoice/{payment_hash}")

        created_at = _int(data.get("creation_date"))
        settle_date = _int(data.get("settle_date"))
        preimage = _b64_to_hex(data.get("r_preimage"))

        return InvoiceInfo(
            invoice=data.get("payment_request", ""),
            payment_hash=payment_hash,
            amount_msat=_int(data.get("value_msat")),
            created_at=created_at,
            expires_at=created_at + _int(data.get("expiry")),
            settled_at=settle_date or None,
            # LND reports the preimage even for open invoices it created
            preimage=preimage if data.get("state") == "SETTLED" or settle_date else None,
            description=data.get("memo") or None,
            description_hash=_b64_to_hex(data.get("description_hash")) or None,
        )

    async def _send_payment(self, body: dict[str, Any]) -> PaymentResult:
        try:
            data = await self._request("POST", "/v1/channels/transactions", body)
        except BackendError as e:
            raise PaymentBackendError(str(e)) from e

        if data.get("payment_error"):
            raise PaymentBackendError(data["payment_error"])

        preimage = _b64_to_hex(data.get("payment_preimage"))
        if not preimage:
            raise PaymentBackendError("No preimage in payment response")

        route = data.get("payment_route") or {}
        return PaymentResult(preimage=preimage, fee_msat=_int(route.get("total_fees_msat")))

    async def pay_invoice(self, invoice: str, amount_msat: int | None = None) -> PaymentResult:
        """
        Pay a BOLT11 invoice.

        Args:
            invoice: BOLT11 invoice string
            amount_msat: Amount for invoices that carry none

        Raises:
            PaymentBackendError: If payment fails
        """
        body: dict[str, Any] = {"payment_request": invoice}
        if amount_msat:
            body["amt_msat"] = str(amount_msat)
        logger.info(f"Paying invoice: {invoice[:30]}...")
        return await self._send_payment(body)

    async def pay_keysend(
        self,
        pubkey: str,
        amount_msat: int,
        preimage: str | None = None,
        tlv_records: list[KeysendTLVRecord] | None = None,
    ) -> PaymentResult:
        """
        Send a spontaneous payment to a node key.

        A random preimage is generated when none is given.

        Raises:
            PaymentBackendError: If payment fails
        """
        preimage_bytes = bytes.fromhex(preimage) if preimage else os.urandom(32)
        records = {str(r.type): _hex_to_b64(r.value) for r in tlv_records or []}
        records[str(KEYSEND_RECORD_TYPE)] = base64.b64encode(preimage_bytes).decode()

        body = {
            "dest": _hex_to_b64(pubkey),
            "amt_msat": str(amount_msat),
            "payment_hash": base64.b64encode(hashlib.sha256(preimage_bytes).digest()).decode(),
            "dest_custom_records": records,
        }
        logger.info(f"Paying keysend of {amount_msat} msats to {pubkey[:16]}...")
        return await self._send_payment(body)
