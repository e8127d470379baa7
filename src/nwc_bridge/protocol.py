"""
NIP-47 Protocol Types

Methods, error codes, request parameters and responses exchanged between
the wallet service and its client.
See https://github.com/nostr-protocol/nips/blob/master/47.md
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

INFO_KIND = 13194
REQUEST_KIND = 23194
RESPONSE_KIND = 23195


class ProtocolError(Exception):
    """Exception for requests that cannot be interpreted."""

    pass


class Method(str, Enum):
    """NIP-47 request methods."""

    PAY_INVOICE = "pay_invoice"
    MULTI_PAY_INVOICE = "multi_pay_invoice"
    PAY_KEYSEND = "pay_keysend"
    MULTI_PAY_KEYSEND = "multi_pay_keysend"
    MAKE_INVOICE = "make_invoice"
    LOOKUP_INVOICE = "lookup_invoice"
    LIST_TRANSACTIONS = "list_transactions"
    GET_BALANCE = "get_balance"
    GET_INFO = "get_info"
    SIGN_MESSAGE = "sign_message"


SUPPORTED_METHODS: tuple[Method, ...] = (
    Method.GET_INFO,
    Method.MAKE_INVOICE,
    Method.GET_BALANCE,
    Method.LOOKUP_INVOICE,
    Method.PAY_INVOICE,
    Method.MULTI_PAY_INVOICE,
    Method.PAY_KEYSEND,
    Method.MULTI_PAY_KEYSEND,
)


def supported_method_names() -> list[str]:
    return [method.value for method in SUPPORTED_METHODS]


class ErrorCode(str, Enum):
    """NIP-47 error codes."""

    RATE_LIMITED = "RATE_LIMITED"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RESTRICTED = "RESTRICTED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"
    NOT_FOUND = "NOT_FOUND"
    OTHER = "OTHER"


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"'{key}' must be a string")
    return value


def _required_str(data: dict, key: str) -> str:
    value = _optional_str(data, key)
    if not value:
        raise ProtocolError(f"Missing '{key}'")
    return value


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProtocolError(f"'{key}' must be a non-negative integer")
    return value


def _required_int(data: dict, key: str) -> int:
    value = _optional_int(data, key)
    if value is None:
        raise ProtocolError(f"Missing '{key}'")
    return value


def _is_hex(value: str, length: int | None = None) -> bool:
    if length is not None and len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


@dataclass
class PayInvoiceParams:
    """Parameters for pay_invoice (and each multi_pay_invoice entry)."""

    invoice: str
    amount: int | None = None
    """Amount in msats, used when the invoice carries none."""
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PayInvoiceParams":
        return cls(
            invoice=_required_str(data, "invoice"),
            amount=_optional_int(data, "amount"),
            id=_optional_str(data, "id"),
        )


@dataclass
class KeysendTLVRecord:
    """A custom TLV record attached to a keysend payment."""

    type: int
    value: str
    """Hex-encoded record value."""

    @classmethod
    def from_dict(cls, data: dict) -> "KeysendTLVRecord":
        value = _required_str(data, "value")
        if not _is_hex(value):
            raise ProtocolError("TLV record value must be hex")
        return cls(type=_required_int(data, "type"), value=value)


@dataclass
class PayKeysendParams:
    """Parameters for pay_keysend (and each multi_pay_keysend entry)."""

    pubkey: str
    amount: int
    preimage: str | None = None
    tlv_records: list[KeysendTLVRecord] = field(default_factory=list)
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PayKeysendParams":
        pubkey = _required_str(data, "pubkey")
        if not _is_hex(pubkey, 66):
            raise ProtocolError("'pubkey' must be a 33-byte hex node key")

        preimage = _optional_str(data, "preimage")
        if preimage is not None and not _is_hex(preimage, 64):
            raise ProtocolError("'preimage' must be 32 bytes of hex")

        records = data.get("tlv_records") or []
        if not isinstance(records, list):
            raise ProtocolError("'tlv_records' must be a list")

        return cls(
            pubkey=pubkey,
            amount=_required_int(data, "amount"),
            preimage=preimage,
            tlv_records=[KeysendTLVRecord.from_dict(_as_dict(r)) for r in records],
            id=_optional_str(data, "id"),
        )


@dataclass
class MakeInvoiceParams:
    """Parameters for make_invoice."""

    amount: int
    description: str | None = None
    description_hash: str | None = None
    expiry: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "MakeInvoiceParams":
        description_hash = _optional_str(data, "description_hash")
        if description_hash is not None and not _is_hex(description_hash, 64):
            raise ProtocolError("'description_hash' must be 32 bytes of hex")
        return cls(
            amount=_required_int(data, "amount"),
            description=_optional_str(data, "description"),
            description_hash=description_hash,
            expiry=_optional_int(data, "expiry"),
        )


@dataclass
class LookupInvoiceParams:
    """Parameters for lookup_invoice. One of the two fields is required."""

    payment_hash: str | None = None
    invoice: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "LookupInvoiceParams":
        payment_hash = _optional_str(data, "payment_hash")
        invoice = _optional_str(data, "invoice")
        if not payment_hash and not invoice:
            raise ProtocolError("Missing payment_hash or invoice")
        if payment_hash and not _is_hex(payment_hash, 64):
            raise ProtocolError("'payment_hash' must be 32 bytes of hex")
        return cls(payment_hash=payment_hash or None, invoice=invoice or None)


def _as_dict(value: Any) -> dict:
    if not isinstance(value, dict):
        raise ProtocolError("Expected a JSON object")
    return value


@dataclass
class Request:
    """A decrypted NIP-47 request."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, text: str) -> "Request":
        """
        Parse request JSON.

        Raises:
            ProtocolError: If the text is not a request object
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Request is not JSON: {e}") from e

        data = _as_dict(data)
        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise ProtocolError("Request has no method")

        params = data.get("params")
        return cls(method=method, params=_as_dict(params) if params is not None else {})

    def to_json(self) -> str:
        return json.dumps({"method": self.method, "params": self.params})

    def pay_invoice_params(self) -> list[PayInvoiceParams]:
        """Invoice entries for pay_invoice or multi_pay_invoice."""
        if self.method == Method.MULTI_PAY_INVOICE:
            return [PayInvoiceParams.from_dict(_as_dict(i)) for i in self.batch_entries()]
        return [PayInvoiceParams.from_dict(self.params)]

    def pay_keysend_params(self) -> list[PayKeysendParams]:
        """Keysend entries for pay_keysend or multi_pay_keysend."""
        if self.method == Method.MULTI_PAY_KEYSEND:
            return [PayKeysendParams.from_dict(_as_dict(k)) for k in self.batch_entries()]
        return [PayKeysendParams.from_dict(self.params)]

    def batch_entries(self) -> list[Any]:
        """
        Unparsed entries of a multi_pay_invoice or multi_pay_keysend request.

        Raises:
            ProtocolError: If the entry list is missing or not a list
        """
        key = "invoices" if self.method == Method.MULTI_PAY_INVOICE else "keysends"
        entries = self.params.get(key)
        if not isinstance(entries, list):
            raise ProtocolError(f"'{key}' must be a list")
        return entries


def batch_entry_id(entry: Any) -> str | None:
    """The id of a batch entry, if it has a usable one."""
    if isinstance(entry, dict) and isinstance(entry.get("id"), str):
        return entry["id"]
    return None


def parse_batch_entry(method: str, entry: Any) -> PayInvoiceParams | PayKeysendParams:
    """Parse one entry of a multi_pay_invoice or multi_pay_keysend request."""
    if method == Method.MULTI_PAY_INVOICE:
        return PayInvoiceParams.from_dict(_as_dict(entry))
    return PayKeysendParams.from_dict(_as_dict(entry))


@dataclass
class NIP47Error:
    code: ErrorCode
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


@dataclass
class Response:
    """A NIP-47 response. Exactly one of ``result`` and ``error`` is set."""

    result_type: str
    result: dict[str, Any] | None = None
    error: NIP47Error | None = None

    @classmethod
    def success(cls, result_type: str, result: dict[str, Any]) -> "Response":
        return cls(result_type=_method_value(result_type), result=result)

    @classmethod
    def failure(cls, result_type: str, code: ErrorCode, message: str) -> "Response":
        return cls(
            result_type=_method_value(result_type),
            error=NIP47Error(code=code, message=message),
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"result_type": self.result_type}
        if self.error is not None:
            data["error"] = self.error.to_dict()
        else:
            data["result"] = self.result
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> "Response":
        data = _as_dict(json.loads(text))
        error = data.get("error")
        return cls(
            result_type=data.get("result_type", ""),
            result=data.get("result"),
            error=(
                NIP47Error(code=ErrorCode(error["code"]), message=error.get("message", ""))
                if error
                else None
            ),
        )


def _method_value(method: str) -> str:
    return method.value if isinstance(method, Method) else method
