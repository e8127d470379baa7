"""
Lookup Invoice Handler

Finds an invoice by payment hash, or by decoding the BOLT11 string the
client sent.
"""

import logging
from typing import TYPE_CHECKING

from bolt11 import decode as decode_bolt11

from ..backend import BackendError, InvoiceNotFoundError
from ..protocol import ErrorCode, LookupInvoiceParams, Response

if TYPE_CHECKING:
    from ..backend import PaymentBackend

logger = logging.getLogger("nwc-bridge.handlers.lookup_invoice")


async def lookup_invoice(
    params: LookupInvoiceParams,
    method: str,
    backend: "PaymentBackend",
) -> Response:
    """
    Look up an incoming invoice.

    Args:
        params: payment_hash or invoice
        method: result_type for the response
        backend: Node holding the invoice

    Returns:
        Response with the invoice details, or a NOT_FOUND / OTHER / INTERNAL
        error
    """
    description = None
    description_hash = None

    if params.payment_hash:
        payment_hash = params.payment_hash
    else:
        try:
            decoded = decode_bolt11(params.invoice)
        except Exception as e:
            logger.warning(f"Failed to decode invoice: {e}")
            return Response.failure(method, ErrorCode.OTHER, "Failed to parse invoice")
        payment_hash = decoded.payment_hash
        description = decoded.description
        description_hash = decoded.description_hash

    try:
        info = await backend.lookup_invoice(payment_hash)
    except InvoiceNotFoundError:
        return Response.failure(method, ErrorCode.NOT_FOUND, f"Invoice not found: {payment_hash}")
    except BackendError as e:
        logger.error(f"Error looking up invoice: {e}")
        return Response.failure(method, ErrorCode.INTERNAL, f"Failed to look up invoice: {e}")

    logger.info(f"Looked up invoice: {info.invoice[:30]}...")

    if description or description_hash:
        info.description = description
        info.description_hash = description_hash

    return Response.success(method, info.to_dict())
