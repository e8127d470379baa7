"""
Pay Invoice Handler

Pays a BOLT11 invoice after the quota gate has reserved its amount.
Used for pay_invoice and for every multi_pay_invoice entry.
"""

import logging
from typing import TYPE_CHECKING

from bolt11 import decode as decode_bolt11

from ..backend import BackendError
from ..protocol import ErrorCode, PayInvoiceParams, Response
from .quota import QuotaExceededError, reserve_payment

if TYPE_CHECKING:
    from ..backend import PaymentBackend
    from ..config import BridgeConfig
    from ..payments import PaymentTracker

logger = logging.getLogger("nwc-bridge.handlers.pay_invoice")


async def pay_invoice(
    params: PayInvoiceParams,
    method: str,
    backend: "PaymentBackend",
    tracker: "PaymentTracker",
    config: "BridgeConfig",
) -> Response:
    """
    Pay a Lightning invoice within the configured spending limits.

    The amount is the invoice amount, else the request's ``amount``, else 0.

    Args:
        params: Invoice and optional amount
        method: result_type for the response
        backend: Node to pay from
        tracker: Ledger of accepted payments
        config: Spending limits

    Returns:
        Response with the preimage, or a QUOTA_EXCEEDED / INSUFFICIENT_BALANCE
        error
    """
    try:
        decoded = decode_bolt11(params.invoice)
    except Exception as e:
        logger.warning(f"Failed to decode invoice: {e}")
        return Response.failure(method, ErrorCode.OTHER, "Failed to parse invoice")

    invoice_msats = decoded.amount_msat or 0
    msats = invoice_msats or params.amount or 0

    try:
        reservation = await reserve_payment(msats, tracker=tracker, config=config)
    except QuotaExceededError as e:
        logger.warning(f"Rejected invoice payment of {msats} msats: {e}")
        return Response.failure(method, ErrorCode.QUOTA_EXCEEDED, str(e))

    try:
        result = await backend.pay_invoice(
            params.invoice,
            amount_msat=None if invoice_msats else params.amount,
        )
    except BackendError as e:
        tracker.remove_payment(reservation)
        logger.error(f"Error paying invoice: {e}")
        return Response.failure(
            method,
            ErrorCode.INSUFFICIENT_BALANCE,
            f"Failed to pay invoice: {e}",
        )
    except Exception:
        tracker.remove_payment(reservation)
        raise

    logger.info(f"Paid invoice of {msats} msats (fee {result.fee_msat} msats)")
    return Response.success(method, {"preimage": result.preimage})
