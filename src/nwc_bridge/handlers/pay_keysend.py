"""
Pay Keysend Handler

Spontaneous payment to a node key, gated by the same limits as invoices.
"""

import logging
from typing import TYPE_CHECKING

from ..backend import BackendError
from ..protocol import ErrorCode, PayKeysendParams, Response
from .quota import QuotaExceededError, reserve_payment

if TYPE_CHECKING:
    from ..backend import PaymentBackend
    from ..config import BridgeConfig
    from ..payments import PaymentTracker

logger = logging.getLogger("nwc-bridge.handlers.pay_keysend")


async def pay_keysend(
    params: PayKeysendParams,
    method: str,
    backend: "PaymentBackend",
    tracker: "PaymentTracker",
    config: "BridgeConfig",
) -> Response:
    """
    Send a keysend payment within the configured spending limits.

    Returns:
        Response with the preimage, or a QUOTA_EXCEEDED / PAYMENT_FAILED error
    """
    msats = params.amount

    try:
        reservation = await reserve_payment(msats, tracker=tracker, config=config)
    except QuotaExceededError as e:
        logger.warning(f"Rejected keysend of {msats} msats: {e}")
        return Response.failure(method, ErrorCode.QUOTA_EXCEEDED, str(e))

    try:
        result = await backend.pay_keysend(
            params.pubkey,
            msats,
            preimage=params.preimage,
            tlv_records=params.tlv_records,
        )
    except BackendError as e:
        tracker.remove_payment(reservation)
        logger.error(f"Error paying keysend: {e}")
        return Response.failure(method, ErrorCode.PAYMENT_FAILED, f"Failed to pay keysend: {e}")
    except Exception:
        tracker.remove_payment(reservation)
        raise

    logger.info(f"Paid keysend of {msats} msats to {params.pubkey[:16]}...")
    return Response.success(method, {"preimage": result.preimage})
