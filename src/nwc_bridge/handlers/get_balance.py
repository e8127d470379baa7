"""
Get Balance Handler

Reports what the client may still spend today, not the node balance.
"""

import logging
from typing import TYPE_CHECKING

from ..backend import BackendError
from ..protocol import ErrorCode, Response

if TYPE_CHECKING:
    from ..backend import PaymentBackend
    from ..config import BridgeConfig
    from ..payments import PaymentTracker

logger = logging.getLogger("nwc-bridge.handlers.get_balance")


async def get_balance(
    method: str,
    backend: "PaymentBackend",
    tracker: "PaymentTracker",
    config: "BridgeConfig",
) -> Response:
    """
    Remaining daily allowance in msats.

    With the daily limit disabled the node's spendable balance is reported.
    """
    if config.daily_limit > 0:
        remaining_msats = max(config.daily_limit * 1_000 - tracker.sum_payments(), 0)
    else:
        try:
            remaining_msats = await backend.get_balance()
        except BackendError as e:
            logger.error(f"Error getting balance: {e}")
            return Response.failure(method, ErrorCode.INTERNAL, f"Failed to get balance: {e}")

    logger.info(f"Current balance: {remaining_msats}msats")
    return Response.success(method, {"balance": remaining_msats})
