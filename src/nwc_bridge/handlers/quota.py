"""
Quota Gate

Checks a payment against the per-payment and daily limits and reserves it
in the ledger, as one step under the tracker lock.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import BridgeConfig
    from ..payments import PaymentRecord, PaymentTracker

logger = logging.getLogger("nwc-bridge.handlers.quota")


class QuotaExceededError(Exception):
    """Exception when a payment would exceed a configured limit."""

    pass


async def reserve_payment(
    amount_msats: int,
    tracker: "PaymentTracker",
    config: "BridgeConfig",
) -> "PaymentRecord":
    """
    Reserve ``amount_msats`` against the configured limits.

    A limit of 0 disables that check.

    Args:
        amount_msats: Payment amount in millisatoshis
        tracker: Ledger of accepted payments
        config: Holds max_amount and daily_limit, in satoshis

    Returns:
        The ledger entry; remove it again if the payment fails

    Raises:
        QuotaExceededError: If either limit would be exceeded
    """
    async with tracker.lock:
        if config.max_amount > 0 and amount_msats > config.max_amount * 1_000:
            raise QuotaExceededError("Invoice amount too high.")

        if (
            config.daily_limit > 0
            and tracker.sum_payments() + amount_msats > config.daily_limit * 1_000
        ):
            raise QuotaExceededError("Daily limit exceeded.")

        return tracker.add_payment(amount_msats)
