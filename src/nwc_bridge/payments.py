"""
Payment Tracker

In-memory ledger of accepted payments inside a rolling day window.
The tracker only records; limits are enforced by the caller while holding
``PaymentTracker.lock``.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger("nwc-bridge.payments")

DAY_SECONDS = 86_400


@dataclass(frozen=True)
class PaymentRecord:
    """Record of a single accepted payment."""

    timestamp: float
    amount_msats: int


class PaymentTracker:
    """
    Tracks accepted payment amounts over a sliding window.

    Attributes:
        window_seconds: Length of the tracking window
        lock: Held by callers across check-then-add so concurrent payment
            commands cannot both pass against a stale sum
    """

    def __init__(
        self,
        window_seconds: int = DAY_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self.lock = asyncio.Lock()
        self._clock = clock
        self._payments: deque[PaymentRecord] = deque()

    def sum_payments(self) -> int:
        """Total msats accepted inside the current window."""
        self._prune(self._clock())
        return sum(record.amount_msats for record in self._payments)

    def add_payment(self, amount_msats: int) -> PaymentRecord:
        """
        Record an accepted payment.

        Args:
            amount_msats: Amount in millisatoshis

        Returns:
            The created PaymentRecord, usable with remove_payment
        """
        record = PaymentRecord(timestamp=self._clock(), amount_msats=amount_msats)
        self._payments.append(record)
        logger.debug(f"Recorded payment of {amount_msats} msats")
        return record

    def remove_payment(self, record: PaymentRecord) -> None:
        """Withdraw a reservation whose payment did not go through."""
        try:
            self._payments.remove(record)
        except ValueError:
            # already pruned out of the window
            return
        logger.debug(f"Released reservation of {record.amount_msats} msats")

    @property
    def payments(self) -> list[PaymentRecord]:
        return list(self._payments)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._payments and self._payments[0].timestamp < cutoff:
            self._payments.popleft()
