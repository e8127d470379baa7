"""
Tests for Payment Tracker and the quota gate
"""

import asyncio

import pytest

from nwc_bridge.config import BridgeConfig
from nwc_bridge.handlers.quota import QuotaExceededError, reserve_payment
from nwc_bridge.payments import DAY_SECONDS, PaymentTracker


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_config(max_amount: int = 100_000, daily_limit: int = 100_000) -> BridgeConfig:
    return BridgeConfig(max_amount=max_amount, daily_limit=daily_limit)


class TestPaymentTracker:
    """Tests for PaymentTracker."""

    def test_empty_sum(self):
        """Test a new tracker sums to zero."""
        assert PaymentTracker().sum_payments() == 0

    def test_add_and_sum(self):
        """Test added payments are summed."""
        tracker = PaymentTracker()
        tracker.add_payment(1_000)
        tracker.add_payment(2_500)

        assert tracker.sum_payments() == 3_500
        assert [p.amount_msats for p in tracker.payments] == [1_000, 2_500]

    def test_old_payments_pruned(self):
        """Test payments older than the window drop out of the sum."""
        clock = FakeClock()
        tracker = PaymentTracker(clock=clock)
        tracker.add_payment(5_000)
        clock.now += 3_600
        tracker.add_payment(7_000)

        clock.now += DAY_SECONDS - 1_800

        assert tracker.sum_payments() == 7_000
        assert len(tracker.payments) == 1

    def test_payment_at_window_edge_kept(self):
        """Test a payment exactly one window old still counts."""
        clock = FakeClock()
        tracker = PaymentTracker(clock=clock)
        tracker.add_payment(5_000)
        clock.now += DAY_SECONDS

        assert tracker.sum_payments() == 5_000

    def test_remove_payment(self):
        """Test a reservation can be withdrawn."""
        tracker = PaymentTracker()
        first = tracker.add_payment(1_000)
        tracker.add_payment(1_000)

        tracker.remove_payment(first)

        assert tracker.sum_payments() == 1_000

    def test_remove_pruned_payment_is_noop(self):
        """Test removing an already pruned record does nothing."""
        clock = FakeClock()
        tracker = PaymentTracker(clock=clock)
        record = tracker.add_payment(1_000)
        clock.now += DAY_SECONDS + 1
        tracker.sum_payments()

        tracker.remove_payment(record)

        assert tracker.sum_payments() == 0


class TestReservePayment:
    """Tests for the quota gate."""

    @pytest.mark.asyncio
    async def test_within_limits(self):
        """Test a payment within both limits is recorded."""
        tracker = PaymentTracker()

        await reserve_payment(10_000_000, tracker=tracker, config=make_config())

        assert tracker.sum_payments() == 10_000_000

    @pytest.mark.asyncio
    async def test_exceeds_max_amount(self):
        """Test a payment above the per-payment cap is rejected."""
        tracker = PaymentTracker()

        with pytest.raises(QuotaExceededError, match="Invoice amount too high"):
            await reserve_payment(
                75_000_000, tracker=tracker, config=make_config(max_amount=50_000)
            )

        assert tracker.sum_payments() == 0

    @pytest.mark.asyncio
    async def test_exceeds_daily_limit(self):
        """Test a payment that would pass the daily limit is rejected."""
        tracker = PaymentTracker()
        tracker.add_payment(90_000_000)

        with pytest.raises(QuotaExceededError, match="Daily limit exceeded"):
            await reserve_payment(20_000_000, tracker=tracker, config=make_config())

        assert tracker.sum_payments() == 90_000_000

    @pytest.mark.asyncio
    async def test_exactly_daily_limit_allowed(self):
        """Test reaching the daily limit exactly is allowed."""
        tracker = PaymentTracker()
        tracker.add_payment(40_000_000)

        await reserve_payment(60_000_000, tracker=tracker, config=make_config())

        assert tracker.sum_payments() == 100_000_000

    @pytest.mark.asyncio
    async def test_zero_limits_disable_checks(self):
        """Test limits of 0 never reject a payment."""
        tracker = PaymentTracker()
        config = make_config(max_amount=0, daily_limit=0)

        await reserve_payment(10**12, tracker=tracker, config=config)
        await reserve_payment(10**12, tracker=tracker, config=config)

        assert tracker.sum_payments() == 2 * 10**12

    @pytest.mark.asyncio
    async def test_zero_max_amount_keeps_daily_limit(self):
        """Test disabling one limit leaves the other in force."""
        tracker = PaymentTracker()

        with pytest.raises(QuotaExceededError, match="Daily limit exceeded"):
            await reserve_payment(
                200_000_000, tracker=tracker, config=make_config(max_amount=0)
            )

    @pytest.mark.asyncio
    async def test_concurrent_reservations_serialized(self):
        """Test concurrent reservations never exceed the daily limit."""
        tracker = PaymentTracker()
        config = make_config(max_amount=0, daily_limit=100_000)

        results = await asyncio.gather(
            *(reserve_payment(15_000_000, tracker=tracker, config=config) for _ in range(10)),
            return_exceptions=True,
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(accepted) == 6
        assert len(rejected) == 4
        assert tracker.sum_payments() == 90_000_000
