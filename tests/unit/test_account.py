"""
Unit tests for fee models, stake sizing and account bookkeeping.
"""

import pytest
import sys
import os
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from kline_backtester.backtest.account import Account, Position
from kline_backtester.backtest.fees import FeeType, StakeSize, StakeType, TradingFee


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestTradingFee:
    """Tests for trading fee model."""

    def test_fixed_fee(self):
        """Fixed fee should not depend on stake or proceeds."""
        fee = TradingFee.fixed(2.5)
        assert fee.buy_fee(1000.0) == 2.5
        assert fee.sell_fee(100.0, 10.0) == 2.5

    def test_percentage_buy_fee_is_inclusive(self):
        """Buy fee should be exactly p of the total outlay."""
        for rate in (0.001, 0.005, 0.1, 0.25, 0.5):
            for stake in (1.0, 100.0, 1234.5678):
                fee = TradingFee.percentage(rate).buy_fee(stake)
                assert fee == pytest.approx(stake * rate / (1 - rate))
                assert fee == pytest.approx((stake + fee) * rate)

    def test_percentage_sell_fee(self):
        """Sell fee should be p of gross proceeds."""
        fee = TradingFee.percentage(0.01)
        assert fee.sell_fee(200.0, 3.0) == pytest.approx(6.0)

    def test_zero_percentage(self):
        """Zero rate should charge nothing."""
        fee = TradingFee.percentage(0.0)
        assert fee.buy_fee(1000.0) == 0.0
        assert fee.sell_fee(100.0, 10.0) == 0.0

    def test_rate_of_one_rejected(self):
        """A rate of 1 would make the buy fee infinite."""
        with pytest.raises(ValueError):
            TradingFee.percentage(1.0)

    def test_invalid_values_rejected(self):
        """Negative fees and rates should be rejected."""
        with pytest.raises(ValueError):
            TradingFee.percentage(-0.01)
        with pytest.raises(ValueError):
            TradingFee.percentage(1.5)
        with pytest.raises(ValueError):
            TradingFee.fixed(-1.0)

    def test_non_finite_values_rejected(self):
        """NaN and infinite fees should be rejected."""
        for value in (float("nan"), float("inf")):
            with pytest.raises(ValueError):
                TradingFee.fixed(value)
            with pytest.raises(ValueError):
                TradingFee.percentage(value)
        with pytest.raises(ValueError):
            TradingFee.from_dict({"type": "fixed", "value": None})

    def test_from_dict(self):
        """Fee should load from config dictionaries."""
        fee = TradingFee.from_dict({"type": "fixed", "value": 3})
        assert fee.fee_type == FeeType.FIXED
        assert fee.value == 3.0
        assert TradingFee.from_dict(fee.to_dict()) == fee

    def test_from_dict_unknown_type(self):
        """Unknown fee types should be rejected."""
        with pytest.raises(ValueError):
            TradingFee.from_dict({"type": "tiered", "value": 0.1})


class TestStakeSize:
    """Tests for stake sizing."""

    def test_fixed_amount_affordable(self):
        """Fixed amount should be used when the fund covers it."""
        assert StakeSize.fixed_amount(100.0).stake(1000.0) == 100.0
        assert StakeSize.fixed_amount(1000.0).stake(1000.0) == 1000.0

    def test_fixed_amount_unaffordable(self):
        """Fixed amount above the fund should yield zero, not a partial stake."""
        assert StakeSize.fixed_amount(100.0).stake(99.99) == 0.0

    def test_fixed_percentage(self):
        """Percentage stake should scale with the fund."""
        assert StakeSize.fixed_percentage(0.25).stake(1000.0) == 250.0
        assert StakeSize.fixed_percentage(1.0).stake(1000.0) == 1000.0
        assert StakeSize.fixed_percentage(0.5).stake(0.0) == 0.0

    def test_invalid_values_rejected(self):
        """Out of range stakes should be rejected."""
        with pytest.raises(ValueError):
            StakeSize.fixed_percentage(1.01)
        with pytest.raises(ValueError):
            StakeSize.fixed_percentage(-0.1)
        with pytest.raises(ValueError):
            StakeSize.fixed_amount(-5.0)

    def test_non_finite_values_rejected(self):
        """NaN and infinite stakes should be rejected."""
        for value in (float("nan"), float("inf")):
            with pytest.raises(ValueError):
                StakeSize.fixed_amount(value)
            with pytest.raises(ValueError):
                StakeSize.fixed_percentage(value)
        with pytest.raises(ValueError):
            StakeSize.from_dict({"type": "fixed_amount", "value": "lots"})

    def test_from_dict(self):
        """Stake should load from config dictionaries."""
        stake = StakeSize.from_dict({"type": "fixed_amount", "value": 50})
        assert stake.stake_type == StakeType.FIXED_AMOUNT
        assert stake.value == 50.0


class TestAccount:
    """Tests for account bookkeeping."""

    def setup_method(self):
        """Set up test fixtures."""
        self.account = Account(initial_fund=1000.0)

    def test_initial_state(self):
        """Account should start with the full fund and no position."""
        assert self.account.available_fund == 1000.0
        assert self.account.position.quantity == 0.0
        assert self.account.position.cost == 0.0
        assert not self.account.position.is_open
        assert self.account.profit_and_loss_history == []
        assert self.account.trade_history == []
        assert self.account.last_equity == 1000.0

    def test_open_position(self):
        """Open should move the outlay from cash into the position."""
        record = self.account.open(T0, 4.0, 100.0, 2.0)

        assert self.account.available_fund == pytest.approx(600.0)
        assert self.account.position.quantity == 4.0
        assert self.account.position.cost == pytest.approx(400.0)
        assert record.side == "buy"
        assert record.cash_flow == pytest.approx(-400.0)
        assert record.realized_pnl is None

    def test_open_with_explicit_cost(self):
        """An explicit cost should be used as the outlay."""
        self.account.open(T0, 2.0, 100.0, 1.0, cost=200.0)
        assert self.account.available_fund == pytest.approx(800.0)
        assert self.account.position.cost == pytest.approx(200.0)

    def test_open_accumulates(self):
        """Repeated opens should add to quantity and cost."""
        self.account.open(T0, 1.0, 100.0, 0.0)
        self.account.open(T0 + timedelta(days=1), 2.0, 200.0, 0.0)

        assert self.account.position.quantity == 3.0
        assert self.account.position.cost == pytest.approx(500.0)
        assert self.account.position.average_price == pytest.approx(500.0 / 3)
        assert self.account.available_fund == pytest.approx(500.0)

    def test_open_rejects_invalid_arguments(self):
        """Open should refuse non-positive quantity or price and negative fee."""
        with pytest.raises(ValueError):
            self.account.open(T0, 0.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.open(T0, -1.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.open(T0, 1.0, 0.0, 0.0)
        with pytest.raises(ValueError):
            self.account.open(T0, 1.0, 100.0, -1.0)
        assert self.account.trade_history == []

    def test_open_rejects_overspend(self):
        """Open should never drive the fund negative."""
        with pytest.raises(ValueError):
            self.account.open(T0, 11.0, 100.0, 0.0)
        assert self.account.available_fund == 1000.0
        assert self.account.position.quantity == 0.0

    def test_open_whole_fund(self):
        """Spending the exact fund should leave zero cash."""
        self.account.open(T0, 10.0, 100.0, 0.0)
        assert self.account.available_fund == 0.0

    def test_close_full_position(self):
        """Full close should reset the position and realize P&L."""
        self.account.open(T0, 10.0, 100.0, 0.0)
        record = self.account.close(T0 + timedelta(days=1), 10.0, 120.0, 12.0)

        assert self.account.position.quantity == 0.0
        assert self.account.position.cost == 0.0
        assert self.account.available_fund == pytest.approx(1188.0)
        assert record.realized_pnl == pytest.approx(188.0)
        assert self.account.realized_pnl == pytest.approx(188.0)
        assert record.cash_flow == pytest.approx(1188.0)

    def test_close_at_loss(self):
        """A close below cost should realize a loss."""
        self.account.open(T0, 10.0, 100.0, 0.0)
        record = self.account.close(T0, 10.0, 80.0, 0.0)
        assert record.realized_pnl == pytest.approx(-200.0)
        assert self.account.available_fund == pytest.approx(800.0)

    def test_partial_close_removes_cost_pro_rata(self):
        """Partial close should remove a proportional share of cost."""
        self.account.open(T0, 10.0, 100.0, 0.0)
        record = self.account.close(T0, 4.0, 150.0, 0.0)

        assert self.account.position.quantity == pytest.approx(6.0)
        assert self.account.position.cost == pytest.approx(600.0)
        assert record.realized_pnl == pytest.approx(200.0)

    def test_close_rejects_invalid_arguments(self):
        """Close should refuse quantities it cannot fill."""
        with pytest.raises(ValueError):
            self.account.close(T0, 1.0, 100.0, 0.0)

        self.account.open(T0, 1.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.close(T0, 2.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.close(T0, 1.0, -5.0, 0.0)
        with pytest.raises(ValueError):
            self.account.close(T0, 1.0, 100.0, -1.0)
        assert self.account.position.quantity == 1.0

    def test_close_rejects_fee_driving_fund_negative(self):
        """A fee larger than proceeds plus cash should be refused."""
        self.account.open(T0, 10.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.close(T0, 10.0, 1.0, 50.0)
        assert self.account.position.quantity == 10.0

    def test_mark_to_market(self):
        """Mark to market should value holdings at the given price."""
        self.account.open(T0, 5.0, 100.0, 0.0)
        point = self.account.mark_to_market(T0 + timedelta(days=1), 120.0)

        assert point.equity == pytest.approx(500.0 + 600.0)
        assert self.account.profit_and_loss_history == [point]
        assert self.account.last_equity == pytest.approx(1100.0)
        assert self.account.unrealized_pnl(120.0) == pytest.approx(100.0)

    def test_mark_to_market_does_not_mutate_cash_or_position(self):
        """Mark to market should only append to history."""
        self.account.open(T0, 5.0, 100.0, 0.0)
        trades_before = list(self.account.trade_history)

        self.account.mark_to_market(T0, 50.0)

        assert self.account.available_fund == pytest.approx(500.0)
        assert self.account.position == Position(quantity=5.0, cost=500.0)
        assert self.account.trade_history == trades_before

    def test_invalid_initial_state(self):
        """Negative starting values should be rejected."""
        with pytest.raises(ValueError):
            Account(initial_fund=-1.0)
        with pytest.raises(ValueError):
            Account(initial_fund=100.0, position=Position(quantity=-1.0))

    def test_non_finite_values_rejected(self):
        """NaN fund, position, price or fee should be rejected."""
        with pytest.raises(ValueError):
            Account(initial_fund=float("nan"))
        with pytest.raises(ValueError):
            Account(initial_fund=float("inf"))
        with pytest.raises(ValueError):
            Account(initial_fund=100.0, position=Position(quantity=float("nan")))

        with pytest.raises(ValueError):
            self.account.open(T0, 1.0, float("nan"), 0.0)
        with pytest.raises(ValueError):
            self.account.open(T0, 1.0, 100.0, float("nan"))

        self.account.open(T0, 1.0, 100.0, 0.0)
        with pytest.raises(ValueError):
            self.account.close(T0, 1.0, 100.0, float("nan"))
        assert self.account.available_fund == pytest.approx(900.0)
        assert self.account.position.quantity == 1.0

    def test_to_dict(self):
        """Summary dictionary should reflect the state."""
        self.account.open(T0, 1.0, 100.0, 0.0)
        data = self.account.to_dict()
        assert data["available_fund"] == pytest.approx(900.0)
        assert data["position"] == {"quantity": 1.0, "cost": 100.0}
        assert data["trades"] == 1
