"""
Unit tests for the backtest engine and candle feed.
"""

import pytest
import random
import sys
import os
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from kline_backtester.backtest.account import Account
from kline_backtester.backtest.engine import BacktestEngine, EngineState
from kline_backtester.backtest.fees import StakeSize, TradingFee
from kline_backtester.backtest.trader import (
    DCATrader,
    GenericTrader,
    HODLTrader,
    MACDTrader,
    SignalMismatchError,
)
from kline_backtester.data.candle import Candle, CandleFeed
from kline_backtester.strategy.base_indicator import (
    Action,
    IndicatorConfig,
    IndicatorInstance,
)


START = datetime(2023, 1, 1, tzinfo=timezone.utc)


def create_candles(closes, start=START, step=timedelta(days=1)):
    """Create consecutive candles from closing prices."""
    candles = []
    for i, close in enumerate(closes):
        open_time = start + step * i
        candles.append(Candle(
            start_time=open_time,
            end_time=open_time + step,
            open=close,
            high=close * 1.01,
            low=close * 0.99,
            close=close,
            volume=1000.0
        ))
    return candles


class ScriptedIndicator(IndicatorConfig):
    """Replays a fixed list of single-signal vectors."""

    name = "scripted"
    signal_count = 1

    def __init__(self, actions):
        self.actions = list(actions)

    def _create_instance(self, first_candle):
        return ScriptedInstance(self)


class ScriptedInstance(IndicatorInstance):

    def __init__(self, config):
        super().__init__(config)
        self._index = 0

    def next(self, candle):
        action = self.config.actions[self._index % len(self.config.actions)]
        self._index += 1
        return (action,)


class ScriptedTrader(GenericTrader):
    """Trader driven by a ScriptedIndicator."""

    name = "scripted"
    signal_index = 0


class TestCandleFeed:
    """Tests for the candle feed."""

    def test_pull_sequence(self):
        """Feed should yield candles in order then signal exhaustion."""
        candles = create_candles([1.0, 2.0])
        feed = CandleFeed(candles)

        assert feed.has_next()
        assert feed.peek() == candles[0]
        assert feed.next() == candles[0]
        assert feed.next() == candles[1]
        assert not feed.has_next()
        assert feed.peek() is None
        assert feed.consumed == 2
        with pytest.raises(StopIteration):
            feed.next()

    def test_iteration(self):
        """Feed should be iterable and drain as it goes."""
        feed = CandleFeed(create_candles([1.0, 2.0, 3.0]))
        assert [c.close for c in feed] == [1.0, 2.0, 3.0]
        assert list(feed) == []

    def test_rejects_unordered_candles(self):
        """Out of order or duplicate end times should be rejected."""
        candles = create_candles([1.0, 2.0])
        with pytest.raises(ValueError):
            CandleFeed([candles[1], candles[0]])
        with pytest.raises(ValueError):
            CandleFeed([candles[0], candles[0]])

    def test_rejects_inverted_candle(self):
        """start_time must be before end_time."""
        candle = create_candles([1.0])[0]
        bad = Candle(candle.end_time, candle.start_time, 1.0, 1.0, 1.0, 1.0, 1.0)
        with pytest.raises(ValueError):
            CandleFeed([bad])


class TestBacktestEngine:
    """Tests for the backtest driver."""

    def test_empty_feed_rejected(self):
        """An empty feed cannot seed the indicator."""
        engine = BacktestEngine(HODLTrader(TradingFee.percentage(0.0)), Account(initial_fund=100.0))
        with pytest.raises(ValueError):
            engine.run(CandleFeed([]))

    def test_step_before_start(self):
        """Stepping an unstarted engine should raise."""
        engine = BacktestEngine(HODLTrader(TradingFee.percentage(0.0)), Account(initial_fund=100.0))
        with pytest.raises(RuntimeError):
            engine.step()

    def test_state_transitions(self):
        """Engine should run until exhausted and then stay exhausted."""
        engine = BacktestEngine(HODLTrader(TradingFee.percentage(0.0)), Account(initial_fund=100.0))
        engine.start(CandleFeed(create_candles([10.0, 11.0])))
        assert engine.state == EngineState.RUNNING

        assert engine.step() is not None
        assert engine.step() is not None
        assert engine.step() is None
        assert engine.state == EngineState.EXHAUSTED
        assert engine.step() is None

        with pytest.raises(RuntimeError):
            engine.start(CandleFeed(create_candles([10.0])))

    def test_history_matches_candles(self):
        """One equity point per candle, stamped with its end_time."""
        candles = create_candles([100.0 + (i % 7) for i in range(30)])
        account = Account(initial_fund=1000.0)
        engine = BacktestEngine(MACDTrader(TradingFee.percentage(0.001)), account)

        results = engine.run(CandleFeed(candles))

        assert results.candles_processed == 30
        timestamps = [p.timestamp for p in account.profit_and_loss_history]
        assert timestamps == [c.end_time for c in candles]
        assert all(a < b for a, b in zip(timestamps, timestamps[1:]))
        assert results.first_candle_time == candles[0].end_time
        assert results.last_candle_time == candles[-1].end_time
        assert sum(results.action_counts.values()) == 30

    def test_all_none_leaves_account_untouched(self):
        """A strategy that never acts should only grow the equity curve."""
        trader = ScriptedTrader(
            TradingFee.percentage(0.01),
            StakeSize.fixed_percentage(1.0),
            indicator_config=ScriptedIndicator([Action.none()])
        )
        account = Account(initial_fund=1000.0)
        rng = random.Random(7)
        candles = create_candles([rng.uniform(50, 150) for _ in range(40)])

        BacktestEngine(trader, account).run(CandleFeed(candles))

        assert account.available_fund == 1000.0
        assert account.position.quantity == 0.0
        assert account.trade_history == []
        assert len(account.profit_and_loss_history) == 40
        assert all(p.equity == 1000.0 for p in account.profit_and_loss_history)

    def test_hodl_buys_first_candle_close(self):
        """HODL should invest everything at the first close and track price."""
        candles = create_candles([100.0, 120.0, 80.0])
        account = Account(initial_fund=1000.0)
        BacktestEngine(HODLTrader(TradingFee.percentage(0.0)), account).run(CandleFeed(candles))

        assert account.available_fund == 0.0
        assert account.position.quantity == pytest.approx(10.0)
        equity = [p.equity for p in account.profit_and_loss_history]
        assert equity == pytest.approx([1000.0, 1200.0, 800.0])

    def test_dca_buys_monthly(self):
        """DCA should buy a fixed stake on each new month."""
        candles = create_candles([100.0] * 390)
        account = Account(initial_fund=10000.0)
        results = BacktestEngine(
            DCATrader(TradingFee.percentage(0.0), StakeSize.fixed_amount(100.0)),
            account
        ).run(CandleFeed(candles))

        assert len(account.trade_history) == 13
        assert results.action_counts["buy"] == 13
        assert account.available_fund == pytest.approx(10000.0 - 1300.0)
        assert account.position.quantity == pytest.approx(13.0)

    def test_mismatched_decision_rule_fails_fast(self):
        """A rule reading a missing signal should abort the run."""
        trader = MACDTrader(
            TradingFee.percentage(0.0),
            indicator_config=ScriptedIndicator([Action.buy(1)])
        )
        engine = BacktestEngine(trader, Account(initial_fund=100.0))
        with pytest.raises(SignalMismatchError):
            engine.run(CandleFeed(create_candles([1.0, 2.0])))

    def test_buy_then_sell_round_trip(self):
        """Scripted buy/sell should realize the price move minus fees."""
        trader = ScriptedTrader(
            TradingFee.percentage(0.0),
            StakeSize.fixed_percentage(1.0),
            indicator_config=ScriptedIndicator([Action.buy(1), Action.sell(1)])
        )
        account = Account(initial_fund=1000.0)
        BacktestEngine(trader, account).run(CandleFeed(create_candles([100.0, 110.0])))

        assert account.position.quantity == 0.0
        assert account.available_fund == pytest.approx(1100.0)
        assert account.realized_pnl == pytest.approx(100.0)
        assert account.profit_and_loss_history[-1].equity == pytest.approx(1100.0)

    def test_results_summary(self):
        """Results should expose final equity and return."""
        account = Account(initial_fund=1000.0)
        results = BacktestEngine(HODLTrader(TradingFee.percentage(0.0)), account).run(
            CandleFeed(create_candles([100.0, 150.0]))
        )
        assert results.strategy == "hodl"
        assert results.final_equity == pytest.approx(1500.0)
        assert results.total_return_percent == pytest.approx(50.0)
        assert results.start_time <= results.end_time
        assert account.start_time == START


class TestRandomizedRuns:
    """Randomized checks of account bounds over whole runs."""

    @pytest.mark.parametrize("seed", range(10))
    def test_fund_and_position_never_negative(self, seed):
        """Random signals and prices should never break the account."""
        rng = random.Random(seed)
        actions = [rng.choice([Action.buy(1), Action.sell(1), Action.none()]) for _ in range(17)]
        fee = rng.choice([
            TradingFee.percentage(rng.uniform(0.0, 0.9)),
            TradingFee.fixed(rng.uniform(0.0, 20.0)),
        ])
        stake = rng.choice([
            StakeSize.fixed_percentage(rng.uniform(0.0, 1.0)),
            StakeSize.fixed_amount(rng.uniform(0.0, 600.0)),
        ])
        trader = ScriptedTrader(fee, stake, indicator_config=ScriptedIndicator(actions))
        account = Account(initial_fund=1000.0)
        engine = BacktestEngine(trader, account)
        engine.start(CandleFeed(create_candles([rng.uniform(1.0, 500.0) for _ in range(120)])))

        while engine.step() is not None:
            assert account.available_fund >= 0.0
            assert account.position.quantity >= 0.0
            assert account.position.cost >= 0.0

        assert len(account.profit_and_loss_history) == 120
        for record in account.trade_history:
            if record.side == "sell":
                assert record.realized_pnl is not None
