"""
Backtest engine: replays a candle feed through a trader.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from ..data.candle import Candle, CandleFeed
from ..observability.logger import get_logger
from ..strategy.base_indicator import ActionType
from .account import Account
from .trader import GenericTrader

logger = get_logger(__name__)


class EngineState(Enum):
    """Lifecycle of a backtest run."""
    IDLE = "idle"
    RUNNING = "running"
    EXHAUSTED = "exhausted"


@dataclass
class BacktestResults:
    """Results from a backtest run."""
    strategy: str
    account: Account
    candles_processed: int
    first_candle_time: Optional[datetime]
    last_candle_time: Optional[datetime]
    action_counts: Dict[str, int] = field(default_factory=dict)
    last_price: float = 0.0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def final_equity(self) -> float:
        return self.account.last_equity

    @property
    def total_return_percent(self) -> float:
        initial = self.account.initial_fund
        if initial <= 0:
            return 0.0
        return (self.final_equity - initial) / initial * 100


class BacktestEngine:
    """
    Core backtest simulation loop.

    Each step pulls one candle, lets the trader act on it, then marks the
    account to the candle close. One candle's effects land fully before
    the next candle is read.
    """

    def __init__(self, trader: GenericTrader, account: Account):
        """
        Initialize the backtest engine.

        Args:
            trader: Trader whose strategy is being tested.
            account: Account the trader executes against.
        """
        self.trader = trader
        self.account = account
        self.state = EngineState.IDLE

        self._feed: Optional[CandleFeed] = None
        self._first_candle: Optional[Candle] = None
        self._last_candle: Optional[Candle] = None
        self._action_counts: Dict[str, int] = {t.value: 0 for t in ActionType}
        self.log = logger.bind(strategy=trader.name, symbol=trader.symbol)

    def start(self, feed: CandleFeed) -> None:
        """
        Attach the feed and seed the trader's indicator.

        The warm-up candle is only peeked; the first step still processes it.

        Raises:
            ValueError: If the feed is empty.
            RuntimeError: If the engine was already started.
        """
        if self.state != EngineState.IDLE:
            raise RuntimeError(f"Engine already {self.state.value}")

        first_candle = feed.peek()
        if first_candle is None:
            raise ValueError("Cannot backtest an empty candle feed")

        self.trader.initialise(first_candle)
        self._feed = feed
        self.state = EngineState.RUNNING

        if self.account.start_time is None:
            self.account.start_time = first_candle.start_time

        self.log.info(
            "Starting backtest",
            candles=len(feed),
            initial_fund=self.account.initial_fund
        )

    def step(self) -> Optional[Candle]:
        """
        Process the next candle.

        Returns:
            The processed candle, or None once the feed is exhausted.

        Raises:
            RuntimeError: If called before start().
        """
        if self.state == EngineState.IDLE:
            raise RuntimeError("Engine must be started before stepping")
        if self.state == EngineState.EXHAUSTED:
            return None

        if not self._feed.has_next():
            self.state = EngineState.EXHAUSTED
            self.log.debug("Candle feed exhausted", candles=self._feed.consumed)
            return None

        candle = self._feed.next()
        action = self.trader.next_trade_session(candle, self.account)
        self._action_counts[action.action_type.value] += 1
        self.account.mark_to_market(candle.end_time, candle.close)

        if self._first_candle is None:
            self._first_candle = candle
        self._last_candle = candle
        return candle

    def run(self, feed: CandleFeed) -> BacktestResults:
        """
        Run the backtest until the feed is exhausted.

        Args:
            feed: Candles to replay.

        Returns:
            BacktestResults with the final account state.
        """
        start_time = datetime.now(timezone.utc)
        self.start(feed)

        while self.step() is not None:
            pass

        results = self.results()
        results.start_time = start_time
        results.end_time = datetime.now(timezone.utc)

        self.log.info(
            "Backtest completed",
            candles=results.candles_processed,
            trades=len(self.account.trade_history),
            final_equity=round(results.final_equity, 2),
            available_fund=round(self.account.available_fund, 2),
            position=self.account.position.quantity
        )
        return results

    def results(self) -> BacktestResults:
        """Snapshot of the run so far."""
        return BacktestResults(
            strategy=self.trader.name,
            account=self.account,
            candles_processed=self._feed.consumed if self._feed else 0,
            first_candle_time=self._first_candle.end_time if self._first_candle else None,
            last_candle_time=self._last_candle.end_time if self._last_candle else None,
            action_counts=dict(self._action_counts),
            last_price=self._last_candle.close if self._last_candle else 0.0,
        )
