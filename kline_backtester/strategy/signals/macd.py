"""
Moving Average Convergence Divergence (MACD) indicator, streaming form.

MACD Line = EMA(fast_period) - EMA(slow_period)
Signal Line = EMA(signal_period) of MACD Line
Histogram = MACD Line - Signal Line

Signals:
- index 0: MACD line crossing the zero line (up -> Buy, down -> Sell)
- index 1: MACD line crossing the signal line (up -> Buy, down -> Sell)
"""

from dataclasses import dataclass
from typing import Optional

from ...data.candle import Candle
from ..base_indicator import Action, IndicatorConfig, IndicatorInstance, SignalVector


@dataclass
class MACDResult:
    """MACD state after the latest candle."""
    macd_line: float
    signal_line: float
    histogram: float
    zero_cross: str       # "bullish", "bearish", or "neutral"
    signal_cross: str     # "bullish", "bearish", or "neutral"


def _cross(previous: float, current: float) -> str:
    if previous <= 0 < current:
        return "bullish"
    if previous >= 0 > current:
        return "bearish"
    return "neutral"


def _to_action(cross: str) -> Action:
    if cross == "bullish":
        return Action.buy(1)
    if cross == "bearish":
        return Action.sell(1)
    return Action.none()


class MACD(IndicatorConfig):
    """
    MACD configuration.

    Standard configuration: fast 12, slow 26, signal 9.
    """

    name = "MACD"
    signal_count = 2

    def __init__(
        self,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9
    ):
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period

    def validate(self) -> bool:
        return (
            self.fast_period > 0
            and self.signal_period > 0
            and self.fast_period < self.slow_period
        )

    def _create_instance(self, first_candle: Candle) -> "MACDInstance":
        return MACDInstance(self, first_candle.close)

    def __repr__(self) -> str:
        return (
            f"MACD(fast_period={self.fast_period}, slow_period={self.slow_period}, "
            f"signal_period={self.signal_period})"
        )


class MACDInstance(IndicatorInstance):
    """
    Streaming MACD.

    Both price EMAs are seeded with the warm-up close, so the MACD line and
    its signal line start at zero.
    """

    def __init__(self, config: MACD, seed_price: float):
        super().__init__(config)

        # Smoothing factors
        self.fast_k = 2.0 / (config.fast_period + 1)
        self.slow_k = 2.0 / (config.slow_period + 1)
        self.signal_k = 2.0 / (config.signal_period + 1)

        # State
        self._fast_ema = seed_price
        self._slow_ema = seed_price
        self._signal_ema = 0.0
        self._macd = 0.0
        self.last_result: Optional[MACDResult] = None

    def next(self, candle: Candle) -> SignalVector:
        price = candle.close
        prev_macd = self._macd
        prev_histogram = self._macd - self._signal_ema

        self._fast_ema = price * self.fast_k + self._fast_ema * (1 - self.fast_k)
        self._slow_ema = price * self.slow_k + self._slow_ema * (1 - self.slow_k)
        self._macd = self._fast_ema - self._slow_ema
        self._signal_ema = self._macd * self.signal_k + self._signal_ema * (1 - self.signal_k)
        histogram = self._macd - self._signal_ema

        zero_cross = _cross(prev_macd, self._macd)
        signal_cross = _cross(prev_histogram, histogram)

        self.last_result = MACDResult(
            macd_line=self._macd,
            signal_line=self._signal_ema,
            histogram=histogram,
            zero_cross=zero_cross,
            signal_cross=signal_cross,
        )

        return (_to_action(zero_cross), _to_action(signal_cross))
