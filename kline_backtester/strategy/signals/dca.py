"""
Dollar-cost averaging indicator.

Fires a Buy on the first candle of every calendar month, regardless of
price. The month is taken from the candle's start_time.
"""

from typing import Optional, Tuple

from ...data.candle import Candle
from ..base_indicator import Action, IndicatorConfig, IndicatorInstance, SignalVector


class DCA(IndicatorConfig):
    """Monthly dollar-cost averaging."""

    name = "DCA"
    signal_count = 1

    def _create_instance(self, first_candle: Candle) -> "DCAInstance":
        return DCAInstance(self)


class DCAInstance(IndicatorInstance):
    """
    Signal 0: Buy(1) when the candle opens a month not seen before, else None.

    ``last_period`` is None until the first candle arrives, so the first
    candle always buys.
    """

    def __init__(self, config: DCA):
        super().__init__(config)
        self.last_period: Optional[Tuple[int, int]] = None

    def next(self, candle: Candle) -> SignalVector:
        period = (candle.start_time.year, candle.start_time.month)
        action = Action.buy(1) if period != self.last_period else Action.none()
        self.last_period = period
        return (action,)
