"""
Buy-and-hold indicator: one Buy on the first candle, nothing afterwards.
"""

from ...data.candle import Candle
from ..base_indicator import Action, IndicatorConfig, IndicatorInstance, SignalVector


class HODL(IndicatorConfig):
    """Buy once and never sell."""

    name = "HODL"
    signal_count = 1

    def _create_instance(self, first_candle: Candle) -> "HODLInstance":
        return HODLInstance(self)


class HODLInstance(IndicatorInstance):
    """Signal 0: Buy(1) on the first candle, None afterwards."""

    def __init__(self, config: HODL):
        super().__init__(config)
        self._bought = False

    def next(self, candle: Candle) -> SignalVector:
        if self._bought:
            return (Action.none(),)
        self._bought = True
        return (Action.buy(1),)
