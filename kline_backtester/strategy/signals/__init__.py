"""
Concrete indicators for the built-in strategies.
"""

from .macd import MACD, MACDInstance, MACDResult
from .hodl import HODL, HODLInstance
from .dca import DCA, DCAInstance

__all__ = [
    # MACD
    "MACD",
    "MACDInstance",
    "MACDResult",
    # Buy and hold
    "HODL",
    "HODLInstance",
    # Dollar-cost averaging
    "DCA",
    "DCAInstance",
]
