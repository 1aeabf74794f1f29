"""
Indicator contract and built-in strategy indicators.
"""

from .base_indicator import (
    Action,
    ActionType,
    IndicatorConfig,
    IndicatorError,
    IndicatorInstance,
    SignalVector,
)

__all__ = [
    "Action",
    "ActionType",
    "IndicatorConfig",
    "IndicatorError",
    "IndicatorInstance",
    "SignalVector",
]
