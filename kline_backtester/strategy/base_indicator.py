"""
Indicator contract shared by all strategies.

An indicator is split in two halves: an immutable config that knows how to
validate itself and build an instance from a warm-up candle, and a stateful
instance that turns each candle into a signal vector.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..data.candle import Candle


class ActionType(Enum):
    """Discrete trade actions."""
    BUY = "buy"
    SELL = "sell"
    NONE = "none"


@dataclass(frozen=True)
class Action:
    """A single signal. Magnitude is carried through but never sized on."""
    action_type: ActionType
    magnitude: Optional[int] = None

    @classmethod
    def buy(cls, magnitude: Optional[int] = None) -> "Action":
        return cls(ActionType.BUY, magnitude)

    @classmethod
    def sell(cls, magnitude: Optional[int] = None) -> "Action":
        return cls(ActionType.SELL, magnitude)

    @classmethod
    def none(cls) -> "Action":
        return cls(ActionType.NONE)

    @property
    def is_buy(self) -> bool:
        return self.action_type == ActionType.BUY

    @property
    def is_sell(self) -> bool:
        return self.action_type == ActionType.SELL

    @property
    def is_none(self) -> bool:
        return self.action_type == ActionType.NONE

    def __str__(self) -> str:
        if self.magnitude is None:
            return self.action_type.value
        return f"{self.action_type.value}({self.magnitude})"


# One action per sub-signal, emitted once per candle.
SignalVector = Tuple[Action, ...]


class IndicatorError(Exception):
    """Indicator could not be initialised from its configuration."""


class IndicatorInstance(ABC):
    """
    Stateful per-run indicator.

    ``next`` must be called exactly once per candle, in end_time order.
    """

    def __init__(self, config: "IndicatorConfig"):
        self._config = config

    @property
    def config(self) -> "IndicatorConfig":
        return self._config

    @abstractmethod
    def next(self, candle: Candle) -> SignalVector:
        """
        Advance the indicator by one candle.

        Args:
            candle: The newest candle.

        Returns:
            Signal vector of length ``config.signal_count``.
        """
        pass


class IndicatorConfig(ABC):
    """
    Abstract base class for indicator configurations.
    """

    name: str = "indicator"
    signal_count: int = 1

    def validate(self) -> bool:
        """Check that the configuration is usable."""
        return True

    def init(self, first_candle: Candle) -> IndicatorInstance:
        """
        Build a fresh instance seeded from the warm-up candle.

        Args:
            first_candle: First candle of the run. It is not consumed.

        Raises:
            IndicatorError: If the configuration is invalid.
        """
        if not self.validate():
            raise IndicatorError(f"Invalid {self.name} configuration: {self!r}")
        return self._create_instance(first_candle)

    @abstractmethod
    def _create_instance(self, first_candle: Candle) -> IndicatorInstance:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
