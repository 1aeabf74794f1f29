"""
Trading fee and stake sizing models.
"""

import math
from dataclasses import dataclass
from enum import Enum


class FeeType(Enum):
    """How a trading fee is charged."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class StakeType(Enum):
    """How much cash a buy commits."""
    FIXED_AMOUNT = "fixed_amount"
    FIXED_PERCENTAGE = "fixed_percentage"


@dataclass(frozen=True)
class TradingFee:
    """
    Fee model applied to every execution.

    A percentage fee is charged inclusive of itself on buys: for stake ``s``
    and rate ``p`` the fee is ``s * p / (1 - p)``, which makes the fee exactly
    ``p`` of the total outlay ``s + fee``. Sells charge ``p`` of the proceeds.
    """
    fee_type: FeeType
    value: float

    def __post_init__(self):
        """Validate configuration."""
        if not math.isfinite(self.value):
            raise ValueError(f"Fee value must be finite, got {self.value}")
        if self.fee_type == FeeType.FIXED:
            if self.value < 0:
                raise ValueError(f"Fixed fee must be non-negative, got {self.value}")
        elif not 0 <= self.value < 1:
            # p -> 1 sends the inclusive buy fee to infinity
            raise ValueError(f"Percentage fee must be in [0, 1), got {self.value}")

    @classmethod
    def fixed(cls, amount: float) -> "TradingFee":
        return cls(FeeType.FIXED, float(amount))

    @classmethod
    def percentage(cls, rate: float) -> "TradingFee":
        return cls(FeeType.PERCENTAGE, float(rate))

    def buy_fee(self, stake: float) -> float:
        """Fee for committing ``stake`` cash to a buy."""
        if self.fee_type == FeeType.FIXED:
            return self.value
        return stake * self.value / (1.0 - self.value)

    def sell_fee(self, price: float, quantity: float) -> float:
        """Fee for selling ``quantity`` at ``price``."""
        if self.fee_type == FeeType.FIXED:
            return self.value
        return price * quantity * self.value

    def to_dict(self) -> dict:
        """Serialize fee to dictionary."""
        return {"type": self.fee_type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "TradingFee":
        """
        Deserialize fee from dictionary.

        Raises:
            ValueError: On unknown type or out-of-range value.
        """
        try:
            value = float(data.get("value", 0.0))
        except (TypeError, ValueError):
            raise ValueError(f"Fee value must be a number, got {data.get('value')!r}") from None
        return cls(FeeType(data.get("type", "percentage")), value)


@dataclass(frozen=True)
class StakeSize:
    """Stake sizing policy for buys."""
    stake_type: StakeType
    value: float

    def __post_init__(self):
        """Validate configuration."""
        if not math.isfinite(self.value):
            raise ValueError(f"Stake value must be finite, got {self.value}")
        if self.stake_type == StakeType.FIXED_AMOUNT:
            if self.value < 0:
                raise ValueError(f"Stake amount must be non-negative, got {self.value}")
        elif not 0 <= self.value <= 1:
            raise ValueError(f"Stake percentage must be in [0, 1], got {self.value}")

    @classmethod
    def fixed_amount(cls, cash: float) -> "StakeSize":
        return cls(StakeType.FIXED_AMOUNT, float(cash))

    @classmethod
    def fixed_percentage(cls, rate: float) -> "StakeSize":
        return cls(StakeType.FIXED_PERCENTAGE, float(rate))

    def stake(self, available_fund: float) -> float:
        """
        Cash to commit before fees.

        A fixed amount larger than the available fund yields zero rather
        than a partial stake.
        """
        if self.stake_type == StakeType.FIXED_AMOUNT:
            return self.value if self.value <= available_fund else 0.0
        return available_fund * self.value

    def to_dict(self) -> dict:
        """Serialize stake size to dictionary."""
        return {"type": self.stake_type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "StakeSize":
        """
        Deserialize stake size from dictionary.

        Raises:
            ValueError: On unknown type or out-of-range value.
        """
        try:
            value = float(data.get("value", 1.0))
        except (TypeError, ValueError):
            raise ValueError(f"Stake value must be a number, got {data.get('value')!r}") from None
        return cls(StakeType(data.get("type", "fixed_percentage")), value)
