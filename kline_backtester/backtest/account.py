"""
Simulated account for backtesting.
Owns cash, the single open position, the equity curve and the trade log.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

# Absorbs float noise when an outlay is meant to equal the whole fund.
FUND_TOLERANCE = 1e-9


@dataclass
class Position:
    """Currently held quantity and the cash paid for it."""
    quantity: float = 0.0
    cost: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.quantity > 0

    @property
    def average_price(self) -> float:
        """Cash basis per unit held."""
        if self.quantity <= 0:
            return 0.0
        return self.cost / self.quantity

    def to_dict(self) -> dict:
        return {"quantity": self.quantity, "cost": self.cost}


@dataclass
class EquityPoint:
    """Point in the equity curve."""
    timestamp: datetime
    equity: float


@dataclass
class TradeRecord:
    """One simulated execution."""
    timestamp: datetime
    side: str  # "buy" or "sell"
    quantity: float
    price: float
    fee: float
    cash_flow: float  # Signed change to available fund
    realized_pnl: Optional[float] = None

    def to_dict(self) -> dict:
        """Serialize trade to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "side": self.side,
            "quantity": self.quantity,
            "price": self.price,
            "fee": self.fee,
            "cash_flow": self.cash_flow,
            "realized_pnl": self.realized_pnl,
        }


@dataclass
class Account:
    """
    Cash and position bookkeeping for a single-asset backtest.

    Invariants:
    - available_fund never goes negative
    - position.quantity never goes negative (no shorting)
    - profit_and_loss_history is append-only, one point per candle
    """
    initial_fund: float
    position: Position = field(default_factory=Position)
    start_time: Optional[datetime] = None
    available_fund: float = field(default=0.0, init=False)
    profit_and_loss_history: List[EquityPoint] = field(default_factory=list, init=False)
    trade_history: List[TradeRecord] = field(default_factory=list, init=False)
    realized_pnl: float = field(default=0.0, init=False)

    def __post_init__(self):
        if not math.isfinite(self.initial_fund) or self.initial_fund < 0:
            raise ValueError(f"initial_fund must be finite and non-negative, got {self.initial_fund}")
        quantity, cost = self.position.quantity, self.position.cost
        if not (math.isfinite(quantity) and math.isfinite(cost)) or quantity < 0 or cost < 0:
            raise ValueError("Starting position must have non-negative quantity and cost")
        self.available_fund = self.initial_fund

    def open(
        self,
        timestamp: datetime,
        quantity: float,
        price: float,
        fee: float,
        cost: Optional[float] = None
    ) -> TradeRecord:
        """
        Buy into the position.

        Args:
            timestamp: Execution time.
            quantity: Units bought, must be positive.
            price: Execution price, must be positive.
            fee: Fee included in the outlay, must be non-negative.
            cost: Total cash outlay; defaults to quantity * price.

        Returns:
            The recorded buy.

        Raises:
            ValueError: On non-positive quantity/price, negative fee, or an
                outlay larger than the available fund.
        """
        if quantity <= 0:
            raise ValueError(f"open() requires a positive quantity, got {quantity}")
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"open() requires a positive price, got {price}")
        if not math.isfinite(fee) or fee < 0:
            raise ValueError(f"open() requires a finite non-negative fee, got {fee}")

        outlay = quantity * price if cost is None else cost
        if outlay > self.available_fund + FUND_TOLERANCE * max(1.0, self.available_fund):
            raise ValueError(
                f"Outlay {outlay:.8f} exceeds available fund {self.available_fund:.8f}"
            )

        self.position.quantity += quantity
        self.position.cost += outlay
        self.available_fund = max(0.0, self.available_fund - outlay)

        record = TradeRecord(
            timestamp=timestamp,
            side="buy",
            quantity=quantity,
            price=price,
            fee=fee,
            cash_flow=-outlay,
        )
        self.trade_history.append(record)
        return record

    def close(
        self,
        timestamp: datetime,
        quantity: float,
        price: float,
        fee: float
    ) -> TradeRecord:
        """
        Sell out of the position.

        The cost basis of the sold quantity is removed pro rata and the
        realized P&L is net proceeds minus that cost.

        Args:
            timestamp: Execution time.
            quantity: Units sold, 0 < quantity <= position.quantity.
            price: Execution price, must be positive.
            fee: Fee deducted from proceeds, must be non-negative.

        Returns:
            The recorded sell.

        Raises:
            ValueError: On invalid arguments or when the fee would push the
                available fund negative.
        """
        if quantity <= 0:
            raise ValueError(f"close() requires a positive quantity, got {quantity}")
        if quantity > self.position.quantity:
            raise ValueError(
                f"Cannot close {quantity} units, only {self.position.quantity} held"
            )
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"close() requires a positive price, got {price}")
        if not math.isfinite(fee) or fee < 0:
            raise ValueError(f"close() requires a finite non-negative fee, got {fee}")

        proceeds = price * quantity - fee
        if self.available_fund + proceeds < 0:
            raise ValueError(
                f"Sell fee {fee:.8f} would leave a negative available fund"
            )

        if quantity == self.position.quantity:
            closed_cost = self.position.cost
            self.position = Position()
        else:
            closed_cost = self.position.cost * quantity / self.position.quantity
            self.position.quantity -= quantity
            self.position.cost -= closed_cost

        pnl = proceeds - closed_cost
        self.available_fund += proceeds
        self.realized_pnl += pnl

        record = TradeRecord(
            timestamp=timestamp,
            side="sell",
            quantity=quantity,
            price=price,
            fee=fee,
            cash_flow=proceeds,
            realized_pnl=pnl,
        )
        self.trade_history.append(record)
        return record

    def equity(self, price: float) -> float:
        """Cash plus holdings valued at ``price``."""
        return self.available_fund + self.position.quantity * price

    def unrealized_pnl(self, price: float) -> float:
        """Open position value at ``price`` minus its cost basis."""
        return self.position.quantity * price - self.position.cost

    def mark_to_market(self, timestamp: datetime, price: float) -> EquityPoint:
        """
        Append the equity at ``price`` to the P&L history.

        Does not touch cash or position.
        """
        point = EquityPoint(timestamp=timestamp, equity=self.equity(price))
        self.profit_and_loss_history.append(point)
        return point

    @property
    def last_equity(self) -> float:
        """Most recent marked equity, or the initial fund before any mark."""
        if not self.profit_and_loss_history:
            return self.initial_fund
        return self.profit_and_loss_history[-1].equity

    def to_dict(self) -> dict:
        """Serialize the end-of-run state to dictionary."""
        return {
            "initial_fund": self.initial_fund,
            "available_fund": self.available_fund,
            "position": self.position.to_dict(),
            "realized_pnl": self.realized_pnl,
            "last_equity": self.last_equity,
            "trades": len(self.trade_history),
        }
