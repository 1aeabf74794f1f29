"""
Traders turn indicator signals into executions against an Account.

A trader owns one indicator instance, a fee model and a stake sizing
policy. Subclasses only decide which entry of the signal vector is
authoritative; sizing, fees and bookkeeping are shared.
"""

import math
from abc import ABC
from datetime import datetime
from typing import Dict, Optional, Type

from ..data.candle import Candle
from ..observability.logger import get_logger
from ..strategy.base_indicator import (
    Action,
    IndicatorConfig,
    IndicatorInstance,
    SignalVector,
)
from ..strategy.signals import DCA, HODL, MACD
from .account import Account, TradeRecord
from .fees import FeeType, StakeSize, TradingFee

logger = get_logger(__name__)


class SignalMismatchError(RuntimeError):
    """The decision rule expects a signal the indicator does not emit."""


class GenericTrader(ABC):
    """
    Base trader.

    Subclasses set ``name``, ``signal_index`` and ``default_indicator``.
    """

    name: str = "generic"
    signal_index: int = 0

    def __init__(
        self,
        trading_fee: TradingFee,
        stake_size: Optional[StakeSize] = None,
        indicator_config: Optional[IndicatorConfig] = None,
        symbol: str = ""
    ):
        """
        Initialize the trader.

        Args:
            trading_fee: Fee model for every execution.
            stake_size: Sizing policy for buys (strategy default when omitted).
            indicator_config: Indicator to run (defaults per strategy).
            symbol: Instrument label used in log lines.
        """
        self.trading_fee = trading_fee
        self.stake_size = stake_size or self.default_stake()
        self.indicator_config = indicator_config or self.default_indicator()
        self.symbol = symbol
        self._indicator: Optional[IndicatorInstance] = None
        self.log = logger.bind(strategy=self.name, symbol=symbol)

    @classmethod
    def default_indicator(cls) -> IndicatorConfig:
        raise NotImplementedError(f"{cls.__name__} needs an indicator config")

    @classmethod
    def default_stake(cls) -> StakeSize:
        return StakeSize.fixed_percentage(1.0)

    @property
    def indicator(self) -> IndicatorInstance:
        if self._indicator is None:
            raise RuntimeError(f"{self.name} trader used before initialise()")
        return self._indicator

    def initialise(self, first_candle: Candle) -> None:
        """
        Build the indicator instance from the warm-up candle.

        Raises:
            IndicatorError: If the indicator config is invalid.
        """
        self.log.debug("Initialising trader", indicator=repr(self.indicator_config))
        self._indicator = self.indicator_config.init(first_candle)

    def determine_trade(self, signals: SignalVector) -> Action:
        """
        Pick the authoritative action out of the signal vector.

        Raises:
            SignalMismatchError: If the vector has no entry at signal_index.
        """
        if not 0 <= self.signal_index < len(signals):
            raise SignalMismatchError(
                f"{self.name} trader reads signal {self.signal_index} but "
                f"{self.indicator_config.name} emitted {len(signals)}"
            )
        return signals[self.signal_index]

    def execute_buy(
        self,
        timestamp: datetime,
        price: float,
        account: Account
    ) -> Optional[TradeRecord]:
        """
        Buy with the configured stake.

        The outlay (stake + fee) is clamped to the available fund. Zero
        stake, non-positive price or a non-finite quantity is a no-op.

        Returns:
            The recorded buy, or None when nothing was traded.
        """
        fund = account.available_fund
        stake = self.stake_size.stake(fund)
        fee = self.trading_fee.buy_fee(stake)
        outlay = stake + fee

        if outlay > fund:
            if self.trading_fee.fee_type == FeeType.PERCENTAGE:
                outlay = fund
                fee = fund * self.trading_fee.value
                stake = outlay - fee
            else:
                stake = fund - fee
                outlay = fund

        if stake <= 0 or price <= 0:
            self.log.debug("Buy skipped", stake=stake, price=price, available_fund=fund)
            return None

        quantity = outlay / price
        if not math.isfinite(quantity) or quantity <= 0:
            self.log.debug("Buy skipped", quantity=quantity, price=price)
            return None

        record = account.open(timestamp, quantity, price, fee, cost=outlay)
        self.log.fill(
            "buy",
            quantity,
            price,
            fee,
            timestamp=timestamp.isoformat(),
            available_fund=account.available_fund
        )
        return record

    def execute_sell(
        self,
        timestamp: datetime,
        price: float,
        account: Account
    ) -> Optional[TradeRecord]:
        """
        Liquidate the whole position.

        The fee never exceeds the gross proceeds. No position or a
        non-positive price is a no-op.

        Returns:
            The recorded sell, or None when nothing was traded.
        """
        quantity = account.position.quantity
        if quantity <= 0 or not math.isfinite(price) or price <= 0:
            self.log.debug("Sell skipped", quantity=quantity, price=price)
            return None

        fee = min(self.trading_fee.sell_fee(price, quantity), price * quantity)
        record = account.close(timestamp, quantity, price, fee)
        self.log.fill(
            "sell",
            quantity,
            price,
            fee,
            timestamp=timestamp.isoformat(),
            realized_pnl=record.realized_pnl
        )
        return record

    def next_trade_session(self, candle: Candle, account: Account) -> Action:
        """
        Run one candle through indicator, decision rule and execution.

        Trades execute at the candle close, stamped with its end_time.

        Returns:
            The action the decision rule chose.
        """
        signals = self.indicator.next(candle)
        action = self.determine_trade(signals)
        self.log.decision(str(action), timestamp=candle.end_time.isoformat())

        if action.is_buy:
            self.execute_buy(candle.end_time, candle.close, account)
        elif action.is_sell:
            self.execute_sell(candle.end_time, candle.close, account)

        return action

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(fee={self.trading_fee.to_dict()}, "
            f"stake={self.stake_size.to_dict()})"
        )


class MACDTrader(GenericTrader):
    """Trades the MACD signal-line crossover (signal 1)."""

    name = "macd"
    signal_index = 1

    @classmethod
    def default_indicator(cls) -> IndicatorConfig:
        return MACD()


class HODLTrader(GenericTrader):
    """Buys everything on the first candle and holds. Stake is always 100%."""

    name = "hodl"
    signal_index = 0

    def __init__(
        self,
        trading_fee: TradingFee,
        stake_size: Optional[StakeSize] = None,
        indicator_config: Optional[IndicatorConfig] = None,
        symbol: str = ""
    ):
        super().__init__(
            trading_fee,
            StakeSize.fixed_percentage(1.0),
            indicator_config,
            symbol
        )

    @classmethod
    def default_indicator(cls) -> IndicatorConfig:
        return HODL()


class DCATrader(GenericTrader):
    """Buys a fixed cash amount at every new calendar month."""

    name = "dca"
    signal_index = 0

    DEFAULT_STAKE = 100.0

    @classmethod
    def default_stake(cls) -> StakeSize:
        return StakeSize.fixed_amount(cls.DEFAULT_STAKE)

    @classmethod
    def default_indicator(cls) -> IndicatorConfig:
        return DCA()


TRADERS: Dict[str, Type[GenericTrader]] = {
    MACDTrader.name: MACDTrader,
    HODLTrader.name: HODLTrader,
    DCATrader.name: DCATrader,
}


def create_trader(
    name: str,
    trading_fee: TradingFee,
    stake_size: Optional[StakeSize] = None,
    symbol: str = ""
) -> GenericTrader:
    """
    Build a registered trader by name.

    Args:
        name: One of TRADERS ("macd", "hodl", "dca").
        trading_fee: Fee model.
        stake_size: Sizing policy; strategy default when omitted.
        symbol: Instrument label used in log lines.

    Raises:
        ValueError: For an unknown strategy name.
    """
    trader_class = TRADERS.get(name.lower())
    if trader_class is None:
        raise ValueError(f"Unknown strategy '{name}'. Must be one of {sorted(TRADERS)}")

    logger.info(f"Creating {trader_class.name} trader", fee=trading_fee.to_dict())
    return trader_class(trading_fee, stake_size, symbol=symbol)
