"""
Backtesting core.

Components:
- TradingFee / StakeSize: fee model and stake sizing policy
- Account: cash, position, equity curve and trade log
- GenericTrader: signal -> decision -> execution protocol
- BacktestEngine: candle-by-candle driver
- ResultsReporter: console summary and exports

Usage:
    from kline_backtester.backtest import (
        Account, BacktestEngine, TradingFee, create_trader
    )
    from kline_backtester.data import CandleFeed

    trader = create_trader("macd", TradingFee.percentage(0.005))
    engine = BacktestEngine(trader, Account(initial_fund=1000.0))
    results = engine.run(CandleFeed(candles))
"""

from .fees import FeeType, StakeSize, StakeType, TradingFee
from .account import Account, EquityPoint, Position, TradeRecord
from .trader import (
    DCATrader,
    GenericTrader,
    HODLTrader,
    MACDTrader,
    SignalMismatchError,
    TRADERS,
    create_trader,
)
from .engine import BacktestEngine, BacktestResults, EngineState
from .reporter import ResultsReporter

__all__ = [
    # Fees
    "FeeType",
    "StakeSize",
    "StakeType",
    "TradingFee",

    # Account
    "Account",
    "EquityPoint",
    "Position",
    "TradeRecord",

    # Traders
    "DCATrader",
    "GenericTrader",
    "HODLTrader",
    "MACDTrader",
    "SignalMismatchError",
    "TRADERS",
    "create_trader",

    # Engine
    "BacktestEngine",
    "BacktestResults",
    "EngineState",

    # Reporter
    "ResultsReporter",
]
