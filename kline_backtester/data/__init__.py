"""
Candle data for backtesting.
"""

from .candle import Candle, CandleFeed
from .binance import (
    BinanceDataManager,
    DataFetchError,
    load_klines_csv,
    parse_kline_row,
)

__all__ = [
    "Candle",
    "CandleFeed",
    "BinanceDataManager",
    "DataFetchError",
    "load_klines_csv",
    "parse_kline_row",
]
