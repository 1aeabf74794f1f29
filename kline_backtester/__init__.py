"""
Kline Backtester - replay historical candles through a trading strategy.
"""

__version__ = "0.1.0"
