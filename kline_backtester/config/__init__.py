"""
Settings for the backtester.
"""

from .settings import (
    BacktestConfig,
    DataConfig,
    LoggingConfig,
    Settings,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = [
    "BacktestConfig",
    "DataConfig",
    "LoggingConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "reload_settings",
]
