"""
Logging for the backtester.
"""

from .logger import configure_logging, get_logger, StructuredLogger

__all__ = [
    "configure_logging",
    "get_logger",
    "StructuredLogger",
]
