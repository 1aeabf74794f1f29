"""
Structured logging for the backtester.

Every record goes to one stdout handler as either JSON lines or
human-readable text. Loggers can carry bound context (strategy, symbol)
so each line of a run can be traced back to it.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, extra fields merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] {record.levelname:8} {record.name}: {record.getMessage()}"

        fields = getattr(record, "extra_fields", None)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger:
    """
    Standard logger wrapper that attaches keyword arguments to the record.

    Example:
        log = get_logger(__name__).bind(strategy="macd", symbol="BTCUSDT")
        log.info("Backtest started", candles=365)
    """

    def __init__(
        self,
        name: str,
        logger: logging.Logger,
        context: Optional[Dict[str, Any]] = None
    ):
        self._name = name
        self._logger = logger
        self._context = dict(context or {})

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    def bind(self, **context) -> "StructuredLogger":
        """Return a logger that adds ``context`` to every record."""
        merged = {**self._context, **context}
        return StructuredLogger(self._name, self._logger, merged)

    def _log(self, level: int, msg: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        self._logger.log(
            level,
            msg,
            extra={"extra_fields": fields} if fields else None
        )

    def debug(self, msg: str, **kwargs) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs) -> None:
        self._log(logging.ERROR, msg, **kwargs)

    def fill(
        self,
        side: str,
        quantity: float,
        price: float,
        fee: float,
        **kwargs
    ) -> None:
        """Log a simulated fill at debug level."""
        self.debug(
            f"FILL: {side} {quantity:.8f} @ {price:.8f} (fee {fee:.8f})",
            side=side,
            quantity=quantity,
            price=price,
            fee=fee,
            **kwargs
        )

    def decision(self, action: str, **kwargs) -> None:
        """Log the action a decision rule chose for a candle."""
        self.debug(f"DECISION: {action}", action=action, **kwargs)


_loggers: Dict[str, StructuredLogger] = {}
_configured = False


def configure_logging(
    level: str = "INFO",
    format_type: str = "text",
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure the root logger with a single handler.

    Args:
        level: One of LOG_LEVELS, case-insensitive.
        format_type: "text" or "json".
        stream: Output stream, stdout by default.

    Raises:
        ValueError: If the level or format is unknown.
    """
    global _configured

    level = level.upper()
    format_type = format_type.lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{level}'. Must be one of {LOG_LEVELS}")
    if format_type not in LOG_FORMATS:
        raise ValueError(f"Unknown log format '{format_type}'. Must be one of {LOG_FORMATS}")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if format_type == "json" else TextFormatter())
    root_logger.addHandler(handler)
    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """
    Get or create a structured logger.

    Logging is configured with defaults on first use if the
    application has not configured it yet.
    """
    if not _configured:
        configure_logging()

    if name not in _loggers:
        _loggers[name] = StructuredLogger(name, logging.getLogger(name))

    return _loggers[name]
