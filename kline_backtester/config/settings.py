"""
Configuration loading and management.
Loads settings from YAML files and environment variables.
"""

import math
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

import yaml

from ..backtest.fees import StakeSize, TradingFee
from ..backtest.trader import TRADERS
from ..observability.logger import LOG_FORMATS, LOG_LEVELS


def _parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Accept ISO strings and the date objects PyYAML produces."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _require_str(value, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string, got {value!r}")
    return value


def _require_float(value, name: str) -> float:
    """Coerce to a finite float; YAML may hand over strings or null."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


@dataclass
class DataConfig:
    """Historical data configuration."""
    symbol: str = "BTCUSDT"
    interval: str = "1d"
    start_date: Optional[date] = field(default_factory=lambda: date(2020, 1, 1))
    end_date: Optional[date] = None  # None = yesterday
    cache_dir: str = "data/cache/klines"
    use_cache: bool = True

    def __post_init__(self):
        self.symbol = _require_str(self.symbol, "symbol").upper()
        self.interval = _require_str(self.interval, "interval")
        self.start_date = _parse_date(self.start_date)
        self.end_date = _parse_date(self.end_date)
        if self.start_date is None:
            raise ValueError("start_date is required")
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("start_date must be before end_date")

    def resolved_end_date(self) -> date:
        """End date, defaulting to yesterday (UTC)."""
        if self.end_date is not None:
            return self.end_date
        return datetime.now(timezone.utc).date() - timedelta(days=1)


@dataclass
class BacktestConfig:
    """Strategy and account configuration."""
    strategy: str = "macd"
    initial_fund: float = 1000.0
    trading_fee: dict = field(default_factory=lambda: {"type": "percentage", "value": 0.005})
    stake_size: Optional[dict] = None  # None = strategy default

    def __post_init__(self):
        """Validate configuration."""
        self.strategy = _require_str(self.strategy, "strategy").lower()
        if self.strategy not in TRADERS:
            raise ValueError(f"Unknown strategy '{self.strategy}'. Must be one of {sorted(TRADERS)}")

        self.initial_fund = _require_float(self.initial_fund, "initial_fund")
        if self.initial_fund <= 0:
            raise ValueError("initial_fund must be positive")

        for name in ("trading_fee", "stake_size"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, dict):
                raise ValueError(f"{name} must be a mapping with type and value, got {value!r}")

        # Surface bad fee/stake values at load time, not mid-run
        self.build_trading_fee()
        self.build_stake_size()

    def build_trading_fee(self) -> TradingFee:
        return TradingFee.from_dict(self.trading_fee or {})

    def build_stake_size(self) -> Optional[StakeSize]:
        if not self.stake_size:
            return None
        return StakeSize.from_dict(self.stake_size)


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"

    def __post_init__(self):
        self.level = _require_str(self.level, "logging level").upper()
        self.format = _require_str(self.format, "logging format").lower()
        if self.level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{self.level}'. Must be one of {LOG_LEVELS}")
        if self.format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format '{self.format}'. Must be one of {LOG_FORMATS}")


@dataclass
class Settings:
    """Main application settings container."""
    data: DataConfig = field(default_factory=DataConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _find_config_file() -> Optional[Path]:
    """
    Find the configuration file.

    Returns:
        Path to config file or None if not found.
    """
    env_config = os.environ.get("CONFIG_PATH")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return path

    search_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path(__file__).parent.parent.parent / "config" / "config.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def _dict_to_config(data: Optional[dict], config_class, existing=None):
    """
    Convert dictionary to dataclass, preserving values for missing keys.

    Unknown keys are ignored. The result is rebuilt through the
    constructor so __post_init__ validation runs on the merged values.

    Args:
        data: Dictionary with configuration data.
        config_class: The dataclass type to create.
        existing: Existing instance to update (optional).

    Returns:
        Instance of config_class with data applied.
    """
    if existing is None:
        existing = config_class()

    if not data:
        return existing
    if not isinstance(data, dict):
        raise ValueError(f"{config_class.__name__} section must be a mapping, got {data!r}")

    values = dict(vars(existing))
    for key, value in data.items():
        if key in values:
            values[key] = value

    return config_class(**values)


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from configuration file and environment.

    Args:
        config_path: Optional explicit path to config file.

    Returns:
        Settings instance with loaded configuration.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        ValueError: If a configured value is invalid.
    """
    settings = Settings()

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path and path.exists():
        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if data and not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        if data:
            settings.data = _dict_to_config(data.get("data"), DataConfig, settings.data)
            settings.backtest = _dict_to_config(data.get("backtest"), BacktestConfig, settings.backtest)
            settings.logging = _dict_to_config(data.get("logging"), LoggingConfig, settings.logging)

    _apply_env_overrides(settings)

    return settings


def _apply_env_overrides(settings: Settings) -> None:
    """
    Apply environment variable overrides to settings.

    Args:
        settings: Settings instance to modify.
    """
    data_overrides = {}
    if symbol := os.environ.get("BACKTEST_SYMBOL"):
        data_overrides["symbol"] = symbol.upper()
    if interval := os.environ.get("BACKTEST_INTERVAL"):
        data_overrides["interval"] = interval
    settings.data = _dict_to_config(data_overrides, DataConfig, settings.data)

    backtest_overrides = {}
    if strategy := os.environ.get("BACKTEST_STRATEGY"):
        backtest_overrides["strategy"] = strategy
    if initial_fund := os.environ.get("BACKTEST_INITIAL_FUND"):
        backtest_overrides["initial_fund"] = initial_fund
    settings.backtest = _dict_to_config(backtest_overrides, BacktestConfig, settings.backtest)

    logging_overrides = {}
    if log_level := os.environ.get("LOG_LEVEL"):
        logging_overrides["level"] = log_level
    if log_format := os.environ.get("LOG_FORMAT"):
        logging_overrides["format"] = log_format
    settings.logging = _dict_to_config(logging_overrides, LoggingConfig, settings.logging)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration.

    Args:
        config_path: Optional explicit path to config file.

    Returns:
        New Settings instance.
    """
    global _settings
    _settings = load_settings(config_path)
    return _settings
