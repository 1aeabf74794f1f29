#!/usr/bin/env python3
"""
Kline Backtester - Main Entry Point

Downloads historical candles from the Binance public archive (or reads a
local kline CSV), replays them through a strategy and prints the report.

Usage:
    python main.py
    python main.py --strategy dca --symbol ETHUSDT --start 2021-01-01
    python main.py --csv BTCUSDT-1d-2023-01.csv --strategy hodl
    python main.py --export data/backtest_results
"""

import argparse
import sys
from datetime import date
from typing import List, Optional

from dotenv import load_dotenv

from kline_backtester.backtest import (
    Account,
    BacktestEngine,
    ResultsReporter,
    SignalMismatchError,
    create_trader,
)
from kline_backtester.config.settings import Settings, get_settings, reload_settings
from kline_backtester.data import (
    BinanceDataManager,
    Candle,
    CandleFeed,
    DataFetchError,
    load_klines_csv,
)
from kline_backtester.observability.logger import configure_logging, get_logger
from kline_backtester.strategy import IndicatorError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backtest a trading strategy against historical klines"
    )
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--strategy", help="Strategy to run (macd, hodl, dca)")
    parser.add_argument("--symbol", help="Binance symbol, e.g. BTCUSDT")
    parser.add_argument("--interval", help="Kline interval, e.g. 1d, 4h")
    parser.add_argument("--start", type=date.fromisoformat, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="End date (YYYY-MM-DD)")
    parser.add_argument("--initial-fund", type=float, help="Starting cash")
    parser.add_argument("--csv", help="Read candles from a local kline CSV instead of downloading")
    parser.add_argument("--export", metavar="DIR", help="Write equity curve, trades and summary to DIR")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> None:
    """Command line flags win over file and environment settings."""
    if args.symbol:
        settings.data.symbol = args.symbol.upper()
    if args.interval:
        settings.data.interval = args.interval
    if args.start:
        settings.data.start_date = args.start
    if args.end:
        settings.data.end_date = args.end
    if args.strategy:
        settings.backtest.strategy = args.strategy
    if args.initial_fund is not None:
        settings.backtest.initial_fund = args.initial_fund
    if args.log_level:
        settings.logging.level = args.log_level

    # Re-run validation on the merged values
    settings.data.__post_init__()
    settings.backtest.__post_init__()
    settings.logging.__post_init__()


def load_candles(settings: Settings, csv_path: Optional[str]) -> List[Candle]:
    if csv_path:
        return load_klines_csv(csv_path)

    data = settings.data
    manager = BinanceDataManager(cache_dir=data.cache_dir, use_cache=data.use_cache)
    return manager.get_klines(
        data.symbol,
        data.interval,
        data.start_date,
        data.resolved_end_date()
    )


def run_backtest(settings: Settings, csv_path: Optional[str] = None, export_dir: Optional[str] = None) -> int:
    """
    Run one backtest from settings.

    Returns:
        Exit code.
    """
    logger = get_logger("main")

    candles = load_candles(settings, csv_path)
    if not candles:
        logger.error("No candles available for the requested period")
        return 1

    logger.info(
        f"Loaded {len(candles)} candles",
        first=candles[0].end_time.isoformat(),
        last=candles[-1].end_time.isoformat()
    )

    config = settings.backtest
    trader = create_trader(
        config.strategy,
        config.build_trading_fee(),
        config.build_stake_size(),
        symbol=settings.data.symbol
    )
    account = Account(initial_fund=config.initial_fund)
    engine = BacktestEngine(trader, account)
    results = engine.run(CandleFeed(candles))

    reporter = ResultsReporter(results)
    reporter.print_summary()

    if export_dir:
        prefix = f"{export_dir}/{settings.data.symbol}_{settings.data.interval}_{results.strategy}"
        reporter.export_equity_curve_csv(f"{prefix}_equity.csv")
        reporter.export_trades_csv(f"{prefix}_trades.csv")
        reporter.export_results_json(f"{prefix}_results.json")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        settings = reload_settings(args.config) if args.config else get_settings()
        apply_cli_overrides(settings, args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.logging.level, format_type=settings.logging.format)
    logger = get_logger("main")

    try:
        return run_backtest(settings, csv_path=args.csv, export_dir=args.export)
    except DataFetchError as e:
        logger.error(f"Failed to fetch historical data: {e}", url=e.url)
    except (IndicatorError, SignalMismatchError, ValueError) as e:
        logger.error(f"Backtest aborted: {e}")
    except OSError as e:
        logger.error(f"I/O error: {e}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
