"""
Results reporter for backtest output and export.
"""

import csv
import json
from pathlib import Path
from typing import Tuple

import numpy as np

from ..observability.logger import get_logger
from .engine import BacktestResults

logger = get_logger(__name__)


def max_drawdown(equity: np.ndarray) -> Tuple[float, float]:
    """
    Largest peak-to-trough fall of an equity curve.

    Returns:
        Tuple of (drawdown in cash, drawdown as percent of the peak).
    """
    if equity.size == 0:
        return 0.0, 0.0
    peaks = np.maximum.accumulate(equity)
    drawdowns = peaks - equity
    worst = int(np.argmax(drawdowns))
    peak = peaks[worst]
    percent = drawdowns[worst] / peak * 100 if peak > 0 else 0.0
    return float(drawdowns[worst]), float(percent)


class ResultsReporter:
    """
    Generates reports and exports for backtest results.

    Features:
    - Console summary output
    - CSV export of the equity curve and trade log
    - JSON export of the summary and trade log
    """

    def __init__(self, results: BacktestResults):
        """
        Initialize the reporter.

        Args:
            results: BacktestResults from the engine.
        """
        self.results = results

    def get_summary_dict(self) -> dict:
        """
        Get backtest summary as dictionary.

        Returns:
            Summary dictionary.
        """
        results = self.results
        account = results.account
        equity = np.array([p.equity for p in account.profit_and_loss_history], dtype=float)
        drawdown, drawdown_percent = max_drawdown(equity)

        sells = [t for t in account.trade_history if t.side == "sell"]
        wins = sum(1 for t in sells if t.realized_pnl is not None and t.realized_pnl > 0)

        return {
            "strategy": results.strategy,
            "candles_processed": results.candles_processed,
            "first_candle": results.first_candle_time.isoformat() if results.first_candle_time else None,
            "last_candle": results.last_candle_time.isoformat() if results.last_candle_time else None,
            "initial_fund": account.initial_fund,
            "final_equity": results.final_equity,
            "total_return_percent": results.total_return_percent,
            "available_fund": account.available_fund,
            "position_quantity": account.position.quantity,
            "position_cost": account.position.cost,
            "unrealized_pnl": account.unrealized_pnl(results.last_price),
            "realized_pnl": account.realized_pnl,
            "buys": sum(1 for t in account.trade_history if t.side == "buy"),
            "sells": len(sells),
            "win_rate": (wins / len(sells) * 100) if sells else 0.0,
            "total_fees": sum(t.fee for t in account.trade_history),
            "max_drawdown": drawdown,
            "max_drawdown_percent": drawdown_percent,
            "signals": dict(results.action_counts),
        }

    def print_summary(self) -> None:
        """Print a summary to console."""
        s = self.get_summary_dict()

        print("=" * 80)
        print(f"{'BACKTEST RESULTS: ' + s['strategy'].upper():^80}")
        print("=" * 80)
        print(f"Period: {s['first_candle']} to {s['last_candle']} ({s['candles_processed']} candles)")
        print(f"Initial Fund: ${s['initial_fund']:,.2f}")

        print()
        print("-" * 80)
        print(f"{'PERFORMANCE SUMMARY':^80}")
        print("-" * 80)
        print(f"{'Final Equity:':<30} ${s['final_equity']:,.2f} ({s['total_return_percent']:+.2f}%)")
        print(f"{'Available Fund:':<30} ${s['available_fund']:,.2f}")
        print(f"{'Position:':<30} {s['position_quantity']:.8f} (cost ${s['position_cost']:,.2f})")
        print(f"{'Unrealized P&L:':<30} ${s['unrealized_pnl']:,.2f}")
        print(f"{'Realized P&L:':<30} ${s['realized_pnl']:,.2f}")
        print(f"{'Total Fees:':<30} ${s['total_fees']:,.2f}")

        print()
        print("-" * 80)
        print(f"{'ACTIVITY':^80}")
        print("-" * 80)
        print(f"{'Buys:':<30} {s['buys']}")
        print(f"{'Sells:':<30} {s['sells']}")
        if s["sells"]:
            print(f"{'Win Rate:':<30} {s['win_rate']:.1f}%")
        signals = ", ".join(f"{k}={v}" for k, v in s["signals"].items())
        print(f"{'Signals:':<30} {signals}")
        print(f"{'Max Drawdown:':<30} ${s['max_drawdown']:,.2f} ({s['max_drawdown_percent']:.1f}%)")
        print("=" * 80)

    def export_equity_curve_csv(self, path: str) -> None:
        """Export the mark-to-market history to CSV."""
        filepath = Path(path)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["timestamp", "equity"])
            for point in self.results.account.profit_and_loss_history:
                writer.writerow([point.timestamp.isoformat(), f"{point.equity:.8f}"])

        logger.info(f"Exported equity curve to {filepath}")

    def export_trades_csv(self, path: str) -> None:
        """Export the trade log to CSV."""
        filepath = Path(path)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        fieldnames = ["timestamp", "side", "quantity", "price", "fee", "cash_flow", "realized_pnl"]
        with open(filepath, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for trade in self.results.account.trade_history:
                writer.writerow(trade.to_dict())

        logger.info(f"Exported {len(self.results.account.trade_history)} trades to {filepath}")

    def export_results_json(self, path: str) -> None:
        """Export the summary and trade log to JSON."""
        filepath = Path(path)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "summary": self.get_summary_dict(),
            "trades": [t.to_dict() for t in self.results.account.trade_history],
        }
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Exported results to {filepath}")
