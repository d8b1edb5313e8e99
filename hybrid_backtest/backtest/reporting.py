from typing import Dict, List, Sequence

import numpy as np

from hybrid_backtest.backtest.models import PortfolioStats, TradeResult


class PerformanceReporter:
    """
    Calculates and reports closed-trade metrics.

    Everything is derived from the trade history alone; open positions are
    never marked to market here.
    """

    def __init__(self, trade_history: Sequence[TradeResult], initial_balance: float):
        self.trades = trade_history
        self.initial_balance = initial_balance

    def equity_curve(self) -> List[float]:
        """Initial balance followed by the equity after each close."""
        pnls = np.array([t.pnl_usd for t in self.trades], dtype=float)
        curve = self.initial_balance + np.concatenate(([0.0], np.cumsum(pnls)))
        return curve.tolist()

    def calculate_metrics(self, balance: float) -> PortfolioStats:
        total_trades = len(self.trades)
        curve = self.equity_curve()

        return PortfolioStats(
            final_balance=balance,
            roi=(balance - self.initial_balance) / self.initial_balance * 100,
            total_trades=total_trades,
            win_rate=self._calculate_win_rate(),
            profit_factor=self._calculate_profit_factor(),
            max_drawdown=self._calculate_max_drawdown(curve),
            equity_curve=curve,
        )

    def _calculate_win_rate(self) -> float:
        if not self.trades:
            return 0.0
        wins = sum(1 for t in self.trades if t.pnl_usd > 0)
        return wins / len(self.trades) * 100

    def _calculate_profit_factor(self) -> float:
        """
        Gross profit / |gross loss|. Break-even trades count on the loss side.
        No losses with profit is infinite; no losses and no profit is 0.
        """
        total_profit = sum(t.pnl_usd for t in self.trades if t.pnl_usd > 0)
        total_loss = abs(sum(t.pnl_usd for t in self.trades if t.pnl_usd <= 0))

        if total_loss > 0:
            return total_profit / total_loss
        if total_profit > 0:
            return float("inf")
        return 0.0

    @staticmethod
    def _calculate_max_drawdown(curve: List[float]) -> float:
        """Largest (peak - equity) / peak along the curve, in percent."""
        equity = np.asarray(curve, dtype=float)
        if equity.size < 2:
            return 0.0

        running_max = np.maximum.accumulate(equity)
        with np.errstate(divide="ignore", invalid="ignore"):
            drawdown = np.where(running_max > 0, (running_max - equity) / running_max, 0.0)
        return float(drawdown.max() * 100)

    def generate_report(self, balance: float) -> Dict[str, str]:
        stats = self.calculate_metrics(balance)
        return {
            "Initial Capital": f"${self.initial_balance:,.2f}",
            "Final Balance": f"${stats.final_balance:,.2f}",
            "ROI": f"{stats.roi:.2f}%",
            "Total Trades": str(stats.total_trades),
            "Win Rate": f"{stats.win_rate:.2f}%",
            "Profit Factor": f"{stats.profit_factor:.2f}",
            "Max Drawdown": f"{stats.max_drawdown:.2f}%",
        }
