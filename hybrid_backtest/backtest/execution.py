"""
Backtest Execution Cost Model

Flat-rate friction applied by the virtual portfolio:
- Taker fee charged on entry notional and on exit value
- Fixed-percentage slippage worsening the entry fill
"""

from typing import Optional

from hybrid_backtest.backtest.models import Side
from hybrid_backtest.core.config import settings


class CostModel:
    """
    Fee and slippage model.

    Parameters:
        fee_rate: Fee per side as a fraction of notional (default: 0.1%)
        slippage_rate: Entry fill degradation as a fraction of price (default: 0.05%)
    """

    def __init__(
        self,
        fee_rate: Optional[float] = None,
        slippage_rate: Optional[float] = None,
    ):
        self.fee_rate = settings.FEE_RATE if fee_rate is None else fee_rate
        self.slippage_rate = (
            settings.SLIPPAGE_RATE if slippage_rate is None else slippage_rate
        )
        if self.fee_rate < 0 or self.slippage_rate < 0:
            raise ValueError("fee_rate and slippage_rate must be non-negative")

    def fee(self, notional: float) -> float:
        return notional * self.fee_rate

    def effective_entry_price(self, side: Side, price: float) -> float:
        """Longs pay up, shorts sell down."""
        if side == Side.LONG:
            return price * (1 + self.slippage_rate)
        return price * (1 - self.slippage_rate)

    def __repr__(self) -> str:
        return f"CostModel(fee_rate={self.fee_rate}, slippage_rate={self.slippage_rate})"
