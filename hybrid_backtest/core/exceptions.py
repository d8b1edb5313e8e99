"""Error taxonomy for the backtest core.

Fatal errors (data source failures, underfilled history) abort a run and
carry the symbol and step index they happened at. Ledger contract
violations are raised by the portfolio itself.
"""

from typing import Optional


class BacktestError(Exception):
    """Base class for errors that terminate a backtest run."""

    def __init__(
        self, message: str, symbol: Optional[str] = None, step: Optional[int] = None
    ):
        self.symbol = symbol
        self.step = step
        context = []
        if symbol is not None:
            context.append(f"symbol={symbol}")
        if step is not None:
            context.append(f"step={step}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class DataSourceError(BacktestError):
    """Historical candles could not be fetched or failed validation."""


class InsufficientHistoryError(BacktestError):
    """Fewer candles than the indicator lookback requires."""


class PositionNotFoundError(KeyError):
    """close_position was called for a symbol with no open position."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"No open position for {symbol}")

    def __str__(self) -> str:
        return self.args[0]


class InsufficientBalanceError(ValueError):
    """Requested size exceeds cash and all-in fallback is disabled."""
