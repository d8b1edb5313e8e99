"""
Default Indicator Provider.

Stateless snapshot of the technical context the hybrid strategy reads
(RSI, EMA200, plus EMA50 and ATR for diagnostics) over a trailing candle
window. Short windows are clamped to neutral values instead of raising.
"""

from typing import Callable, Sequence

import numpy as np
import pandas as pd

from hybrid_backtest.backtest.models import Candle, IndicatorSnapshot

IndicatorProvider = Callable[[str, Sequence[Candle]], IndicatorSnapshot]

RSI_PERIOD = 14
ATR_PERIOD = 14
NEUTRAL_RSI = 50.0


def ema(closes: np.ndarray, period: int) -> float:
    """EMA seeded with the first value; last close when the window is short."""
    if len(closes) == 0:
        return float("nan")
    if len(closes) < period:
        return float(closes[-1])
    series = pd.Series(closes).ewm(span=period, adjust=False).mean()
    return float(series.iloc[-1])


def rsi(closes: np.ndarray, period: int = RSI_PERIOD) -> float:
    """Wilder RSI: SMA seed over the first `period` changes, then smoothing."""
    if len(closes) < period + 1:
        return NEUTRAL_RSI

    changes = np.diff(closes)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else NEUTRAL_RSI
    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def atr(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = ATR_PERIOD) -> float:
    if len(closes) < period + 1:
        return 0.0

    prev_close = closes[:-1]
    tr = np.maximum.reduce(
        [
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_close),
            np.abs(lows[1:] - prev_close),
        ]
    )
    value = tr[:period].mean()
    for t in tr[period:]:
        value = (value * (period - 1) + t) / period
    return float(value)


def compute_indicators(symbol: str, candles: Sequence[Candle]) -> IndicatorSnapshot:
    """
    Args:
        symbol: Ticker (unused by the math, kept for provider parity).
        candles: Trailing window, oldest first, ending at the signal candle.
    """
    closes = np.fromiter((c.close for c in candles), dtype=float, count=len(candles))
    highs = np.fromiter((c.high for c in candles), dtype=float, count=len(candles))
    lows = np.fromiter((c.low for c in candles), dtype=float, count=len(candles))

    return IndicatorSnapshot(
        rsi=rsi(closes),
        ema200=ema(closes, 200),
        ema50=ema(closes, 50),
        atr=atr(highs, lows, closes),
    )
