"""
Directional Predictors.

The backtest engine only knows the `Predictor` protocol: an async call that
turns a candle window into a direction plus confidence, or nothing. Model
inference, rule engines and remote services all plug in behind it.
"""

import logging
from typing import Optional, Protocol, Sequence

import numpy as np

from hybrid_backtest.backtest.models import Candle, Prediction, Signal

logger = logging.getLogger(__name__)


class Predictor(Protocol):
    async def predict(
        self, symbol: str, candles: Sequence[Candle]
    ) -> Optional[Prediction]: ...


class NullPredictor:
    """Never has an opinion; the engine falls back to technicals."""

    async def predict(
        self, symbol: str, candles: Sequence[Candle]
    ) -> Optional[Prediction]:
        return None


class TrendSlopePredictor:
    """
    Least-squares trend on log closes, scored against realized noise.

    Logic:
    - drift = slope * n over the last `lookback` closes
    - noise = std(log returns) * sqrt(n)
    - z = drift / noise; direction from its sign
    - confidence = tanh(|z| / scale), so it stays in [0, 1)

    Args:
        lookback: Number of trailing closes to fit.
        scale: Divisor on |z| before squashing; larger is more conservative.
        neutral_band: |z| below this reports NEUTRAL.
    """

    def __init__(self, lookback: int = 50, scale: float = 2.0, neutral_band: float = 0.1):
        if lookback < 3:
            raise ValueError("lookback must be at least 3")
        self.lookback = lookback
        self.scale = scale
        self.neutral_band = neutral_band

    async def predict(
        self, symbol: str, candles: Sequence[Candle]
    ) -> Optional[Prediction]:
        if len(candles) < self.lookback:
            return None

        closes = np.array([c.close for c in candles[-self.lookback :]], dtype=float)
        if np.any(closes <= 0):
            logger.debug(f"{symbol}: non-positive close in window, no prediction")
            return None

        log_closes = np.log(closes)
        x = np.arange(len(log_closes), dtype=float)
        slope, _ = np.polyfit(x, log_closes, 1)

        noise = np.std(np.diff(log_closes)) * np.sqrt(len(log_closes))
        if noise == 0:
            return None

        z = slope * len(log_closes) / noise
        if abs(z) < self.neutral_band:
            return Prediction.neutral()

        signal = Signal.BULLISH if z > 0 else Signal.BEARISH
        confidence = float(np.tanh(abs(z) / self.scale))
        return Prediction(signal=signal, confidence=confidence)
