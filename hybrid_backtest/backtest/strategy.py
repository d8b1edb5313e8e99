from dataclasses import dataclass
from typing import Optional

from hybrid_backtest.backtest.models import IndicatorSnapshot, Prediction, Side, Signal
from hybrid_backtest.core import constants


@dataclass(frozen=True)
class EntryDecision:
    side: Side
    size_fraction: float  # of current cash balance
    stop_loss: float
    source: str  # "ML" or "TECH"


class HybridStrategy:
    """
    ML-first entry policy with a technical fallback.

    Logic (first match wins):
    1. Predictor BULLISH above the confidence gate and price above EMA200 -> LONG
    2. Predictor BEARISH above the confidence gate and price below EMA200 -> SHORT
    3. Price above EMA200 and RSI oversold -> LONG (smaller size)
    4. Price below EMA200 and RSI overbought -> SHORT (smaller size)

    Open positions are closed early when the predictor flips against them
    with high confidence.
    """

    def __init__(
        self,
        ml_entry_confidence: float = constants.ML_ENTRY_CONFIDENCE,
        ml_flip_confidence: float = constants.ML_FLIP_CONFIDENCE,
        rsi_oversold: float = constants.RSI_OVERSOLD,
        rsi_overbought: float = constants.RSI_OVERBOUGHT,
        ml_size_fraction: float = constants.ML_SIZE_FRACTION,
        tech_size_fraction: float = constants.TECH_SIZE_FRACTION,
        stop_loss_pct: float = constants.STOP_LOSS_PCT,
    ):
        self.ml_entry_confidence = ml_entry_confidence
        self.ml_flip_confidence = ml_flip_confidence
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought
        self.ml_size_fraction = ml_size_fraction
        self.tech_size_fraction = tech_size_fraction
        self.stop_loss_pct = stop_loss_pct

    def _stop_for(self, side: Side, price: float) -> float:
        if side == Side.LONG:
            return price * (1 - self.stop_loss_pct)
        return price * (1 + self.stop_loss_pct)

    def _decision(self, side: Side, fraction: float, price: float, source: str) -> EntryDecision:
        return EntryDecision(side, fraction, self._stop_for(side, price), source)

    def decide_entry(
        self, price: float, indicators: IndicatorSnapshot, prediction: Prediction
    ) -> Optional[EntryDecision]:
        """
        Args:
            price: Close of the signal candle (stops are anchored here).
            indicators: Snapshot over the trailing window.
            prediction: Predictor output, NEUTRAL when unavailable.
        """
        trend_bullish = price > indicators.ema200
        trend_bearish = price < indicators.ema200
        oversold = indicators.rsi < self.rsi_oversold
        overbought = indicators.rsi > self.rsi_overbought
        confident = prediction.confidence > self.ml_entry_confidence

        if prediction.signal == Signal.BULLISH and confident and trend_bullish:
            return self._decision(Side.LONG, self.ml_size_fraction, price, "ML")
        if prediction.signal == Signal.BEARISH and confident and trend_bearish:
            return self._decision(Side.SHORT, self.ml_size_fraction, price, "ML")
        if trend_bullish and oversold:
            return self._decision(Side.LONG, self.tech_size_fraction, price, "TECH")
        if trend_bearish and overbought:
            return self._decision(Side.SHORT, self.tech_size_fraction, price, "TECH")
        return None

    def should_flip_exit(self, side: Side, prediction: Prediction) -> bool:
        if prediction.confidence <= self.ml_flip_confidence:
            return False
        if side == Side.LONG:
            return prediction.signal == Signal.BEARISH
        return prediction.signal == Signal.BULLISH
