import math

import pytest

from hybrid_backtest.backtest.models import Prediction, Signal
from hybrid_backtest.services.forecast import NullPredictor, TrendSlopePredictor


def noisy(base, drift, n):
    # Deterministic zig-zag so the return volatility is never zero
    return [base * math.exp(drift * i) * (1.0 + (0.002 if i % 2 else -0.002)) for i in range(n)]


class TestTrendSlopePredictor:
    @pytest.mark.asyncio
    async def test_uptrend_is_bullish(self, candle_factory):
        predictor = TrendSlopePredictor(lookback=50)
        result = await predictor.predict("X", candle_factory(noisy(100.0, 0.01, 80)))

        assert isinstance(result, Prediction)
        assert result.signal == Signal.BULLISH
        assert 0.0 < result.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_downtrend_is_bearish(self, candle_factory):
        predictor = TrendSlopePredictor(lookback=50)
        result = await predictor.predict("X", candle_factory(noisy(100.0, -0.01, 80)))
        assert result.signal == Signal.BEARISH

    @pytest.mark.asyncio
    async def test_short_window_has_no_opinion(self, candle_factory):
        predictor = TrendSlopePredictor(lookback=50)
        assert await predictor.predict("X", candle_factory([100.0] * 10)) is None

    @pytest.mark.asyncio
    async def test_flat_series_has_no_opinion(self, candle_factory):
        predictor = TrendSlopePredictor(lookback=20)
        assert await predictor.predict("X", candle_factory([100.0] * 30)) is None

    def test_lookback_validation(self):
        with pytest.raises(ValueError):
            TrendSlopePredictor(lookback=2)


class TestNullPredictor:
    @pytest.mark.asyncio
    async def test_always_none(self, candle_factory):
        assert await NullPredictor().predict("X", candle_factory([1.0] * 5)) is None


class TestPrediction:
    def test_confidence_bounds(self):
        with pytest.raises(ValueError):
            Prediction(signal=Signal.BULLISH, confidence=1.5)

    def test_neutral(self):
        neutral = Prediction.neutral()
        assert neutral.signal == Signal.NEUTRAL
        assert neutral.confidence == 0.0
