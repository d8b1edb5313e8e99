import numpy as np
import pytest

from hybrid_backtest.services.indicators import atr, compute_indicators, ema, rsi


class TestEMA:
    def test_short_window_returns_last_close(self):
        assert ema(np.array([1.0, 2.0, 3.0]), 200) == 3.0

    def test_constant_series(self):
        assert ema(np.full(300, 42.0), 200) == pytest.approx(42.0)

    def test_seeded_recurrence(self):
        closes = np.array([10.0, 11.0, 12.0, 13.0])
        k = 2 / (3 + 1)
        expected = closes[0]
        for c in closes[1:]:
            expected = c * k + expected * (1 - k)
        assert ema(closes, 3) == pytest.approx(expected)


class TestRSI:
    def test_short_window_is_neutral(self):
        assert rsi(np.arange(10, dtype=float)) == 50.0

    def test_only_gains(self):
        assert rsi(np.arange(30, dtype=float)) == 100.0

    def test_only_losses(self):
        assert rsi(np.arange(30, 0, -1, dtype=float)) == pytest.approx(0.0)

    def test_alternating_is_balanced(self):
        closes = np.array([100.0 + (i % 2) for i in range(41)])
        assert 40.0 < rsi(closes) < 60.0


class TestATR:
    def test_constant_range(self):
        closes = np.full(30, 100.0)
        assert atr(closes + 1.0, closes - 1.0, closes) == pytest.approx(2.0)

    def test_short_window(self):
        closes = np.full(5, 100.0)
        assert atr(closes, closes, closes) == 0.0


class TestComputeIndicators:
    def test_snapshot_over_candles(self, candle_factory):
        candles = candle_factory([100.0 + i * 0.5 for i in range(250)])
        snap = compute_indicators("X", candles)

        assert snap.rsi == 100.0
        assert snap.ema200 < candles[-1].close
        assert snap.ema50 > snap.ema200
        assert snap.atr == pytest.approx(1.0, abs=0.01)

    def test_edge_window_is_clamped(self, candle_factory):
        snap = compute_indicators("X", candle_factory([100.0, 101.0]))
        assert snap.rsi == 50.0
        assert snap.ema200 == 101.0
