import pytest

from hybrid_backtest.backtest.execution import CostModel
from hybrid_backtest.backtest.models import Candle

BASE_TS = 1_700_000_000_000
STEP_MS = 15 * 60 * 1000


def build_candles(closes, spread=0.5):
    """Open a quarter below close, high/low `spread` around it, 15m apart."""
    return [
        Candle(
            timestamp=BASE_TS + i * STEP_MS,
            open=c - 0.25,
            high=c + spread,
            low=c - spread,
            close=c,
            volume=1000.0,
        )
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def candle_factory():
    return build_candles


@pytest.fixture
def cost_model():
    return CostModel(fee_rate=0.001, slippage_rate=0.0005)
