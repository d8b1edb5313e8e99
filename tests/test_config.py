import pytest
from pydantic import ValidationError

from hybrid_backtest.backtest.execution import CostModel
from hybrid_backtest.backtest.models import Side
from hybrid_backtest.core.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.FEE_RATE == 0.001
        assert s.SLIPPAGE_RATE == 0.0005
        assert s.INDICATOR_LOOKBACK == 200
        assert s.CONTEXT_WINDOW == 1000

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("FEE_RATE", "0.00075")
        assert Settings(_env_file=None).FEE_RATE == 0.00075

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, SLIPPAGE_RATE=-0.1)

    def test_zero_lookback_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, INDICATOR_LOOKBACK=0)

    def test_daily_loss_limit_unset_by_default(self):
        assert Settings(_env_file=None).DAILY_LOSS_LIMIT is None

    def test_daily_loss_limit_from_env(self, monkeypatch):
        monkeypatch.setenv("DAILY_LOSS_LIMIT", "0.02")
        assert Settings(_env_file=None).DAILY_LOSS_LIMIT == 0.02

    def test_zero_daily_loss_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, DAILY_LOSS_LIMIT=0.0)

    def test_context_window_shorter_than_lookback_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, INDICATOR_LOOKBACK=200, CONTEXT_WINDOW=50)


class TestCostModel:
    def test_uses_settings_defaults(self):
        model = CostModel()
        assert model.fee_rate == 0.001
        assert model.effective_entry_price(Side.LONG, 100.0) == pytest.approx(100.05)

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            CostModel(fee_rate=-0.01)
