import orjson

from hybrid_backtest.backtest.models import BacktestReport, PortfolioStats
from hybrid_backtest.core.serialization import dumps


class TestSerialization:
    def test_infinity_becomes_string(self):
        payload = orjson.loads(dumps({"profit_factor": float("inf"), "curve": [1.0, 2.0]}))
        assert payload == {"profit_factor": "inf", "curve": [1.0, 2.0]}

    def test_report_round_trip_fields(self):
        report = BacktestReport(
            symbol="BTCUSDT",
            timeframe="15m",
            initial_capital=1000.0,
            candles_processed=0,
            predictor_failures=0,
            stats=PortfolioStats(
                final_balance=1000.0,
                roi=0.0,
                total_trades=0,
                win_rate=0.0,
                profit_factor=0.0,
                max_drawdown=0.0,
                equity_curve=[1000.0],
            ),
        )
        payload = orjson.loads(report.to_json(indent=True))
        assert payload["stats"]["equity_curve"] == [1000.0]
        assert payload["trades"] == []
