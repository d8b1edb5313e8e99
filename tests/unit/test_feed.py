import pandas as pd
import pytest

from hybrid_backtest.backtest.feed import (
    HistoricalCSVCandleSource,
    InMemoryCandleSource,
    candles_from_frame,
)
from hybrid_backtest.backtest.models import Candle
from hybrid_backtest.core.exceptions import DataSourceError


class TestInMemorySource:
    @pytest.mark.asyncio
    async def test_fetch_with_limit(self, candle_factory):
        source = InMemoryCandleSource({"BTC": candle_factory([1.0, 2.0, 3.0, 4.0])})
        candles = await source.fetch("BTC", "15m", limit=2)
        assert [c.close for c in candles] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_accepts_mappings(self):
        rows = [
            {"timestamp": 1, "open": 1, "high": 2, "low": 0.5, "close": 1.5},
            {"timestamp": 2, "open": 1.5, "high": 2, "low": 1, "close": 1.8, "volume": 10},
        ]
        candles = await InMemoryCandleSource({"BTC": rows}).fetch("BTC", "15m")
        assert candles[0] == Candle(1, 1.0, 2.0, 0.5, 1.5, 0.0)
        assert candles[1].volume == 10.0

    @pytest.mark.asyncio
    async def test_unknown_symbol(self):
        with pytest.raises(DataSourceError):
            await InMemoryCandleSource({}).fetch("ETH", "15m")

    def test_rejects_duplicate_timestamps(self, candle_factory):
        candles = candle_factory([1.0, 2.0])
        with pytest.raises(DataSourceError):
            InMemoryCandleSource({"BTC": [candles[0], candles[0]]})


class TestFrameConversion:
    def test_datetime_index(self):
        dates = pd.date_range(start="2024-01-01", periods=3, freq="15min", tz="UTC")
        df = pd.DataFrame(
            {
                "Open": [1.0, 2.0, 3.0],
                "High": [1.5, 2.5, 3.5],
                "Low": [0.5, 1.5, 2.5],
                "Close": [1.2, 2.2, 3.2],
                "Volume": [10, 20, 30],
            },
            index=dates,
        )
        candles = candles_from_frame(df)

        assert len(candles) == 3
        assert candles[0].timestamp == int(dates[0].timestamp() * 1000)
        assert candles[1].timestamp - candles[0].timestamp == 15 * 60 * 1000
        assert candles[2].close == 3.2

    def test_missing_columns(self):
        df = pd.DataFrame({"timestamp": [1, 2], "close": [1.0, 2.0]})
        with pytest.raises(DataSourceError):
            candles_from_frame(df)


class TestCSVSource:
    @pytest.mark.asyncio
    async def test_reads_symbol_file(self, tmp_path, candle_factory):
        candles = candle_factory([100.0, 101.0, 102.0])
        pd.DataFrame([c.__dict__ for c in candles]).to_csv(
            tmp_path / "BTCUSDT_15m.csv", index=False
        )

        source = HistoricalCSVCandleSource(tmp_path)
        loaded = await source.fetch("BTCUSDT", "15m", limit=2)

        assert loaded == candles[:2]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(DataSourceError) as exc:
            await HistoricalCSVCandleSource(tmp_path).fetch("BTCUSDT", "15m")
        assert exc.value.symbol == "BTCUSDT"
