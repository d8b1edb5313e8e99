import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union

import pandas as pd

from hybrid_backtest.backtest.models import Candle
from hybrid_backtest.core.exceptions import DataSourceError

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class CandleSource(Protocol):
    """
    Historical candle provider consumed by the backtest engine.

    Returns oldest-first candles, at most `limit` of them when a limit is
    given (the earliest ones, matching an ascending paginated read).
    """

    async def fetch(
        self, symbol: str, timeframe: str, limit: Optional[int] = None
    ) -> List[Candle]: ...


def validate_series(candles: List[Candle], symbol: str) -> List[Candle]:
    """Reject series whose timestamps are not strictly increasing."""
    for prev, curr in zip(candles, candles[1:]):
        if curr.timestamp <= prev.timestamp:
            raise DataSourceError(
                f"Candles out of order: {curr.timestamp} follows {prev.timestamp}",
                symbol=symbol,
            )
    return candles


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLCV DataFrame into candles.

    Accepts either a `timestamp` column (epoch ms) or a DatetimeIndex.
    """
    frame = df.rename(columns=str.lower)
    if "timestamp" not in frame.columns:
        if not isinstance(frame.index, pd.DatetimeIndex):
            raise DataSourceError("DataFrame needs a 'timestamp' column or DatetimeIndex")
        frame = frame.reset_index(names="timestamp")

    ts = frame["timestamp"]
    if pd.api.types.is_datetime64_any_dtype(ts):
        if ts.dt.tz is None:
            ts = ts.dt.tz_localize("UTC")
        frame = frame.assign(timestamp=ts.map(lambda t: int(t.timestamp() * 1000)))

    if "volume" not in frame.columns:
        frame = frame.assign(volume=0.0)

    missing = [c for c in OHLCV_COLUMNS if c not in frame.columns]
    if missing:
        raise DataSourceError(f"Missing OHLCV columns: {missing}")

    try:
        return [Candle.from_mapping(row) for row in frame[OHLCV_COLUMNS].to_dict("records")]
    except (TypeError, ValueError) as e:
        raise DataSourceError(f"Non-numeric candle field: {e}") from e


class InMemoryCandleSource:
    """
    Serves already-fetched candle arrays, keyed by symbol.
    """

    def __init__(self, data: Dict[str, Iterable[Union[Candle, dict]]]):
        self.data: Dict[str, List[Candle]] = {}
        for symbol, rows in data.items():
            candles = [r if isinstance(r, Candle) else Candle.from_mapping(r) for r in rows]
            self.data[symbol] = validate_series(candles, symbol)

    async def fetch(
        self, symbol: str, timeframe: str, limit: Optional[int] = None
    ) -> List[Candle]:
        if symbol not in self.data:
            raise DataSourceError("No candles loaded", symbol=symbol)
        candles = self.data[symbol]
        return list(candles[:limit] if limit is not None else candles)


class HistoricalCSVCandleSource:
    """
    Reads OHLCV data from per-symbol CSV files.

    Files are looked up as `<directory>/<SYMBOL>_<timeframe>.csv`.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, symbol: str, timeframe: str) -> Path:
        return self.directory / f"{symbol}_{timeframe}.csv"

    async def fetch(
        self, symbol: str, timeframe: str, limit: Optional[int] = None
    ) -> List[Candle]:
        path = self.path_for(symbol, timeframe)
        logger.info(f"Loading market history for {symbol} from {path}...")
        try:
            df = pd.read_csv(path, nrows=limit)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataSourceError(f"Failed to read {path}: {e}", symbol=symbol) from e

        candles = validate_series(candles_from_frame(df), symbol)
        logger.info(f"History loaded: {len(candles)} candles for {symbol}")
        return candles
