"""Domain types shared by the portfolio ledger and the backtest engine."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hybrid_backtest.core.config import settings
from hybrid_backtest.core import serialization


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Signal(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class ExitReason(str, Enum):
    SL = "SL"
    ML_FLIP = "ML_FLIP"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. `timestamp` is epoch milliseconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_mapping(cls, row: Dict[str, Any]) -> "Candle":
        return cls(
            timestamp=int(row["timestamp"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0.0) or 0.0),
        )


@dataclass(frozen=True)
class Position:
    """
    An open trade. `entry_price` is the slippage-adjusted fill and
    `amount_coin` is net of the entry fee. `size_usd` is the gross notional
    locked from cash.
    """

    symbol: str
    side: Side
    entry_price: float
    size_usd: float
    amount_coin: float
    timestamp: int
    stop_loss: Optional[float] = None


@dataclass(frozen=True)
class TradeResult:
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    entry_time: int
    exit_time: int
    size_usd: float
    pnl_usd: float
    pnl_percent: float
    fee_usd: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["side"] = self.side.value
        return data


@dataclass(frozen=True)
class IndicatorSnapshot:
    rsi: float
    ema200: float
    ema50: Optional[float] = None
    atr: Optional[float] = None


class Prediction(BaseModel):
    """
    Directional predictor output.
    """

    model_config = ConfigDict(frozen=True)

    signal: Signal = Field(..., description="BULLISH, BEARISH or NEUTRAL")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Model confidence")

    @classmethod
    def neutral(cls) -> "Prediction":
        return cls(signal=Signal.NEUTRAL, confidence=0.0)


class BacktestConfig(BaseModel):
    """
    Controls how much history is scanned and where the simulation starts.

    `start_from_index` defaults to `lookback` and may not be lower, and
    `context_window` may not be shorter than `lookback`. Either would hand the
    indicators an underfilled window.

    `daily_loss_limit` defaults to `settings.DAILY_LOSS_LIMIT`; pass None to
    disable the daily breaker explicitly.
    """

    initial_capital: float = Field(default=settings.INITIAL_CAPITAL, gt=0)
    start_from_index: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, gt=0)
    symbol: str = settings.DEFAULT_SYMBOL
    timeframe: str = settings.DEFAULT_TIMEFRAME
    lookback: int = Field(default=settings.INDICATOR_LOOKBACK, gt=0)
    context_window: int = Field(default=settings.CONTEXT_WINDOW, gt=0)
    daily_loss_limit: Optional[float] = Field(
        default_factory=lambda: settings.DAILY_LOSS_LIMIT, gt=0
    )
    predictor_timeout: float = Field(default=settings.PREDICTOR_TIMEOUT_S, gt=0)

    @model_validator(mode="after")
    def check_windows(self) -> "BacktestConfig":
        if self.start_from_index is not None and self.start_from_index < self.lookback:
            raise ValueError(
                f"start_from_index ({self.start_from_index}) must be >= lookback ({self.lookback})"
            )
        if self.context_window < self.lookback:
            raise ValueError(
                f"context_window ({self.context_window}) must be >= lookback ({self.lookback})"
            )
        return self

    @property
    def start_index(self) -> int:
        return self.start_from_index if self.start_from_index is not None else self.lookback

    @property
    def history_budget(self) -> Optional[int]:
        """Candles to request from the source, lookback included."""
        if self.limit is None:
            return None
        return self.limit + self.lookback


@dataclass
class PortfolioStats:
    final_balance: float
    roi: float
    total_trades: int
    win_rate: float
    profit_factor: float
    max_drawdown: float
    equity_curve: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestReport:
    symbol: str
    timeframe: str
    initial_capital: float
    candles_processed: int
    predictor_failures: int
    stats: PortfolioStats
    trades: List[TradeResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "initial_capital": self.initial_capital,
            "candles_processed": self.candles_processed,
            "predictor_failures": self.predictor_failures,
            "stats": self.stats.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
        }

    def to_json(self, indent: bool = False) -> bytes:
        return serialization.dumps(self.to_dict(), indent=indent)
