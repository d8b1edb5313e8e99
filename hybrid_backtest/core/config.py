"""Application configuration via Pydantic Settings (12-Factor App compliance).

Centralized environment-driven configuration for:
- Execution friction (fee and slippage rates)
- Backtest sizing (initial capital, history caps, indicator lookback)
- Predictor call budget
- Daily loss circuit breaker
- Telemetry endpoint (OpenTelemetry)

All settings can be overridden via environment variables or .env file.
"""

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # --- App Info ---
    PROJECT_NAME: str = "hybrid-backtest"  # OTel service.name
    VERSION: str = "0.3.0"
    ENV: str = "DEV"  # DEV, PROD
    LOG_LEVEL: str = "INFO"

    # --- Execution Friction ---
    FEE_RATE: float = 0.001  # 0.1% taker fee per side
    SLIPPAGE_RATE: float = 0.0005  # 5 bps worse fill on entry

    # --- Backtest ---
    INITIAL_CAPITAL: float = 10000.0
    DEFAULT_SYMBOL: str = "BTCUSDT"
    DEFAULT_TIMEFRAME: str = "15m"
    INDICATOR_LOOKBACK: int = 200  # EMA200 needs a full window
    CONTEXT_WINDOW: int = 1000  # Trailing candles handed to indicators/predictor
    MAX_HISTORY: int = 75000  # Cap when no limit is configured

    # --- Predictor ---
    PREDICTOR_TIMEOUT_S: float = 5.0

    # --- Risk ---
    DAILY_LOSS_LIMIT: Optional[float] = None  # Fraction of normalized equity, unset disables

    # --- Telemetry ---
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""

    @field_validator("FEE_RATE", "SLIPPAGE_RATE")
    @classmethod
    def non_negative_rate(cls, v: float) -> float:
        if v < 0:
            raise ValueError("rates must be non-negative")
        return v

    @field_validator("DAILY_LOSS_LIMIT")
    @classmethod
    def positive_limit(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("DAILY_LOSS_LIMIT must be positive when set")
        return v

    @field_validator("INDICATOR_LOOKBACK", "CONTEXT_WINDOW", "MAX_HISTORY")
    @classmethod
    def positive_count(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("candle counts must be positive")
        return v

    @model_validator(mode="after")
    def window_covers_lookback(self) -> "Settings":
        if self.CONTEXT_WINDOW < self.INDICATOR_LOOKBACK:
            raise ValueError("CONTEXT_WINDOW must be >= INDICATOR_LOOKBACK")
        return self


settings = Settings()
