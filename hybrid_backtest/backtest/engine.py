import asyncio
import logging
import time
from typing import List, Optional, Sequence

from opentelemetry import trace
from pydantic import ValidationError

from hybrid_backtest.backtest.circuit import MLCircuitState
from hybrid_backtest.backtest.feed import CandleSource, validate_series
from hybrid_backtest.backtest.models import (
    BacktestConfig,
    BacktestReport,
    Candle,
    ExitReason,
    IndicatorSnapshot,
    Position,
    Prediction,
    Side,
)
from hybrid_backtest.backtest.portfolio import VirtualPortfolio
from hybrid_backtest.backtest.strategy import HybridStrategy
from hybrid_backtest.core.config import settings
from hybrid_backtest.core.exceptions import (
    BacktestError,
    DataSourceError,
    InsufficientHistoryError,
)
from hybrid_backtest.services.forecast import Predictor
from hybrid_backtest.services.indicators import IndicatorProvider, compute_indicators

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class BacktestEngine:
    """
    Single-pass, next-bar backtester for one symbol.

    Each step `i` decides on candle `i` and fills on candle `i + 1`:
    1. Stop check against the next candle's low (LONG) / high (SHORT)
    2. Trailing context window ending at `i`
    3. Indicators + predictor (predictor failures degrade to NEUTRAL)
    4. Entry via the strategy when flat
    5. ML flip exit when holding

    Steps run strictly in order; nothing from step `i + 1` starts before
    step `i` has finished awaiting its predictor.

    Example:
        engine = BacktestEngine(
            BacktestConfig(initial_capital=10000, limit=1000),
            source=HistoricalCSVCandleSource("data/"),
            predictor=TrendSlopePredictor(),
        )
        report = await engine.run()
    """

    def __init__(
        self,
        config: BacktestConfig,
        source: Optional[CandleSource] = None,
        indicators: IndicatorProvider = compute_indicators,
        predictor: Optional[Predictor] = None,
        strategy: Optional[HybridStrategy] = None,
        portfolio: Optional[VirtualPortfolio] = None,
        circuit: Optional[MLCircuitState] = None,
    ):
        """
        Args:
            config: Capital, start index, limit and window sizes.
            source: Historical candle provider, required unless candles are
                passed to `run` directly.
            indicators: Synchronous `(symbol, window) -> IndicatorSnapshot`.
            predictor: Async directional predictor; None trades technicals only.
            strategy: Entry/exit policy.
            portfolio: Ledger owned by this engine (a fresh one by default).
            circuit: Caller-owned ML breaker state.
        """
        self.config = config
        self.source = source
        self.indicators = indicators
        self.predictor = predictor
        self.strategy = strategy or HybridStrategy()
        self.portfolio = portfolio or VirtualPortfolio(config.initial_capital)
        self.circuit = circuit or MLCircuitState()
        self._has_run = False

        # Telemetry counters
        self.steps_processed = 0
        self.predictor_calls = 0
        self.predictor_failures = 0
        self.entries = 0
        self.stop_exits = 0
        self.flip_exits = 0

    @property
    def symbol(self) -> str:
        return self.config.symbol

    async def load_history(self) -> List[Candle]:
        """Fetch oldest-first history. Any source failure is fatal."""
        if self.source is None:
            raise DataSourceError("No candle source configured", symbol=self.symbol)

        budget = self.config.history_budget or settings.MAX_HISTORY
        logger.info(f"⏳ Downloading market history for {self.symbol} (up to {budget})...")

        try:
            candles = await self.source.fetch(self.symbol, self.config.timeframe, budget)
        except DataSourceError:
            raise
        except Exception as e:
            logger.error(f"History fetch failed for {self.symbol}: {e}")
            raise DataSourceError(f"History fetch failed: {e}", symbol=self.symbol) from e

        candles = validate_series(list(candles), self.symbol)
        logger.info(f"📚 History loaded: {len(candles)} candles.")
        return candles

    @tracer.start_as_current_span("backtest_run")
    async def run(self, candles: Optional[Sequence[Candle]] = None) -> BacktestReport:
        """
        Replay the series once and return the final report.

        Args:
            candles: Already-fetched series; fetched from `source` when omitted.

        Raises:
            DataSourceError: History could not be loaded or is malformed.
            InsufficientHistoryError: Not enough candles for the lookback.
            BacktestError: Indicator computation failed at some step, or the
                engine already ran. Engines are single-use; the portfolio and
                counters belong to one run.
        """
        if self._has_run:
            raise BacktestError(
                "Engine already ran; create a new BacktestEngine per run",
                symbol=self.symbol,
            )
        self._has_run = True

        span = trace.get_current_span()
        span.set_attribute("backtest.symbol", self.symbol)

        if candles is None:
            candles = await self.load_history()
        else:
            candles = validate_series(list(candles), self.symbol)

        budget = self.config.history_budget
        if budget is not None:
            candles = candles[:budget]

        start = self.config.start_index
        if len(candles) < self.config.lookback + 2 or start > len(candles) - 2:
            raise InsufficientHistoryError(
                f"Need at least {max(start, self.config.lookback) + 2} candles, "
                f"got {len(candles)}",
                symbol=self.symbol,
            )

        span.set_attribute("backtest.candles", len(candles))
        logger.info(
            f"🚀 Starting simulation for {self.symbol} at index {start} "
            f"({len(candles) - 1 - start} steps)"
        )
        started = time.time()

        for i in range(start, len(candles) - 1):
            await self._step(candles, i)
            self.steps_processed += 1

        logger.info(f"🏁 Simulation complete in {time.time() - started:.2f}s")

        report = self._build_report()
        span.set_attribute("backtest.total_trades", report.stats.total_trades)
        self._log_summary(report)
        return report

    async def _step(self, candles: Sequence[Candle], i: int) -> None:
        current = candles[i]
        nxt = candles[i + 1]

        position = self.portfolio.get_position(self.symbol)
        if position is not None and self._stop_breached(position, nxt):
            trade = self.portfolio.close_position(
                self.symbol, position.stop_loss, ExitReason.SL, nxt.timestamp
            )
            self.stop_exits += 1
            logger.info(
                f"[TRADE] STOP {position.side.value} at {trade.exit_price:.4f} "
                f"PnL ${trade.pnl_usd:.2f}"
            )
            return

        window_start = max(0, i - self.config.context_window + 1)
        window = candles[window_start : i + 1]

        try:
            indicators = self.indicators(self.symbol, window)
        except Exception as e:
            logger.error(f"Indicator computation failed at step {i}: {e}")
            raise BacktestError(
                f"Indicator computation failed: {e}", symbol=self.symbol, step=i
            ) from e

        prediction = await self._predict(window, i)

        if position is None:
            self._maybe_enter(current, nxt, indicators, prediction, i)
        elif self.strategy.should_flip_exit(position.side, prediction):
            trade = self.portfolio.close_position(
                self.symbol, nxt.open, ExitReason.ML_FLIP, nxt.timestamp
            )
            self.flip_exits += 1
            logger.info(
                f"[TRADE] FLIP EXIT {position.side.value} at {nxt.open} "
                f"(Confidence: {prediction.confidence:.2f}) PnL ${trade.pnl_usd:.2f}"
            )

    @staticmethod
    def _stop_breached(position: Position, nxt: Candle) -> bool:
        if position.stop_loss is None:
            return False
        if position.side == Side.LONG:
            return nxt.low <= position.stop_loss
        return nxt.high >= position.stop_loss

    def _maybe_enter(
        self,
        current: Candle,
        nxt: Candle,
        indicators: IndicatorSnapshot,
        prediction: Prediction,
        step: int,
    ) -> None:
        limit = self.config.daily_loss_limit
        if limit is not None and self.portfolio.is_circuit_breaker_active(
            limit, now=current.timestamp
        ):
            logger.debug(f"Daily loss breaker active at step {step}, no entries")
            return

        decision = self.strategy.decide_entry(current.close, indicators, prediction)

        if step % 50 == 0:
            logger.debug(
                f"[DEBUG] Price:{current.close} EMA:{indicators.ema200:.2f} "
                f"ML:{prediction.signal.value}({prediction.confidence:.2f}) RSI:{indicators.rsi:.2f}"
            )

        if decision is None:
            return

        size_usd = self.portfolio.balance * decision.size_fraction
        self.portfolio.open_position(
            self.symbol,
            decision.side,
            nxt.open,
            size_usd,
            stop_loss=decision.stop_loss,
            timestamp=nxt.timestamp,
        )
        if not self.portfolio.has_position(self.symbol):
            return

        self.entries += 1
        if decision.source == "ML":
            detail = f"Confidence: {prediction.confidence:.2f}"
        else:
            detail = f"RSI: {indicators.rsi:.2f}"
        logger.info(
            f"[TRADE] {decision.side.value} ({decision.source}) at {nxt.open} ({detail})"
        )

    async def _predict(self, window: Sequence[Candle], step: int) -> Prediction:
        """Ask the predictor; every failure mode collapses to NEUTRAL."""
        if self.predictor is None or self.circuit.is_tripped:
            return Prediction.neutral()

        self.predictor_calls += 1
        try:
            result = await asyncio.wait_for(
                self.predictor.predict(self.symbol, window),
                timeout=self.config.predictor_timeout,
            )
        except Exception as e:
            self._record_predictor_failure(step, e)
            return Prediction.neutral()

        if result is None:
            return Prediction.neutral()
        if isinstance(result, Prediction):
            return result

        try:
            return Prediction.model_validate(result)
        except ValidationError as e:
            self._record_predictor_failure(step, e)
            return Prediction.neutral()

    def _record_predictor_failure(self, step: int, error: Exception) -> None:
        self.predictor_failures += 1
        message = f"Predictor failed at step {step}: {type(error).__name__}: {error}"
        if self.predictor_failures == 1:
            logger.warning(message + " (treating as NEUTRAL)")
        else:
            logger.debug(message)

    def _build_report(self) -> BacktestReport:
        return BacktestReport(
            symbol=self.symbol,
            timeframe=self.config.timeframe,
            initial_capital=self.config.initial_capital,
            candles_processed=self.steps_processed,
            predictor_failures=self.predictor_failures,
            stats=self.portfolio.get_stats(),
            trades=list(self.portfolio.trade_history),
        )

    def _log_summary(self, report: BacktestReport) -> None:
        stats = report.stats
        logger.info("\n" + "=" * 60)
        logger.info("📊 BACKTEST RESULTS")
        logger.info("=" * 60)
        logger.info(f"Initial Capital:   ${report.initial_capital:.2f}")
        logger.info(f"Final Balance:     ${stats.final_balance:.2f}")
        logger.info(f"ROI:               {stats.roi:.2f}%")
        logger.info(f"Total Trades:      {stats.total_trades}")
        logger.info(f"Win Rate:          {stats.win_rate:.2f}%")
        logger.info(f"Profit Factor:     {stats.profit_factor:.2f}")
        logger.info(f"Max Drawdown:      {stats.max_drawdown:.2f}%")
        logger.info(f"Stops / Flips:     {self.stop_exits} / {self.flip_exits}")
        logger.info(f"Predictor Fails:   {self.predictor_failures}/{self.predictor_calls}")
        logger.info("=" * 60 + "\n")
