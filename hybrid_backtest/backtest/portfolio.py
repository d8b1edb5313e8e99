import logging
import time
from typing import Dict, List, Optional, Union

from opentelemetry import trace

from hybrid_backtest.backtest.execution import CostModel
from hybrid_backtest.backtest.models import (
    ExitReason,
    PortfolioStats,
    Position,
    Side,
    TradeResult,
)
from hybrid_backtest.backtest.reporting import PerformanceReporter
from hybrid_backtest.core.constants import DAILY_PNL_FLOOR_FRACTION, MS_PER_DAY
from hybrid_backtest.core.exceptions import (
    InsufficientBalanceError,
    PositionNotFoundError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class VirtualPortfolio:
    """Simulated account ledger for backtesting.

    Tracks cash, at most one open position per symbol, and the closed-trade
    history. Fees are charged once on entry (embedded in the coin amount)
    and once on exit (deducted from the returned value), so a round trip
    costs roughly twice the fee rate on notional.

    Invariant: ``balance + locked_margin == initial_balance + sum(pnl_usd)``.

    Attributes:
        balance (float): Cash after margin locks/releases and fees.
        initial_balance (float): Starting capital.
        positions (Dict[str, Position]): Open positions keyed by symbol.
        trade_history (List[TradeResult]): Closed trades in close order.
        cost_model (CostModel): Fee and slippage rates.
        allow_all_in (bool): Clamp oversize requests to the cash balance
            instead of rejecting them.
    """

    def __init__(
        self,
        initial_capital: float = 1000.0,
        cost_model: Optional[CostModel] = None,
        allow_all_in: bool = True,
    ):
        if initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        self.balance = initial_capital
        self.initial_balance = initial_capital
        self.positions: Dict[str, Position] = {}
        self.trade_history: List[TradeResult] = []
        self.cost_model = cost_model or CostModel()
        self.allow_all_in = allow_all_in

    @property
    def locked_margin(self) -> float:
        return sum(p.size_usd for p in self.positions.values())

    def equity(self) -> float:
        """Cash plus margin locked in open positions (no mark-to-market)."""
        return self.balance + self.locked_margin

    def has_position(self, symbol: str) -> bool:
        return symbol in self.positions

    def get_position(self, symbol: str) -> Optional[Position]:
        return self.positions.get(symbol)

    def open_position(
        self,
        symbol: str,
        side: Union[Side, str],
        price: float,
        size_usd: float,
        stop_loss: Optional[float] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        """Open a position unless one is already held for ``symbol``.

        The margin lock is the gross ``size_usd``; the entry fee reduces the
        coin amount rather than being taken from cash a second time.
        """
        if symbol in self.positions:
            logger.debug(f"Already in a trade for {symbol}, ignoring open")
            return

        side = Side(side)

        if size_usd > self.balance:
            if not self.allow_all_in:
                raise InsufficientBalanceError(
                    f"Requested {size_usd:.2f} exceeds balance {self.balance:.2f}"
                )
            size_usd = self.balance

        if size_usd <= 0 or price <= 0:
            logger.warning(
                f"Skipping open for {symbol}: size={size_usd:.2f} price={price}"
            )
            return

        fee = self.cost_model.fee(size_usd)
        effective_price = self.cost_model.effective_entry_price(side, price)
        amount_coin = (size_usd - fee) / effective_price

        self.positions[symbol] = Position(
            symbol=symbol,
            side=side,
            entry_price=effective_price,
            size_usd=size_usd,
            amount_coin=amount_coin,
            timestamp=_now_ms() if timestamp is None else timestamp,
            stop_loss=stop_loss,
        )

        self.balance -= size_usd

        logger.debug(
            f"Opened {side.value} {symbol}: {amount_coin:.6f} @ {effective_price:.4f} "
            f"(size ${size_usd:.2f}, fee ${fee:.2f}). Cash: {self.balance:.2f}"
        )

    def check_stops(
        self, symbol: str, current_price: float, current_time: Optional[int] = None
    ) -> Optional[TradeResult]:
        """Close at ``current_price`` with reason SL if the stop is breached."""
        position = self.positions.get(symbol)
        if position is None or position.stop_loss is None:
            return None

        if position.side == Side.LONG:
            triggered = current_price <= position.stop_loss
        else:
            triggered = current_price >= position.stop_loss

        if triggered:
            return self.close_position(
                symbol, current_price, ExitReason.SL.value, current_time
            )
        return None

    @tracer.start_as_current_span("close_position")
    def close_position(
        self,
        symbol: str,
        price: float,
        reason: Union[ExitReason, str] = ExitReason.MANUAL,
        current_time: Optional[int] = None,
    ) -> TradeResult:
        """Close the open position for ``symbol`` and record the trade.

        Raises:
            PositionNotFoundError: No position is open for ``symbol``.
        """
        position = self.positions.get(symbol)
        if position is None:
            raise PositionNotFoundError(symbol)

        if isinstance(reason, ExitReason):
            reason = reason.value

        if position.side == Side.LONG:
            raw_pnl_percent = (price - position.entry_price) / position.entry_price
        else:
            raw_pnl_percent = (position.entry_price - price) / position.entry_price

        position_value = position.size_usd * (1 + raw_pnl_percent)
        exit_fee = self.cost_model.fee(position_value)
        net_return = position_value - exit_fee

        self.balance += net_return

        pnl_usd = net_return - position.size_usd
        total_fee = self.cost_model.fee(position.size_usd) + exit_fee

        result = TradeResult(
            symbol=symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=price,
            entry_time=position.timestamp,
            exit_time=_now_ms() if current_time is None else current_time,
            size_usd=position.size_usd,
            pnl_usd=pnl_usd,
            pnl_percent=pnl_usd / position.size_usd * 100,
            fee_usd=total_fee,
            reason=reason,
        )

        self.trade_history.append(result)
        del self.positions[symbol]

        span = trace.get_current_span()
        span.set_attribute("trade.symbol", symbol)
        span.set_attribute("trade.reason", reason)
        span.set_attribute("trade.pnl_usd", pnl_usd)

        logger.debug(
            f"Closed {position.side.value} {symbol} @ {price:.4f} [{reason}] "
            f"PnL ${pnl_usd:.2f} ({result.pnl_percent:.2f}%). Cash: {self.balance:.2f}"
        )
        return result

    def get_stats(self) -> PortfolioStats:
        return PerformanceReporter(self.trade_history, self.initial_balance).calculate_metrics(
            self.balance
        )

    def get_daily_pnl(self, now: Optional[int] = None) -> float:
        """Realized PnL of the last 24h as a fraction of normalized balance.

        The denominator adds 10% of initial capital to the cash balance so it
        never reaches zero; treat the result as a heuristic, not a return on
        start-of-day equity. ``now`` is epoch ms (wall clock by default).
        """
        now = _now_ms() if now is None else now
        one_day_ago = now - MS_PER_DAY
        realized = sum(t.pnl_usd for t in self.trade_history if t.exit_time >= one_day_ago)
        return realized / (self.balance + self.initial_balance * DAILY_PNL_FLOOR_FRACTION)

    def is_circuit_breaker_active(self, limit: float, now: Optional[int] = None) -> bool:
        """True when the daily PnL fraction is at or below ``-limit``."""
        return self.get_daily_pnl(now) <= -limit
