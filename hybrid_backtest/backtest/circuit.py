import logging
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MLCircuitState:
    """
    Caller-owned breaker for the directional predictor.

    While tripped, the engine skips the predictor and trades on technicals
    only. Each backtest run gets the instance it is handed, so nothing leaks
    between runs.
    """

    is_tripped: bool = False
    last_check_time: float = 0.0

    def trip(self, now: Optional[float] = None) -> None:
        self.is_tripped = True
        self.last_check_time = time.time() if now is None else now
        logger.error("ML circuit tripped: predictor disconnected")

    def reset(self, now: Optional[float] = None) -> None:
        self.is_tripped = False
        self.last_check_time = time.time() if now is None else now
        logger.info("ML circuit reset: predictor reconnected")
