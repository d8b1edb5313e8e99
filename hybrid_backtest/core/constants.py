"""Decision-policy constants for the hybrid (ML + technical) strategy.

Defines the thresholds the backtest engine uses to turn a directional
prediction and an indicator snapshot into entries and exits:
- **Confidence Gates**: minimum ML confidence to enter, to flip out
- **Momentum Bands**: RSI oversold / overbought levels
- **Sizing**: fraction of cash committed per entry (ML vs technical)
- **Stops**: protective stop distance from the signal close

Most values overridable via environment variables for flexibility.
"""

import os

# ============================================================================
# CONFIDENCE GATES
# ============================================================================

ML_ENTRY_CONFIDENCE = float(os.getenv("ML_ENTRY_CONFIDENCE", "0.01"))
ML_FLIP_CONFIDENCE = float(os.getenv("ML_FLIP_CONFIDENCE", "0.8"))

# ============================================================================
# MOMENTUM BANDS
# ============================================================================

RSI_OVERSOLD = float(os.getenv("RSI_OVERSOLD", "35"))
RSI_OVERBOUGHT = float(os.getenv("RSI_OVERBOUGHT", "65"))

# ============================================================================
# SIZING (fraction of current cash balance)
# ============================================================================

ML_SIZE_FRACTION = float(os.getenv("ML_SIZE_FRACTION", "0.10"))
TECH_SIZE_FRACTION = float(os.getenv("TECH_SIZE_FRACTION", "0.05"))

# ============================================================================
# STOPS
# ============================================================================

STOP_LOSS_PCT = float(os.getenv("STOP_LOSS_PCT", "0.02"))  # 2% from signal close

# ============================================================================
# TIME
# ============================================================================

MS_PER_DAY = 24 * 60 * 60 * 1000
DAILY_PNL_FLOOR_FRACTION = 0.1  # Share of initial capital added to the denominator
