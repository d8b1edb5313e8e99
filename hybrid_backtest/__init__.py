"""Hybrid (ML + technical) backtest engine with a virtual portfolio ledger."""

__version__ = "0.3.0"
