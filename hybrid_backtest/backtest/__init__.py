"""Backtest Engine and Virtual Portfolio.

Provides the single-pass replay loop, the portfolio ledger, cost modeling
and trade statistics for validating the hybrid strategy against history.
"""
