"""Hyperliquid wallet position reconstruction, PnL and risk metrics."""

__version__ = "0.1.0"
