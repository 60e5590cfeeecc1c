"""PnL helpers for Hyperliquid wallets.

- The mark/exit PnL formula shared by realized and unrealized PnL
- Historical realized PnL per coin from the venue's ``closedPnl`` field
- Loading raw venue fills from JSON/JSONL files
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from .models import ZERO, PositionSide, to_decimal


def calculate_pnl(
    exit_price: Decimal,
    entry_price: Decimal,
    quantity: Decimal,
    side: PositionSide = PositionSide.LONG,
) -> Decimal:
    """PnL of ``quantity`` units entered at ``entry_price`` and marked at ``exit_price``.

    Long: (exit - entry) * quantity. Short: (entry - exit) * quantity.
    Any non-finite input yields zero.
    """
    if not (exit_price.is_finite() and entry_price.is_finite() and quantity.is_finite()):
        return ZERO
    pnl = (exit_price - entry_price) * quantity
    if side == PositionSide.SHORT:
        return -pnl
    return pnl


@dataclass
class AssetPnl:
    """Realized PnL and the fills that produced it for one coin."""

    total_realized_pnl: Decimal = field(default_factory=lambda: Decimal("0"))
    trades: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_realized_pnl": float(self.total_realized_pnl),
            "trades": self.trades,
        }


@dataclass
class HistoricalPnl:
    """Realized PnL grouped by coin."""

    by_asset: dict[str, AssetPnl] = field(default_factory=dict)

    @property
    def total_realized_pnl(self) -> Decimal:
        return sum((a.total_realized_pnl for a in self.by_asset.values()), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "by_asset": {coin: a.to_dict() for coin, a in self.by_asset.items()},
            "total_realized_pnl": float(self.total_realized_pnl),
        }


def historical_pnl(
    fills: list[dict[str, Any]],
    start_time: int | None = None,
    end_time: int | None = None,
) -> HistoricalPnl:
    """Sum venue-reported realized PnL per coin.

    Args:
        fills: Raw venue fills (``coin``, ``time`` in ms, ``closedPnl``)
        start_time: Inclusive lower bound in epoch ms
        end_time: Inclusive upper bound in epoch ms

    Returns:
        HistoricalPnl keyed by coin
    """
    result = HistoricalPnl()

    for fill in fills:
        time_ms = fill.get("time")
        if start_time is not None and (time_ms is None or time_ms < start_time):
            continue
        if end_time is not None and (time_ms is None or time_ms > end_time):
            continue

        coin = fill.get("coin", "")
        asset = result.by_asset.setdefault(coin, AssetPnl())

        # The API has used both spellings
        closed = to_decimal(fill.get("closedPnl", fill.get("closed_pnl", "0")))
        if closed.is_finite():
            asset.total_realized_pnl += closed
        asset.trades.append(fill)

    return result


def load_fills_from_file(path: Path) -> list[dict[str, Any]]:
    """Load raw venue fills from a JSON file.

    Supports:
    - Array of fill objects: [{...}, {...}]
    - Object with 'fills' key: {"fills": [...]}
    - Newline-delimited JSON (.jsonl): one fill per line
    """
    with open(path, encoding="utf-8") as f:
        content = f.read().strip()

    if not content:
        return []

    if path.suffix == ".jsonl" or ("\n" in content and not content.startswith(("[", "{"))):
        return [json.loads(line) for line in content.splitlines() if line.strip()]

    data = json.loads(content)

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if "fills" in data:
            return list(data["fills"])
        return [data]
    return []
