"""Position reconstruction from trade transactions and mark-to-market updates.

Walks each asset's trades in time order, keeping at most one open position
per asset:

- first trade opens a position (long on buy, short on sell)
- same-direction trades grow it and re-average the entry price
- opposite trades shrink it; reaching zero closes it with realized PnL, and
  going past zero closes it and opens the opposite side for the excess
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from .errors import UpstreamUnavailableError
from .models import (
    NAN,
    MarginType,
    Position,
    PositionSide,
    PositionStatus,
    Transaction,
    TransactionType,
    to_decimal,
)
from .pnl import calculate_pnl

if TYPE_CHECKING:
    from .hyperliquid import HyperliquidClient

logger = logging.getLogger(__name__)


def _fill_price(tx: Transaction) -> Decimal:
    """Execution price of a fill.

    Uses the reported price; falls back to fee / quantity when the venue did
    not report one. NaN when neither is usable.
    """
    if tx.price is not None and tx.price.is_finite() and tx.price > 0:
        return tx.price
    if tx.fee.is_finite() and tx.value.is_finite() and tx.value > 0:
        return tx.fee / tx.value
    return NAN


def _is_usable(tx: Transaction) -> bool:
    """A fill needs a positive quantity and a positive price to move a position."""
    if not (tx.value.is_finite() and tx.value > 0):
        return False
    price = _fill_price(tx)
    return price.is_finite() and price > 0


def group_by_asset(transactions: Sequence[Transaction]) -> dict[str, list[Transaction]]:
    """Trade transactions keyed by asset, in first-seen asset order."""
    groups: dict[str, list[Transaction]] = {}
    for tx in transactions:
        if tx.type != TransactionType.TRADE:
            continue
        groups.setdefault(tx.asset, []).append(tx)
    return groups


def _open_position(tx: Transaction, quantity: Decimal, price: Decimal) -> Position:
    return Position(
        wallet_id=tx.wallet_id,
        asset=tx.asset,
        side=PositionSide.LONG if tx.is_buy else PositionSide.SHORT,
        quantity=quantity,
        entry_price=price,
        opened_at=tx.timestamp,
        margin_type=MarginType.from_crossed(tx.crossed),
    )


def _apply_margin(position: Position, tx: Transaction) -> None:
    if tx.crossed is not None:
        position.margin_type = MarginType.from_crossed(tx.crossed)


def reconstruct_asset_positions(transactions: Sequence[Transaction]) -> list[Position]:
    """Reconstruct the position history of a single asset.

    Args:
        transactions: Trades for one asset, in any order

    Returns:
        Positions in chronological order; only the last may be open
    """
    ordered = sorted(transactions, key=lambda t: (t.timestamp, t.sequence))

    positions: list[Position] = []
    current: Position | None = None

    for tx in ordered:
        if not _is_usable(tx):
            logger.warning(
                "Skipping malformed fill %s for %s (quantity=%s, price=%s, fee=%s)",
                tx.hash,
                tx.asset,
                tx.value,
                tx.price,
                tx.fee,
            )
            continue

        quantity = tx.value
        price = _fill_price(tx)

        if current is None:
            current = _open_position(tx, quantity, price)
            continue

        same_direction = tx.is_buy == (current.side == PositionSide.LONG)

        if same_direction:
            new_quantity = current.quantity + quantity
            current.entry_price = (
                current.entry_price * current.quantity + price * quantity
            ) / new_quantity
            current.quantity = new_quantity
            _apply_margin(current, tx)
            current.updated_at = datetime.now(UTC)
            continue

        remaining = current.quantity - quantity
        if remaining > 0:
            current.quantity = remaining
            _apply_margin(current, tx)
            current.updated_at = datetime.now(UTC)
            continue

        current.status = PositionStatus.CLOSED
        current.closed_at = tx.timestamp
        current.realized_pnl = calculate_pnl(
            price, current.entry_price, current.quantity, current.side
        )
        current.updated_at = datetime.now(UTC)
        positions.append(current)
        current = None

        if remaining < 0:
            # Fill flipped the position: the excess opens the other side
            current = _open_position(tx, -remaining, price)

    if current is not None:
        positions.append(current)

    return positions


def reconstruct_positions(transactions: Sequence[Transaction]) -> list[Position]:
    """Reconstruct open and closed positions from a wallet's transactions.

    Non-trade transactions are ignored. Assets are processed independently.
    """
    positions: list[Position] = []
    for asset_transactions in group_by_asset(transactions).values():
        positions.extend(reconstruct_asset_positions(asset_transactions))
    return positions


def attach_current_prices(
    positions: Sequence[Position],
    mid_prices: Mapping[str, str | Decimal],
) -> list[Position]:
    """Mark open positions to the given mid prices.

    Returns new Position objects for open positions with a usable quote;
    closed or unquoted positions are passed through unchanged.
    """
    updated: list[Position] = []
    for position in positions:
        if not position.is_open or position.asset not in mid_prices:
            updated.append(position)
            continue

        price = to_decimal(mid_prices[position.asset])
        if not price.is_finite():
            updated.append(position)
            continue

        updated.append(
            replace(
                position,
                current_price=price,
                unrealized_pnl=calculate_pnl(
                    price, position.entry_price, position.quantity, position.side
                ),
                updated_at=datetime.now(UTC),
            )
        )
    return updated


class PositionService:
    """Fetches live mid prices and applies them to positions."""

    def __init__(self, client: HyperliquidClient) -> None:
        self.client = client

    def update_current_prices(self, positions: Sequence[Position]) -> list[Position]:
        """Mark positions to current mids.

        A failed price fetch returns the positions unchanged.
        """
        if not any(p.is_open for p in positions):
            return list(positions)

        try:
            mids = self.client.get_all_mids()
        except UpstreamUnavailableError as e:
            logger.warning("Price update skipped, mids unavailable: %s", e)
            return list(positions)

        return attach_current_prices(positions, mids)
