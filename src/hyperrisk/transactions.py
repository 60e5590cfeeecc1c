"""Normalize Hyperliquid user fills into canonical transactions."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from .models import (
    MARKET,
    Transaction,
    TransactionStatus,
    TransactionType,
    to_decimal,
)

BUY_MARKERS = frozenset({"b", "buy", "bid"})


def _is_buy(side: Any) -> bool:
    return str(side or "").strip().lower() in BUY_MARKERS


def _fill_time(raw: Any) -> datetime:
    """Convert venue epoch milliseconds to a UTC datetime (epoch on garbage)."""
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.fromtimestamp(0, tz=UTC)


def normalize_fill(
    wallet_id: str,
    address: str,
    fill: dict[str, Any],
    sequence: int = 0,
) -> Transaction:
    """Map one venue fill to a Transaction.

    ``sequence`` is the fill's position in the fetched list and breaks
    timestamp ties; the venue trade id is kept in metadata. Unparseable
    ``sz``/``fee``/``px`` become NaN; nothing here raises.
    """
    buy = _is_buy(fill.get("side"))

    metadata: dict[str, Any] = {}
    if "crossed" in fill and fill["crossed"] is not None:
        metadata["crossed"] = bool(fill["crossed"])

    tid = fill.get("tid")
    if tid is not None and not isinstance(tid, bool):
        metadata["tid"] = tid

    return Transaction(
        id=str(uuid.uuid4()),
        wallet_id=wallet_id,
        hash=str(fill.get("hash") or ""),
        timestamp=_fill_time(fill.get("time")),
        from_address=MARKET if buy else address,
        to_address=address if buy else MARKET,
        asset=str(fill.get("coin") or ""),
        value=to_decimal(fill.get("sz")),
        fee=to_decimal(fill.get("fee")),
        type=TransactionType.TRADE,
        status=TransactionStatus.CONFIRMED,
        metadata=metadata,
        price=to_decimal(fill["px"]) if fill.get("px") is not None else None,
        sequence=sequence,
    )


def normalize_fills(
    wallet_id: str,
    address: str,
    fills: Sequence[dict[str, Any]],
) -> list[Transaction]:
    """Map venue fills one-to-one, preserving order."""
    return [normalize_fill(wallet_id, address, fill, sequence=i) for i, fill in enumerate(fills)]
