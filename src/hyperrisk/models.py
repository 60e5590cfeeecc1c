"""Core data model: wallets, transactions, positions and risk snapshots.

Quantities and prices are Decimals. ``to_dict`` renders them as decimal
strings so values survive JSON without float rounding.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

# Counterparty used in from/to for venue fills
MARKET = "market"

ZERO = Decimal("0")
NAN = Decimal("NaN")


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


def to_decimal(value: Any) -> Decimal:
    """Parse a venue numeric field, returning NaN instead of raising."""
    if value is None or isinstance(value, bool):
        return NAN
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return NAN


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dec_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class TransactionType(Enum):
    """Kinds of wallet activity. Only trades build positions."""

    TRADE = "trade"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    OTHER = "other"


class TransactionStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"


class PositionStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


class MarginType(Enum):
    """Venue margin mode (crossed=True -> cross, crossed=False -> isolated)."""

    CROSS = "cross"
    ISOLATED = "isolated"

    @classmethod
    def from_crossed(cls, crossed: bool | None) -> MarginType:
        return cls.ISOLATED if crossed is False else cls.CROSS


@dataclass(frozen=True)
class Wallet:
    """A tracked wallet address."""

    id: str
    address: str
    name: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    last_synced_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "name": self.name,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_synced_at": _iso(self.last_synced_at),
        }


@dataclass(frozen=True)
class Transaction:
    """Canonical trade event derived from a venue fill.

    Direction is encoded in from/to: a buy comes from the market to the
    wallet, a sell goes from the wallet to the market.

    Attributes:
        id: Local identifier
        wallet_id: Owning wallet
        hash: Venue transaction hash
        timestamp: Fill time (UTC)
        from_address: Sender ("market" for buys)
        to_address: Receiver ("market" for sells)
        asset: Coin symbol
        value: Quantity traded (NaN when unparseable)
        fee: Fee paid (NaN when unparseable)
        type: Transaction kind
        status: Settlement status
        metadata: Venue extras; ``crossed`` (margin flag) and ``tid`` (venue
            trade id) when given
        price: Explicit fill price if the venue reported one
        sequence: Original fill order, used to break timestamp ties
    """

    id: str
    wallet_id: str
    hash: str
    timestamp: datetime
    from_address: str
    to_address: str
    asset: str
    value: Decimal
    fee: Decimal
    type: TransactionType = TransactionType.TRADE
    status: TransactionStatus = TransactionStatus.CONFIRMED
    metadata: dict[str, Any] = field(default_factory=dict)
    price: Decimal | None = None
    sequence: int = 0
    block_number: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_buy(self) -> bool:
        """True when the market is the sender, i.e. the wallet received the asset."""
        return self.from_address == MARKET

    @property
    def crossed(self) -> bool | None:
        return self.metadata.get("crossed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "hash": self.hash,
            "block_number": self.block_number,
            "timestamp": _iso(self.timestamp),
            "from": self.from_address,
            "to": self.to_address,
            "asset": self.asset,
            "value": str(self.value),
            "fee": str(self.fee),
            "price": _dec_str(self.price),
            "type": self.type.value,
            "status": self.status.value,
            "metadata": dict(self.metadata),
            "sequence": self.sequence,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Position:
    """A net holding in one asset, from its opening fill to its close.

    Mutable only while the reconstructor owns it; later stages work on
    copies made with ``dataclasses.replace``.
    """

    wallet_id: str
    asset: str
    side: PositionSide
    quantity: Decimal
    entry_price: Decimal
    opened_at: datetime
    status: PositionStatus = PositionStatus.OPEN
    margin_type: MarginType = MarginType.CROSS
    current_price: Decimal | None = None
    realized_pnl: Decimal | None = None
    unrealized_pnl: Decimal | None = None
    closed_at: datetime | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def mark_price(self) -> Decimal:
        """Current price when known, entry price otherwise."""
        return self.current_price if self.current_price is not None else self.entry_price

    @property
    def notional(self) -> Decimal:
        return self.mark_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "asset": self.asset,
            "side": self.side.value,
            "status": self.status.value,
            "quantity": str(self.quantity),
            "entry_price": str(self.entry_price),
            "current_price": _dec_str(self.current_price),
            "margin_type": self.margin_type.value,
            "realized_pnl": _dec_str(self.realized_pnl),
            "unrealized_pnl": _dec_str(self.unrealized_pnl),
            "opened_at": _iso(self.opened_at),
            "closed_at": _iso(self.closed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class RiskMetrics:
    """Portfolio risk snapshot for one wallet at one sync."""

    wallet_id: str
    volatility: float = 0.0
    drawdown: float = 0.0
    value_at_risk: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    concentration: float = 0.0
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "volatility": self.volatility,
            "drawdown": self.drawdown,
            "value_at_risk": self.value_at_risk,
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "concentration": self.concentration,
            "timestamp": _iso(self.timestamp),
        }
