"""SQLite-backed registry of tracked wallets.

Each operation opens its own connection so the store can be used from
worker threads during batch syncs.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from .config import DEFAULT_DB_PATH
from .errors import DuplicateWalletError, InvalidAddressError, WalletNotFoundError
from .models import Wallet

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: str) -> bool:
    """True for a 0x-prefixed 20-byte hex address."""
    return bool(ADDRESS_RE.match(address or ""))


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_wallet(row: sqlite3.Row) -> Wallet:
    return Wallet(
        id=row["id"],
        address=row["address"],
        name=row["name"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        last_synced_at=_parse_dt(row["last_synced_at"]),
    )


class WalletStore:
    """SQLite database of wallets.

    Addresses are stored lowercased and are unique.
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else Path(DEFAULT_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Create database schema if not exists."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS wallets (
                    id TEXT PRIMARY KEY,
                    address TEXT UNIQUE NOT NULL,
                    name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_synced_at TEXT
                )
            """)

    def create(self, address: str, name: str | None = None) -> Wallet:
        """Register a wallet.

        Raises:
            InvalidAddressError: Address is not 0x + 40 hex characters
            DuplicateWalletError: Address is already tracked
        """
        if not is_valid_address(address):
            raise InvalidAddressError(f"Invalid wallet address: {address!r}")

        address = address.lower()
        if self.get_by_address(address) is not None:
            raise DuplicateWalletError(f"Wallet already exists: {address}")

        now = datetime.now(UTC)
        wallet = Wallet(
            id=str(uuid.uuid4()),
            address=address,
            name=name,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO wallets (id, address, name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (wallet.id, wallet.address, wallet.name, now.isoformat(), now.isoformat()),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateWalletError(f"Wallet already exists: {address}") from e

        logger.info("Added wallet %s (%s)", wallet.id, wallet.address)
        return wallet

    def get_by_id(self, wallet_id: str) -> Wallet | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM wallets WHERE id = ?", (wallet_id,)).fetchone()
        return _row_to_wallet(row) if row else None

    def get_by_address(self, address: str) -> Wallet | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM wallets WHERE address = ?", (address.lower(),)
            ).fetchone()
        return _row_to_wallet(row) if row else None

    def list_wallets(self) -> list[Wallet]:
        """All wallets, oldest first."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM wallets ORDER BY created_at, id").fetchall()
        return [_row_to_wallet(row) for row in rows]

    def update_name(self, wallet_id: str, name: str | None) -> Wallet:
        """Rename a wallet.

        Raises:
            WalletNotFoundError: Unknown wallet id
        """
        now = datetime.now(UTC).isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE wallets SET name = ?, updated_at = ? WHERE id = ?",
                (name, now, wallet_id),
            )
        if cursor.rowcount == 0:
            raise WalletNotFoundError(wallet_id)
        return self.get_by_id(wallet_id)  # type: ignore[return-value]

    def update_last_synced(self, wallet_id: str, synced_at: datetime | None = None) -> Wallet:
        """Stamp the wallet's last successful sync time.

        Raises:
            WalletNotFoundError: Unknown wallet id
        """
        synced_at = synced_at or datetime.now(UTC)
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE wallets SET last_synced_at = ?, updated_at = ? WHERE id = ?",
                (synced_at.isoformat(), synced_at.isoformat(), wallet_id),
            )
        if cursor.rowcount == 0:
            raise WalletNotFoundError(wallet_id)
        return self.get_by_id(wallet_id)  # type: ignore[return-value]

    def delete(self, wallet_id: str) -> bool:
        """Remove a wallet. Returns False if it did not exist."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM wallets WHERE id = ?", (wallet_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Removed wallet %s", wallet_id)
        return deleted


def init_wallet_store(db_path: Path | str | None = None) -> WalletStore:
    """Initialize wallet store with schema.

    Args:
        db_path: Path to database file

    Returns:
        Initialized WalletStore instance
    """
    store = WalletStore(db_path)
    store.init_schema()
    return store
