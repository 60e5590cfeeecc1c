"""Wallet sync pipeline.

One sync runs fills -> transactions -> positions -> marked positions ->
risk metrics for a wallet, then stamps the wallet's last sync time. Batch
syncs run every stored wallet concurrently on worker threads and collect
each outcome independently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .config import DEFAULT_RISK_FREE_RATE
from .errors import InvalidAddressError, WalletNotFoundError
from .hyperliquid import HyperliquidClient
from .models import Position, RiskMetrics, Transaction, Wallet
from .positions import PositionService, reconstruct_positions
from .risk_metrics import compute_risk_metrics
from .transactions import normalize_fills
from .wallets import WalletStore, is_valid_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Everything produced by one wallet sync."""

    wallet: Wallet
    transactions: list[Transaction]
    positions: list[Position]
    risk_metrics: RiskMetrics

    @property
    def open_positions(self) -> list[Position]:
        return [p for p in self.positions if p.is_open]

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet.to_dict(),
            "transactions": [t.to_dict() for t in self.transactions],
            "positions": [p.to_dict() for p in self.positions],
            "risk_metrics": self.risk_metrics.to_dict(),
        }


@dataclass(frozen=True)
class BatchSyncResult:
    """Outcome counts of a batch sync."""

    total: int
    success: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "success": self.success, "failed": self.failed}


def run_pipeline(
    client: HyperliquidClient,
    wallet_id: str,
    address: str,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> tuple[list[Transaction], list[Position], RiskMetrics]:
    """Fetch fills for an address and derive transactions, positions and metrics."""
    fills = client.get_user_fills(address)
    transactions = normalize_fills(wallet_id, address, fills)
    positions = reconstruct_positions(transactions)
    positions = PositionService(client).update_current_prices(positions)
    metrics = compute_risk_metrics(
        wallet_id, positions, transactions, risk_free_rate=risk_free_rate
    )
    return transactions, positions, metrics


def analyze_address(
    client: HyperliquidClient,
    address: str,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> SyncResult:
    """Run the pipeline for an address without storing it.

    Raises:
        InvalidAddressError: Address is not 0x + 40 hex characters
        UpstreamUnavailableError: Fills could not be fetched
    """
    if not is_valid_address(address):
        raise InvalidAddressError(f"Invalid wallet address: {address!r}")

    wallet = Wallet(id=address.lower(), address=address.lower())
    transactions, positions, metrics = run_pipeline(
        client, wallet.id, wallet.address, risk_free_rate
    )
    return SyncResult(
        wallet=wallet,
        transactions=transactions,
        positions=positions,
        risk_metrics=metrics,
    )


class WalletSyncService:
    """Runs the sync pipeline for stored wallets.

    Args:
        store: Wallet registry
        client: Venue client used for fills and mid prices
        risk_free_rate: Annual rate for Sharpe/Sortino
    """

    def __init__(
        self,
        store: WalletStore,
        client: HyperliquidClient,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    ) -> None:
        self.store = store
        self.client = client
        self.risk_free_rate = risk_free_rate

    def _run_pipeline(
        self, wallet_id: str, address: str
    ) -> tuple[list[Transaction], list[Position], RiskMetrics]:
        return run_pipeline(self.client, wallet_id, address, self.risk_free_rate)

    def sync_wallet(self, wallet_id: str) -> SyncResult:
        """Sync one stored wallet.

        Raises:
            WalletNotFoundError: Unknown wallet id
            UpstreamUnavailableError: Fills could not be fetched
        """
        wallet = self.store.get_by_id(wallet_id)
        if wallet is None:
            raise WalletNotFoundError(wallet_id)

        logger.info("Syncing wallet %s (%s)", wallet.id, wallet.address)
        transactions, positions, metrics = self._run_pipeline(wallet.id, wallet.address)

        wallet = self.store.update_last_synced(wallet.id, datetime.now(UTC))

        logger.info(
            "Synced wallet %s: %d transactions, %d positions (%d open)",
            wallet.id,
            len(transactions),
            len(positions),
            sum(1 for p in positions if p.is_open),
        )
        return SyncResult(
            wallet=wallet,
            transactions=transactions,
            positions=positions,
            risk_metrics=metrics,
        )

    async def sync_all_wallets_async(self) -> BatchSyncResult:
        """Sync every stored wallet concurrently.

        A failing wallet is logged and counted; it never stops the others.
        """
        wallets = self.store.list_wallets()
        if not wallets:
            return BatchSyncResult(total=0, success=0, failed=0)

        logger.info("Starting batch sync of %d wallets", len(wallets))
        results = await asyncio.gather(
            *(asyncio.to_thread(self.sync_wallet, w.id) for w in wallets),
            return_exceptions=True,
        )

        failed = 0
        for wallet, result in zip(wallets, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error(
                    "Sync failed for wallet %s (%s)",
                    wallet.id,
                    wallet.address,
                    exc_info=result,
                )

        batch = BatchSyncResult(
            total=len(wallets), success=len(wallets) - failed, failed=failed
        )
        logger.info(
            "Batch sync complete: %d total, %d ok, %d failed",
            batch.total,
            batch.success,
            batch.failed,
        )
        return batch

    def sync_all_wallets(self) -> BatchSyncResult:
        """Blocking wrapper around sync_all_wallets_async."""
        return asyncio.run(self.sync_all_wallets_async())
