"""Exceptions raised by hyperrisk."""

from __future__ import annotations


class HyperRiskError(Exception):
    """Base exception for hyperrisk errors."""
    pass


class WalletNotFoundError(HyperRiskError):
    """Raised when a referenced wallet id does not exist."""

    def __init__(self, wallet_id: str) -> None:
        super().__init__(f"Wallet not found: {wallet_id}")
        self.wallet_id = wallet_id


class UpstreamUnavailableError(HyperRiskError):
    """Raised when the venue API cannot be reached or returns an error."""
    pass


class InvalidAddressError(HyperRiskError, ValueError):
    """Raised when a wallet address is not a 0x-prefixed 20-byte hex string."""
    pass


class DuplicateWalletError(HyperRiskError, ValueError):
    """Raised when adding a wallet whose address is already tracked."""
    pass
