"""Tests for the SQLite wallet store."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from hyperrisk.errors import (
    DuplicateWalletError,
    HyperRiskError,
    InvalidAddressError,
    WalletNotFoundError,
)
from hyperrisk.wallets import WalletStore, init_wallet_store, is_valid_address

ADDRESS = "0x" + "Ab" * 20


@pytest.fixture
def store(tmp_path: Path) -> WalletStore:
    return init_wallet_store(tmp_path / "nested" / "wallets.db")


class TestIsValidAddress:
    def test_valid(self) -> None:
        assert is_valid_address(ADDRESS)
        assert is_valid_address("0x" + "0" * 40)

    def test_invalid(self) -> None:
        assert not is_valid_address("")
        assert not is_valid_address("ab" * 20)
        assert not is_valid_address("0x" + "a" * 39)
        assert not is_valid_address("0x" + "g" * 40)


class TestWalletStore:
    """CRUD on the wallets table."""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        init_wallet_store(tmp_path / "a" / "b" / "w.db")
        assert (tmp_path / "a" / "b" / "w.db").exists()

    def test_create_and_get(self, store: WalletStore) -> None:
        wallet = store.create(ADDRESS, name="main")

        assert wallet.address == ADDRESS.lower()
        assert wallet.name == "main"
        assert wallet.last_synced_at is None
        assert store.get_by_id(wallet.id) == wallet
        assert store.get_by_address(ADDRESS) == wallet

    def test_invalid_address_rejected(self, store: WalletStore) -> None:
        with pytest.raises(InvalidAddressError):
            store.create("not-an-address")

    def test_duplicate_rejected_case_insensitive(self, store: WalletStore) -> None:
        store.create(ADDRESS)
        with pytest.raises(DuplicateWalletError):
            store.create(ADDRESS.upper().replace("0X", "0x"))

    def test_validation_errors_are_value_errors(self) -> None:
        assert issubclass(InvalidAddressError, ValueError)
        assert issubclass(DuplicateWalletError, HyperRiskError)

    def test_get_missing(self, store: WalletStore) -> None:
        assert store.get_by_id("nope") is None
        assert store.get_by_address(ADDRESS) is None

    def test_list_wallets(self, store: WalletStore) -> None:
        first = store.create("0x" + "1" * 40)
        second = store.create("0x" + "2" * 40)
        ids = [w.id for w in store.list_wallets()]
        assert set(ids) == {first.id, second.id}
        assert len(ids) == 2

    def test_update_last_synced(self, store: WalletStore) -> None:
        wallet = store.create(ADDRESS)
        synced_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

        updated = store.update_last_synced(wallet.id, synced_at)

        assert updated.last_synced_at == synced_at
        assert store.get_by_id(wallet.id).last_synced_at == synced_at

    def test_update_last_synced_missing(self, store: WalletStore) -> None:
        with pytest.raises(WalletNotFoundError) as exc_info:
            store.update_last_synced("ghost")
        assert exc_info.value.wallet_id == "ghost"

    def test_update_name(self, store: WalletStore) -> None:
        wallet = store.create(ADDRESS)
        assert store.update_name(wallet.id, "renamed").name == "renamed"

    def test_delete(self, store: WalletStore) -> None:
        wallet = store.create(ADDRESS)
        assert store.delete(wallet.id) is True
        assert store.get_by_id(wallet.id) is None
        assert store.delete(wallet.id) is False
