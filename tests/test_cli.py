"""Tests for the hyperrisk command line."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest import mock

import pytest

from hyperrisk import cli
from hyperrisk.errors import UpstreamUnavailableError

ADDRESS = "0x" + "ab" * 20


class FakeClient:
    def __init__(self, fills=None, fail: bool = False) -> None:
        self.fills = fills or []
        self.fail = fail

    def __enter__(self) -> FakeClient:
        return self

    def __exit__(self, *exc) -> None:
        pass

    def get_user_fills(self, address: str) -> list[dict]:
        if self.fail:
            raise UpstreamUnavailableError("venue down")
        return self.fills

    def get_all_mids(self) -> dict[str, str]:
        return {"BTC": "105"}


@pytest.fixture
def run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture):
    """Invoke the CLI against a temp database and return parsed stdout."""
    monkeypatch.chdir(tmp_path)
    db_path = str(tmp_path / "wallets.db")

    def _run(*argv: str, fmt: str = "json"):
        with mock.patch.dict(os.environ, {"HYPERRISK_DB_PATH": db_path}, clear=True):
            cli.main([*argv, "--format", fmt])
        out = capsys.readouterr().out
        return json.loads(out) if fmt == "json" else out

    return _run


class TestWalletCommands:
    def test_add_list_remove(self, run) -> None:
        added = run("wallet", "add", ADDRESS, "--name", "main")
        assert added["address"] == ADDRESS
        assert added["name"] == "main"

        listed = run("wallet", "list")
        assert listed["count"] == 1
        assert listed["wallets"][0]["id"] == added["id"]

        assert run("wallet", "remove", added["id"]) == {"deleted": added["id"]}
        assert run("wallet", "list")["count"] == 0

    def test_invalid_address_exits_nonzero(self, run, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run("wallet", "add", "0x123")
        assert exc_info.value.code == 1
        assert "Invalid wallet address" in capsys.readouterr().err

    def test_remove_missing_exits_nonzero(self, run) -> None:
        with pytest.raises(SystemExit):
            run("wallet", "remove", "ghost")

    def test_human_list(self, run) -> None:
        run("wallet", "add", ADDRESS)
        out = run("wallet", "list", fmt="human")
        assert "Wallets: 1" in out
        assert "never" in out


class TestSyncCommands:
    FILLS = [
        {"coin": "BTC", "side": "B", "sz": "2", "px": "100", "fee": "0", "time": 1000, "hash": "0x1"},
    ]

    def test_sync(self, run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(self.FILLS))
        wallet = run("wallet", "add", ADDRESS)

        result = run("sync", wallet["id"])

        assert result["wallet"]["last_synced_at"] is not None
        assert result["positions"][0]["unrealized_pnl"] == "10"
        assert result["risk_metrics"]["concentration"] == 1.0

    def test_sync_unknown_wallet(self, run, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient())
        with pytest.raises(SystemExit):
            run("sync", "ghost")
        assert "Wallet not found: ghost" in capsys.readouterr().err

    def test_sync_all(self, run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(self.FILLS))
        run("wallet", "add", ADDRESS)
        assert run("sync-all") == {"total": 1, "success": 1, "failed": 0}

    def test_sync_all_failures_exit_nonzero(self, run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(fail=True))
        run("wallet", "add", ADDRESS)
        with pytest.raises(SystemExit) as exc_info:
            run("sync-all")
        assert exc_info.value.code == 1

    def test_analyze_human(self, run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(self.FILLS))
        out = run("analyze", ADDRESS, fmt="human")
        assert "BTC LONG [OPEN]" in out
        assert "Concentration" in out

    def test_analyze_opens_no_database(self, run, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(self.FILLS))
        result = run("analyze", ADDRESS)
        assert result["wallet"]["address"] == ADDRESS
        assert not (tmp_path / "wallets.db").exists()

    def test_analyze_invalid_address(self, run, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        client = FakeClient(fail=True)
        monkeypatch.setattr(cli, "_client", lambda config: client)
        with pytest.raises(SystemExit) as exc_info:
            run("analyze", "not-an-address")
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Invalid wallet address" in err
        assert "venue down" not in err


class TestPnlCommand:
    def test_from_file(self, run, tmp_path: Path) -> None:
        path = tmp_path / "fills.json"
        path.write_text(json.dumps([
            {"coin": "BTC", "time": 1000, "closedPnl": "5"},
            {"coin": "BTC", "time": 5000, "closedPnl": "7"},
        ]))

        result = run("pnl", "--input", str(path), "--end-time", "2000")

        assert result["total_realized_pnl"] == 5.0

    def test_from_venue(self, run, monkeypatch: pytest.MonkeyPatch) -> None:
        fills = [{"coin": "ETH", "time": 1, "closedPnl": "-3"}]
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(fills))
        assert run("pnl", ADDRESS)["by_asset"]["ETH"]["total_realized_pnl"] == -3.0

    def test_requires_address_or_input(self, run) -> None:
        with pytest.raises(SystemExit):
            run("pnl")

    def test_invalid_address(self, run, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setattr(cli, "_client", lambda config: FakeClient(fail=True))
        with pytest.raises(SystemExit) as exc_info:
            run("pnl", "0x" + "z" * 40)
        assert exc_info.value.code == 1
        assert "Invalid wallet address" in capsys.readouterr().err
