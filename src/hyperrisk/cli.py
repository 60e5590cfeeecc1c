from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import HyperRiskConfig, load_config
from .errors import HyperRiskError, InvalidAddressError, WalletNotFoundError
from .hyperliquid import HyperliquidClient
from .pnl import historical_pnl, load_fills_from_file
from .wallet_sync import SyncResult, WalletSyncService, analyze_address
from .wallets import WalletStore, init_wallet_store, is_valid_address

logger = logging.getLogger(__name__)


def _print(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _store(args: argparse.Namespace, config: HyperRiskConfig) -> WalletStore:
    return init_wallet_store(args.db_path or config.db_path)


def _client(config: HyperRiskConfig) -> HyperliquidClient:
    return HyperliquidClient.from_config(config)


def _print_sync_result(result: SyncResult) -> None:
    metrics = result.risk_metrics
    print("=" * 70)
    print(f"WALLET {result.wallet.address}")
    if result.wallet.name:
        print(f"Name: {result.wallet.name}")
    print("=" * 70)
    print(f"Transactions: {len(result.transactions)}")
    print(f"Positions: {len(result.positions)} ({len(result.open_positions)} open)")
    print()

    for pos in result.positions:
        print(f"{pos.asset} {pos.side.value.upper()} [{pos.status.value.upper()}]")
        print(f"  Quantity: {pos.quantity}")
        print(f"  Entry: {pos.entry_price}")
        if pos.current_price is not None:
            print(f"  Current: {pos.current_price}")
        print(f"  Margin: {pos.margin_type.value}")
        if pos.realized_pnl is not None:
            print(f"  Realized PnL: {pos.realized_pnl:,.2f}")
        if pos.unrealized_pnl is not None:
            print(f"  Unrealized PnL: {pos.unrealized_pnl:,.2f}")
        print()

    print("RISK")
    print(f"  Volatility:    {metrics.volatility:.4f}")
    print(f"  Drawdown:      {metrics.drawdown:.2%}")
    print(f"  VaR (95%):     {metrics.value_at_risk:,.2f}")
    print(f"  Sharpe:        {metrics.sharpe_ratio:.3f}")
    print(f"  Sortino:       {metrics.sortino_ratio:.3f}")
    print(f"  Concentration: {metrics.concentration:.3f}")
    print("=" * 70)


def cmd_wallet_add(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    wallet = _store(args, config).create(args.address, name=args.name)
    if args.format == "json":
        _print(wallet.to_dict())
    else:
        print(f"Added wallet {wallet.id} ({wallet.address})")


def cmd_wallet_list(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    wallets = _store(args, config).list_wallets()
    if args.format == "json":
        _print({"count": len(wallets), "wallets": [w.to_dict() for w in wallets]})
        return

    print(f"Wallets: {len(wallets)}")
    for w in wallets:
        synced = w.last_synced_at.isoformat() if w.last_synced_at else "never"
        label = f" {w.name}" if w.name else ""
        print(f"  {w.id}  {w.address}{label}  (last synced: {synced})")


def cmd_wallet_remove(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    if not _store(args, config).delete(args.wallet_id):
        raise WalletNotFoundError(args.wallet_id)
    if args.format == "json":
        _print({"deleted": args.wallet_id})
    else:
        print(f"Removed wallet {args.wallet_id}")


def cmd_sync(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    with _client(config) as client:
        service = WalletSyncService(_store(args, config), client, config.risk_free_rate)
        result = service.sync_wallet(args.wallet_id)

    if args.format == "json":
        _print(result.to_dict())
    else:
        _print_sync_result(result)


def cmd_sync_all(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    with _client(config) as client:
        service = WalletSyncService(_store(args, config), client, config.risk_free_rate)
        batch = service.sync_all_wallets()

    if args.format == "json":
        _print(batch.to_dict())
    else:
        print(f"Synced {batch.success}/{batch.total} wallets ({batch.failed} failed)")

    if batch.failed:
        sys.exit(1)


def cmd_analyze(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    with _client(config) as client:
        result = analyze_address(client, args.address, config.risk_free_rate)

    if args.format == "json":
        _print(result.to_dict())
    else:
        _print_sync_result(result)


def cmd_pnl(args: argparse.Namespace, config: HyperRiskConfig) -> None:
    if args.input:
        fills = load_fills_from_file(Path(args.input))
    else:
        if not args.address:
            raise HyperRiskError("pnl requires ADDRESS or --input")
        if not is_valid_address(args.address):
            raise InvalidAddressError(f"Invalid wallet address: {args.address!r}")
        with _client(config) as client:
            fills = client.get_user_fills(args.address)

    result = historical_pnl(fills, start_time=args.start_time, end_time=args.end_time)

    if args.format == "json":
        _print(result.to_dict())
        return

    print("=" * 50)
    print("REALIZED PNL BY ASSET")
    print("=" * 50)
    for coin, asset in sorted(result.by_asset.items()):
        print(f"  {coin:<10} {asset.total_realized_pnl:>14,.2f}  ({len(asset.trades)} fills)")
    print("-" * 50)
    print(f"  {'TOTAL':<10} {result.total_realized_pnl:>14,.2f}")


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db-path", type=str, default=None, help="Database file path")
    parser.add_argument("--format", choices=["json", "human"], default="json", help="Output format")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hyperrisk", description="Hyperliquid wallet risk analytics")
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: HYPERRISK_LOG_LEVEL or INFO)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # wallet subcommands
    wallet = sub.add_parser("wallet", help="Manage tracked wallets")
    wallet_sub = wallet.add_subparsers(dest="wallet_cmd", required=True)

    w_add = wallet_sub.add_parser("add", help="Track a wallet address")
    w_add.add_argument("address")
    w_add.add_argument("--name", type=str, default=None, help="Display name")
    _add_common(w_add)
    w_add.set_defaults(func=cmd_wallet_add)

    w_list = wallet_sub.add_parser("list", help="List tracked wallets")
    _add_common(w_list)
    w_list.set_defaults(func=cmd_wallet_list)

    w_rm = wallet_sub.add_parser("remove", help="Stop tracking a wallet")
    w_rm.add_argument("wallet_id")
    _add_common(w_rm)
    w_rm.set_defaults(func=cmd_wallet_remove)

    ps = sub.add_parser("sync", help="Sync one tracked wallet")
    ps.add_argument("wallet_id")
    _add_common(ps)
    ps.set_defaults(func=cmd_sync)

    psa = sub.add_parser("sync-all", help="Sync every tracked wallet concurrently")
    _add_common(psa)
    psa.set_defaults(func=cmd_sync_all)

    pa = sub.add_parser("analyze", help="Run the pipeline for an address without storing it")
    pa.add_argument("address")
    _add_common(pa)
    pa.set_defaults(func=cmd_analyze)

    pp = sub.add_parser("pnl", help="Realized PnL per asset from venue-reported fills")
    pp.add_argument("address", nargs="?", default=None)
    pp.add_argument("--input", type=str, default=None, help="Read fills from JSON/JSONL file")
    pp.add_argument("--start-time", type=int, default=None, help="Inclusive start (epoch ms)")
    pp.add_argument("--end-time", type=int, default=None, help="Inclusive end (epoch ms)")
    _add_common(pp)
    pp.set_defaults(func=cmd_pnl)

    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config()

    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args, config)
    except HyperRiskError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
