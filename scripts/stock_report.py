#!/usr/bin/env python3
"""
Print stock ledger reports from a configured database.

Usage:
    python3 scripts/stock_report.py stats
    python3 scripts/stock_report.py low-stock --threshold 3
    python3 scripts/stock_report.py summary --json
    python3 scripts/stock_report.py recent --limit 20
    python3 scripts/stock_report.py reconcile

The database comes from the active configuration (``--config``,
``$STOCK_LEDGER_CONFIG`` or the packaged default); ``--db-url`` overrides it.
"""

import argparse
import dataclasses
import json
import sys
from functools import partial
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 72


def _money(value) -> str:
    return f"{value:,.2f}"


def print_stats(stats) -> None:
    print("=" * W)
    print("  DASHBOARD".center(W))
    print("=" * W)
    print(f"  Total products   {stats.total_products:>10}")
    print(f"  Total quantity   {stats.total_quantity:>10}")
    print(f"  Low stock        {stats.low_stock:>10}")
    print()


def print_products(title: str, products) -> None:
    print("=" * W)
    print(f"  {title}".center(W))
    print("=" * W)
    if not products:
        print("  (none)")
    for p in products:
        print(
            f"  {p.name[:30]:<30} remaining {p.remaining_quantity:>6}"
            f"  min {p.min_threshold:>5}"
        )
    print()


def print_summary(report) -> None:
    from stock_kernel.db.types import round_money

    print("=" * W)
    print("  STOCK SUMMARY".center(W))
    print("=" * W)
    print(f"  {'Product':<24}{'Init':>6}{'Left':>6}{'Sold':>6}{'Cost val':>14}{'Profit':>14}")
    print("  " + "-" * (W - 4))
    for row in report.rows:
        flag = " !" if row.is_low_stock else ""
        print(
            f"  {row.name[:24]:<24}{row.initial_quantity:>6}{row.remaining_quantity:>6}"
            f"{row.sold_quantity:>6}{_money(round_money(row.total_cost_value)):>14}"
            f"{_money(round_money(row.profit)):>14}{flag}"
        )
    s = report.summary
    print("  " + "-" * (W - 4))
    print(f"  Items              {s.total_items:>12}")
    print(f"  Stock value        {_money(round_money(s.total_stock_value)):>12}")
    print(f"  Sales value        {_money(round_money(s.total_sales_value)):>12}")
    print(f"  Profit             {_money(round_money(s.total_profit)):>12}")
    print(f"  Low-stock items    {len(s.low_stock_items):>12}")
    print()


def print_recent(entries) -> None:
    print("=" * W)
    print("  RECENT TRANSACTIONS".center(W))
    print("=" * W)
    if not entries:
        print("  (none)")
    for e in entries:
        print(
            f"  #{e.seq:<6} {e.transaction_type.value:<17} {e.product_name[:24]:<24}"
            f" x{e.quantity:<5} {_money(e.amount):>12}"
        )
    print()


def print_reconciliation(discrepancies) -> None:
    print("=" * W)
    print("  LEDGER RECONCILIATION".center(W))
    print("=" * W)
    if not discrepancies:
        print("  [OK] stored quantities match the ledger")
    for d in discrepancies:
        print(
            f"  [FAIL] {d.name}: stored {d.stored_initial_quantity}/"
            f"{d.stored_remaining_quantity}, ledger says "
            f"{d.expected_initial_quantity}/{d.expected_remaining_quantity}"
        )
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print stock ledger reports.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--db-url", type=str, help="Database URL (overrides config)")
    parser.add_argument("--json", action="store_true", help="Output payload JSON")
    parser.add_argument(
        "--create-tables", action="store_true",
        help="Create missing tables before reporting",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="Dashboard counters")
    low = sub.add_parser("low-stock", help="Products below their threshold")
    low.add_argument("--threshold", type=int, help="Override every product's minimum")
    sub.add_parser("summary", help="Stock valuation summary")
    recent = sub.add_parser("recent", help="Most recent ledger entries")
    recent.add_argument("--limit", type=int, help="Number of entries")
    sub.add_parser("reconcile", help="Check quantities against the ledger")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from stock_config import get_active_config
    from stock_config.bridges import build_ledger
    from stock_kernel.db.engine import create_tables, get_session, init_engine_from_config
    from stock_kernel.exceptions import StockKernelError
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.selectors.report_selector import ReportAggregator

    config = get_active_config(args.config)
    if args.db_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=args.db_url)
        )
    configure_logging(level=config.logging.level)

    try:
        init_engine_from_config(config.database)
        if args.create_tables:
            create_tables()
    except Exception as exc:
        print(f"  ERROR: Could not connect: {exc}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        reports = ReportAggregator(session)
        if args.command == "stats":
            result = reports.dashboard_stats()
            payload = result.to_payload()
            render = print_stats
        elif args.command == "low-stock":
            result = reports.low_stock_list(args.threshold)
            payload = [p.to_payload() for p in result]
            render = partial(print_products, "LOW STOCK")
        elif args.command == "summary":
            result = reports.stock_summary_report()
            payload = result.to_payload()
            render = print_summary
        elif args.command == "recent":
            result = build_ledger(session, config).list_recent(args.limit)
            payload = [e.to_payload() for e in result]
            render = print_recent
        else:
            result = reports.reconcile()
            payload = [dataclasses.asdict(d) for d in result]
            render = print_reconciliation
    except StockKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 2
    finally:
        session.close()

    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        render(result)

    if args.command == "reconcile" and result:
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
