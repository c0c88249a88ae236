#!/usr/bin/env python3
"""
Stock ledger CLI: argparse command dispatch over StockLedgerService.

Usage:
    python -m scripts.cli.main [--config PATH] <command> [options]

Examples:
    python -m scripts.cli.main init-db
    python -m scripts.cli.main add --project P1 --part "Hex Bolt" --uom pcs \\
        --location A1 --quantity 100 --supplier Acme --invoice INV-7 --actor amy
    python -m scripts.cli.main issue <stock_id> 5 --reference WO-17 --actor amy
    python -m scripts.cli.main reverse 3 --actor amy
    python -m scripts.cli.main export --from 2024-01-01 --kind ISSUE --output out.csv
"""

from __future__ import annotations

import argparse
import csv
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import TextIO

from stock_config import ConfigValidationError, get_active_config
from stock_kernel.db.engine import create_tables
from stock_kernel.domain.dtos import ImportRow
from stock_kernel.exceptions import StockKernelError
from stock_kernel.logging_config import configure_logging

from scripts.cli.util import build_ledger, fmt_qty, fmt_ts, print_table

EXPORT_COLUMNS = [
    "ledger_id",
    "transaction_date",
    "transaction_type",
    "quantity_change",
    "stock_id",
    "part_name",
    "description",
    "reference",
    "optional_reason",
    "created_by",
    "is_already_reversed",
]


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="stock-ledger",
        description="Identity-based, append-only stock ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration set.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and append-only triggers.")
    sub.add_parser("stats", help="Dashboard statistics.")

    for name in ("inventory", "history"):
        p = sub.add_parser(name, help=f"Paginated {name} view.")
        p.add_argument("--search", default=None)
        p.add_argument("--page", type=int, default=1)
        p.add_argument("--page-size", type=int, default=None)

    p = sub.add_parser("export", help="Export ledger history as CSV.")
    p.add_argument("--from", dest="date_from", type=date.fromisoformat, default=None)
    p.add_argument("--to", dest="date_to", type=date.fromisoformat, default=None)
    p.add_argument("--kind", default=None, help="RECEIPT, ISSUE, REVERSAL or All.")
    p.add_argument("--output", type=Path, default=None, help="File (default stdout).")

    p = sub.add_parser("add", help="Receive one row, merging into a matching record.")
    p.add_argument("--project", required=True)
    p.add_argument("--part", dest="part_name", required=True)
    p.add_argument("--description", default="")
    p.add_argument("--uom", required=True)
    p.add_argument("--location", required=True)
    p.add_argument("--quantity", required=True)
    p.add_argument("--supplier", dest="supplier_name", default="")
    p.add_argument("--invoice", default="")
    p.add_argument("--po", dest="po_no", default="")
    p.add_argument("--remarks", default=None)
    p.add_argument("--received-on", type=date.fromisoformat, default=None)
    p.add_argument("--actor", required=True)

    p = sub.add_parser("receive", help="Receive stock into an existing record.")
    p.add_argument("stock_id")
    p.add_argument("quantity")
    p.add_argument("--actor", required=True)
    p.add_argument("--reference", default="Manual Stock Addition")
    p.add_argument("--reason", default=None)

    p = sub.add_parser("issue", help="Issue stock from a record's identity.")
    p.add_argument("stock_id")
    p.add_argument("quantity")
    p.add_argument("--actor", required=True)
    p.add_argument("--reference", required=True)
    p.add_argument("--reason", default=None)

    p = sub.add_parser("reverse", help="Reverse a ledger entry.")
    p.add_argument("ledger_id", type=int)
    p.add_argument("--actor", required=True)
    p.add_argument("--reason", default=None)

    p = sub.add_parser("threshold", help="Set a record's minimum quantity.")
    p.add_argument("stock_id")
    p.add_argument("min_quantity")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _show_stats(ledger, out: TextIO) -> None:
    stats = ledger.stats()
    print(f"Unique items:    {stats.unique_identity_count}", file=out)
    print(f"Total received:  {fmt_qty(stats.total_received)}", file=out)
    print(f"Total issued:    {fmt_qty(stats.total_issued)}", file=out)
    print(f"Low stock items: {stats.low_stock_count}", file=out)


def _show_inventory(ledger, args, out: TextIO) -> None:
    page = ledger.inventory_page(args.search, args.page, args.page_size)
    rows = [
        [
            item.stock_id,
            item.project,
            item.part_name,
            item.uom,
            item.location,
            fmt_qty(item.available_quantity),
            fmt_qty(item.min_quantity),
            "LOW" if item.is_low_stock else "",
            fmt_ts(item.last_movement_at),
        ]
        for item in page.items
    ]
    print_table(
        ["STOCK_ID", "PROJECT", "PART", "UOM", "LOCATION", "QTY", "MIN", "", "LAST_MOVEMENT"],
        rows,
        out,
    )
    print(f"Page {page.page}/{max(page.total_pages, 1)} ({page.total_count} items)", file=out)


def _show_history(ledger, args, out: TextIO) -> None:
    page = ledger.history_page(args.search, args.page, args.page_size)
    rows = [
        [
            str(entry.ledger_id),
            fmt_ts(entry.transaction_date),
            entry.transaction_type,
            fmt_qty(entry.quantity_change),
            entry.part_name,
            entry.reference or "",
            entry.created_by or "",
            "reversed" if entry.is_already_reversed else "",
        ]
        for entry in page.items
    ]
    print_table(
        ["ID", "DATE", "TYPE", "QTY", "PART", "REFERENCE", "BY", ""],
        rows,
        out,
    )
    print(f"Page {page.page}/{max(page.total_pages, 1)} ({page.total_count} entries)", file=out)


def _write_export(entries, out: TextIO) -> None:
    writer = csv.writer(out)
    writer.writerow(EXPORT_COLUMNS)
    for entry in entries:
        writer.writerow(
            [
                entry.ledger_id,
                fmt_ts(entry.transaction_date),
                entry.transaction_type,
                fmt_qty(entry.quantity_change),
                entry.stock_id,
                entry.part_name,
                entry.description,
                entry.reference or "",
                entry.optional_reason or "",
                entry.created_by or "",
                "yes" if entry.is_already_reversed else "no",
            ]
        )


def _export(ledger, args, out: TextIO) -> None:
    entries = ledger.history_export(args.date_from, args.date_to, args.kind)
    if args.output is None:
        _write_export(entries, out)
        return
    with open(args.output, "w", newline="", encoding="utf-8") as fh:
        _write_export(entries, fh)
    print(f"Exported {len(entries)} entries to {args.output}", file=out)


def _add(ledger, args, out: TextIO) -> None:
    row = ImportRow(
        project=args.project,
        part_name=args.part_name,
        description=args.description,
        uom=args.uom,
        location=args.location,
        quantity=args.quantity,
        supplier_name=args.supplier_name,
        invoice=args.invoice,
        po_no=args.po_no,
        remarks=args.remarks,
        received_on=args.received_on,
    )
    result = ledger.add_stock_entry(row, args.actor)
    if result.new_count:
        print(f"Created {result.new_stock_ids[0]} (ledger {result.ledger_ids[0]})", file=out)
    else:
        print(f"Merged into existing record (ledger {result.ledger_ids[0]})", file=out)


def _movement_line(result) -> str:
    return (
        f"Ledger {result.ledger_id}: {result.transaction_type} "
        f"{fmt_qty(result.quantity_change)} on {result.stock_id}"
    )


def _dispatch(args, ledger, engine, out: TextIO) -> None:
    command = args.command
    if command == "init-db":
        create_tables(engine)
        print("Tables ready.", file=out)
    elif command == "stats":
        _show_stats(ledger, out)
    elif command == "inventory":
        _show_inventory(ledger, args, out)
    elif command == "history":
        _show_history(ledger, args, out)
    elif command == "export":
        _export(ledger, args, out)
    elif command == "add":
        _add(ledger, args, out)
    elif command == "receive":
        result = ledger.receive(
            args.stock_id, args.quantity, args.actor,
            reference=args.reference, reason=args.reason,
        )
        print(_movement_line(result), file=out)
    elif command == "issue":
        result = ledger.issue(
            args.stock_id, args.quantity, args.reference, args.reason, args.actor
        )
        print(_movement_line(result), file=out)
    elif command == "reverse":
        result = ledger.reverse(args.ledger_id, args.actor, args.reason)
        print(_movement_line(result), file=out)
    elif command == "threshold":
        amount = ledger.set_threshold(args.stock_id, args.min_quantity)
        print(f"Threshold for {args.stock_id} set to {fmt_qty(Decimal(amount))}", file=out)


def main(argv: list[str] | None = None, out: TextIO | None = None, err: TextIO | None = None) -> int:
    out = out or sys.stdout
    err = err or sys.stderr
    args = _parse_args(argv)

    try:
        config = get_active_config(args.config)
    except (ConfigValidationError, FileNotFoundError) as exc:
        print(f"ERROR [CONFIG_INVALID]: {exc}", file=err)
        return 1

    configure_logging(level=config.logging.level.upper(), stream=err)
    ledger, engine = build_ledger(config)
    try:
        _dispatch(args, ledger, engine, out)
    except StockKernelError as exc:
        print(f"ERROR [{exc.code}]: {exc}", file=err)
        return 1
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
