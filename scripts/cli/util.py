"""CLI utilities: wiring from configuration, formatting, table output."""

from __future__ import annotations

from decimal import Decimal
from typing import TextIO

from stock_config import StockConfig
from stock_kernel.db.engine import build_engine, build_session_factory
from stock_kernel.services.stock_ledger_service import StockLedgerService


def build_ledger(config: StockConfig) -> tuple[StockLedgerService, object]:
    """Engine and facade for ``config``.  Returns (ledger, engine)."""
    store = config.store
    engine = build_engine(
        store.database_url,
        echo=store.echo,
        pool_size=store.pool_size,
        max_overflow=store.max_overflow,
        pool_timeout=store.pool_timeout_s,
        busy_timeout_s=store.lock_timeout_ms / 1000,
    )
    factory = build_session_factory(
        engine,
        lock_timeout_ms=store.lock_timeout_ms,
        statement_timeout_ms=store.statement_timeout_ms,
    )
    ledger = StockLedgerService(
        factory,
        max_conflict_retries=config.ledger.max_conflict_retries,
        conflict_backoff_ms=config.ledger.conflict_backoff_ms,
        default_page_size=config.ledger.default_page_size,
        max_page_size=config.ledger.max_page_size,
    )
    return ledger, engine


def fmt_qty(value: Decimal | None) -> str:
    """Plain decimal without exponent or trailing zeros (e.g. 12.5, 0)."""
    if value is None:
        return ""
    text = f"{value.normalize():f}"
    return "0" if text in ("-0", "0") else text


def fmt_ts(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


def print_table(headers: list[str], rows: list[list[str]], out: TextIO) -> None:
    """Left-aligned fixed-width table."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(line, file=out)
    print("  ".join("-" * w for w in widths), file=out)
    for row in rows:
        print("  ".join(c.ljust(w) for c, w in zip(row, widths)), file=out)
