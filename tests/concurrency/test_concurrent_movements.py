"""
True concurrency tests against PostgreSQL.

Threads race through the StockLedgerService facade, each call in its own
transaction on its own connection:
- Concurrent issues of one identity never jointly overdraw it
- Concurrent reversals of one entry produce exactly one REVERSAL
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import PreviewEntry, PreviewStatus
from stock_kernel.exceptions import (
    AlreadyReversedError,
    ConflictError,
    InsufficientStockError,
)

from tests.conftest import TEST_ACTOR, make_row

pytestmark = [pytest.mark.postgres, pytest.mark.slow_locks]

THREADS = 10


def _race(fn, count):
    barrier = threading.Barrier(count)

    def worker(i):
        barrier.wait()
        try:
            return "ok", fn(i)
        except (InsufficientStockError, AlreadyReversedError, ConflictError) as exc:
            return type(exc).__name__, exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


class TestConcurrentIssue:
    def test_no_overdraw_single_record(self, ledger):
        stock_id = ledger.add_stock_entry(make_row(quantity="10"), TEST_ACTOR).new_stock_ids[0]

        outcomes = _race(
            lambda i: ledger.issue(stock_id, "2", f"WO-{i}", None, f"worker-{i}"),
            THREADS,
        )

        succeeded = sum(1 for status, _ in outcomes if status == "ok")
        available = ledger.available_quantity_for(stock_id)
        assert available >= Decimal("0")
        assert available == Decimal("10") - 2 * succeeded
        assert succeeded <= 5

    def test_no_overdraw_across_variant_records(self, ledger):
        first = ledger.add_stock_entry(make_row(quantity="6"), TEST_ACTOR).new_stock_ids[0]
        stale = PreviewEntry(row=make_row(quantity="6", location=" RACK A1"), status=PreviewStatus.NEW)
        second = ledger.commit([stale], TEST_ACTOR).new_stock_ids[0]
        assert first != second

        targets = [first, second]
        outcomes = _race(
            lambda i: ledger.issue(targets[i % 2], "3", f"WO-{i}", None, TEST_ACTOR),
            THREADS,
        )

        succeeded = sum(1 for status, _ in outcomes if status == "ok")
        assert succeeded <= 4
        assert ledger.available_quantity(make_row().identity) == Decimal("12") - 3 * succeeded


class TestConcurrentReversal:
    def test_exactly_one_reversal(self, ledger):
        stock_id = ledger.add_stock_entry(make_row(quantity="10"), TEST_ACTOR).new_stock_ids[0]
        issue = ledger.issue(stock_id, "4", "WO-1", None, TEST_ACTOR)

        outcomes = _race(lambda i: ledger.reverse(issue.ledger_id, f"worker-{i}"), THREADS)

        statuses = [status for status, _ in outcomes]
        assert statuses.count("ok") == 1
        assert set(statuses) <= {"ok", "AlreadyReversedError", "ConflictError"}
        assert ledger.available_quantity_for(stock_id) == Decimal("10")

        reversals = ledger.history_export(kind="REVERSAL")
        assert len(reversals) == 1
        assert reversals[0].reverses_ledger_id == issue.ledger_id
