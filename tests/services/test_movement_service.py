"""
MovementService tests: receipts, issues and reversals.

Tests cover:
- Receipt and issue sign convention
- Issue guarded by identity-wide availability (no effect on rejection)
- Reversal: exact negation, reference/reason text, at-most-once
- Reversal of a reversal and of an issue
- A quantity-reducing reversal passes the availability guard
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stock_kernel.exceptions import (
    AlreadyReversedError,
    InsufficientStockError,
    InvalidQuantityError,
    LedgerEntryNotFoundError,
    StockRecordNotFoundError,
)
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.services.movement_service import (
    MANUAL_ADDITION_REFERENCE,
    reversal_reference,
)

from tests.conftest import TEST_ACTOR


def _entry_count(session) -> int:
    return session.execute(select(func.count()).select_from(StockLedgerEntry)).scalar_one()


class TestReceive:
    def test_receipt_is_positive(self, movements, create_record, inventory):
        record = create_record()
        result = movements.receive(record.stock_id, "10", TEST_ACTOR)

        assert result.transaction_type == TransactionType.RECEIPT.value
        assert result.quantity_change == Decimal("10")
        assert result.reverses_ledger_id is None
        assert inventory.available_quantity_for(record.stock_id) == Decimal("10")

    def test_default_reference(self, movements, create_record, session):
        record = create_record()
        result = movements.receive(record.stock_id, 1, TEST_ACTOR)
        entry = session.get(StockLedgerEntry, result.ledger_id)
        assert entry.reference == MANUAL_ADDITION_REFERENCE
        assert entry.created_by == TEST_ACTOR

    def test_transaction_date_from_clock(self, movements, create_record, deterministic_clock):
        record = create_record()
        result = movements.receive(record.stock_id, 1, TEST_ACTOR)
        assert result.transaction_date == deterministic_clock.now()

    def test_unknown_record(self, movements):
        with pytest.raises(StockRecordNotFoundError):
            movements.receive("no-such-record", 5, TEST_ACTOR)

    @pytest.mark.parametrize("quantity", [0, "-5", "abc"])
    def test_invalid_quantity_appends_nothing(self, movements, create_record, session, quantity):
        record = create_record()
        with pytest.raises(InvalidQuantityError):
            movements.receive(record.stock_id, quantity, TEST_ACTOR)
        assert _entry_count(session) == 0


class TestIssue:
    def test_issue_is_negative(self, movements, stocked_record, inventory):
        record = stocked_record("100")
        result = movements.issue(record.stock_id, "40", "WO-17", None, TEST_ACTOR)

        assert result.transaction_type == TransactionType.ISSUE.value
        assert result.quantity_change == Decimal("-40")
        assert inventory.available_quantity_for(record.stock_id) == Decimal("60")

    def test_issue_entire_balance(self, movements, stocked_record, inventory):
        record = stocked_record("25")
        movements.issue(record.stock_id, "25", "WO-1", None, TEST_ACTOR)
        assert inventory.available_quantity_for(record.stock_id) == Decimal("0")

    def test_insufficient_stock_has_no_effect(self, movements, stocked_record, inventory, session):
        record = stocked_record("10")
        before = _entry_count(session)

        with pytest.raises(InsufficientStockError) as exc_info:
            movements.issue(record.stock_id, "10.5", "WO-1", None, TEST_ACTOR)

        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert exc_info.value.available == Decimal("10")
        assert exc_info.value.requested == Decimal("10.5")
        assert _entry_count(session) == before
        assert inventory.available_quantity_for(record.stock_id) == Decimal("10")

    def test_issue_from_empty_record(self, movements, create_record):
        record = create_record()
        with pytest.raises(InsufficientStockError):
            movements.issue(record.stock_id, 1, "WO-1", None, TEST_ACTOR)

    def test_issue_draws_on_whole_identity(self, movements, stocked_record, inventory):
        first = stocked_record("30")
        second = stocked_record("20", project=" APOLLO ", part_name="hex  bolt m8")

        movements.issue(second.stock_id, "45", "WO-9", "line stop", TEST_ACTOR)

        assert inventory.available_quantity_for(first.stock_id) == Decimal("5")
        assert inventory.available_quantity_for(second.stock_id) == Decimal("5")

    def test_other_identity_does_not_count(self, movements, stocked_record):
        stocked_record("100", location="Rack B2")
        empty = stocked_record("1")
        with pytest.raises(InsufficientStockError):
            movements.issue(empty.stock_id, "2", "WO-1", None, TEST_ACTOR)

    def test_fractional_quantities_are_exact(self, movements, stocked_record, inventory):
        record = stocked_record("0.3")
        movements.issue(record.stock_id, "0.1", "WO-1", None, TEST_ACTOR)
        movements.issue(record.stock_id, "0.2", "WO-2", None, TEST_ACTOR)
        assert inventory.available_quantity_for(record.stock_id) == Decimal("0")

    def test_float_quantity_rejected(self, movements, stocked_record):
        record = stocked_record("10")
        with pytest.raises(InvalidQuantityError):
            movements.issue(record.stock_id, 1.5, "WO-1", None, TEST_ACTOR)

    def test_issue_logs(self, movements, stocked_record, captured_logs):
        record = stocked_record("10")
        with pytest.raises(InsufficientStockError):
            movements.issue(record.stock_id, "11", "WO-1", None, TEST_ACTOR)
        movements.issue(record.stock_id, "3", "WO-2", None, TEST_ACTOR)

        messages = [r["message"] for r in captured_logs()]
        assert "issue_rejected_insufficient_stock" in messages
        assert "stock_issued" in messages


class TestReverse:
    def test_reversal_of_receipt_restores_quantity(self, movements, create_record, inventory, session):
        record = create_record()
        receipt = movements.receive(record.stock_id, "10", TEST_ACTOR, reference="PO-9")

        reversal = movements.reverse(receipt.ledger_id, TEST_ACTOR, "wrong part")

        assert reversal.transaction_type == TransactionType.REVERSAL.value
        assert reversal.quantity_change == Decimal("-10")
        assert reversal.reverses_ledger_id == receipt.ledger_id
        assert inventory.available_quantity_for(record.stock_id) == Decimal("0")

        entry = session.get(StockLedgerEntry, reversal.ledger_id)
        assert entry.reference == reversal_reference(receipt.ledger_id)
        assert entry.reference == f"Reversal of Ledger ID: {receipt.ledger_id}"
        assert entry.optional_reason == "Original Ref: PO-9 | wrong part"

    def test_reason_without_user_text(self, movements, stocked_record, session):
        record = stocked_record("5")
        issue = movements.issue(record.stock_id, "2", "WO-3", None, TEST_ACTOR)
        reversal = movements.reverse(issue.ledger_id, TEST_ACTOR)
        entry = session.get(StockLedgerEntry, reversal.ledger_id)
        assert entry.optional_reason == "Original Ref: WO-3"

    def test_reversal_of_issue_restores_quantity(self, movements, stocked_record, inventory):
        record = stocked_record("100")
        issue = movements.issue(record.stock_id, "40", "WO-1", None, TEST_ACTOR)

        reversal = movements.reverse(issue.ledger_id, TEST_ACTOR)

        assert reversal.quantity_change == Decimal("40")
        assert inventory.available_quantity_for(record.stock_id) == Decimal("100")

    def test_second_reversal_rejected(self, movements, stocked_record, session):
        record = stocked_record("100")
        issue = movements.issue(record.stock_id, "5", "WO-1", None, TEST_ACTOR)
        movements.reverse(issue.ledger_id, TEST_ACTOR)
        before = _entry_count(session)

        with pytest.raises(AlreadyReversedError) as exc_info:
            movements.reverse(issue.ledger_id, TEST_ACTOR)

        assert exc_info.value.ledger_id == issue.ledger_id
        assert _entry_count(session) == before

    def test_reversal_of_reversal(self, movements, stocked_record, inventory):
        record = stocked_record("10")
        issue = movements.issue(record.stock_id, "4", "WO-1", None, TEST_ACTOR)
        first = movements.reverse(issue.ledger_id, TEST_ACTOR)

        second = movements.reverse(first.ledger_id, TEST_ACTOR)

        assert second.quantity_change == Decimal("-4")
        assert second.reverses_ledger_id == first.ledger_id
        assert inventory.available_quantity_for(record.stock_id) == Decimal("6")
        with pytest.raises(AlreadyReversedError):
            movements.reverse(first.ledger_id, TEST_ACTOR)

    def test_negative_reversal_checks_availability(self, movements, create_record, inventory, session):
        record = create_record()
        receipt = movements.receive(record.stock_id, "10", TEST_ACTOR)
        movements.issue(record.stock_id, "8", "WO-1", None, TEST_ACTOR)
        before = _entry_count(session)

        with pytest.raises(InsufficientStockError):
            movements.reverse(receipt.ledger_id, TEST_ACTOR)

        assert _entry_count(session) == before
        assert inventory.available_quantity_for(record.stock_id) == Decimal("2")

    def test_unknown_entry(self, movements):
        with pytest.raises(LedgerEntryNotFoundError):
            movements.reverse(999_999, TEST_ACTOR)

    def test_reversal_logs(self, movements, stocked_record, captured_logs):
        record = stocked_record("10")
        issue = movements.issue(record.stock_id, "1", "WO-1", None, TEST_ACTOR)
        movements.reverse(issue.ledger_id, TEST_ACTOR)
        with pytest.raises(AlreadyReversedError):
            movements.reverse(issue.ledger_id, TEST_ACTOR)

        logs = captured_logs()
        appended = [r for r in logs if r["message"] == "reversal_appended"]
        assert appended and appended[0]["reversed_ledger_id"] == issue.ledger_id
        assert any(r["message"] == "reversal_rejected_already_reversed" for r in logs)
