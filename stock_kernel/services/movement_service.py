"""
MovementService -- validates and appends single stock movements.

Responsibility:
    Receipts, issues (with availability check) and reversals (with
    at-most-once enforcement).  Each call is a one-shot transition that
    either appends exactly one ledger entry or raises with no effect.

Architecture position:
    Kernel > Services.  Consumes LedgerWriter, IdentityLockService and
    InventorySelector.  Called by StockLedgerService inside a transaction.

Invariants enforced:
    - Non-negative stock: every negative delta (ISSUE, or a REVERSAL of a
      positive entry) is appended only after taking the identity lock and
      re-reading availability in the same transaction.
    - At most one reversal per entry: checked under the original entry's
      row lock, and backed by the UNIQUE reverses_ledger_id constraint so
      a concurrent duplicate loses at the store.
    - Reversal delta = -(original delta), exactly.

Failure modes:
    - InvalidQuantityError: malformed or non-positive quantity.
    - StockRecordNotFoundError / LedgerEntryNotFoundError: unknown ids.
    - InsufficientStockError: the movement would drive availability < 0.
    - AlreadyReversedError: the entry already has a reversal.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.db.types import coerce_quantity, to_quantity
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import MovementResult
from stock_kernel.domain.identity import LogicalIdentity
from stock_kernel.exceptions import (
    AlreadyReversedError,
    InsufficientStockError,
    LedgerEntryNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.identity_lock_service import IdentityLockService
from stock_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.movement")

MANUAL_ADDITION_REFERENCE = "Manual Stock Addition"


def reversal_reference(ledger_id: int) -> str:
    return f"Reversal of Ledger ID: {ledger_id}"


def _reversal_reason(original_reference: str | None, reason: str | None) -> str:
    text = f"Original Ref: {original_reference or ''}"
    return f"{text} | {reason}" if reason else text


def _result(entry: StockLedgerEntry) -> MovementResult:
    return MovementResult(
        ledger_id=entry.ledger_id,
        stock_id=entry.stock_id,
        transaction_type=entry.transaction_type,
        quantity_change=to_quantity(entry.quantity_change),
        transaction_date=entry.transaction_date,
        reverses_ledger_id=entry.reverses_ledger_id,
    )


class MovementService(BaseService):
    """
    Single-movement state machine over the ledger.

    Contract:
        Flush-only.  The caller commits; a raised error leaves nothing
        behind once the caller rolls back.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        writer: LedgerWriter | None = None,
        locks: IdentityLockService | None = None,
        inventory: InventorySelector | None = None,
    ):
        super().__init__(session, clock)
        self._writer = writer or LedgerWriter(session, self.clock)
        self._locks = locks or IdentityLockService(session, self.clock)
        self._inventory = inventory or InventorySelector(session)

    # =========================================================================
    # Availability guard
    # =========================================================================

    def _lock_and_check(
        self,
        identity: LogicalIdentity,
        stock_id: str,
        reduction: Decimal,
    ) -> Decimal:
        """
        Take the identity lock, then confirm ``reduction`` is available.

        Returns:
            Availability read under the lock.

        Raises:
            InsufficientStockError: If available < reduction.
        """
        self._locks.acquire(identity)
        available = self._inventory.available_quantity(identity)
        if available < reduction:
            logger.warning(
                "issue_rejected_insufficient_stock",
                extra={
                    "stock_id": stock_id,
                    "requested": str(reduction),
                    "available": str(available),
                },
            )
            raise InsufficientStockError(stock_id, reduction, available)
        return available

    # =========================================================================
    # Movements
    # =========================================================================

    def receive(
        self,
        stock_id: str,
        quantity: Decimal | int | str,
        actor: str | None,
        reference: str = MANUAL_ADDITION_REFERENCE,
        reason: str | None = None,
    ) -> MovementResult:
        """
        Append a RECEIPT for an existing physical record.

        Raises:
            InvalidQuantityError: If quantity is not > 0.
            StockRecordNotFoundError: If stock_id is unknown.
        """
        amount = coerce_quantity(quantity)
        self._inventory.identity_of(stock_id)

        entry = self._writer.append(
            stock_id=stock_id,
            kind=TransactionType.RECEIPT,
            delta=amount,
            reference=reference,
            reason=reason,
            actor=actor,
        )
        logger.info(
            "stock_received",
            extra={
                "ledger_id": entry.ledger_id,
                "stock_id": stock_id,
                "quantity": str(amount),
            },
        )
        return _result(entry)

    def issue(
        self,
        stock_id: str,
        quantity: Decimal | int | str,
        reference: str | None,
        reason: str | None,
        actor: str | None,
    ) -> MovementResult:
        """
        Append an ISSUE of ``quantity`` against the identity of ``stock_id``.

        The availability read and the append happen under the identity
        lock, so concurrent issues cannot jointly overdraw the identity.

        Raises:
            InvalidQuantityError: If quantity is not > 0.
            StockRecordNotFoundError: If stock_id is unknown.
            InsufficientStockError: If the identity holds less than quantity.
        """
        amount = coerce_quantity(quantity)
        identity = self._inventory.identity_of(stock_id)
        available = self._lock_and_check(identity, stock_id, amount)

        entry = self._writer.append(
            stock_id=stock_id,
            kind=TransactionType.ISSUE,
            delta=amount.copy_negate(),
            reference=reference,
            reason=reason,
            actor=actor,
        )
        logger.info(
            "stock_issued",
            extra={
                "ledger_id": entry.ledger_id,
                "stock_id": stock_id,
                "quantity": str(amount),
                "available_before": str(available),
            },
        )
        return _result(entry)

    def reverse(
        self,
        ledger_id: int,
        actor: str | None,
        reason: str | None = None,
    ) -> MovementResult:
        """
        Append a REVERSAL that negates entry ``ledger_id``.

        Reversing a REVERSAL is allowed; it is an entry like any other and
        can itself be reversed at most once.  A reversal with a negative
        delta is quantity-reducing and passes the same availability guard
        as an issue.

        Raises:
            LedgerEntryNotFoundError: If ledger_id is unknown.
            AlreadyReversedError: If the entry already has a reversal.
            InsufficientStockError: If a negative reversal would drive the
                identity below zero.
        """
        original = self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.ledger_id == ledger_id)
            .with_for_update()
        ).scalar_one_or_none()
        if original is None:
            raise LedgerEntryNotFoundError(ledger_id)

        self._raise_if_reversed(ledger_id)

        delta = to_quantity(original.quantity_change).copy_negate()
        if delta < 0:
            identity = self._inventory.identity_of(original.stock_id)
            self._lock_and_check(identity, original.stock_id, delta.copy_abs())

        savepoint = self.session.begin_nested()
        try:
            entry = self._writer.append(
                stock_id=original.stock_id,
                kind=TransactionType.REVERSAL,
                delta=delta,
                reference=reversal_reference(ledger_id),
                reason=_reversal_reason(original.reference, reason),
                actor=actor,
                reverses_ledger_id=ledger_id,
            )
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            # A concurrent reversal won the UNIQUE(reverses_ledger_id) race
            self._raise_if_reversed(ledger_id)
            raise

        logger.info(
            "reversal_appended",
            extra={
                "ledger_id": entry.ledger_id,
                "reversed_ledger_id": ledger_id,
                "stock_id": original.stock_id,
                "quantity_change": str(delta),
            },
        )
        return _result(entry)

    def _raise_if_reversed(self, ledger_id: int) -> None:
        existing = self.session.execute(
            select(StockLedgerEntry.ledger_id).where(
                StockLedgerEntry.reverses_ledger_id == ledger_id
            )
        ).scalar_one_or_none()
        if existing is not None:
            logger.warning(
                "reversal_rejected_already_reversed",
                extra={"ledger_id": ledger_id, "reversal_ledger_id": existing},
            )
            raise AlreadyReversedError(ledger_id)
