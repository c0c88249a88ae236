"""
Module: stock_kernel.models.stock_ledger
Responsibility: ORM persistence for ledger entries -- the single source of
    quantity truth in this system.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: entries are never updated or deleted (ORM listeners in
      db/immutability.py).  A correction is a new REVERSAL entry.
    - Sign convention: RECEIPT > 0, ISSUE < 0, REVERSAL = -(reversed delta).
    - At most one reversal per entry: UNIQUE constraint on
      reverses_ledger_id.  The store wins any concurrent race.
    - ledger_id is assigned by the store and is monotonic.

Failure modes:
    - IntegrityError on a second reversal of the same entry (translated to
      AlreadyReversedError by MovementService).

Audit relevance:
    Available quantity for a logical identity is the sum of quantity_change
    over all entries whose physical record shares that identity.  There are
    no stored balances.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class TransactionType(str, Enum):
    """Kind of ledger movement."""

    RECEIPT = "RECEIPT"
    ISSUE = "ISSUE"
    REVERSAL = "REVERSAL"


class StockLedgerEntry(Base):
    """
    Immutable signed quantity movement.

    Contract:
        Written only through LedgerWriter.append().  reverses_ledger_id is
        set on REVERSAL entries and nowhere else.
    """

    __tablename__ = "stock_ledger"

    __table_args__ = (
        UniqueConstraint("reverses_ledger_id", name="uq_stock_ledger_reverses"),
        Index("idx_stock_ledger_stock_id", "stock_id"),
        Index("idx_stock_ledger_transaction_date", "transaction_date"),
        Index("idx_stock_ledger_type", "transaction_type"),
    )

    ledger_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    stock_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stock_master.stock_id"),
        nullable=False,
    )

    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)

    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)

    transaction_date: Mapped[datetime] = mapped_column(nullable=False)

    # Human-readable reference (invoice, work order, "Reversal of Ledger ID: n")
    reference: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    optional_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Structured reversal linkage; NULL for RECEIPT and ISSUE
    reverses_ledger_id: Mapped[int | None] = mapped_column(
        ForeignKey("stock_ledger.ledger_id"),
        nullable=True,
    )

    @property
    def kind(self) -> TransactionType:
        return TransactionType(self.transaction_type)

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry {self.ledger_id} {self.transaction_type} "
            f"{self.quantity_change} stock={self.stock_id}>"
        )
