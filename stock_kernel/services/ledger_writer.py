"""
LedgerWriter -- the only code path that inserts physical records and
ledger entries.

Responsibility:
    Creates stock_master rows with freshly generated ids and appends signed
    stock_ledger entries.  Validation of business rules (availability,
    reversal eligibility) happens in the callers; this class enforces the
    structural ones: sign convention, quantity precision, reversal linkage.

Architecture position:
    Kernel > Services.  Called by MovementService and ImportService.

Invariants enforced:
    - RECEIPT delta > 0, ISSUE delta < 0, REVERSAL delta != 0.
    - reverses_ledger_id is set on REVERSAL entries and only there.
    - Flush-only.  ledger_id is assigned by the store at flush.

Failure modes:
    - ValueError on a sign or linkage violation (programming error).
    - IntegrityError from the store on a duplicate reversal (UNIQUE
      reverses_ledger_id); surfaced to the caller inside a savepoint.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger_writer")


def _check_sign(kind: TransactionType, delta: Decimal, reverses_ledger_id: int | None) -> None:
    if kind == TransactionType.RECEIPT and delta <= 0:
        raise ValueError(f"RECEIPT delta must be positive, got {delta}")
    if kind == TransactionType.ISSUE and delta >= 0:
        raise ValueError(f"ISSUE delta must be negative, got {delta}")
    if kind == TransactionType.REVERSAL:
        if delta == 0:
            raise ValueError("REVERSAL delta must be non-zero")
        if reverses_ledger_id is None:
            raise ValueError("REVERSAL entry requires reverses_ledger_id")
    elif reverses_ledger_id is not None:
        raise ValueError(f"{kind.value} entry cannot carry reverses_ledger_id")


class LedgerWriter(BaseService):
    """Append-only writer for stock_master and stock_ledger."""

    def create_record(
        self,
        *,
        project: str,
        part_name: str,
        uom: str,
        location: str,
        description: str = "",
        supplier_name: str = "",
        invoice: str = "",
        po_no: str = "",
        remarks: str | None = None,
        actor: str | None = None,
    ) -> StockMaster:
        """
        Insert a new physical record.  Raw text is stored as given.

        Postconditions: The record is flushed and has a new uuid4 stock_id.
        """
        record = StockMaster(
            stock_id=str(uuid4()),
            project=project,
            part_name=part_name,
            description=description or "",
            uom=uom,
            location=location,
            supplier_name=supplier_name or "",
            invoice=invoice or "",
            po_no=po_no or "",
            remarks=remarks,
            created_at=self.clock.now(),
            created_by=actor,
        )
        self.session.add(record)
        self.session.flush()
        logger.info(
            "stock_record_created",
            extra={"stock_id": record.stock_id, "part_name": part_name},
        )
        return record

    def append(
        self,
        *,
        stock_id: str,
        kind: TransactionType,
        delta: Decimal,
        reference: str | None,
        reason: str | None = None,
        actor: str | None = None,
        transaction_date: datetime | None = None,
        reverses_ledger_id: int | None = None,
    ) -> StockLedgerEntry:
        """
        Append one signed movement.

        Preconditions: stock_id exists; sign matches kind.
        Postconditions: The entry is flushed and carries its ledger_id.
        """
        _check_sign(kind, delta, reverses_ledger_id)
        now = self.clock.now()
        entry = StockLedgerEntry(
            stock_id=stock_id,
            transaction_type=kind.value,
            quantity_change=delta,
            transaction_date=transaction_date or now,
            reference=reference,
            optional_reason=reason,
            created_by=actor,
            created_at=now,
            reverses_ledger_id=reverses_ledger_id,
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "ledger_entry_appended",
            extra={
                "ledger_id": entry.ledger_id,
                "stock_id": stock_id,
                "transaction_type": kind.value,
                "quantity_change": str(delta),
            },
        )
        return entry
