"""
ImportService -- the merge-import engine.

Responsibility:
    Classifies externally sourced receipt rows as MERGED (an existing
    physical record already has the row's logical identity) or NEW, and
    commits a classified batch: physical records for NEW rows, one RECEIPT
    per row.

Architecture position:
    Kernel > Services.  Consumes InventorySelector (identity index) and
    LedgerWriter.  Called by StockLedgerService, which wraps commit() in a
    single transaction.

Invariants enforced:
    - preview() is read-only.  It reserves and locks nothing, so a preview
      may be stale by the time it is committed; commit() then still
      succeeds (a NEW row creates another record with the same identity,
      which the aggregation engine merges at query time).
    - commit() validates every row before the first write and runs inside
      the caller's transaction, so a batch is all-or-nothing.
    - Receipt reference embeds provenance:
      "Excel Import: <invoice> | Supplier: <supplier>".

Failure modes:
    - InvalidQuantityError: any row quantity not > 0 (whole batch rejected).
    - StockRecordNotFoundError: a MERGED entry names an unknown record.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from uuid import uuid4

from stock_kernel.db.types import coerce_quantity
from stock_kernel.domain.dtos import (
    ImportResult,
    ImportRow,
    PreviewEntry,
    PreviewStatus,
)
from stock_kernel.exceptions import StockRecordNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_ledger import TransactionType
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.import")


def import_reference(row: ImportRow) -> str:
    return f"Excel Import: {row.invoice} | Supplier: {row.supplier_name}"


def _receipt_date(row: ImportRow) -> datetime | None:
    if row.received_on is None:
        return None
    return datetime.combine(row.received_on, time.min, tzinfo=timezone.utc)


class ImportService(BaseService):
    """Preview and commit of receipt batches."""

    def preview(self, rows: list[ImportRow]) -> list[PreviewEntry]:
        """
        Classify each row against existing physical records.

        Returns:
            One PreviewEntry per row, in input order.
        """
        index = InventorySelector(self.session).identity_index()
        previews = []
        for row in rows:
            existing_id = index.get(row.identity)
            if existing_id is None:
                previews.append(PreviewEntry(row=row, status=PreviewStatus.NEW))
            else:
                previews.append(
                    PreviewEntry(
                        row=row,
                        status=PreviewStatus.MERGED,
                        existing_id=existing_id,
                    )
                )

        logger.info(
            "import_previewed",
            extra={
                "row_count": len(previews),
                "merged_count": sum(
                    1 for p in previews if p.status == PreviewStatus.MERGED
                ),
            },
        )
        return previews

    def commit(
        self,
        previews: list[PreviewEntry],
        actor: str | None,
        batch_id: str | None = None,
    ) -> ImportResult:
        """
        Write a classified batch.

        Preconditions: Runs inside the caller's transaction; the caller
            rolls back on any exception.
        Postconditions: One RECEIPT per preview entry; one new physical
            record per NEW entry.
        """
        batch_id = batch_id or str(uuid4())
        quantities = [coerce_quantity(p.row.quantity) for p in previews]
        writer = LedgerWriter(self.session, self.clock)

        new_stock_ids: list[str] = []
        ledger_ids: list[int] = []
        for preview, quantity in zip(previews, quantities):
            row = preview.row
            if preview.status == PreviewStatus.MERGED:
                stock_id = preview.existing_id
                if self.session.get(StockMaster, stock_id) is None:
                    raise StockRecordNotFoundError(stock_id)
            else:
                record = writer.create_record(
                    project=row.project,
                    part_name=row.part_name,
                    description=row.description,
                    uom=row.uom,
                    location=row.location,
                    supplier_name=row.supplier_name,
                    invoice=row.invoice,
                    po_no=row.po_no,
                    remarks=row.remarks,
                    actor=actor,
                )
                stock_id = record.stock_id
                new_stock_ids.append(stock_id)

            entry = writer.append(
                stock_id=stock_id,
                kind=TransactionType.RECEIPT,
                delta=quantity,
                reference=import_reference(row),
                actor=actor,
                transaction_date=_receipt_date(row),
            )
            ledger_ids.append(entry.ledger_id)

        result = ImportResult(
            batch_id=batch_id,
            new_stock_ids=tuple(new_stock_ids),
            ledger_ids=tuple(ledger_ids),
            merged_count=len(previews) - len(new_stock_ids),
            new_count=len(new_stock_ids),
        )
        logger.info(
            "import_committed",
            extra={
                "batch_id": batch_id,
                "row_count": len(previews),
                "new_count": result.new_count,
                "merged_count": result.merged_count,
            },
        )
        return result
