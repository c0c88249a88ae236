"""
Module: stock_kernel.selectors.history_selector
Responsibility: Read-only views over the ledger: the paginated history
    screen, the date/kind filtered export, and single-entry lookup.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - is_already_reversed is true iff some REVERSAL entry carries this
      entry's ledger_id in reverses_ledger_id.  Reference text is display
      only and never parsed.
    - Rows are ordered by transaction_date desc, then ledger_id desc.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import exists, func, select
from sqlalchemy.orm import aliased

from stock_kernel.db.types import to_quantity
from stock_kernel.domain.dtos import HistoryEntry, Page
from stock_kernel.exceptions import InvalidFilterError, LedgerEntryNotFoundError
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.selectors.base import BaseSelector, search_predicate, validate_page

HISTORY_SEARCH_COLUMNS = (
    StockLedgerEntry.reference,
    StockLedgerEntry.transaction_type,
    StockLedgerEntry.optional_reason,
    StockLedgerEntry.created_by,
    StockMaster.part_name,
    StockMaster.description,
)

ALL_KINDS = "All"


def parse_kind(kind: str | TransactionType | None) -> TransactionType | None:
    """
    Export kind filter.  None, "" and "All" mean no filter.

    Raises:
        InvalidFilterError: For anything that is not a transaction kind.
    """
    if kind is None or isinstance(kind, TransactionType):
        return kind
    if not kind.strip() or kind.strip().lower() == ALL_KINDS.lower():
        return None
    try:
        return TransactionType(kind.strip().upper())
    except ValueError:
        raise InvalidFilterError("kind", kind) from None


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class HistorySelector(BaseSelector):
    """Ledger history queries with per-entry reversal flag."""

    def _base_query(self):
        reversal = aliased(StockLedgerEntry)
        is_reversed = (
            exists()
            .where(reversal.reverses_ledger_id == StockLedgerEntry.ledger_id)
            .correlate(StockLedgerEntry)
        )
        return select(
            StockLedgerEntry,
            StockMaster,
            is_reversed.label("is_already_reversed"),
        ).join(StockMaster, StockMaster.stock_id == StockLedgerEntry.stock_id)

    @staticmethod
    def _ordered(stmt):
        return stmt.order_by(
            StockLedgerEntry.transaction_date.desc(),
            StockLedgerEntry.ledger_id.desc(),
        )

    @staticmethod
    def _to_entries(rows) -> tuple[HistoryEntry, ...]:
        return tuple(
            HistoryEntry.from_model(
                entry,
                record,
                to_quantity(entry.quantity_change),
                bool(is_reversed),
            )
            for entry, record, is_reversed in rows
        )

    def history_page(
        self,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Page[HistoryEntry]:
        """
        Paginated ledger history, newest first.

        ``search`` matches reference, kind, reason, actor, part name or
        description (case-insensitive substring).

        Raises:
            PaginationError: On an out-of-range page request.
        """
        offset = validate_page(page, page_size, self.max_page_size)
        predicate = search_predicate(search, *HISTORY_SEARCH_COLUMNS)

        count_stmt = select(func.count()).select_from(StockLedgerEntry).join(
            StockMaster, StockMaster.stock_id == StockLedgerEntry.stock_id
        )
        stmt = self._base_query()
        if predicate is not None:
            count_stmt = count_stmt.where(predicate)
            stmt = stmt.where(predicate)

        total = self.session.execute(count_stmt).scalar_one()
        rows = self.session.execute(
            self._ordered(stmt).limit(page_size).offset(offset)
        ).all()
        return Page(
            items=self._to_entries(rows),
            total_count=total,
            page=page,
            page_size=page_size,
        )

    def history_export(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        kind: str | TransactionType | None = None,
    ) -> list[HistoryEntry]:
        """
        Every ledger entry in an inclusive date range, optionally one kind.

        date_from starts at 00:00 UTC of its day; date_to runs to the end
        of its day.

        Raises:
            InvalidFilterError: If ``kind`` is not a transaction kind.
        """
        kind_filter = parse_kind(kind)
        stmt = self._base_query()
        if date_from is not None:
            stmt = stmt.where(StockLedgerEntry.transaction_date >= _start_of_day(date_from))
        if date_to is not None:
            stmt = stmt.where(
                StockLedgerEntry.transaction_date
                < _start_of_day(date_to + timedelta(days=1))
            )
        if kind_filter is not None:
            stmt = stmt.where(StockLedgerEntry.transaction_type == kind_filter.value)

        return list(self._to_entries(self.session.execute(self._ordered(stmt)).all()))

    def get_entry(self, ledger_id: int) -> HistoryEntry:
        """
        One ledger entry.

        Raises:
            LedgerEntryNotFoundError: If ledger_id is unknown.
        """
        row = self.session.execute(
            self._base_query().where(StockLedgerEntry.ledger_id == ledger_id)
        ).first()
        if row is None:
            raise LedgerEntryNotFoundError(ledger_id)
        return self._to_entries([row])[0]
