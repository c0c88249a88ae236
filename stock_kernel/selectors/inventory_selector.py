"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: The aggregation engine.  Answers "how much is available
    under this identity", builds the per-identity inventory view, counts
    low-stock identities and computes dashboard statistics.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Available quantity = SUM(quantity_change) over every ledger entry
      whose physical record shares the logical identity.  No stored
      balances; an identity with no entries has quantity 0.
    - Identity grouping uses domain.identity.normalize on the raw stored
      text, recomputed on every call.
    - Quantities are summed with quantity_sum and folded with
      add_quantities, so totals are exact on every backend.
    - Effective threshold of an identity = MAX(min_quantity) over its
      physical records, a missing threshold counting as 0.
    - Representative record = latest created_at, ties broken by greatest
      stock_id.
    - Received/issued totals exclude entries that a REVERSAL points at
      through reverses_ledger_id.

Aggregation strategy:
    SQL sums ledger deltas per physical record (GROUP BY stock_id); the
    per-record rows are then folded by logical identity in Python, since
    whitespace collapsing has no portable SQL spelling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, func, select, true

from stock_kernel.db.types import ZERO, add_quantities, quantity_sum, to_quantity
from stock_kernel.domain.dtos import InventoryItem, Page, Stats
from stock_kernel.domain.identity import IDENTITY_FIELDS, LogicalIdentity
from stock_kernel.exceptions import StockRecordNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.models.threshold import StockThreshold
from stock_kernel.selectors.base import BaseSelector, search_predicate, validate_page

logger = get_logger("selectors.inventory")

INVENTORY_SEARCH_COLUMNS = (
    StockMaster.part_name,
    StockMaster.project,
    StockMaster.supplier_name,
    StockMaster.invoice,
)


@dataclass
class _IdentityGroup:
    """Mutable accumulator for one logical identity."""

    identity: LogicalIdentity
    representative: StockMaster
    quantity: Decimal = ZERO
    min_quantity: Decimal = ZERO
    last_movement_at: datetime | None = None
    stock_ids: list[str] = field(default_factory=list)

    def add(
        self,
        record: StockMaster,
        quantity: Decimal,
        min_quantity: Decimal,
        last_movement_at: datetime | None,
    ) -> None:
        self.stock_ids.append(record.stock_id)
        self.quantity = add_quantities(self.quantity, quantity)
        self.min_quantity = max(self.min_quantity, min_quantity)
        if last_movement_at is not None and (
            self.last_movement_at is None or last_movement_at > self.last_movement_at
        ):
            self.last_movement_at = last_movement_at
        if (record.created_at, record.stock_id) > (
            self.representative.created_at,
            self.representative.stock_id,
        ):
            self.representative = record

    @property
    def is_low_stock(self) -> bool:
        return self.quantity < self.min_quantity

    def to_item(self) -> InventoryItem:
        rep = self.representative
        return InventoryItem(
            stock_id=rep.stock_id,
            project=rep.project,
            part_name=rep.part_name,
            description=rep.description,
            uom=rep.uom,
            location=rep.location,
            supplier_name=rep.supplier_name,
            invoice=rep.invoice,
            po_no=rep.po_no,
            remarks=rep.remarks,
            created_at=rep.created_at,
            available_quantity=self.quantity,
            min_quantity=self.min_quantity,
            last_movement_at=self.last_movement_at,
            record_count=len(self.stock_ids),
        )


class InventorySelector(BaseSelector):
    """
    Read-only aggregation over physical records and their ledger entries.

    Usage:
        selector = InventorySelector(session)
        qty = selector.available_quantity_for(stock_id)
        page = selector.inventory_page("bolt", page=1, page_size=20)
    """

    # =========================================================================
    # Identity resolution
    # =========================================================================

    def identity_of(self, stock_id: str) -> LogicalIdentity:
        """
        Logical identity of a physical record.

        Raises:
            StockRecordNotFoundError: If stock_id is unknown.
        """
        record = self.session.get(StockMaster, stock_id)
        if record is None:
            raise StockRecordNotFoundError(stock_id)
        return LogicalIdentity.of(record)

    def _identity_candidates(self, identity: LogicalIdentity):
        """
        SQL predicate admitting every record that may share ``identity``.

        SQLite compares with the connection's ``stock_normalize`` function,
        which is normalize() itself.  Elsewhere each ASCII token of each
        normalized field must appear in the lowercased raw text; a raw
        record can only normalize to the identity if it contains every
        token verbatim up to case.  Non-ASCII tokens are skipped because
        database and Python case folding may disagree on them.
        """
        columns = [getattr(StockMaster, name) for name in IDENTITY_FIELDS]
        values = identity.as_tuple()
        if self.session.get_bind().dialect.name == "sqlite":
            return and_(
                *(func.stock_normalize(col) == value for col, value in zip(columns, values))
            )
        return and_(
            true(),
            *(
                func.lower(col).contains(token, autoescape=True)
                for col, value in zip(columns, values)
                for token in value.split()
                if token.isascii()
            ),
        )

    def stock_ids_for(self, identity: LogicalIdentity) -> list[str]:
        """
        Every physical record id sharing ``identity``.

        Candidates are narrowed in SQL; normalize() has the final say.
        """
        rows = self.session.execute(
            select(
                StockMaster.stock_id,
                *(getattr(StockMaster, name) for name in IDENTITY_FIELDS),
            ).where(self._identity_candidates(identity))
        ).all()
        return [row.stock_id for row in rows if LogicalIdentity.of(row) == identity]

    def identity_index(self) -> dict[LogicalIdentity, str]:
        """
        Map every logical identity to its representative record id.

        The representative is the latest created record of the identity.
        """
        records = self.session.execute(
            select(StockMaster).order_by(
                StockMaster.created_at.desc(), StockMaster.stock_id.desc()
            )
        ).scalars()
        index: dict[LogicalIdentity, str] = {}
        for record in records:
            index.setdefault(LogicalIdentity.of(record), record.stock_id)
        return index

    def find_record_for(self, identity: LogicalIdentity) -> str | None:
        """An existing physical record id with ``identity``, or None."""
        return self.identity_index().get(identity)

    # =========================================================================
    # Quantities
    # =========================================================================

    def available_quantity(self, identity: LogicalIdentity) -> Decimal:
        """Sum of ledger deltas across all records sharing ``identity``."""
        stock_ids = self.stock_ids_for(identity)
        if not stock_ids:
            return ZERO
        total = self.session.execute(
            select(quantity_sum(StockLedgerEntry.quantity_change)).where(
                StockLedgerEntry.stock_id.in_(stock_ids)
            )
        ).scalar()
        return to_quantity(total)

    def available_quantity_for(self, stock_id: str) -> Decimal:
        """
        Available quantity of the identity that ``stock_id`` belongs to.

        Raises:
            StockRecordNotFoundError: If stock_id is unknown.
        """
        return self.available_quantity(self.identity_of(stock_id))

    # =========================================================================
    # Grouped views
    # =========================================================================

    def _groups(self) -> list[_IdentityGroup]:
        ledger = (
            select(
                StockLedgerEntry.stock_id.label("stock_id"),
                quantity_sum(StockLedgerEntry.quantity_change).label("quantity"),
                func.max(StockLedgerEntry.transaction_date).label("last_movement_at"),
            )
            .group_by(StockLedgerEntry.stock_id)
            .subquery()
        )
        rows = self.session.execute(
            select(
                StockMaster,
                ledger.c.quantity,
                ledger.c.last_movement_at,
                StockThreshold.min_quantity,
            )
            .outerjoin(ledger, ledger.c.stock_id == StockMaster.stock_id)
            .outerjoin(StockThreshold, StockThreshold.stock_id == StockMaster.stock_id)
        ).all()

        groups: dict[LogicalIdentity, _IdentityGroup] = {}
        for record, quantity, last_movement_at, min_quantity in rows:
            identity = LogicalIdentity.of(record)
            group = groups.get(identity)
            if group is None:
                group = groups[identity] = _IdentityGroup(identity, record)
            group.add(
                record,
                to_quantity(quantity),
                to_quantity(min_quantity),
                last_movement_at,
            )
        return list(groups.values())

    def _matching_stock_ids(self, search: str | None) -> set[str] | None:
        predicate = search_predicate(search, *INVENTORY_SEARCH_COLUMNS)
        if predicate is None:
            return None
        return set(
            self.session.execute(select(StockMaster.stock_id).where(predicate)).scalars()
        )

    def inventory_page(
        self,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Page[InventoryItem]:
        """
        One summary row per logical identity, newest representative first.

        An identity matches ``search`` if any of its physical records match
        on part name, project, supplier or invoice.  total_count is the
        number of matching identities, not records.

        Raises:
            PaginationError: On an out-of-range page request.
        """
        offset = validate_page(page, page_size, self.max_page_size)
        matching = self._matching_stock_ids(search)

        groups = self._groups()
        if matching is not None:
            groups = [g for g in groups if matching.intersection(g.stock_ids)]
        groups.sort(
            key=lambda g: (g.representative.created_at, g.representative.stock_id),
            reverse=True,
        )

        items = tuple(g.to_item() for g in groups[offset:offset + page_size])
        logger.debug(
            "inventory_page_read",
            extra={"page": page, "page_size": page_size, "total_count": len(groups)},
        )
        return Page(items=items, total_count=len(groups), page=page, page_size=page_size)

    def low_stock_identities(self) -> int:
        """Number of identities whose available quantity is below threshold."""
        return sum(1 for group in self._groups() if group.is_low_stock)

    # =========================================================================
    # Statistics
    # =========================================================================

    def _unreversed_total(self, kind: TransactionType) -> Decimal:
        reversed_ids = select(StockLedgerEntry.reverses_ledger_id).where(
            StockLedgerEntry.reverses_ledger_id.is_not(None)
        )
        total = self.session.execute(
            select(quantity_sum(StockLedgerEntry.quantity_change)).where(
                StockLedgerEntry.transaction_type == kind.value,
                StockLedgerEntry.ledger_id.not_in(reversed_ids),
            )
        ).scalar()
        return to_quantity(total).copy_abs()

    def stats(self) -> Stats:
        """
        Dashboard statistics.

        total_received and total_issued are magnitudes (both >= 0) of the
        RECEIPT and ISSUE entries that have not been reversed.
        """
        groups = self._groups()
        return Stats(
            unique_identity_count=len(groups),
            total_received=self._unreversed_total(TransactionType.RECEIPT),
            total_issued=self._unreversed_total(TransactionType.ISSUE),
            low_stock_count=sum(1 for g in groups if g.is_low_stock),
        )
