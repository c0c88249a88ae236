"""
DTOs -- Immutable values crossing the kernel boundary.

Responsibility:
    Input rows from the import-parsing collaborator (ImportRow), merge
    classification (PreviewEntry), and every read-model the selectors and
    the facade hand back (InventoryItem, HistoryEntry, Stats, Page,
    MovementResult, ImportResult).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() converters exist for
    the selector layer; domain logic never sees ORM entities.

Data flow:
    ImportRow -> PreviewEntry -> (commit) -> ImportResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from stock_kernel.domain.identity import LogicalIdentity

if TYPE_CHECKING:
    from stock_kernel.models.stock_ledger import StockLedgerEntry
    from stock_kernel.models.stock_master import StockMaster

T = TypeVar("T")


@dataclass(frozen=True)
class ImportRow:
    """
    One externally sourced receipt row, already parsed into fields.

    ``quantity`` is validated on commit (Decimal, int or numeric string).
    ``received_on`` becomes the receipt's transaction date when present.
    """

    project: str
    part_name: str
    quantity: Decimal | int | str
    uom: str
    location: str
    description: str = ""
    supplier_name: str = ""
    invoice: str = ""
    po_no: str = ""
    remarks: str | None = None
    received_on: date | None = None

    @property
    def identity(self) -> LogicalIdentity:
        return LogicalIdentity.of(self)


class PreviewStatus(str, Enum):
    NEW = "NEW"
    MERGED = "MERGED"


@dataclass(frozen=True)
class PreviewEntry:
    """Merge classification of one ImportRow."""

    row: ImportRow
    status: PreviewStatus
    existing_id: str | None = None

    def __post_init__(self) -> None:
        if self.status == PreviewStatus.MERGED and not self.existing_id:
            raise ValueError("MERGED preview entry requires existing_id")
        if self.status == PreviewStatus.NEW and self.existing_id is not None:
            raise ValueError("NEW preview entry must not carry existing_id")


@dataclass(frozen=True)
class InventoryItem:
    """
    One row of the inventory view: a logical identity summarized.

    Descriptive attributes come from the representative (most recently
    created) physical record; quantities and thresholds span every record
    sharing the identity.
    """

    stock_id: str
    project: str
    part_name: str
    description: str
    uom: str
    location: str
    supplier_name: str
    invoice: str
    po_no: str
    remarks: str | None
    created_at: datetime
    available_quantity: Decimal
    min_quantity: Decimal
    last_movement_at: datetime | None
    record_count: int = 1

    @property
    def identity(self) -> LogicalIdentity:
        return LogicalIdentity.of(self)

    @property
    def is_low_stock(self) -> bool:
        return self.available_quantity < self.min_quantity


@dataclass(frozen=True)
class HistoryEntry:
    """A ledger entry joined with its physical record and reversal flag."""

    ledger_id: int
    stock_id: str
    transaction_type: str
    quantity_change: Decimal
    transaction_date: datetime
    reference: str | None
    optional_reason: str | None
    created_by: str | None
    created_at: datetime
    reverses_ledger_id: int | None
    project: str
    part_name: str
    description: str
    uom: str
    location: str
    is_already_reversed: bool

    @classmethod
    def from_model(
        cls,
        entry: StockLedgerEntry,
        record: StockMaster,
        quantity_change: Decimal,
        is_already_reversed: bool,
    ) -> HistoryEntry:
        return cls(
            ledger_id=entry.ledger_id,
            stock_id=entry.stock_id,
            transaction_type=entry.transaction_type,
            quantity_change=quantity_change,
            transaction_date=entry.transaction_date,
            reference=entry.reference,
            optional_reason=entry.optional_reason,
            created_by=entry.created_by,
            created_at=entry.created_at,
            reverses_ledger_id=entry.reverses_ledger_id,
            project=record.project,
            part_name=record.part_name,
            description=record.description,
            uom=record.uom,
            location=record.location,
            is_already_reversed=is_already_reversed,
        )


@dataclass(frozen=True)
class Stats:
    unique_identity_count: int
    total_received: Decimal
    total_issued: Decimal
    low_stock_count: int


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated view.  total_count spans every page."""

    items: tuple[T, ...]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.page_size) if self.total_count else 0


@dataclass(frozen=True)
class MovementResult:
    """Outcome of one appended movement."""

    ledger_id: int
    stock_id: str
    transaction_type: str
    quantity_change: Decimal
    transaction_date: datetime
    reverses_ledger_id: int | None = None


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a committed import batch."""

    batch_id: str
    new_stock_ids: tuple[str, ...] = field(default_factory=tuple)
    ledger_ids: tuple[int, ...] = field(default_factory=tuple)
    merged_count: int = 0
    new_count: int = 0
