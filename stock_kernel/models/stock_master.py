"""
Module: stock_kernel.models.stock_master
Responsibility: ORM persistence for physical records -- the identity
    containers that ledger entries point at.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: a physical record is created once (first receipt of an
      unseen identity) and never updated or deleted (ORM listeners in
      db/immutability.py).
    - Raw text is stored exactly as received.  Normalized identity is
      derived at query time and never persisted on this row.

Audit relevance:
    Provenance columns (supplier, invoice, PO, remarks) identify the
    batch a record came from; several records may share one logical
    identity.
"""

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class StockMaster(Base):
    """
    Physical record ("stock_master" row).

    Contract:
        Immutable once created.  Identity attributes are project, part name,
        description, unit of measure and location; everything else is
        provenance.
    """

    __tablename__ = "stock_master"

    __table_args__ = (
        Index("idx_stock_master_created_at", "created_at"),
        Index("idx_stock_master_part_name", "part_name"),
    )

    # uuid4 text, generated by LedgerWriter
    stock_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Identity attributes (raw)
    project: Mapped[str] = mapped_column(String(255), nullable=False)
    part_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    uom: Mapped[str] = mapped_column(String(50), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)

    # Provenance
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    invoice: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    po_no: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    remarks: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<StockMaster {self.stock_id} {self.part_name!r} @ {self.location!r}>"
