"""
Module: stock_kernel.models.threshold
Responsibility: Minimum-quantity thresholds attached to physical records.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one threshold per physical record (primary key on stock_id).
    - Thresholds are configuration, not ledger data: they may be updated.

Notes:
    A logical identity's effective threshold is the MAX over its physical
    records' thresholds (missing threshold counts as 0).  This aggregation
    is computed by InventorySelector, never stored.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class StockThreshold(Base):
    """Low-stock threshold for one physical record."""

    __tablename__ = "stock_threshold"

    stock_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stock_master.stock_id"),
        primary_key=True,
    )

    min_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    updated_at: Mapped[datetime] = mapped_column(nullable=False)
