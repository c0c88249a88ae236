"""Database layer - engine, base classes, types, and append-only enforcement."""

from stock_kernel.db.base import Base
from stock_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)
from stock_kernel.db.types import Quantity, UTCDateTime, coerce_quantity, quantity_sum, to_quantity

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
    "Quantity",
    "UTCDateTime",
    "coerce_quantity",
    "quantity_sum",
    "to_quantity",
]
