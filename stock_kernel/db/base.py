"""
Module: stock_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.
    Provides the type annotation map that keeps column types consistent
    across the schema.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Decimal precision: type_annotation_map maps Python Decimal to
      Quantity (NUMERIC(38, 9), exact text on SQLite).  NEVER use float
      for quantities.
    - Timestamps are always timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

from stock_kernel.db.types import SEQUENCE_TYPE, Quantity, UTCDateTime

# Deterministic constraint names so migrations and error translation agree
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - Decimal maps to Quantity.
        - datetime maps to UTCDateTime (aware UTC on every backend).
        - int maps to a BigInteger that still autoincrements on SQLite.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Quantity(),
        datetime: UTCDateTime(),
        int: SEQUENCE_TYPE,
    }
