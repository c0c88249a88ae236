"""
Module: stock_kernel.models.identity_lock
Responsibility: One lock row per logical identity, used to serialize
    quantity-reducing movements (issues, negative reversals) that share an
    identity.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - identity_key is the SHA-256 of the normalized identity tuple.  It
      names the lock; it is not an identity column on stock_master.
    - version increases by one every time the lock is taken, so the write
      itself acquires the row (or database) lock before availability is
      read.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class IdentityLock(Base):
    """Lock row for one logical identity."""

    __tablename__ = "stock_identity_locks"

    identity_key: Mapped[str] = mapped_column(String(64), primary_key=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
