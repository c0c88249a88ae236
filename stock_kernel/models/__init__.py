"""ORM models.  Importing this package registers every table on Base.metadata."""

from stock_kernel.models.identity_lock import IdentityLock
from stock_kernel.models.stock_ledger import StockLedgerEntry, TransactionType
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.models.threshold import StockThreshold

__all__ = [
    "IdentityLock",
    "StockLedgerEntry",
    "StockMaster",
    "StockThreshold",
    "TransactionType",
]
