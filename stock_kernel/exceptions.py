"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (CLI, application layer, batch importers) must react
to failures precisely: an over-issue is shown to the operator, a conflict is
retried, a missing record is a 404.  Parsing message strings for that is
fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (ids, requested vs. available)

Example:
    try:
        ledger.issue(stock_id, Decimal("5"), reference="WO-17", actor="amy")
    except InsufficientStockError as e:
        show(f"Only {e.available} left of {e.requested} requested")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |   +-- InsufficientStockError
    |
    +-- ReversalError
    |   +-- AlreadyReversedError
    |
    +-- NotFoundError
    |   +-- StockRecordNotFoundError
    |   +-- LedgerEntryNotFoundError
    |
    +-- StoreError
    |   +-- StoreUnavailableError
    |   +-- ConflictError              (retryable)
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- QueryError
        +-- PaginationError
        +-- InvalidFilterError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                  | When Raised
--------------|-----------------------|------------------------------------------
Quantity      | INVALID_QUANTITY      | Non-positive, non-finite or malformed amount
              | INSUFFICIENT_STOCK    | Movement exceeds computed availability
--------------|-----------------------|------------------------------------------
Reversal      | ALREADY_REVERSED      | Entry already has a reversal
--------------|-----------------------|------------------------------------------
Not found     | STOCK_NOT_FOUND       | Unknown physical record id
              | LEDGER_ENTRY_NOT_FOUND| Unknown ledger entry id
--------------|-----------------------|------------------------------------------
Store         | STORE_UNAVAILABLE     | Connection / transaction failure
              | CONFLICT              | Lock timeout, deadlock, serialization
--------------|-----------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION| UPDATE/DELETE of an append-only row
--------------|-----------------------|------------------------------------------
Query         | INVALID_PAGE          | page < 1 or page_size out of range
              | INVALID_FILTER        | Unknown filter value (e.g. export kind)

===============================================================================
"""

from decimal import Decimal


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"
    retryable: bool = False


# Quantity-related exceptions


class QuantityError(StockKernelError):
    """Base exception for quantity-related errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """Quantity is non-positive, non-finite, too precise, or not a number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, value: object, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid quantity {value!r}: {reason}")


class InsufficientStockError(QuantityError):
    """Requested movement exceeds the quantity available for the identity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, stock_id: str, requested: Decimal, available: Decimal):
        self.stock_id = stock_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {stock_id}: "
            f"requested {requested}, available {available}"
        )


# Reversal-related exceptions


class ReversalError(StockKernelError):
    """Base exception for reversal-related errors."""

    code: str = "REVERSAL_ERROR"


class AlreadyReversedError(ReversalError):
    """A REVERSAL entry already references this ledger entry."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, ledger_id: int):
        self.ledger_id = ledger_id
        super().__init__(f"Ledger entry {ledger_id} has already been reversed")


# Lookup exceptions


class NotFoundError(StockKernelError):
    """Base exception for unknown ids."""

    code: str = "NOT_FOUND"


class StockRecordNotFoundError(NotFoundError):
    """Physical record with given stock id does not exist."""

    code: str = "STOCK_NOT_FOUND"

    def __init__(self, stock_id: str):
        self.stock_id = stock_id
        super().__init__(f"Stock record not found: {stock_id}")


class LedgerEntryNotFoundError(NotFoundError):
    """Ledger entry with given id does not exist."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, ledger_id: int):
        self.ledger_id = ledger_id
        super().__init__(f"Ledger entry not found: {ledger_id}")


# Store-related exceptions


class StoreError(StockKernelError):
    """Base exception for failures at the store boundary."""

    code: str = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """Connection or transaction failure that is not a concurrency conflict."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")


class ConflictError(StoreError):
    """
    Transaction aborted by concurrent activity.

    Raised for lock timeouts, deadlocks and serialization failures.
    Callers should retry the whole operation with fresh data.
    """

    code: str = "CONFLICT"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Conflict during {operation}: {reason} (retry with fresh data)"
        )


# Immutability-related exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Physical records and ledger entries are never updated or deleted;
    corrections are new ledger entries.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Query-related exceptions


class QueryError(StockKernelError):
    """Base exception for malformed read requests."""

    code: str = "QUERY_ERROR"


class PaginationError(QueryError):
    """Page number or page size out of range."""

    code: str = "INVALID_PAGE"

    def __init__(self, page: int, page_size: int, max_page_size: int):
        self.page = page
        self.page_size = page_size
        self.max_page_size = max_page_size
        super().__init__(
            f"Invalid page request page={page} page_size={page_size} "
            f"(page >= 1, 1 <= page_size <= {max_page_size})"
        )


class InvalidFilterError(QueryError):
    """Filter value is not recognised."""

    code: str = "INVALID_FILTER"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for filter {field}: {value!r}")
