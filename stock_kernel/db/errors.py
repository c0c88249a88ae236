"""
Module: stock_kernel.db.errors
Responsibility: Translate driver and SQLAlchemy failures at the store
    boundary into the kernel's StoreError taxonomy.
Architecture position: Kernel > DB.  Used by the application facade that
    owns transaction boundaries.

Classification:
    ConflictError (retryable)
        - PostgreSQL 40001 serialization_failure
        - PostgreSQL 40P01 deadlock_detected
        - PostgreSQL 55P03 lock_not_available (lock_timeout expired)
        - PostgreSQL 57014 query_canceled (statement_timeout expired)
        - SQLite "database is locked" / "database table is locked"
        - Connection pool checkout timeout
    StoreUnavailableError
        - Any other operational, interface or connection failure

IntegrityError is NOT translated here: constraint outcomes carry domain
meaning (e.g. a duplicate reversal) and are handled by the service that
caused them.
"""

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)

from stock_kernel.exceptions import ConflictError, StoreError, StoreUnavailableError

CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})

_SQLITE_CONFLICT_MESSAGES = ("database is locked", "database table is locked")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    # psycopg 3 exposes sqlstate, psycopg2 exposes pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_translatable(exc: BaseException) -> bool:
    """True for store failures that translate_store_error() classifies."""
    return isinstance(exc, SQLAlchemyError) and not isinstance(exc, IntegrityError)


def translate_store_error(exc: SQLAlchemyError, operation: str) -> StoreError:
    """
    Map a store failure to ConflictError or StoreUnavailableError.

    Args:
        exc: The SQLAlchemy exception raised inside the transaction.
        operation: Name of the kernel operation (for context).

    Returns:
        The kernel exception to raise (caller chains it with ``from exc``).
    """
    if isinstance(exc, PoolTimeoutError):
        return ConflictError(operation, "timed out waiting for a store connection")

    if isinstance(exc, DBAPIError):
        state = _sqlstate(exc)
        if state in CONFLICT_SQLSTATES:
            return ConflictError(operation, f"sqlstate {state}: {exc.orig}")
        message = str(exc.orig).lower()
        if any(m in message for m in _SQLITE_CONFLICT_MESSAGES):
            return ConflictError(operation, str(exc.orig))
        if exc.connection_invalidated:
            return StoreUnavailableError(operation, "connection lost")
        return StoreUnavailableError(operation, str(exc.orig))

    return StoreUnavailableError(operation, str(exc))
