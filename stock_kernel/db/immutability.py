"""
ORM-Level Append-Only Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Every stock movement must stay auditable.  Quantities are derived from the
ledger, so editing or deleting a ledger row silently rewrites history; the
only sanctioned correction is a new REVERSAL entry.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy unit-of-work flushes
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (database triggers)
    - Catches raw SQL, bulk UPDATE/DELETE statements, direct client access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable          | Why
------------------|-------------------------|----------------------------------
StockLedgerEntry  | ALWAYS (from creation)  | Sole source of quantity truth
StockMaster       | ALWAYS (from creation)  | Identity container for the ledger

StockThreshold and IdentityLock rows are mutable and not listed here.

===============================================================================
USAGE
===============================================================================

Registered by db.engine.build_session_factory().  To temporarily disable
(TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_ledger_entry_update(mapper, connection, target):
    """Ledger entries are never updated."""
    _block(
        "StockLedgerEntry",
        str(target.ledger_id),
        "UPDATE",
        "Ledger entries are append-only; post a reversal instead",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    """Ledger entries are never deleted."""
    _block(
        "StockLedgerEntry",
        str(target.ledger_id),
        "DELETE",
        "Ledger entries cannot be deleted; post a reversal instead",
    )


def _check_stock_master_update(mapper, connection, target):
    """Physical records are never updated."""
    _block(
        "StockMaster",
        str(target.stock_id),
        "UPDATE",
        "Physical records are immutable once created",
    )


def _check_stock_master_delete(mapper, connection, target):
    """Physical records are never deleted."""
    _block(
        "StockMaster",
        str(target.stock_id),
        "DELETE",
        "Physical records cannot be deleted",
    )


_LISTENERS = (
    ("StockLedgerEntry", "before_update", _check_ledger_entry_update),
    ("StockLedgerEntry", "before_delete", _check_ledger_entry_delete),
    ("StockMaster", "before_update", _check_stock_master_update),
    ("StockMaster", "before_delete", _check_stock_master_delete),
)


def _targets():
    from stock_kernel.models.stock_ledger import StockLedgerEntry
    from stock_kernel.models.stock_master import StockMaster

    return {"StockLedgerEntry": StockLedgerEntry, "StockMaster": StockMaster}


def register_immutability_listeners() -> None:
    """
    Register all append-only enforcement listeners.

    Idempotent: a listener already registered is not added twice.
    """
    targets = _targets()
    for model_name, event_name, listener_fn in _LISTENERS:
        model = targets[model_name]
        if not event.contains(model, event_name, listener_fn):
            event.listen(model, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that need to bypass layer 1 to verify
    layer 2.
    """
    targets = _targets()
    for model_name, event_name, listener_fn in _LISTENERS:
        model = targets[model_name]
        if event.contains(model, event_name, listener_fn):
            event.remove(model, event_name, listener_fn)
