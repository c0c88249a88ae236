"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and persist through ``session.flush()``, never
    ``session.commit()``.

Architecture position:
    Kernel > Services.  Every write-side service extends this class.

Invariants enforced:
    - Transaction boundaries belong to the caller (StockLedgerService or a
      test harness).  A service never commits or rolls back, so several
      services can take part in one atomic operation.
"""

from abc import ABC

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods; those belong in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
