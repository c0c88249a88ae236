"""
StockLedgerService -- application facade over the stock kernel.

Responsibility:
    The surface the application layer (CLI, UI bridge, batch jobs) calls.
    Owns transaction boundaries: every public method runs in exactly one
    transaction, committed on success and rolled back on any failure.
    Translates store failures into the kernel taxonomy and retries
    ConflictError with fresh reads.

Architecture position:
    Kernel > Services -- the outermost kernel layer.  Composes
    MovementService, ImportService, ThresholdService, InventorySelector and
    HistorySelector around a session factory passed in by the caller.

Invariants enforced:
    - One public call = one transaction.  A failure leaves previously
      committed state untouched and nothing of the failed call visible.
    - ConflictError is retried up to max_conflict_retries times, each
      attempt a fresh transaction.  Every other error propagates at once.
    - Domain errors (InvalidQuantity, InsufficientStock, AlreadyReversed,
      NotFound, query errors) are never retried.

Failure modes:
    - StoreUnavailableError: connection or driver failure.
    - ConflictError: retries exhausted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.engine import session_scope
from stock_kernel.db.errors import is_translatable, translate_store_error
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    HistoryEntry,
    ImportResult,
    ImportRow,
    InventoryItem,
    MovementResult,
    Page,
    PreviewEntry,
    Stats,
)
from stock_kernel.domain.identity import LogicalIdentity
from stock_kernel.exceptions import ConflictError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.stock_ledger import TransactionType
from stock_kernel.selectors.history_selector import HistorySelector
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.services.import_service import ImportService
from stock_kernel.services.movement_service import (
    MANUAL_ADDITION_REFERENCE,
    MovementService,
)
from stock_kernel.services.threshold_service import ThresholdService

logger = get_logger("services.stock_ledger")

T = TypeVar("T")


class StockLedgerService:
    """
    Transactional facade for every ledger operation.

    Usage:
        ledger = StockLedgerService(session_factory)
        previews = ledger.preview(rows)
        ledger.commit(previews, actor="amy")
        ledger.issue(stock_id, Decimal("5"), "WO-17", None, actor="amy")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_conflict_retries: int = 3,
        conflict_backoff_ms: int = 50,
        default_page_size: int = 50,
        max_page_size: int = 500,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_conflict_retries = max_conflict_retries
        self._conflict_backoff_ms = conflict_backoff_ms
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._sleep = sleep

    # =========================================================================
    # Transaction runner
    # =========================================================================

    def _run(self, operation: str, work: Callable[[Session], T], actor: str | None = None) -> T:
        """
        Run ``work`` in its own transaction, retrying on ConflictError.

        Store failures are translated; everything else propagates as is.
        """
        attempt = 0
        with LogContext.bind(correlation_id=str(uuid4()), actor=actor):
            while True:
                attempt += 1
                try:
                    with session_scope(self._session_factory) as session:
                        return work(session)
                except SQLAlchemyError as exc:
                    if not is_translatable(exc):
                        raise
                    error, cause = translate_store_error(exc, operation), exc
                except ConflictError as exc:
                    error, cause = exc, exc.__cause__

                if isinstance(error, ConflictError) and attempt <= self._max_conflict_retries:
                    logger.warning(
                        "conflict_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_retries": self._max_conflict_retries,
                            "reason": error.reason,
                        },
                    )
                    self._sleep(self._conflict_backoff_ms * attempt / 1000)
                    continue
                logger.error(
                    "store_operation_failed",
                    extra={"operation": operation, "error_code": error.code},
                )
                raise error from cause

    def _movements(self, session: Session) -> MovementService:
        return MovementService(
            session,
            self._clock,
            inventory=InventorySelector(session, self._max_page_size),
        )

    def _page_size(self, page_size: int | None) -> int:
        return self._default_page_size if page_size is None else page_size

    # =========================================================================
    # Merge-import
    # =========================================================================

    def preview(self, rows: list[ImportRow]) -> list[PreviewEntry]:
        """Classify rows as MERGED or NEW.  Read-only."""
        return self._run(
            "preview",
            lambda session: ImportService(session, self._clock).preview(rows),
        )

    def commit(self, previews: list[PreviewEntry], actor: str | None) -> ImportResult:
        """Commit a previewed batch atomically: every row or none."""
        batch_id = str(uuid4())

        def work(session: Session) -> ImportResult:
            with LogContext.bind(batch_id=batch_id):
                return ImportService(session, self._clock).commit(
                    previews, actor, batch_id=batch_id
                )

        return self._run("commit", work, actor=actor)

    def add_stock_entry(self, row: ImportRow, actor: str | None) -> ImportResult:
        """
        Receive a single row: classify it and commit it in one transaction.

        Unlike preview() followed by commit(), the classification cannot go
        stale between the two steps.
        """
        batch_id = str(uuid4())

        def work(session: Session) -> ImportResult:
            service = ImportService(session, self._clock)
            with LogContext.bind(batch_id=batch_id):
                return service.commit(service.preview([row]), actor, batch_id=batch_id)

        return self._run("add_stock_entry", work, actor=actor)

    # =========================================================================
    # Movements
    # =========================================================================

    def receive(
        self,
        stock_id: str,
        quantity: Decimal | int | str,
        actor: str | None,
        reference: str = MANUAL_ADDITION_REFERENCE,
        reason: str | None = None,
    ) -> MovementResult:
        def work(session: Session) -> MovementResult:
            with LogContext.bind(stock_id=stock_id):
                return self._movements(session).receive(
                    stock_id, quantity, actor, reference=reference, reason=reason
                )

        return self._run("receive", work, actor=actor)

    def issue(
        self,
        stock_id: str,
        quantity: Decimal | int | str,
        reference: str | None,
        reason: str | None,
        actor: str | None,
    ) -> MovementResult:
        def work(session: Session) -> MovementResult:
            with LogContext.bind(stock_id=stock_id):
                return self._movements(session).issue(
                    stock_id, quantity, reference, reason, actor
                )

        return self._run("issue", work, actor=actor)

    def reverse(
        self,
        ledger_id: int,
        actor: str | None,
        reason: str | None = None,
    ) -> MovementResult:
        def work(session: Session) -> MovementResult:
            with LogContext.bind(target_ledger_id=ledger_id):
                return self._movements(session).reverse(ledger_id, actor, reason)

        return self._run("reverse", work, actor=actor)

    def set_threshold(self, stock_id: str, min_quantity: Decimal | int | str) -> Decimal:
        return self._run(
            "set_threshold",
            lambda session: ThresholdService(session, self._clock).set_threshold(
                stock_id, min_quantity
            ),
        )

    # =========================================================================
    # Read views
    # =========================================================================

    def available_quantity(self, identity: LogicalIdentity) -> Decimal:
        return self._run(
            "available_quantity",
            lambda session: InventorySelector(session).available_quantity(identity),
        )

    def available_quantity_for(self, stock_id: str) -> Decimal:
        return self._run(
            "available_quantity_for",
            lambda session: InventorySelector(session).available_quantity_for(stock_id),
        )

    def inventory_page(
        self,
        search: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page[InventoryItem]:
        return self._run(
            "inventory_page",
            lambda session: InventorySelector(session, self._max_page_size).inventory_page(
                search, page, self._page_size(page_size)
            ),
        )

    def low_stock_identities(self) -> int:
        return self._run(
            "low_stock_identities",
            lambda session: InventorySelector(session).low_stock_identities(),
        )

    def stats(self) -> Stats:
        return self._run("stats", lambda session: InventorySelector(session).stats())

    def history_page(
        self,
        search: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page[HistoryEntry]:
        return self._run(
            "history_page",
            lambda session: HistorySelector(session, self._max_page_size).history_page(
                search, page, self._page_size(page_size)
            ),
        )

    def history_export(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        kind: str | TransactionType | None = None,
    ) -> list[HistoryEntry]:
        return self._run(
            "history_export",
            lambda session: HistorySelector(session).history_export(
                date_from, date_to, kind
            ),
        )

    def get_entry(self, ledger_id: int) -> HistoryEntry:
        return self._run(
            "get_entry",
            lambda session: HistorySelector(session).get_entry(ledger_id),
        )
