"""
ThresholdService -- low-stock thresholds per physical record.

Thresholds are configuration rather than ledger data, so unlike the
ledger they are upserted in place.  The effective threshold of a logical
identity (MAX over its records) is computed by InventorySelector.
"""

from decimal import Decimal, InvalidOperation

from stock_kernel.db.types import check_precision
from stock_kernel.exceptions import InvalidQuantityError, StockRecordNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_master import StockMaster
from stock_kernel.models.threshold import StockThreshold
from stock_kernel.services.base import BaseService

logger = get_logger("services.threshold")


def _coerce_threshold(value: Decimal | int | str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, str)):
        raise InvalidQuantityError(value, "expected Decimal, int or numeric string")
    try:
        amount = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except InvalidOperation:
        raise InvalidQuantityError(value, "not a number") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidQuantityError(value, "threshold must be a finite value >= 0")
    check_precision(value, amount)
    return amount


class ThresholdService(BaseService):
    def set_threshold(self, stock_id: str, min_quantity: Decimal | int | str) -> Decimal:
        """
        Set (or replace) the minimum quantity of one physical record.

        Raises:
            InvalidQuantityError: If min_quantity is negative or malformed.
            StockRecordNotFoundError: If stock_id is unknown.
        """
        amount = _coerce_threshold(min_quantity)
        if self.session.get(StockMaster, stock_id) is None:
            raise StockRecordNotFoundError(stock_id)

        threshold = self.session.get(StockThreshold, stock_id)
        if threshold is None:
            threshold = StockThreshold(
                stock_id=stock_id,
                min_quantity=amount,
                updated_at=self.clock.now(),
            )
            self.session.add(threshold)
        else:
            threshold.min_quantity = amount
            threshold.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "threshold_set",
            extra={"stock_id": stock_id, "min_quantity": str(amount)},
        )
        return amount
