"""ThresholdService tests."""

from decimal import Decimal

import pytest

from stock_kernel.exceptions import InvalidQuantityError, StockRecordNotFoundError
from stock_kernel.models.threshold import StockThreshold


class TestSetThreshold:
    def test_insert_then_replace(self, thresholds, create_record, session, deterministic_clock):
        record = create_record()
        assert thresholds.set_threshold(record.stock_id, "5") == Decimal("5")

        deterministic_clock.advance(10)
        thresholds.set_threshold(record.stock_id, 12)

        row = session.get(StockThreshold, record.stock_id)
        assert row.min_quantity == Decimal("12")
        assert row.updated_at == deterministic_clock.now()

    def test_zero_allowed(self, thresholds, create_record):
        record = create_record()
        assert thresholds.set_threshold(record.stock_id, 0) == Decimal("0")

    @pytest.mark.parametrize("value", ["-1", "x", 2.5, True])
    def test_rejects_bad_values(self, thresholds, create_record, value):
        record = create_record()
        with pytest.raises(InvalidQuantityError):
            thresholds.set_threshold(record.stock_id, value)

    def test_unknown_record(self, thresholds):
        with pytest.raises(StockRecordNotFoundError):
            thresholds.set_threshold("missing", 1)
