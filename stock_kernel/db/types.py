"""
Module: stock_kernel.db.types
Responsibility: Column types and quantity helpers shared by every
    model and service.  Centralizes precision so that the ledger, the
    selectors and the API all agree on what a quantity is.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Invariants enforced:
    - No floats anywhere, including in storage.  Quantities are Decimal
      fitting NUMERIC(38, 9); the Quantity column type keeps them exact on
      SQLite as well as PostgreSQL.
    - coerce_quantity() is the ONLY sanctioned way to turn caller input
      into a movement quantity.

Failure modes:
    - InvalidQuantityError for malformed, non-finite, non-positive or
      over-precise input.
"""

from datetime import UTC
from decimal import Context, Decimal, InvalidOperation

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import GenericFunction
from sqlalchemy.types import TypeDecorator

from stock_kernel.exceptions import InvalidQuantityError


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    Contract:
        Values are converted to UTC on the way in.  Backends that drop the
        offset (SQLite) hand back naive values, which are re-tagged as UTC
        on the way out, so callers always see aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Monotonic ledger sequence.  SQLite only autoincrements INTEGER keys.
SEQUENCE_TYPE = BigInteger().with_variant(Integer(), "sqlite")

QUANTITY_PRECISION = 38
QUANTITY_DECIMAL_PLACES = 9
QUANTITY_INTEGER_DIGITS = QUANTITY_PRECISION - QUANTITY_DECIMAL_PLACES
QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)
ZERO = Decimal("0")

# Wide enough that sums of many full-width quantities never round.
QUANTITY_CONTEXT = Context(prec=QUANTITY_PRECISION * 2)


def to_quantity(value: Decimal | int | str | None) -> Decimal:
    """
    Normalize a value read back from the store into a Decimal.

    Aggregates over an empty set come back as None and are treated as zero.
    SQLite hands quantities back as text; both forms are quantized to
    QUANTITY_DECIMAL_PLACES so values compare exactly.
    """
    if value is None:
        return ZERO
    return Decimal(value).quantize(QUANTUM, context=QUANTITY_CONTEXT)


def add_quantities(left: Decimal, right: Decimal) -> Decimal:
    """Exact sum of two quantities, never rounded by the thread's context."""
    return QUANTITY_CONTEXT.add(left, right)


class Quantity(TypeDecorator):
    """
    Fixed-point quantity column.

    Contract:
        PostgreSQL stores NUMERIC(38, 9).  SQLite has no exact decimal
        type (NUMERIC affinity keeps REAL), so there the value is stored as
        plain decimal text.  Either way the application reads back exactly
        the Decimal it wrote.  Sum quantities with quantity_sum(), never
        func.sum(), so SQLite adds the text exactly too.
    """

    impl = Numeric(QUANTITY_PRECISION, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(QUANTITY_PRECISION + 2))
        return dialect.type_descriptor(
            Numeric(QUANTITY_PRECISION, QUANTITY_DECIMAL_PLACES, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = to_quantity(value)
        if dialect.name == "sqlite":
            return format(value, "f")
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return to_quantity(value)


class quantity_sum(GenericFunction):
    """SUM over a Quantity column, exact on every backend."""

    type = Quantity()
    inherit_cache = True


@compiles(quantity_sum)
def _compile_quantity_sum(element, compiler, **kw):
    return f"sum({compiler.process(element.clauses, **kw)})"


@compiles(quantity_sum, "sqlite")
def _compile_quantity_sum_sqlite(element, compiler, **kw):
    return f"decimal_sum({compiler.process(element.clauses, **kw)})"


class DecimalSumAggregate:
    """
    SQLite aggregate behind ``decimal_sum``.

    Registered on every SQLite connection by db.engine.  NULLs are skipped
    and an empty group yields NULL, like SQL SUM.
    """

    def __init__(self):
        self.total: Decimal | None = None

    def step(self, value):
        if value is None:
            return
        self.total = add_quantities(self.total or ZERO, Decimal(value))

    def finalize(self):
        if self.total is None:
            return None
        return format(self.total, "f")


def coerce_quantity(value: Decimal | int | str) -> Decimal:
    """
    Validate and convert caller input into a movement quantity.

    Preconditions: value is a Decimal, int or numeric string.  Floats and
        booleans are rejected so binary rounding never enters the ledger.
    Postconditions: Returns a finite Decimal > 0 that fits NUMERIC(38, 9):
        at most QUANTITY_DECIMAL_PLACES fractional digits and at most
        QUANTITY_INTEGER_DIGITS integer digits.

    Raises:
        InvalidQuantityError: On any violation.
    """
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, str)):
        raise InvalidQuantityError(value, "expected Decimal, int or numeric string")

    try:
        quantity = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except InvalidOperation:
        raise InvalidQuantityError(value, "not a number") from None

    if not quantity.is_finite():
        raise InvalidQuantityError(value, "must be finite")
    if quantity <= ZERO:
        raise InvalidQuantityError(value, "must be greater than zero")
    check_precision(value, quantity)
    return quantity


def check_precision(value: object, quantity: Decimal) -> None:
    """
    Raise InvalidQuantityError unless ``quantity`` fits NUMERIC(38, 9).

    Shared by movement quantities and thresholds.
    """
    if quantity.as_tuple().exponent < -QUANTITY_DECIMAL_PLACES:
        raise InvalidQuantityError(
            value, f"at most {QUANTITY_DECIMAL_PLACES} decimal places"
        )
    if quantity != ZERO and quantity.adjusted() >= QUANTITY_INTEGER_DIGITS:
        raise InvalidQuantityError(
            value, f"at most {QUANTITY_INTEGER_DIGITS} integer digits"
        )
