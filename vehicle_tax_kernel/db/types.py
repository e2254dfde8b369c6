"""
Module: vehicle_tax_kernel.db.types
Responsibility: Decimal column type and the rounding helpers shared by every
    model, engine and service.  Centralizes precision so that stored and
    displayed values are derived in exactly one place.
Architecture position: Kernel > DB.  May be imported by models/, engines,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats in tax arithmetic.  Every amount is a Decimal; float inputs
      are converted through their shortest repr (``Decimal(str(x))``).
    - Storage precision is STORAGE_DECIMAL_PLACES (9).  Amounts are carried
      at storage precision through the whole calculation so that the stored
      record satisfies its sum equation exactly.
    - Display precision is DISPLAY_DECIMAL_PLACES (2), half away from zero
      (ROUND_HALF_UP on Decimal).  round_money() is the only sanctioned
      display rounding function.

Failure modes:
    - ValueError from to_decimal() on non-numeric or non-finite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

STORAGE_DECIMAL_PLACES = 9
DISPLAY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_STORAGE_QUANTUM = Decimal(1).scaleb(-STORAGE_DECIMAL_PLACES)


class PortableDecimal(TypeDecorator):
    """
    Exact decimal column.

    Contract:
        Numeric(38, 9) on PostgreSQL.  On SQLite (which has no decimal
        storage class and would round-trip through float) values are kept
        as their exact string form.

    Guarantees:
        - Values read back compare equal to the Decimal that was written,
          once quantized to storage precision.
    """

    impl = Numeric(38, STORAGE_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, STORAGE_DECIMAL_PLACES))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = to_storage(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an int, float, str or Decimal into a finite Decimal.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises:
        ValueError: If the value is not numeric, is a bool, or is not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    else:
        raise ValueError(f"Not a numeric amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def to_storage(value: Decimal) -> Decimal:
    """Quantize a value to storage precision (9 places, half-up)."""
    return Decimal(value).quantize(_STORAGE_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_money(
    value: Decimal,
    decimal_places: int = DISPLAY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value for display.

    ROUND_HALF_UP on Decimal rounds ties away from zero, so
    ``round_money(Decimal("-0.125")) == Decimal("-0.13")``.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)
