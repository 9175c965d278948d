"""
Module: ohada_kernel.db.types
Responsibility: The exact money column type and the money helpers shared by
    models, services and selectors.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - No floats anywhere in the kernel.  Amounts are Decimal in Python and
      exact in storage: NUMERIC(38, 9) on PostgreSQL, decimal text on SQLite
      (whose NUMERIC affinity would round through a binary float).
    - round_money() is the only sanctioned rounding function for amounts that
      leave the kernel (reports, audit export).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

# 38 digits total, 9 decimal places
MONEY_PRECISION = 38
MONEY_SCALE = 9
_MONEY_QUANTUM = Decimal(10) ** -MONEY_SCALE

# XOF has no minor unit in circulation, but statements and the audit file
# render two decimals.
REPORT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_money(value) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal amount.

    Floats are refused: their binary representation is not exact.

    Raises:
        ValueError: If the value is a float or not numeric.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Amounts must be Decimal, int or str, got {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
    else:
        raise ValueError(f"Invalid amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = REPORT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary amount to the given number of decimal places."""
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


class MoneyType(TypeDecorator):
    """
    Decimal amount stored without loss on every backend.

    Guarantees:
        - process_bind_param: amount quantized to 9 places; sent as a
          Decimal to server databases and as plain decimal text to SQLite.
        - process_result_value: always a Decimal equal to what was bound.

    Amounts stored as text on SQLite cannot take part in SQL arithmetic or
    ordering; the kernel sums amounts in Python.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(MONEY_PRECISION + 2))
        return dialect.type_descriptor(Numeric(MONEY_PRECISION, MONEY_SCALE))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = to_money(value).quantize(_MONEY_QUANTUM)
        if dialect.name == "sqlite":
            return format(amount, "f")
        return amount

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


Money = Annotated[Decimal, MoneyType()]
