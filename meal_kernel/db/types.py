"""
Module: meal_kernel.db.types
Responsibility: Annotated column aliases and the money helpers every model,
    domain function and selector uses.  Centralizes currency precision and
    rounding so prices, budgets and compensation splits agree to the cent.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere.  Aggregates coming back from the database (SUM on
      SQLite returns REAL) are passed through to_money() before use.
    - round_money() is the only sanctioned rounding function.

Failure modes:
    - decimal.InvalidOperation on non-numeric input to money_from_str().
"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated

from sqlalchemy import Enum as SAEnum, Numeric, String

Money = Annotated[Decimal, Numeric(18, 2)]

# ISO 4217 currency code (e.g. "TJS")
Currency = Annotated[str, String(3)]

# Short identifier strings (status values, combo names)
ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(1000)]

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def money_from_str(value: str) -> Decimal:
    """Create a Money value from its string form, rounded to cents."""
    return round_money(Decimal(value))


def round_money(amount: Decimal) -> Decimal:
    """Round a monetary amount to two places, half-up."""
    return amount.quantize(MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def to_money(value) -> Decimal:
    """
    Normalize a database scalar into a money Decimal.

    None (empty aggregate) becomes 0.00.  Floats are converted through
    their string form so SUM() results do not carry binary noise.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return round_money(value)
    return round_money(Decimal(str(value)))


def status_type(enum_cls: type[Enum]) -> SAEnum:
    """
    VARCHAR(20) column type for a ``(str, Enum)`` status.

    Stores the lowercase member value (so raw SQL and partial indexes can
    match on it) and loads back the enum member.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
