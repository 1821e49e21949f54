"""
Module: caja_kernel.db.types
Responsibility: Annotated type aliases and utility functions for monetary
    column types.  Centralizes precision and rounding so that every model
    and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES is the canonical precision for amounts.
      round_money() is the ONLY sanctioned rounding function, and every
      "sum A equals sum B" check in the ledger compares round_money values.
    - No floats anywhere in the ledger.

Failure modes:
    - InvalidOperation on a non-numeric string passed to money_from_str().
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Iterable

from sqlalchemy import Numeric, String

# Monetary amount: 18 digits total, 2 decimal places
Money = Annotated[Decimal, Numeric(18, 2)]

# Free-text label on a drawer movement
Label = Annotated[str, String(100)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions
LongText = Annotated[str, String(255)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from a string, rounded to 2 places.

    Raises:
        InvalidOperation: If value is not a number.
    """
    return round_money(Decimal(value))


def to_money(value: Decimal | int | str) -> Decimal:
    """Coerce a Decimal, int or numeric string into a rounded Money value.

    Floats are rejected: their binary representation cannot carry cents
    exactly.
    """
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; use Decimal or str")
    if isinstance(value, Decimal):
        return round_money(value)
    try:
        return round_money(Decimal(value))
    except InvalidOperation as exc:
        raise InvalidOperation(f"Not a monetary amount: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the specified decimal places.

    This is the ONLY sanctioned rounding function for amounts in the
    ledger.  All other code MUST delegate rounding here.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum amounts and round the result to 2 places."""
    return round_money(sum(values, ZERO))


def format_money(value: Decimal) -> str:
    """Render an amount with exactly two decimals (e.g. ``"1500.00"``)."""
    return f"{round_money(value):.2f}"
