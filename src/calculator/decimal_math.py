"""
Decimal Math Utilities for Credit Calculations.

Credits, wage caps and rates are carried as Decimal so that the same
hours/wages always produce the same cent amount. Floats are only accepted
at the boundary and converted through their string form.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)

# Type alias for values that can be converted to Decimal
Numeric = Union[int, float, str, Decimal]

MONEY_PLACES = Decimal("0.01")  # Round to pennies

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Examples:
        >>> to_decimal(100)
        Decimal('100')
        >>> to_decimal(0.4)
        Decimal('0.4')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not numeric amounts")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def coerce_number(value: object) -> Optional[Decimal]:
    """
    Best-effort numeric coercion for questionnaire answers.

    Accepts ints, floats, Decimals and numeric strings such as
    ``"$1,250.50"``. Returns None instead of raising when the value
    cannot be read as a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace("$", "").replace(",", "")
        if not value:
            return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        result = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def money(value: Numeric) -> Decimal:
    """
    Convert value to money (rounded half-up to pennies).

    Examples:
        >>> money(2400)
        Decimal('2400.00')
        >>> money(100.995)
        Decimal('101.00')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def min_decimal(*values: Numeric) -> Decimal:
    """Minimum of values with Decimal precision."""
    return min(to_decimal(v) for v in values)


def capped(value: Numeric, cap: Optional[Numeric]) -> Decimal:
    """
    Limit value to cap; a None cap means uncapped.

    Examples:
        >>> capped(10000, 6000)
        Decimal('6000')
        >>> capped(10000, None)
        Decimal('10000')
    """
    if cap is None:
        return to_decimal(value)
    return min_decimal(value, cap)


def percent(value: Numeric, percentage: Numeric) -> Decimal:
    """
    Calculate a percentage of a value, rounded to pennies.

    Examples:
        >>> percent(6000, 0.40)
        Decimal('2400.00')
    """
    return money(to_decimal(value) * to_decimal(percentage))


def format_money(value: Numeric) -> str:
    """
    Format value as money string.

    Examples:
        >>> format_money(2400)
        '$2,400.00'
    """
    return f"${money(value):,.2f}"


def format_percentage(value: Numeric, decimal_places: int = 0) -> str:
    """
    Format a decimal rate as percentage string.

    Examples:
        >>> format_percentage(0.25)
        '25%'
    """
    pct = to_decimal(value) * HUNDRED
    return f"{pct:.{decimal_places}f}%"
