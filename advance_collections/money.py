"""
Money Precision Module

Currency codes and Decimal rounding helpers for every balance, fee and pool
figure in the collections engine. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with minor-unit precision"""
    MXN = ("MXN", 2)  # Mexican Peso
    USD = ("USD", 2)  # US Dollar

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


ZERO = Decimal('0')
CENT = Decimal('0.01')


def to_decimal(value: Union[Decimal, int, str, float]) -> Decimal:
    """
    Convert a value to Decimal without passing through binary float

    Raises:
        ValueError: If the value is not a valid number
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except ArithmeticError:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def quantize_money(value: Union[Decimal, int, str], currency: Currency = Currency.MXN) -> Decimal:
    """Round to the currency's minor unit using ROUND_HALF_UP"""
    return to_decimal(value).quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def format_money(value: Decimal, currency: Currency = Currency.MXN) -> str:
    """Format for message copy, e.g. '$1,250.00 MXN'"""
    return f"${quantize_money(value, currency):,.{currency.precision}f} {currency.code}"
