"""
Currency and precision handling for ProjectionLab.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum


class RoundingPolicy(Enum):
    """Rounding policies for currency calculations."""

    BANKERS = ROUND_HALF_EVEN
    HALF_UP = ROUND_HALF_UP


class Currency:
    """
    Currency definition with precision and rounding rules.

    Attributes:
        code: ISO currency code (e.g., 'GBP', 'USD', 'JPY')
        decimals: Number of decimal places for this currency
        rounding: Rounding policy for calculations
    """

    def __init__(
        self,
        code: str,
        decimals: int = 2,
        rounding: RoundingPolicy = RoundingPolicy.HALF_UP,
    ):
        self.code = code.upper()
        self.decimals = decimals
        self.rounding = rounding

    def quantize(self, amount: Decimal) -> Decimal:
        """Quantize amount to currency precision."""
        quantum = Decimal("1").scaleb(-self.decimals)  # e.g., 0.01 for 2 dp, 1 for 0 dp
        return amount.quantize(quantum, rounding=self.rounding.value)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency('{self.code}', decimals={self.decimals})"


# Standard currency definitions
GBP = Currency("GBP", decimals=2)
USD = Currency("USD", decimals=2)
EUR = Currency("EUR", decimals=2)
JPY = Currency("JPY", decimals=0)

# Currency registry
CURRENCIES: dict[str, Currency] = {
    "GBP": GBP,
    "USD": USD,
    "EUR": EUR,
    "JPY": JPY,
}


def get_currency(code: str) -> Currency:
    """Get currency by code."""
    if code.upper() not in CURRENCIES:
        # Default to 2 decimal places for unknown currencies
        return Currency(code, decimals=2)
    return CURRENCIES[code.upper()]


def to_money(value: Decimal | float | str | int, currency: Currency | str = GBP) -> Decimal:
    """
    Convert a value to a quantized Decimal in the given currency.

    Floats go through `str()` first so 0.1 becomes Decimal('0.1') rather than
    its binary expansion.

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if isinstance(currency, str):
        currency = get_currency(currency)
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary value: {value!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return currency.quantize(value)
