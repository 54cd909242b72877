"""Conversions between commerce units and Klarna wire units.

- ``Price`` (decimal) <-> amount (integer minor units, x100).
- Tax percentage (decimal string) <-> tax rate (integer, x10000).

Both directions truncate toward zero: ``100.555`` becomes ``10055``.
"""

from decimal import Decimal

from klarna_payments.domain.order import Price


def to_amount(price: Price, force_positive: bool = False) -> int:
    """Convert ``price`` to a Klarna amount, optionally dropping the sign."""
    amount = int(price.number * 100)

    if force_positive and amount < 0:
        return -amount
    return amount


def to_tax_rate(percentage: str | Decimal) -> int:
    """Convert a percentage such as ``"24"`` to a Klarna tax rate (``240000``)."""
    return int(Decimal(percentage) * 10000)


def to_price(amount: int, currency_code: str) -> Price:
    """Convert a Klarna amount back to a commerce ``Price``."""
    return Price(number=Decimal(amount) / 100, currency_code=currency_code)
