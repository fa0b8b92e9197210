"""
Pricing service - pure monetary calculations for invoices.

Two rounding rules coexist and both affect reported figures:
- invoice tax: the per-unit tax is rounded UP (ceiling) to the cent before
  being multiplied by the quantity;
- gross value used by FIFO cost matching: the tax RATE is rounded half-up
  to two decimals, the amount itself is not rounded.
"""
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Dict, Iterable

from ledger.exceptions import InvalidAmountError

CENT = Decimal('0.01')
PERCENTAGE_DIVISOR = Decimal('100')


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def line_tax_amount(unit_price, tax_rate: int, quantity: int) -> Decimal:
    """Tax of one line: ceil_to_cent(unit_price * tax_rate / 100) * quantity."""
    unit_tax = (_to_decimal(unit_price) * Decimal(tax_rate) / PERCENTAGE_DIVISOR).quantize(
        CENT, rounding=ROUND_CEILING
    )
    amount = unit_tax * Decimal(quantity)

    if amount < 0:
        raise InvalidAmountError('Tax amount cannot be negative')

    return amount


def invoice_tax(lines: Iterable) -> Decimal:
    """Sum of line_tax_amount over the given lines."""
    total = sum(
        (line_tax_amount(line.price, line.tax, line.quantity) for line in lines),
        Decimal('0.00')
    )

    if total < 0:
        raise InvalidAmountError('Tax cannot be negative')

    return total


def invoice_price_excluding_tax(lines: Iterable) -> Decimal:
    return sum(
        (_to_decimal(line.price) * Decimal(line.quantity) for line in lines),
        Decimal('0.00')
    )


def invoice_total(lines: Iterable) -> Decimal:
    lines = list(lines)
    return invoice_price_excluding_tax(lines) + invoice_tax(lines)


def calculate_invoice_totals(lines: Iterable) -> Dict[str, Decimal]:
    """
    Derive price (without tax), tax and total of an invoice from its lines.

    Nothing is cached or persisted; calling it twice on the same lines gives
    the same result.
    """
    lines = list(lines)
    price = invoice_price_excluding_tax(lines)
    tax = invoice_tax(lines)
    return {
        'price': price,
        'tax': tax,
        'total': price + tax,
    }


def line_gross_value(unit_price, quantity: int, tax_rate: int) -> Decimal:
    """Tax-inclusive value of `quantity` units: price * qty * (1 + round_half_up(rate/100, 2))."""
    net = _to_decimal(unit_price) * Decimal(quantity)
    rate = (Decimal(tax_rate) / PERCENTAGE_DIVISOR).quantize(CENT, rounding=ROUND_HALF_UP)
    return net + net * rate
