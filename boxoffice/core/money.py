"""Money Arithmetic — Decimal helpers for cart pricing.

Invariants:
    - All amounts are Decimal quantized to cents with ROUND_HALF_UP
    - line total = unit_price * quantity; subtotal = sum of line totals
    - payable = subtotal - discount, never negative
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_cents(value: Decimal | int | str | float) -> Decimal:
    """Quantize any numeric input to two decimal places."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Processor wire format: '54.00'."""
    return str(to_cents(value))


@dataclass(frozen=True)
class PricedLine:
    ticket_type: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return to_cents(self.unit_price * self.quantity)


def subtotal(lines: list[PricedLine]) -> Decimal:
    return to_cents(sum((line.line_total for line in lines), ZERO))


def payable_total(subtotal_amount: Decimal, discount_amount: Decimal) -> Decimal:
    """subtotal - discount; raises if the discount exceeds the subtotal."""
    if discount_amount < ZERO:
        raise ValueError("Discount amount cannot be negative")
    if discount_amount > subtotal_amount:
        raise ValueError("Discount amount cannot exceed subtotal")
    return to_cents(subtotal_amount - discount_amount)
