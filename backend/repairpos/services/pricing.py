# Overview: Money arithmetic in integer cents (line pricing, discounts, totals).

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..errors import ValidationError


DISCOUNT_TYPES = {"PERCENTAGE", "FIXED"}

_HUNDRED = Decimal(100)


def round_cents(value: Decimal) -> int:
    """Half-up rounding to a whole cent."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, rate) -> Decimal:
    return Decimal(amount_cents) * Decimal(str(rate)) / _HUNDRED


@dataclass
class LinePrice:
    quantity: int
    unit_price_cents: int
    discount_cents: int
    tax_rate: Decimal
    subtotal_cents: int
    tax_exact: Decimal
    tax_cents: int
    total_cents: int


def price_line(*, unit_price_cents: int, quantity: int, discount_cents: int = 0, tax_rate=0) -> LinePrice:
    """
    tax = (unit_price * quantity - discount) * tax_rate / 100
    total = unit_price * quantity - discount + tax
    """
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    if unit_price_cents < 0:
        raise ValidationError("unit price must be >= 0")
    subtotal = unit_price_cents * quantity
    if discount_cents < 0 or discount_cents > subtotal:
        raise ValidationError(
            "Line discount must be between 0 and the line subtotal",
            {"discount_cents": discount_cents, "line_subtotal_cents": subtotal},
        )
    rate = Decimal(str(tax_rate or 0))
    tax_exact = percent_of(subtotal - discount_cents, rate)
    tax_cents = round_cents(tax_exact)
    return LinePrice(
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_cents=discount_cents,
        tax_rate=rate,
        subtotal_cents=subtotal,
        tax_exact=tax_exact,
        tax_cents=tax_cents,
        total_cents=subtotal - discount_cents + tax_cents,
    )


def sale_discount_cents(subtotal_cents: int, discount_type: str | None, discount_value) -> int:
    """PERCENTAGE takes value% of the subtotal; FIXED is a flat amount in cents."""
    if not discount_type or discount_value in (None, 0):
        return 0
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount type must be one of: {', '.join(sorted(DISCOUNT_TYPES))}")
    value = Decimal(str(discount_value))
    if value < 0:
        raise ValidationError("discount value must be >= 0")
    if discount_type == "PERCENTAGE":
        if value > 100:
            raise ValidationError("percentage discount cannot exceed 100")
        return round_cents(percent_of(subtotal_cents, value))
    return round_cents(value)


@dataclass
class SaleTotals:
    subtotal_cents: int
    discount_total_cents: int
    tax_total_cents: int
    grand_total_cents: int


def compute_totals(lines: list[LinePrice], discount_type: str | None = None, discount_value=None) -> SaleTotals:
    """
    subtotal = sum of unit_price * quantity
    discount_total = line discounts + sale-level discount
    tax_total = sum of exact line taxes, rounded once
    grand_total = subtotal - discount_total + tax_total
    """
    subtotal = sum(line.subtotal_cents for line in lines)
    line_discounts = sum(line.discount_cents for line in lines)
    sale_discount = sale_discount_cents(subtotal, discount_type, discount_value)
    discount_total = line_discounts + sale_discount
    if discount_total > subtotal:
        raise ValidationError(
            "Total discount cannot exceed the subtotal",
            {"subtotal_cents": subtotal, "discount_total_cents": discount_total},
        )
    tax_total = round_cents(sum((line.tax_exact for line in lines), Decimal(0)))
    return SaleTotals(
        subtotal_cents=subtotal,
        discount_total_cents=discount_total,
        tax_total_cents=tax_total,
        grand_total_cents=subtotal - discount_total + tax_total,
    )
