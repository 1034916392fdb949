"""
GST, MRP and discount arithmetic for sale lines and bills.

All functions are pure and work in Decimal. Inputs may be Decimal, int, str
or float; floats are converted through ``str`` so 0.1 stays 0.1. Nothing is
rounded per line: a bill is rounded once, to whole currency units, by
``round_bill``.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from .errors import ValidationError
from .models import PricingComputation

Number = Union[Decimal, int, float, str]

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Optional[Number], name: str = "value") -> Decimal:
    """Convert a number to Decimal, rejecting None and non-numeric input."""
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except ArithmeticError as e:
            raise ValidationError(f"{name} is not a number: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return result


def _gst_rate(gst_rate: Optional[Number]) -> Decimal:
    rate = to_decimal(gst_rate if gst_rate is not None else 0, "gst_rate")
    if rate < 0:
        raise ValidationError(f"GST rate cannot be negative: {rate}")
    return rate


def exclusive_from_mrp(mrp: Number, gst_rate: Number) -> Decimal:
    """GST-exclusive unit cost contained in a GST-inclusive MRP."""
    mrp = to_decimal(mrp, "mrp")
    if mrp < 0:
        raise ValidationError(f"MRP cannot be negative: {mrp}")
    return mrp / (1 + _gst_rate(gst_rate) / HUNDRED)


def mrp_from_exclusive(exclusive_cost: Number, gst_rate: Number) -> Decimal:
    """GST-inclusive price for a GST-exclusive unit cost."""
    cost = to_decimal(exclusive_cost, "exclusive_cost")
    if cost < 0:
        raise ValidationError(f"Exclusive cost cannot be negative: {cost}")
    return cost * (1 + _gst_rate(gst_rate) / HUNDRED)


def gst_in_mrp(mrp: Number, gst_rate: Number) -> Decimal:
    """GST portion of one unit sold at MRP."""
    mrp = to_decimal(mrp, "mrp")
    return mrp - exclusive_from_mrp(mrp, gst_rate)


def discount_amount(base_amount: Number, discount: Number, is_percentage: bool) -> Decimal:
    """
    Discount in currency for a base amount.

    Raises:
        ValidationError: If the discount is negative, a percentage above 100,
            or an amount larger than the base
    """
    base = to_decimal(base_amount, "base_amount")
    value = to_decimal(discount if discount is not None else 0, "discount")
    if value < 0:
        raise ValidationError(f"Discount cannot be negative: {value}")
    if is_percentage:
        if value > HUNDRED:
            raise ValidationError(f"Discount percentage cannot exceed 100: {value}")
        return base * value / HUNDRED
    if value > base:
        raise ValidationError(f"Discount {value} exceeds the amount {base}")
    return value


def final_price(
    base_amount: Number,
    gst_rate: Number,
    discount: Number = 0,
    is_percentage: bool = False,
) -> PricingComputation:
    """
    Price a line: discount the GST-exclusive base, then add GST on the rest.

    discount_amount = base * discount / 100 (percentage) or discount (amount)
    gst_amount      = (base - discount_amount) * gst_rate / 100
    final_price     = (base - discount_amount) + gst_amount

    Raises:
        ValidationError: On a negative base or GST rate, or an out of range
            discount
    """
    base = to_decimal(base_amount, "base_amount")
    if base < 0:
        raise ValidationError(f"Base amount cannot be negative: {base}")
    rate = _gst_rate(gst_rate)

    disc = discount_amount(base, discount, is_percentage)
    if is_percentage:
        disc_pct: Optional[Decimal] = to_decimal(discount if discount is not None else 0, "discount")
    elif base > 0:
        disc_pct = disc / base * HUNDRED
    else:
        disc_pct = None

    discounted = base - disc
    gst = discounted * rate / HUNDRED
    return PricingComputation(
        base_amount=base,
        discount_amount=disc,
        discount_percentage=disc_pct,
        gst_amount=gst,
        final_price=discounted + gst,
    )


def round_bill(line_totals: Iterable[Number]) -> tuple[Decimal, Decimal]:
    """
    Round a bill once, half-up to whole units.

    Returns:
        (rounded_total, round_off) where rounded_total - sum(line_totals) == round_off
    """
    total = sum((to_decimal(t, "line_total") for t in line_totals), ZERO)
    rounded = total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return rounded, rounded - total
