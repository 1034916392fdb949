"""
Sale line composition and bill totals on top of the pricing functions.

A line is priced at full precision when it is added; only the bill total is
rounded, once, by ``bill_totals``.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Iterable, Optional

from .errors import ValidationError
from .models import BillTotals, SaleLine, StockItemRecord
from .pricing import (
    Number,
    ZERO,
    exclusive_from_mrp,
    final_price,
    mrp_from_exclusive,
    round_bill,
    to_decimal,
)

BILL_PREFIXES = {"GST": "GST", "NON-GST": "NON"}


def available_quantity(item: StockItemRecord, godown_name: Optional[str] = None) -> Decimal:
    """Stock available for sale, in one godown if named, else across all."""
    if godown_name:
        for alloc in item.godown_allocations:
            if alloc.godown_name == godown_name:
                return alloc.quantity
        return ZERO
    return item.total_quantity


def unit_exclusive_price(item: StockItemRecord) -> Decimal:
    """
    GST-exclusive unit price for an item.

    Uses the exclusive rate when known, otherwise backs it out of the MRP.

    Raises:
        ValidationError: If the item has neither rate nor MRP
    """
    if item.exclusive_rate is not None:
        return item.exclusive_rate
    if item.mrp is not None:
        return exclusive_from_mrp(item.mrp, item.gst_percentage or ZERO)
    raise ValidationError(f"No price available for {item.name!r}")


def compose_sale_line(
    item: StockItemRecord,
    quantity: Number,
    discount: Number = 0,
    is_percentage: bool = False,
    godown_name: Optional[str] = None,
    unit_price: Optional[Number] = None,
    check_stock: bool = True,
) -> SaleLine:
    """
    Build a priced sale line for a stock item.

    Args:
        item: Merged stock record being sold
        quantity: Units sold, must be positive
        discount: Discount amount, or percentage when is_percentage
        godown_name: Godown the stock leaves from (limits available stock)
        unit_price: GST-exclusive price overriding the item's own
        check_stock: Refuse lines larger than the available stock

    Raises:
        ValidationError: On a non-positive quantity, insufficient stock,
            a missing price or an out of range discount
    """
    qty = to_decimal(quantity, "quantity")
    if qty <= 0:
        raise ValidationError(f"Quantity must be positive: {qty}")

    if check_stock:
        available = available_quantity(item, godown_name)
        if qty > available:
            where = f" in {godown_name}" if godown_name else ""
            raise ValidationError(
                f"Not enough stock for {item.name!r}{where}: {available} available, {qty} requested"
            )

    gst = item.gst_percentage or ZERO
    unit = to_decimal(unit_price, "unit_price") if unit_price is not None else unit_exclusive_price(item)
    if unit < 0:
        raise ValidationError(f"Unit price cannot be negative: {unit}")
    mrp = item.mrp if item.mrp is not None else mrp_from_exclusive(unit, gst)

    pricing = final_price(unit * qty, gst, discount, is_percentage)
    return SaleLine(
        item_name=item.name,
        quantity=qty,
        unit_price=unit,
        mrp=mrp,
        hsn_code=item.hsn_code,
        gst_percentage=gst,
        godown_name=godown_name,
        pricing=pricing,
    )


def bill_totals(lines: Iterable[SaleLine]) -> BillTotals:
    """Sum a bill's lines and round the grand total once."""
    lines = list(lines)
    grand_total = sum((line.total for line in lines), ZERO)
    rounded, round_off = round_bill(line.total for line in lines)
    return BillTotals(
        total_quantity=sum((line.quantity for line in lines), ZERO),
        total_exclusive=sum((line.pricing.base_amount for line in lines), ZERO),
        total_discount=sum((line.pricing.discount_amount for line in lines), ZERO),
        total_gst=sum((line.pricing.gst_amount for line in lines), ZERO),
        grand_total=grand_total,
        rounded_total=rounded,
        round_off=round_off,
    )


def split_by_bill_type(lines: Iterable[SaleLine]) -> dict[str, list[SaleLine]]:
    """GST and non-GST lines go on separate bills."""
    bills: dict[str, list[SaleLine]] = {"GST": [], "NON-GST": []}
    for line in lines:
        bills["GST" if line.is_gst else "NON-GST"].append(line)
    return bills


def next_bill_number(bill_type: str, sequence: int) -> str:
    """Bill number such as GST-000042 or NON-000007."""
    if bill_type not in BILL_PREFIXES:
        raise ValueError(f"Unknown bill type: {bill_type}. Valid: {list(BILL_PREFIXES)}")
    if sequence < 1:
        raise ValueError(f"Bill sequence must start at 1, got {sequence}")
    return f"{BILL_PREFIXES[bill_type]}-{sequence:06d}"
