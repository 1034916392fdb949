"""
Join godown quantities with price-list pricing.

The two reports share no key other than the item display name, so the join is
an exact, case-sensitive name match. It is a left join over the godown
records: every godown item survives, price-list items without a godown match
are dropped, and godown items without a price match keep empty pricing.
When a name repeats in the price list, the first occurrence wins; repeated
godown names each get the same (first) price match.
"""
from __future__ import annotations
from typing import Iterable, Optional
from loguru import logger

from .models import StockItemRecord
from .pricing import exclusive_from_mrp, mrp_from_exclusive


def _index_by_name(records: Iterable[StockItemRecord], label: str) -> dict[str, StockItemRecord]:
    index: dict[str, StockItemRecord] = {}
    duplicates = 0
    for record in records:
        if record.name in index:
            duplicates += 1
            continue
        index[record.name] = record
    if duplicates:
        logger.warning(f"{duplicates} duplicate item name(s) in {label}; keeping first occurrence")
    return index


def _complete_pricing(price: StockItemRecord) -> dict:
    """
    Pricing fields of a price-list record, deriving MRP or exclusive rate
    from the other when only one of them was reported.
    """
    gst = price.gst_percentage
    mrp = price.mrp
    rate = price.exclusive_rate
    if gst is not None and gst >= 0:
        if mrp is None and rate is not None:
            mrp = mrp_from_exclusive(rate, gst)
        elif rate is None and mrp is not None:
            rate = exclusive_from_mrp(mrp, gst)
    return {
        "gst_percentage": gst,
        "mrp": mrp,
        "exclusive_rate": rate,
        "rate_after_gst": price.rate_after_gst,
    }


def merge_stock_records(
    godown_records: Iterable[StockItemRecord],
    price_list_records: Iterable[StockItemRecord],
) -> list[StockItemRecord]:
    """
    Merge godown-quantity records with price-list records by item name.

    Quantities and godown allocations always come from the godown side;
    GST, MRP and rates only from the price list. HSN prefers the price list
    and falls back to the godown report.
    """
    godown_records = list(godown_records)
    godown_names = set(_index_by_name(godown_records, "godown report"))
    price_index = _index_by_name(price_list_records, "price list")

    merged: list[StockItemRecord] = []
    unmatched = 0
    for stock in godown_records:
        price: Optional[StockItemRecord] = price_index.get(stock.name)
        if price is None:
            unmatched += 1
            merged.append(
                stock.model_copy(update={
                    "gst_percentage": None,
                    "mrp": None,
                    "exclusive_rate": None,
                    "rate_after_gst": None,
                })
            )
            continue

        update = _complete_pricing(price)
        update["hsn_code"] = price.hsn_code or stock.hsn_code
        merged.append(stock.model_copy(update=update))

    dropped = len(set(price_index) - godown_names)
    logger.info(
        f"Merged {len(merged)} items ({len(merged) - unmatched} priced, "
        f"{unmatched} without price, {dropped} price-only dropped)"
    )
    return merged
