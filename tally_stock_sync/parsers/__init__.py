"""
XML decoding for Tally stock reports.

- base: sanitization, tree decoding, list coercion, number parsing
- stock: positional reconciliation of stock/godown/price-list reports
"""

from .base import (
    sanitize_xml,
    parse_xml,
    decode_tree,
    as_list,
    get_path,
    text_of,
    parse_decimal,
    parse_rate,
    parse_quantity,
)
from .stock import (
    RawReportTree,
    ScanState,
    StockReportScanner,
    extract_raw_report,
    is_item_header,
    reconcile,
    reconcile_stock_report,
)

__all__ = [
    # Base
    "sanitize_xml",
    "parse_xml",
    "decode_tree",
    "as_list",
    "get_path",
    "text_of",
    "parse_decimal",
    "parse_rate",
    "parse_quantity",
    # Stock reports
    "RawReportTree",
    "ScanState",
    "StockReportScanner",
    "extract_raw_report",
    "is_item_header",
    "reconcile",
    "reconcile_stock_report",
]
