"""
Tally Stock Sync - stock and pricing synchronization from Tally.

Fetches godown-wise stock and price-list reports from TallyPrime over its
HTTP XML interface, rebuilds per-item records from the flat report layout,
merges them by item name, and prices sale lines for billing.

Key Features:
- Export requests rendered from Jinja2 templates with escaped company names
- Positional reconciliation of DSPACCNAME / DSPSTKINFO / godown rows with
  non-fatal warnings instead of silent misalignment
- Concurrent fetch of the godown and price-list reports, all-or-nothing merge
- Decimal GST / MRP / discount pricing with a single bill-level round off

Usage:
    # Sync the configured company
    python -m tally_stock_sync

    # Replay saved responses and export CSV
    python -m tally_stock_sync --godown-file godowns.xml --price-file prices.xml --export-csv stock.csv

    # Test connection
    python -m tally_stock_sync --test-connection
"""

__version__ = "1.0.0"

from .config import StockSyncConfig
from .errors import LedgerStatusError, NetworkError, ParseError, StockSyncError, ValidationError
from .sync import StockSync, run_sync

__all__ = [
    "StockSyncConfig",
    "StockSync",
    "run_sync",
    "StockSyncError",
    "NetworkError",
    "LedgerStatusError",
    "ParseError",
    "ValidationError",
    "__version__",
]
