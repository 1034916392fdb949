"""
Error taxonomy for stock synchronization and pricing.

NetworkError and ParseError abort a synchronization attempt. ValidationError
is raised by the pricing and billing guards. Reconciliation irregularities are
not exceptions; see models.ReconciliationWarning.
"""


class StockSyncError(Exception):
    """Base class for all errors raised by tally_stock_sync."""
    pass


class NetworkError(StockSyncError):
    """Raised when the ledger endpoint is unreachable or answers with a failure."""
    pass


class LedgerStatusError(NetworkError):
    """Raised when the ledger system answers but reports STATUS other than 1."""
    pass


class ParseError(StockSyncError):
    """Raised when a ledger response is not well-formed XML."""
    pass


class ValidationError(StockSyncError):
    """Raised when a pricing or billing input is out of range."""
    pass
