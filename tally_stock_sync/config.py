"""
Configuration management for Tally Stock Sync.

Loads settings from environment variables with sensible defaults. The
configuration is resolved once and handed to the client and sync objects
at construction time.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back on bad values."""
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass
class StockSyncConfig:
    """Configuration settings for Tally Stock Sync."""

    # Tally connection settings
    tally_url: str = field(
        default_factory=lambda: os.getenv("TALLY_URL", "http://localhost:9000")
    )
    tally_company: str = field(
        default_factory=lambda: os.getenv("TALLY_COMPANY", "Your Company")
    )

    # Transport settings: bounded timeout and a single retry by default
    request_timeout: int = field(default_factory=lambda: _env_int("TALLY_REQUEST_TIMEOUT", 30))
    retry_attempts: int = field(default_factory=lambda: _env_int("TALLY_RETRY_ATTEMPTS", 2))
    retry_wait: float = field(default_factory=lambda: _env_float("TALLY_RETRY_WAIT", 1.0))

    # Report names (override when the ledger uses customised report titles)
    godown_report: Optional[str] = field(
        default_factory=lambda: os.getenv("TALLY_GODOWN_REPORT")
    )
    price_list_report: Optional[str] = field(
        default_factory=lambda: os.getenv("TALLY_PRICE_LIST_REPORT")
    )
    stock_summary_report: Optional[str] = field(
        default_factory=lambda: os.getenv("TALLY_STOCK_SUMMARY_REPORT")
    )

    # Compound quantities such as "3 box 4 pcs" are converted to pieces
    pieces_per_box: int = field(default_factory=lambda: _env_int("TALLY_PIECES_PER_BOX", 16))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(
        default_factory=lambda: os.getenv("TALLY_SYNC_LOG_FILE")
    )

    @classmethod
    def from_env(cls) -> "StockSyncConfig":
        """Create config from environment variables."""
        return cls()

    def report_name_overrides(self) -> dict[str, str]:
        """Report-kind -> report-name overrides that are actually set."""
        overrides = {
            "godown-list": self.godown_report,
            "price-list": self.price_list_report,
            "stock-summary": self.stock_summary_report,
        }
        return {kind: name for kind, name in overrides.items() if name}

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.tally_url:
            errors.append("TALLY_URL is required")
        if not self.tally_company or not self.tally_company.strip():
            errors.append("TALLY_COMPANY is required")
        if self.request_timeout <= 0:
            errors.append("TALLY_REQUEST_TIMEOUT must be positive")
        if self.retry_attempts < 1:
            errors.append("TALLY_RETRY_ATTEMPTS must be at least 1")
        if self.pieces_per_box <= 0:
            errors.append("TALLY_PIECES_PER_BOX must be positive")
        return errors
