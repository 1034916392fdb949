"""
Stock synchronization orchestration.

Provides:
- Stock sync: godown quantities merged with price-list pricing
- Stock summary: a single reconciled stock-summary report
- Offline mode: the same pipeline over saved XML responses
"""
from __future__ import annotations
import argparse
import csv
import json
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional
from loguru import logger

from .builder import build_export_request
from .client import TallyStockClient
from .config import StockSyncConfig
from .errors import NetworkError, ParseError, StockSyncError
from .merge import merge_stock_records
from .models import ReconciliationResult, StockItemRecord, SyncResult
from .parsers.stock import reconcile_stock_report
from .reports import get_report


class StockSync:
    """
    Fetches, reconciles and merges stock data from Tally.

    Usage:
        with StockSync(config) as sync:
            result = sync.synchronize()
            for record in result.records:
                ...
    """

    def __init__(self, config: Optional[StockSyncConfig] = None, client: Optional[TallyStockClient] = None):
        self.config = config or StockSyncConfig.from_env()
        self.client = client or TallyStockClient(self.config)
        self.save_xml_dir: Optional[Path] = None

    def resolve_company(self, company: Optional[str]) -> str:
        return company or self.config.tally_company

    def fetch_report_xml(self, report_kind: str, company: Optional[str] = None) -> str:
        """Build, post and return the raw XML for one report kind."""
        company = self.resolve_company(company)
        xml_request = build_export_request(
            report_kind,
            company,
            report_names=self.config.report_name_overrides(),
        )
        logger.info(f"Fetching {report_kind} for {company}...")
        xml_response = self.client.post_xml(xml_request)

        if self.save_xml_dir is not None:
            self.save_xml_dir.mkdir(parents=True, exist_ok=True)
            debug_file = self.save_xml_dir / f"debug_{report_kind}.xml"
            debug_file.write_text(xml_response, encoding="utf-8")
            logger.debug(f"  Saved raw XML to {debug_file}")

        return xml_response

    def reconcile(self, report_kind: str, xml_text: str, company: Optional[str] = None) -> ReconciliationResult:
        """Decode and reconcile one report response."""
        report = get_report(report_kind, self.config.report_name_overrides())
        return reconcile_stock_report(
            xml_text,
            report,
            company_name=self.resolve_company(company),
            pieces_per_box=self.config.pieces_per_box,
        )

    def merge_responses(self, godown_xml: str, price_xml: str, company: Optional[str] = None) -> SyncResult:
        """Reconcile both responses and merge them into a SyncResult."""
        company = self.resolve_company(company)
        godowns = self.reconcile("godown-list", godown_xml, company)
        prices = self.reconcile("price-list", price_xml, company)
        records = merge_stock_records(godowns.records, prices.records)
        return SyncResult(
            company_name=company,
            records=records,
            warnings=godowns.warnings + prices.warnings,
        )

    def synchronize(self, company: Optional[str] = None) -> SyncResult:
        """
        Fetch the godown and price-list reports concurrently and merge them.

        Both requests must succeed; there is no partial merge.

        Raises:
            NetworkError: If either request fails
            ParseError: If either response is malformed
        """
        company = self.resolve_company(company)
        logger.info(f"=== Syncing stock for {company} ===")

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="tally-fetch") as pool:
            godown_future = pool.submit(self.fetch_report_xml, "godown-list", company)
            price_future = pool.submit(self.fetch_report_xml, "price-list", company)
            try:
                godown_xml = godown_future.result()
                price_xml = price_future.result()
            except StockSyncError as e:
                logger.error(f"Stock sync aborted: {e}")
                raise

        try:
            result = self.merge_responses(godown_xml, price_xml, company)
        except ParseError as e:
            logger.error(f"Stock sync aborted: {e}")
            raise

        if result.warnings:
            logger.warning(f"Stock sync finished with {len(result.warnings)} reconciliation warning(s)")
        logger.info(f"=== Stock sync complete: {len(result.records)} items ===")
        return result

    def fetch_stock_summary(self, company: Optional[str] = None) -> ReconciliationResult:
        """Fetch and reconcile a plain stock-summary report."""
        company = self.resolve_company(company)
        xml_response = self.fetch_report_xml("stock-summary", company)
        return self.reconcile("stock-summary", xml_response, company)

    def test_connection(self) -> dict:
        """Test connection to Tally."""
        return self.client.test_connection()

    def close(self):
        """Close all connections."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def run_sync(
    company: Optional[str] = None,
    config: Optional[StockSyncConfig] = None,
) -> SyncResult:
    """
    Convenience function to run one stock synchronization.

    Args:
        company: Company name (defaults to the configured company)
        config: Optional config override
    """
    with StockSync(config) as sync:
        return sync.synchronize(company)


def export_csv(records: list[StockItemRecord], path: Path) -> int:
    """Write one row per item and godown; items without godowns get one row."""
    fields = ["item_name", "hsn", "gst", "mrp", "rate", "rate_after_gst",
              "total_quantity", "godown", "godown_quantity", "company"]
    rows = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fields)
        writer.writeheader()
        for r in records:
            base = {
                "item_name": r.name,
                "hsn": r.hsn_code or "",
                "gst": r.gst_percentage if r.gst_percentage is not None else "",
                "mrp": r.mrp if r.mrp is not None else "",
                "rate": r.exclusive_rate if r.exclusive_rate is not None else "",
                "rate_after_gst": r.rate_after_gst if r.rate_after_gst is not None else "",
                "total_quantity": r.total_quantity,
                "company": r.company_name,
            }
            allocations = r.godown_allocations or [None]
            for alloc in allocations:
                writer.writerow({
                    **base,
                    "godown": alloc.godown_name if alloc else "",
                    "godown_quantity": alloc.quantity if alloc else "",
                })
                rows += 1
    return rows


def _print_preview(result: SyncResult, limit: int) -> None:
    print(f"\n=== {result.company_name}: {len(result.records)} items ===")
    for r in result.records[:limit]:
        godowns = ", ".join(f"{g.godown_name}={g.quantity}" for g in r.godown_allocations) or "-"
        print(f"  {r.name:<40} qty={r.total_quantity:<8} mrp={r.mrp if r.mrp is not None else '-':<10} [{godowns}]")
    if len(result.records) > limit:
        print(f"  ... and {len(result.records) - limit} more")
    for w in result.warnings:
        print(f"  warning [{w.code}] {w.message}")


def _configure_logging(config: StockSyncConfig, verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else config.log_level)
    if config.log_file:
        logger.add(config.log_file, level="DEBUG", rotation="10 MB")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Tally Stock Sync - godown stock merged with price-list pricing"
    )
    parser.add_argument("--company", help="Company name (default: TALLY_COMPANY)")
    parser.add_argument("--summary", action="store_true", help="Fetch the stock summary report only")
    parser.add_argument("--godown-file", type=Path, help="Use a saved godown report instead of Tally")
    parser.add_argument("--price-file", type=Path, help="Use a saved price-list report instead of Tally")
    parser.add_argument("--save-xml", type=Path, help="Directory to save raw Tally responses")
    parser.add_argument("--export-json", type=Path, help="Write merged records as JSON")
    parser.add_argument("--export-csv", type=Path, help="Write merged records as CSV")
    parser.add_argument("--preview", type=int, default=20, help="Rows to print (default: 20)")
    parser.add_argument("--test-connection", action="store_true", help="Test Tally connection and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)

    config = StockSyncConfig.from_env()
    _configure_logging(config, args.verbose)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error(err)
        return 1

    if bool(args.godown_file) != bool(args.price_file):
        logger.error("--godown-file and --price-file must be given together")
        return 1

    try:
        with StockSync(config) as sync:
            sync.save_xml_dir = args.save_xml

            if args.test_connection:
                result = sync.test_connection()
                print(f"Connection test: {result}")
                return 0 if result["status"] == "connected" else 1

            if args.summary:
                summary = sync.fetch_stock_summary(args.company)
                result = SyncResult(
                    company_name=sync.resolve_company(args.company),
                    records=summary.records,
                    warnings=summary.warnings,
                )
            elif args.godown_file:
                result = sync.merge_responses(
                    args.godown_file.read_text(encoding="utf-8"),
                    args.price_file.read_text(encoding="utf-8"),
                    args.company,
                )
            else:
                result = sync.synchronize(args.company)

        _print_preview(result, args.preview)

        if args.export_json:
            args.export_json.write_text(json.dumps(result.as_payload(), indent=2), encoding="utf-8")
            logger.info(f"Wrote {len(result.records)} items to {args.export_json}")
        if args.export_csv:
            rows = export_csv(result.records, args.export_csv)
            logger.info(f"Wrote {rows} rows to {args.export_csv}")
        return 0

    except NetworkError as e:
        logger.error(f"Connection error: {e}")
        return 1
    except ParseError as e:
        logger.error(f"Invalid response: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Sync failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
