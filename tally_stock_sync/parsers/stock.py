"""
Reconciliation of flat Tally stock reports into per-item records.

Stock style display reports come back as three unkeyed sibling lists under
ENVELOPE: item names (DSPACCNAME), info blocks (DSPSTKINFO) and, for godown
reports, godown labels. Nothing links them except order. An info block that
carries any header-only tag (HSN, GST, MRP, rate after GST) opens a new item;
blocks without them are godown continuation rows for the item above, each
paired with the next godown label.

The scan is a two state machine per item:

    AWAITING_ITEM_HEADER  -> take one header block as the item totals
    CONSUMING_GODOWN_ROWS -> take continuation rows until the next header

Irregular input never raises. It yields best-effort records plus
ReconciliationWarning values, and the result always holds exactly one record
per name.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from loguru import logger

from ..models import (
    GodownAllocation,
    ReconciliationResult,
    ReconciliationWarning,
    StockItemRecord,
)
from ..reports import HEADER_TAGS, ReportDefinition, get_report
from .base import as_list, decode_tree, get_path, parse_decimal, parse_quantity, parse_rate, text_of

UNKNOWN_GODOWN = "Unknown"


class ScanState(Enum):
    AWAITING_ITEM_HEADER = "awaiting_item_header"
    CONSUMING_GODOWN_ROWS = "consuming_godown_rows"


@dataclass
class RawReportTree:
    """The three parallel lists of a decoded stock report."""

    names: list[str] = field(default_factory=list)
    info_blocks: list[Any] = field(default_factory=list)
    godown_names: list[str] = field(default_factory=list)


def is_item_header(block: Any) -> bool:
    """True if the info block carries at least one item-level tag."""
    return isinstance(block, dict) and any(tag in block for tag in HEADER_TAGS)


def _gst_percentage(block: dict) -> Optional[Decimal]:
    gst = block.get("DSPGSTVAL")
    if isinstance(gst, dict):
        gst = gst.get("DSPGSTPERCVAL")
    return parse_decimal(text_of(gst))


def _block_quantity(block: Any, pieces_per_box: int) -> Decimal:
    return parse_quantity(text_of(get_path(block, "DSPSTKCL/DSPCLQTY")), pieces_per_box)


def extract_raw_report(tree: dict, report: ReportDefinition) -> RawReportTree:
    """
    Pull the name, info and godown lists out of a decoded tree.

    Each list is coerced with ``as_list`` so a report with a single item
    looks the same as one with many.
    """
    envelope = tree.get("ENVELOPE")
    if envelope is None and len(tree) == 1:
        envelope = next(iter(tree.values()))
    if not isinstance(envelope, dict):
        return RawReportTree()

    names = [text_of(n, report.name_field) for n in as_list(envelope.get(report.names_tag))]
    info_blocks = as_list(envelope.get(report.info_tag))
    godown_names = []
    if report.godown_tag:
        godown_names = [
            text_of(g, report.name_field) or UNKNOWN_GODOWN
            for g in as_list(envelope.get(report.godown_tag))
        ]
    return RawReportTree(names=names, info_blocks=info_blocks, godown_names=godown_names)


class StockReportScanner:
    """
    Walks a RawReportTree with an info cursor and an independent godown cursor.

    With ``godown_rows=False`` (price-list and plain stock-summary layouts)
    every info block is an item block and pairs 1:1 with a name.
    """

    def __init__(
        self,
        raw: RawReportTree,
        company_name: str = "",
        pieces_per_box: int = 16,
        godown_rows: bool = True,
    ):
        self.raw = raw
        self.company_name = company_name
        self.pieces_per_box = pieces_per_box
        self.godown_rows = godown_rows
        self.info_pos = 0
        self.godown_pos = 0
        self.warnings: list[ReconciliationWarning] = []

    def _warn(self, code: str, message: str, item_name: Optional[str] = None) -> None:
        self.warnings.append(
            ReconciliationWarning(code=code, message=message, item_name=item_name, position=self.info_pos)
        )
        logger.warning(f"Reconciliation: {message}")

    def _is_header(self, block: Any) -> bool:
        return not self.godown_rows or is_item_header(block)

    def _next_godown(self, item_name: str) -> str:
        if self.godown_pos < len(self.raw.godown_names):
            name = self.raw.godown_names[self.godown_pos]
        else:
            name = UNKNOWN_GODOWN
            self._warn(
                "unknown_godown",
                f"no godown label left for continuation row {self.info_pos} of {item_name!r}",
                item_name,
            )
        self.godown_pos += 1
        return name

    def _record_from_header(self, name: str, header: Any, allocations: list[GodownAllocation]) -> StockItemRecord:
        if header is None:
            # Orphan continuation rows only; totals come from the rows themselves
            total = sum((a.quantity for a in allocations), Decimal("0"))
            return StockItemRecord(
                name=name,
                total_quantity=total,
                company_name=self.company_name,
                godown_allocations=tuple(allocations),
            )

        block = header if isinstance(header, dict) else {}
        hsn = text_of(block.get("DSPHSNVAL"))
        return StockItemRecord(
            name=name,
            hsn_code=hsn or None,
            gst_percentage=_gst_percentage(block),
            mrp=parse_rate(text_of(block.get("DSPMRPVAL"))),
            exclusive_rate=parse_rate(text_of(get_path(block, "DSPSTKCL/DSPCLRATE"))),
            rate_after_gst=parse_rate(text_of(block.get("DSPRATEAFTERGSTVAL"))),
            closing_value=parse_decimal(text_of(get_path(block, "DSPSTKCL/DSPCLAMTA"))),
            total_quantity=_block_quantity(block, self.pieces_per_box),
            company_name=self.company_name,
            godown_allocations=tuple(allocations),
        )

    def _scan_item(self, name: str) -> StockItemRecord:
        blocks = self.raw.info_blocks
        state = ScanState.AWAITING_ITEM_HEADER
        header = None
        allocations: list[GodownAllocation] = []

        while True:
            exhausted = self.info_pos >= len(blocks)

            if state is ScanState.AWAITING_ITEM_HEADER:
                if exhausted:
                    self._warn("exhausted_info", f"no info block left for item {name!r}", name)
                    return StockItemRecord(name=name, company_name=self.company_name)
                block = blocks[self.info_pos]
                if self._is_header(block):
                    header = block
                    self.info_pos += 1
                else:
                    self._warn(
                        "missing_header",
                        f"expected an item header for {name!r} at block {self.info_pos}, "
                        f"found a godown row",
                        name,
                    )
                state = ScanState.CONSUMING_GODOWN_ROWS
                continue

            # CONSUMING_GODOWN_ROWS
            if not self.godown_rows or exhausted or self._is_header(blocks[self.info_pos]):
                return self._record_from_header(name, header, allocations)
            block = blocks[self.info_pos]
            allocations.append(
                GodownAllocation(
                    godown_name=self._next_godown(name),
                    quantity=_block_quantity(block, self.pieces_per_box),
                )
            )
            self.info_pos += 1

    def run(self) -> ReconciliationResult:
        records = [self._scan_item(name) for name in self.raw.names]

        leftover = len(self.raw.info_blocks) - self.info_pos
        if leftover > 0:
            self._warn("unused_info", f"{leftover} info block(s) left after the last item")
        if self.godown_rows and self.godown_pos < len(self.raw.godown_names):
            unused = len(self.raw.godown_names) - self.godown_pos
            self._warn("unused_godowns", f"{unused} godown label(s) were not paired with a row")

        logger.debug(f"Reconciled {len(records)} items with {len(self.warnings)} warning(s)")
        return ReconciliationResult(records=records, warnings=self.warnings)


def reconcile(
    names: list[str],
    info_blocks: list[Any],
    godown_names: Optional[list[str]] = None,
    company_name: str = "",
    pieces_per_box: int = 16,
    godown_rows: bool = True,
) -> ReconciliationResult:
    """Reconcile already-decoded lists; see StockReportScanner."""
    raw = RawReportTree(
        names=list(names),
        info_blocks=list(info_blocks),
        godown_names=list(godown_names or []),
    )
    return StockReportScanner(raw, company_name, pieces_per_box, godown_rows).run()


def reconcile_stock_report(
    xml_text: str,
    report: Union[str, ReportDefinition],
    company_name: str = "",
    pieces_per_box: int = 16,
) -> ReconciliationResult:
    """
    Decode a stock style report and rebuild its item records.

    Raises:
        ParseError: If the response is not well-formed XML
    """
    if isinstance(report, str):
        report = get_report(report)
    tree = decode_tree(xml_text)
    raw = extract_raw_report(tree, report)
    logger.debug(
        f"{report.kind}: {len(raw.names)} names, {len(raw.info_blocks)} info blocks, "
        f"{len(raw.godown_names)} godown labels"
    )
    scanner = StockReportScanner(
        raw,
        company_name=company_name,
        pieces_per_box=pieces_per_box,
        godown_rows=report.godown_tag is not None,
    )
    return scanner.run()
