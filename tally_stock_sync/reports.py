"""
Report definitions shared by the request builder and the response decoder.

The static variables sent with a request decide the row layout of the
response, so each report kind keeps its request defaults and the tags the
decoder reads side by side. Bump ``layout_version`` whenever either changes.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional

# Static variables the builder recognises; anything else is rejected.
STATIC_TOGGLES = (
    "EXPLODEFLAG",
    "ISDETAILEDBYQUANTITY",
    "SHOWPROFITFLAG",
    "ISITEMWISE",
    "DSPPRIMARYGROUP",
)

# Tags inside a DSPSTKINFO block that only appear on item-header rows.
HEADER_TAGS = (
    "DSPHSNVAL",
    "DSPGSTVAL",
    "DSPMRPVAL",
    "DSPRATEAFTERGSTVAL",
    "DSPVALAFTERGST",
)


@dataclass(frozen=True)
class ReportDefinition:
    """How to request one report kind and how its response rows are laid out."""

    kind: str
    report_name: str
    toggles: dict[str, bool] = field(default_factory=dict)
    names_tag: str = "DSPACCNAME"
    name_field: str = "DSPDISPNAME"
    info_tag: str = "DSPSTKINFO"
    godown_tag: Optional[str] = None
    layout_version: int = 1


REPORTS: dict[str, ReportDefinition] = {
    "stock-summary": ReportDefinition(
        kind="stock-summary",
        report_name="Stock Summary",
        toggles={
            "EXPLODEFLAG": True,
            "ISDETAILEDBYQUANTITY": True,
            "SHOWPROFITFLAG": False,
            "ISITEMWISE": True,
            "DSPPRIMARYGROUP": False,
        },
    ),
    "price-list": ReportDefinition(
        kind="price-list",
        report_name="Stock Item-Wise Summary",
        toggles={
            "EXPLODEFLAG": True,
            "ISDETAILEDBYQUANTITY": True,
            "SHOWPROFITFLAG": True,
            "ISITEMWISE": True,
            "DSPPRIMARYGROUP": False,
        },
    ),
    "godown-list": ReportDefinition(
        kind="godown-list",
        report_name="Godown Summary",
        toggles={
            "EXPLODEFLAG": True,
            "ISDETAILEDBYQUANTITY": True,
            "SHOWPROFITFLAG": False,
            "ISITEMWISE": True,
            "DSPPRIMARYGROUP": False,
        },
        godown_tag="DSPGODOWNNAME",
    ),
}


def get_report(kind: str, overrides: Optional[dict[str, str]] = None) -> ReportDefinition:
    """
    Look up a report definition.

    Args:
        kind: One of the keys of REPORTS
        overrides: Optional kind -> report name mapping from configuration

    Raises:
        ValueError: If the report kind is unknown
    """
    if kind not in REPORTS:
        raise ValueError(f"Unknown report kind: {kind}. Valid: {list(REPORTS.keys())}")
    report = REPORTS[kind]
    if overrides and overrides.get(kind):
        report = replace(report, report_name=overrides[kind])
    return report
