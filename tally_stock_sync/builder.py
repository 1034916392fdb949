"""
Export request builder.

Renders the Jinja2 templates under ``requests/`` into XML export requests for
the Tally HTTP API. Company and report names are XML-escaped before they are
embedded, so names such as ``"Sharma & Sons"`` produce a well-formed request.
"""
from __future__ import annotations
from typing import Optional
from jinja2 import Environment, FileSystemLoader, StrictUndefined
from loguru import logger

from .models import ExportRequest
from .reports import STATIC_TOGGLES, get_report
from .requests import TEMPLATE_DIR, get_template_name

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=True,
    undefined=StrictUndefined,
)


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def make_export_request(
    report_kind: str,
    company_name: str,
    options: Optional[dict[str, bool]] = None,
    report_names: Optional[dict[str, str]] = None,
) -> ExportRequest:
    """
    Resolve report kind, company and toggles into an ExportRequest.

    Args:
        report_kind: 'stock-summary', 'price-list' or 'godown-list'
        company_name: Company as named in the ledger system
        options: Static variable toggles overriding the report defaults
        report_names: Optional kind -> report name overrides

    Raises:
        ValueError: On an unknown report kind, an empty company name or an
            unrecognised or non-boolean static variable
    """
    if not company_name or not company_name.strip():
        raise ValueError("company_name must not be empty")

    report = get_report(report_kind, report_names)
    toggles = dict(report.toggles)
    for name, value in (options or {}).items():
        key = name.upper()
        if key not in STATIC_TOGGLES:
            raise ValueError(f"Unknown static variable: {name}. Valid: {list(STATIC_TOGGLES)}")
        if not isinstance(value, bool):
            raise ValueError(f"Static variable {name} must be True or False, got {value!r}")
        toggles[key] = value

    return ExportRequest(
        report_name=report.report_name,
        company_name=company_name,
        static_variables={k: _yes_no(v) for k, v in toggles.items()},
    )


def render_export_request(request: ExportRequest) -> str:
    """Render an ExportRequest into the XML document sent to Tally."""
    template = _env.get_template(get_template_name("export_report"))
    return template.render(
        request_type=request.request_type,
        report_name=request.report_name,
        company_name=request.company_name,
        static_variables=request.static_variables,
    ).strip()


def build_export_request(
    report_kind: str,
    company_name: str,
    options: Optional[dict[str, bool]] = None,
    report_names: Optional[dict[str, str]] = None,
) -> str:
    """Build the XML export request for a report kind and company."""
    request = make_export_request(report_kind, company_name, options, report_names)
    logger.debug(f"Built {report_kind} request for {company_name!r} ({request.report_name})")
    return render_export_request(request)


def build_connection_probe(company_name: str) -> str:
    """Small collection request used to check that Tally answers."""
    template = _env.get_template(get_template_name("connection_probe"))
    return template.render(company_name=company_name).strip()
