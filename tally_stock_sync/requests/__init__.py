"""
XML request templates for the Tally HTTP API.

Templates are Jinja2 files that render XML export requests.
"""
from pathlib import Path

# Template directory
TEMPLATE_DIR = Path(__file__).parent

# Available templates
TEMPLATES = {
    "export_report": "export_report.xml.j2",
    "connection_probe": "connection_probe.xml.j2",
}


def get_template_name(name: str) -> str:
    """Get the file name of a template."""
    if name not in TEMPLATES:
        raise ValueError(f"Unknown template: {name}. Valid: {list(TEMPLATES.keys())}")
    return TEMPLATES[name]
