"""
Base utilities for XML decoding.

Provides common functions for decoding Tally XML responses including:
- XML sanitization
- Tree decoding with single-element list collapsing
- List coercion for fields that may hold one or many rows
- Decimal and quantity parsing
"""
from __future__ import annotations
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from lxml import etree
from loguru import logger

from ..errors import ParseError


def sanitize_xml(xml_text: str) -> str:
    """
    Remove invalid XML characters and fix common issues.

    Tally sometimes produces XML with control characters or invalid sequences.
    This function cleans those up for safe parsing.
    """
    if not xml_text:
        return xml_text

    # Remove null bytes
    xml_text = xml_text.replace("\x00", "")

    # Remove numeric character references for control chars (except tab, newline, CR)
    xml_text = re.sub(r'&#([0-8]|1[0-2]|1[4-9]|2[0-9]|3[01]);', '', xml_text)
    xml_text = re.sub(r'&#x([0-8bBcCeEfF]|1[0-9a-fA-F]);', '', xml_text)

    # XML 1.0 only allows #x9 | #xA | #xD | [#x20-#xD7FF] | [#xE000-#xFFFD]
    xml_text = "".join(
        c if (
            c in "\t\n\r" or
            0x20 <= ord(c) <= 0xD7FF or
            0xE000 <= ord(c) <= 0xFFFD
        ) else ""
        for c in xml_text
    )

    # Replace unescaped ampersands (but not valid entities)
    xml_text = re.sub(r"&(?!(amp|lt|gt|apos|quot|#\d+|#x[\da-fA-F]+);)", "&amp;", xml_text)

    return xml_text


def parse_xml(xml_text: str) -> etree._Element:
    """
    Parse a Tally response into an lxml element.

    Raises:
        ParseError: If the response is empty or not well-formed
    """
    if not xml_text or not xml_text.strip():
        raise ParseError("Empty response from Tally")
    sanitized = sanitize_xml(xml_text)
    try:
        return etree.fromstring(sanitized.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Invalid XML from Tally: {e}") from e


def _element_value(element: etree._Element) -> Any:
    children = [c for c in element if isinstance(c.tag, str)]
    if not children:
        return (element.text or "").strip()

    value: dict[str, Any] = {}
    for child in children:
        decoded = _element_value(child)
        if child.tag in value:
            existing = value[child.tag]
            if isinstance(existing, list):
                existing.append(decoded)
            else:
                value[child.tag] = [existing, decoded]
        else:
            value[child.tag] = decoded
    return value


def decode_tree(xml_text: str) -> dict[str, Any]:
    """
    Decode XML into nested dicts keyed by tag name.

    Attributes are ignored. A tag that occurs once under its parent becomes a
    bare value (a string for leaf elements, a dict otherwise); a tag that
    repeats becomes a list. Callers must pass list-shaped fields through
    ``as_list`` before iterating.

    Raises:
        ParseError: If the response is not well-formed XML
    """
    root = parse_xml(xml_text)
    return {root.tag: _element_value(root)}


def as_list(value: Any) -> list:
    """Coerce a decoded field to a list: None -> [], scalar/dict -> [value]."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def get_path(node: Any, path: str, default: Any = None) -> Any:
    """
    Walk a decoded tree along a slash separated path.

    Returns default when any step is missing or is not a dict.
    """
    current = node
    for step in path.split("/"):
        if not isinstance(current, dict) or step not in current:
            return default
        current = current[step]
    return current


def text_of(value: Any, field: Optional[str] = None) -> str:
    """
    Text of a decoded leaf.

    If value is a dict, ``field`` names the child holding the text. Repeated
    values take the first entry.
    """
    if isinstance(value, list):
        value = value[0] if value else ""
    if isinstance(value, dict):
        value = value.get(field, "") if field else ""
        if isinstance(value, list):
            value = value[0] if value else ""
    if value is None or isinstance(value, dict):
        return ""
    return str(value).strip()


_NUMBER_RE = re.compile(r"-?\d*\.?\d+")
_BOX_PCS_RE = re.compile(
    r"(-?\d*\.?\d+)\s*box(?:es)?\s*(-?\d*\.?\d+)\s*(?:pcs|pieces|pc)\b", re.IGNORECASE
)
_BOX_RE = re.compile(r"^(-?\d*\.?\d+)\s*box(?:es)?\b", re.IGNORECASE)


def _strip_negative(s: str) -> tuple[str, bool]:
    """Handle Tally's parenthesised negatives, e.g. '(5) pcs' or '(1,200.00)'."""
    m = re.match(r"^\((.*?)\)(.*)$", s)
    if m:
        return (m.group(1) + m.group(2)).strip(), True
    return s, False


def parse_decimal(s: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Parse a Tally numeric string to Decimal.

    Handles:
    - Comma separators (1,234.56)
    - Parentheses for negatives ((1234.56))
    - Currency symbols and percent signs
    - Empty strings (returns default)
    """
    if s is None:
        return default
    if isinstance(s, Decimal):
        return s

    s = str(s).strip()
    if not s or s.lower() in ("null", "none"):
        return default

    s, is_negative = _strip_negative(s)
    s = re.sub(r"[,₹$%\s]", "", s)
    if s.startswith("-"):
        is_negative = not is_negative
        s = s[1:]

    try:
        val = Decimal(s)
    except InvalidOperation:
        logger.warning(f"Could not parse number: {s}")
        return default
    if not val.is_finite():
        logger.warning(f"Could not parse number: {s}")
        return default
    return -val if is_negative else val


def parse_rate(s: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Parse a rate that may carry a unit suffix, e.g. '120.00/pcs'."""
    if s is None:
        return default
    return parse_decimal(str(s).split("/")[0], default)


def parse_quantity(s: Any, pieces_per_box: int = 16) -> Decimal:
    """
    Parse a Tally quantity display string to a Decimal count.

    Examples: "120 pcs" -> 120, "(5) pcs" -> -5, "3 box 4 pcs" with 16
    pieces per box -> 52, "2 box" -> 32. Unparseable values return 0.
    """
    if s is None:
        return Decimal("0")

    s = str(s).strip()
    if not s:
        return Decimal("0")

    s, is_negative = _strip_negative(s)
    s = s.replace(",", "")

    compound = _BOX_PCS_RE.search(s)
    whole_boxes = _BOX_RE.match(s)
    if compound:
        boxes = Decimal(compound.group(1))
        pieces = Decimal(compound.group(2))
        val = boxes * pieces_per_box + pieces
    elif whole_boxes:
        val = Decimal(whole_boxes.group(1)) * pieces_per_box
    else:
        m = _NUMBER_RE.match(s)
        if not m:
            logger.warning(f"Could not parse quantity: {s}")
            return Decimal("0")
        val = Decimal(m.group(0))

    return -val if is_negative else val
