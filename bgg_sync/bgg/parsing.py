"""
Parsing helpers shared by both BGG clients.

BGG's XML is converted into plain nested dicts before any field is read.
In that shape an element that occurs once is a bare dict while an element
that occurs several times is a list, so every repeatable field is passed
through ``as_list`` before iterating. Attributes are stored under ``@name``
and mixed text content under ``#text``.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from ..config import DESCRIPTION_MAX_LENGTH

logger = logging.getLogger(__name__)


def as_list(value: Any) -> List[Any]:
    """Normalize "absent", "one bare value" and "list of values" into a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def element_to_dict(element: ET.Element) -> Any:
    """
    Convert an ElementTree element into nested dicts.

    Leaf elements without attributes collapse to their text, so
    ``<image>url</image>`` becomes ``"url"`` while
    ``<name type="primary" value="X"/>`` becomes ``{"@type": "primary", "@value": "X"}``.
    """
    node: Dict[str, Any] = {f"@{key}": value for key, value in element.attrib.items()}

    for child in element:
        converted = element_to_dict(child)
        if child.tag in node:
            existing = node[child.tag]
            if isinstance(existing, list):
                existing.append(converted)
            else:
                node[child.tag] = [existing, converted]
        else:
            node[child.tag] = converted

    text = (element.text or "").strip()
    if not node:
        return text
    if text:
        node["#text"] = text
    return node


def parse_xml(xml_text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse an XML document into ``{root_tag: converted_root}``, or None if malformed."""
    if not xml_text:
        return None
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.error(f"XML parsing error: {e}")
        return None
    return {root.tag: element_to_dict(root)}


def xml_items(xml_text: Optional[str]) -> List[Dict[str, Any]]:
    """Return the ``<item>`` children of an ``<items>`` document as a list of dicts."""
    data = parse_xml(xml_text)
    if not data:
        return []
    items = data.get("items")
    if not isinstance(items, dict):
        return []
    return [item for item in as_list(items.get("item")) if isinstance(item, dict)]


def child(node: Any, *path: str) -> Any:
    """Walk down a path of child tags, taking the first node at each level."""
    for key in path:
        nodes = as_list(node)
        if not nodes or not isinstance(nodes[0], dict):
            return None
        node = nodes[0].get(key)
    return node


def attr(node: Any, name: str) -> Optional[str]:
    """Read an attribute from a converted node; accepts a bare node or a list of them."""
    nodes = as_list(node)
    if not nodes or not isinstance(nodes[0], dict):
        return None
    value = nodes[0].get(f"@{name}")
    return value if value not in (None, "") else None


def text(node: Any) -> Optional[str]:
    """
    Read the textual value of a converted node.

    Handles the shapes BGG produces for the same field: a bare string,
    a node with ``#text`` content, a node with a ``value`` attribute,
    or a list holding any of those.
    """
    nodes = as_list(node)
    if not nodes:
        return None
    first = nodes[0]
    if isinstance(first, dict):
        first = first.get("#text", first.get("@value"))
    if first is None:
        return None
    value = str(first).strip()
    return value or None


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer, returning None when absent or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if not re.fullmatch(r"[+-]?\d+", value):
        return None
    return int(value)


def parse_year(value: Any) -> Optional[int]:
    """Parse a publication year; BGG uses 0 for "unknown", which becomes None."""
    year = parse_int(value)
    if not year:
        return None
    return year


def parse_rating(value: Any) -> Optional[float]:
    """Parse an average rating rounded to one decimal."""
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(str(value).strip())
    except ValueError:
        return None
    if rating != rating:  # NaN
        return None
    return round(rating, 1)


def strip_html(html: str) -> str:
    """Strip HTML tags and entities, collapsing whitespace."""
    soup = BeautifulSoup(html, "html.parser")
    return re.sub(r"\s+", " ", soup.get_text(" ")).strip()


def clean_description(raw: Optional[str], max_length: int = DESCRIPTION_MAX_LENGTH) -> Optional[str]:
    """Strip HTML from a description and truncate it at a word boundary with an ellipsis."""
    if not raw:
        return None
    description = strip_html(raw)
    if not description:
        return None
    if len(description) > max_length:
        description = re.sub(r"\s+\S*$", "", description[:max_length]) + "..."
    return description


def first_present(*values: Optional[str]) -> Optional[str]:
    """Return the first non-empty value."""
    for value in values:
        if value:
            return value
    return None
