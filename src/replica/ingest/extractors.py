"""Tolerant, tag-name driven access to Tally XML exports.

Documents are tokenised with lxml's recovering parser into an element tree, so
blocks are balanced even when a tag is nested inside a tag of the same name.
Tag matching is case-insensitive throughout.
"""
from __future__ import annotations

import logging
import re
from copy import deepcopy
from typing import Iterable, Iterator, List, Sequence, Union

from lxml import etree

from replica.errors import ParseError

LOGGER = logging.getLogger(__name__)

Element = etree._Element
XmlSource = Union[str, bytes, Element]

_SYNTHETIC_ROOT = "REPLICA_ROOT"
_XML_DECLARATION_RE = re.compile(r"<\?xml[^>]*\?>", re.IGNORECASE)
_DOCTYPE_RE = re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE)
_CHAR_REF_RE = re.compile(r"&#(x[0-9a-fA-F]+|[0-9]+);")
_INVALID_XML_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _is_valid_xml_codepoint(codepoint: int) -> bool:
    return (
        codepoint in (0x9, 0xA, 0xD)
        or 0x20 <= codepoint <= 0xD7FF
        or 0xE000 <= codepoint <= 0xFFFD
        or 0x10000 <= codepoint <= 0x10FFFF
    )


def _drop_invalid_char_ref(match: re.Match[str]) -> str:
    ref = match.group(1)
    try:
        codepoint = int(ref[1:], 16) if ref[:1] in ("x", "X") else int(ref)
    except ValueError:
        return ""
    return match.group(0) if _is_valid_xml_codepoint(codepoint) else ""


def sanitize_xml(text: str) -> str:
    """Strip declarations and characters that XML 1.0 forbids."""

    cleaned = _XML_DECLARATION_RE.sub("", text)
    cleaned = _DOCTYPE_RE.sub("", cleaned)
    cleaned = _CHAR_REF_RE.sub(_drop_invalid_char_ref, cleaned)
    return _INVALID_XML_CHARS_RE.sub("", cleaned)


def _make_parser() -> etree.XMLParser:
    return etree.XMLParser(
        recover=True,
        huge_tree=True,
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
    )


def parse_xml(xml: Union[str, bytes]) -> Element:
    """Parse *xml* into an element tree rooted at a synthetic wrapper element.

    Wrapping lets fragments with several top-level elements parse as one
    document. Raises :class:`ParseError` when nothing can be recovered.
    """

    if isinstance(xml, bytes):
        xml = xml.decode("utf-8", errors="replace")
    wrapped = f"<{_SYNTHETIC_ROOT}>{sanitize_xml(xml)}</{_SYNTHETIC_ROOT}>"
    try:
        root = etree.fromstring(wrapped.encode("utf-8"), _make_parser())
    except etree.XMLSyntaxError as exc:
        raise ParseError("XML document could not be parsed", cause=exc) from exc
    if root is None:
        raise ParseError("XML document is empty or unrecoverable")
    return root


def local_name(element: Element) -> str:
    """Return the upper-cased tag name of *element* without namespace."""

    tag = element.tag
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        tag = tag.split("}", 1)[1]
    return tag.upper()


def _as_element(source: XmlSource) -> Element:
    if isinstance(source, (str, bytes)):
        return parse_xml(source)
    return source


def _iter_top_level(root: Element, names: frozenset[str]) -> Iterator[Element]:
    stack: List[Element] = list(reversed(list(root)))
    while stack:
        element = stack.pop()
        if local_name(element) in names:
            yield element
            continue
        stack.extend(reversed(list(element)))


def extract_blocks(source: XmlSource, tag_name: str | Sequence[str]) -> List[Element]:
    """Return all top-level blocks named *tag_name* below *source*.

    A matched block is not searched for further matches, so the result never
    contains overlapping blocks. Several alternate names may be given; the
    blocks are then returned in document order regardless of which name
    matched.
    """

    names = [tag_name] if isinstance(tag_name, str) else list(tag_name)
    root = _as_element(source)
    return list(_iter_top_level(root, frozenset(name.upper() for name in names)))


def _iter_leaves(block: Element, tag_name: str) -> Iterator[Element]:
    wanted = tag_name.upper()
    for element in block.iterdescendants():
        if local_name(element) == wanted and len(element) == 0:
            yield element


def get_field(block: Element, tag_name: str) -> str:
    """Return the first non-empty leaf text for *tag_name* inside *block*.

    Falls back to an attribute of the block itself carrying the same name,
    which is how Tally writes ``<VOUCHER VCHTYPE="Sales">``.
    """

    for element in _iter_leaves(block, tag_name):
        text = (element.text or "").strip()
        if text:
            return text
    wanted = tag_name.upper()
    for key, value in block.attrib.items():
        if key.upper() == wanted and value.strip():
            return value.strip()
    return ""


def get_any(block: Element, tag_names: Iterable[str]) -> str:
    """Try each alternate tag in order and return the first non-empty value."""

    for tag_name in tag_names:
        value = get_field(block, tag_name)
        if value:
            return value
    return ""


def get_all(block: Element, tag_name: str) -> List[str]:
    """Return every leaf text for *tag_name*, empty values included."""

    return [(element.text or "").strip() for element in _iter_leaves(block, tag_name)]


def group_flat_records(root: Element, start_tag: str) -> List[Element]:
    """Group sibling elements into pseudo records that each begin at *start_tag*.

    Columnar TDL reports emit one record as a run of siblings directly under
    the envelope instead of wrapping it in an element of its own.
    """

    wanted = start_tag.upper()
    first = next((el for el in root.iterdescendants() if local_name(el) == wanted), None)
    if first is None:
        return []
    container = first.getparent()
    if container is None:
        return []

    records: List[Element] = []
    current: Element | None = None
    for child in container:
        if local_name(child) == wanted:
            current = etree.Element("RECORD")
            records.append(current)
        if current is not None:
            current.append(deepcopy(child))
    return records


__all__ = [
    "Element",
    "extract_blocks",
    "get_all",
    "get_any",
    "get_field",
    "group_flat_records",
    "local_name",
    "parse_xml",
    "sanitize_xml",
]
