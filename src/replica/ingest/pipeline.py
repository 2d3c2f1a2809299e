"""Push payload to NormalizedDocument: one parameterised pipeline for all categories."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from replica.errors import InvalidInputError, ParseError
from replica.telemetry import emit_category_event

from . import mapping
from .aggregation import (
    CATEGORY_ORDER,
    OUTSTANDING_CATEGORIES,
    VOUCHER_CATEGORIES,
    Category,
    NormalizedDocument,
    RenderPolicy,
    build_document,
)
from .decompress import decompress_field, has_envelope
from .extractors import Element, extract_blocks, group_flat_records, parse_xml
from .models import Record
from .normalization import normalize_masters, normalize_outstandings, normalize_vouchers

LOGGER = logging.getLogger(__name__)

Normalizer = Callable[[Element], Sequence[Record]]


def field_name(category: Category) -> str:
    """Name of the push payload field carrying *category*, e.g. ``salesXml``."""

    return f"{category.value}Xml"


def normalizer_for(category: Category) -> Normalizer:
    if category in VOUCHER_CATEGORIES:
        return normalize_vouchers
    if category in OUTSTANDING_CATEGORIES:
        return normalize_outstandings
    return normalize_masters


def count_blocks(category: Category, root: Element) -> int:
    """Number of record blocks the normaliser for *category* reads from *root*."""

    if category in VOUCHER_CATEGORIES:
        return len(extract_blocks(root, mapping.VOUCHER_BLOCK_TAGS))
    if category in OUTSTANDING_CATEGORIES:
        for tag in mapping.OUTSTANDING_BLOCK_TAGS:
            blocks = extract_blocks(root, tag)
            if blocks:
                return len(blocks)
        return len(group_flat_records(root, mapping.OUTSTANDING_FLAT_RECORD_TAG))
    return len(extract_blocks(root, tuple(mapping.MASTER_BLOCK_TYPES)))


def category_for_voucher_type(voucher_type: str) -> Optional[Category]:
    lowered = voucher_type.strip().lower()
    for keyword, category in mapping.VOUCHER_TYPE_CATEGORIES:
        if keyword in lowered:
            return Category(category)
    return None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class SyncPipelineConfig:
    render_policy: RenderPolicy = RenderPolicy.HEADER
    default_source: str = "tally"


class SyncPipeline:
    """Decode, extract, normalise and aggregate one push into a document."""

    def __init__(self, config: Optional[SyncPipelineConfig] = None) -> None:
        self.config = config or SyncPipelineConfig()

    def run(self, payload: Mapping[str, Any], *, req_id: str | None = None) -> NormalizedDocument:
        """Process a JSON push envelope.

        Each ``<category>Xml`` field is handled independently: a field that
        is not a string, or cannot be decoded or parsed, leaves its bucket
        empty without affecting the other categories. Unrecognised fields are
        ignored.
        """

        if not isinstance(payload, Mapping):
            raise InvalidInputError("Push body must be a JSON object")

        records: Dict[Category, Sequence[Record]] = {}
        for category in CATEGORY_ORDER:
            records[category] = self._process_category(
                category, payload.get(field_name(category)), req_id=req_id
            )

        return build_document(
            records,
            source=self._source(payload.get("source")),
            time=self._time(payload.get("time")),
            policy=self.config.render_policy,
        )

    def run_envelope(
        self,
        xml: str,
        *,
        source: str | None = None,
        time: str | None = None,
        req_id: str | None = None,
    ) -> NormalizedDocument:
        """Process a single plain ``<ENVELOPE>`` export.

        Vouchers are routed to categories by their voucher type name and
        master blocks land in ``masters``.
        """

        if not has_envelope(xml):
            raise InvalidInputError("Invalid XML format: missing <ENVELOPE> root")
        try:
            root = parse_xml(xml)
        except ParseError as error:
            raise InvalidInputError(f"Invalid XML format: {error}", cause=error) from error

        routed: Dict[Category, List[Record]] = {category: [] for category in CATEGORY_ORDER}
        unrouted = 0
        for voucher in normalize_vouchers(root):
            category = category_for_voucher_type(voucher.VoucherType)
            if category is None:
                unrouted += 1
                continue
            routed[category].append(voucher)
        if unrouted:
            LOGGER.info("Skipped %s vouchers with unrecognised voucher types", unrouted)
        routed[Category.MASTERS].extend(normalize_masters(root, positional_fallback=False))

        return build_document(
            routed,
            source=self._source(source),
            time=self._time(time),
            policy=self.config.render_policy,
        )

    def _process_category(self, category: Category, value: object, *, req_id: str | None) -> List[Record]:
        xml = decompress_field(value, category=category.value)
        if not xml:
            return []

        try:
            root = parse_xml(xml)
            records = list(normalizer_for(category)(root))
        except ParseError as error:
            LOGGER.warning("Discarding %s: %s", category.value, error)
            emit_category_event(
                category.value, req_id=req_id, xml_chars=len(xml), blocks=0, records=0, error=error
            )
            return []

        emit_category_event(
            category.value,
            req_id=req_id,
            xml_chars=len(xml),
            blocks=count_blocks(category, root),
            records=len(records),
        )
        return records

    def _source(self, value: object) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return self.config.default_source

    @staticmethod
    def _time(value: object) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return utc_timestamp()


__all__ = [
    "SyncPipeline",
    "SyncPipelineConfig",
    "category_for_voucher_type",
    "count_blocks",
    "field_name",
    "normalizer_for",
    "utc_timestamp",
]
