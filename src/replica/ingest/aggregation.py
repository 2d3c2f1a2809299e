"""Grouping of normalised records into fixed, display-ready category buckets."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .models import MasterRecord, OutstandingRecord, Record, VoucherRecord

LOGGER = logging.getLogger(__name__)

Row = Dict[str, Any]


class Category(str, Enum):
    """Data categories, declared in the order consumers rely on."""

    SALES = "sales"
    PURCHASE = "purchase"
    RECEIPT = "receipt"
    PAYMENT = "payment"
    JOURNAL = "journal"
    DEBIT = "debit"
    CREDIT = "credit"
    MASTERS = "masters"
    OUTSTANDING_RECEIVABLE = "outstandingReceivable"
    OUTSTANDING_PAYABLE = "outstandingPayable"


CATEGORY_ORDER: Tuple[Category, ...] = tuple(Category)

VOUCHER_CATEGORIES: Tuple[Category, ...] = (
    Category.SALES,
    Category.PURCHASE,
    Category.RECEIPT,
    Category.PAYMENT,
    Category.JOURNAL,
    Category.DEBIT,
    Category.CREDIT,
)

OUTSTANDING_CATEGORIES: Tuple[Category, ...] = (
    Category.OUTSTANDING_RECEIVABLE,
    Category.OUTSTANDING_PAYABLE,
)


def columns_for(category: Category) -> Tuple[str, ...]:
    if category in VOUCHER_CATEGORIES:
        return VoucherRecord.COLUMNS
    if category is Category.MASTERS:
        return MasterRecord.COLUMNS
    return OutstandingRecord.COLUMNS


class RenderPolicy(str, Enum):
    """How a non-empty bucket is prefixed.

    ``header`` emits one synthetic header row; ``spreadsheet`` emits a blank
    row followed by the header row, which is what sheet importers expect.
    """

    HEADER = "header"
    SPREADSHEET = "spreadsheet"

    @classmethod
    def from_value(cls, value: str | "RenderPolicy" | None) -> "RenderPolicy":
        if isinstance(value, RenderPolicy):
            return value
        try:
            return cls((value or cls.HEADER.value).strip().lower())
        except ValueError:
            LOGGER.warning("Unknown row render policy %r; using %s", value, cls.HEADER.value)
            return cls.HEADER


def render_bucket(
    rows: Sequence[Row],
    columns: Sequence[str],
    policy: RenderPolicy = RenderPolicy.HEADER,
) -> List[Row]:
    """Prefix *rows* with the policy's header rows; an empty bucket stays empty."""

    if not rows:
        return []
    bucket: List[Row] = []
    if policy is RenderPolicy.SPREADSHEET:
        bucket.append({column: "" for column in columns})
    bucket.append({column: column for column in columns})
    bucket.extend(rows)
    return bucket


@dataclass(slots=True)
class NormalizedDocument:
    """The unit persisted on every push and returned on fetch."""

    time: str
    source: str
    counts: Dict[str, int]
    rows: Dict[str, List[Row]]
    status: str = "ok"
    flat_rows: List[Row] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "time": self.time,
            "source": self.source,
            "counts": dict(self.counts),
            "rows": {name: list(bucket) for name, bucket in self.rows.items()},
            "flatRows": list(self.flat_rows),
        }


def build_document(
    records_by_category: Mapping[Category, Sequence[Record]],
    *,
    source: str,
    time: str,
    policy: RenderPolicy = RenderPolicy.HEADER,
) -> NormalizedDocument:
    """Aggregate records into the ten buckets plus the flattened row list."""

    counts: Dict[str, int] = {}
    rows: Dict[str, List[Row]] = {}
    flat_rows: List[Row] = []
    for category in CATEGORY_ORDER:
        records = records_by_category.get(category, ())
        bucket = render_bucket([record.to_row() for record in records], columns_for(category), policy)
        counts[category.value] = len(records)
        rows[category.value] = bucket
        flat_rows.extend(bucket)
    return NormalizedDocument(time=time, source=source, counts=counts, rows=rows, flat_rows=flat_rows)


__all__ = [
    "CATEGORY_ORDER",
    "Category",
    "NormalizedDocument",
    "OUTSTANDING_CATEGORIES",
    "RenderPolicy",
    "VOUCHER_CATEGORIES",
    "build_document",
    "columns_for",
    "render_bucket",
]
