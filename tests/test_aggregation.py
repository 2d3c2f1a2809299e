from __future__ import annotations

from decimal import Decimal

from replica.ingest.aggregation import (
    CATEGORY_ORDER,
    Category,
    RenderPolicy,
    build_document,
    render_bucket,
)
from replica.ingest.models import MasterRecord, OutstandingRecord, VoucherRecord


def test_categories_keep_their_declared_order() -> None:
    assert [category.value for category in CATEGORY_ORDER] == [
        "sales",
        "purchase",
        "receipt",
        "payment",
        "journal",
        "debit",
        "credit",
        "masters",
        "outstandingReceivable",
        "outstandingPayable",
    ]


def test_empty_bucket_has_no_header() -> None:
    assert render_bucket([], ("A", "B")) == []
    assert render_bucket([], ("A", "B"), RenderPolicy.SPREADSHEET) == []


def test_header_policy_prefixes_one_synthetic_row() -> None:
    bucket = render_bucket([{"A": 1, "B": 2}], ("A", "B"))

    assert bucket == [{"A": "A", "B": "B"}, {"A": 1, "B": 2}]


def test_spreadsheet_policy_adds_blank_row_before_header() -> None:
    bucket = render_bucket([{"A": 1, "B": 2}, {"A": 3, "B": 4}], ("A", "B"), RenderPolicy.SPREADSHEET)

    assert len(bucket) == 4
    assert bucket[0] == {"A": "", "B": ""}
    assert bucket[1] == {"A": "A", "B": "B"}


def test_unknown_render_policy_falls_back_to_header() -> None:
    assert RenderPolicy.from_value("Spreadsheet") is RenderPolicy.SPREADSHEET
    assert RenderPolicy.from_value("columns") is RenderPolicy.HEADER
    assert RenderPolicy.from_value(None) is RenderPolicy.HEADER


def test_build_document_counts_exclude_header_rows() -> None:
    records = {
        Category.SALES: [
            VoucherRecord(VoucherType="Sales", Party="Acme", Amount=Decimal("-1000")),
            VoucherRecord(VoucherType="Sales", Party="Beta", Amount=Decimal("12.5")),
        ],
        Category.MASTERS: [MasterRecord(Type="Ledger", Name="Cash")],
    }

    document = build_document(records, source="tally", time="2024-01-01T00:00:00Z")

    assert document.counts["sales"] == 2
    assert document.counts["masters"] == 1
    assert document.counts["outstandingPayable"] == 0
    assert len(document.rows["sales"]) == 3
    assert document.rows["sales"][0]["Party"] == "Party"
    assert document.rows["sales"][1]["Amount"] == -1000
    assert document.rows["sales"][2]["Amount"] == 12.5
    assert document.rows["purchase"] == []
    assert set(document.rows) == {category.value for category in CATEGORY_ORDER}


def test_flat_rows_concatenate_buckets_in_category_order() -> None:
    records = {
        Category.OUTSTANDING_PAYABLE: [OutstandingRecord(Party="Supplier")],
        Category.SALES: [VoucherRecord(VoucherType="Sales", Party="Acme")],
    }

    document = build_document(records, source="tally", time="t")
    flat = document.to_dict()["flatRows"]

    assert [row.get("Party") for row in flat] == ["Party", "Acme", "Party", "Supplier"]


def test_document_serialises_with_status_and_metadata() -> None:
    payload = build_document({}, source="branch-1", time="t").to_dict()

    assert payload["status"] == "ok"
    assert payload["source"] == "branch-1"
    assert payload["time"] == "t"
    assert all(count == 0 for count in payload["counts"].values())
    assert payload["flatRows"] == []
