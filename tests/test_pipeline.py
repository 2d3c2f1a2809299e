"""Tests for the push pipeline that turns category fields into a document."""
from __future__ import annotations

import logging

import pytest

from replica.errors import InvalidInputError
from replica.ingest.aggregation import Category, RenderPolicy
from replica.ingest.extractors import parse_xml
from replica.ingest.pipeline import (
    SyncPipeline,
    SyncPipelineConfig,
    category_for_voucher_type,
    count_blocks,
    field_name,
)


def test_field_names_follow_category_names() -> None:
    assert field_name(Category.SALES) == "salesXml"
    assert field_name(Category.OUTSTANDING_RECEIVABLE) == "outstandingReceivableXml"


def test_encoded_sales_field_is_normalised(sales_xml: str, encode) -> None:
    pipeline = SyncPipeline()

    document = pipeline.run({"salesXml": encode(sales_xml), "source": "branch", "time": "2024-01-01T00:00:00Z"})

    assert document.counts["sales"] == 1
    assert document.source == "branch"
    assert document.time == "2024-01-01T00:00:00Z"
    assert document.rows["sales"][1]["Amount"] == -1000


def test_all_fields_absent_yields_empty_buckets() -> None:
    document = SyncPipeline().run({})

    assert all(count == 0 for count in document.counts.values())
    assert all(bucket == [] for bucket in document.rows.values())
    assert document.source == "tally"
    assert document.time.endswith("Z")


def test_undecodable_field_does_not_block_other_categories(sales_xml: str) -> None:
    document = SyncPipeline().run({"salesXml": sales_xml, "purchaseXml": "@@not-base64@@"})

    assert document.counts["sales"] == 1
    assert document.counts["purchase"] == 0


def test_non_string_field_leaves_only_its_bucket_empty(sales_xml: str) -> None:
    document = SyncPipeline().run({"salesXml": sales_xml, "purchaseXml": 5, "mastersXml": ["<ENVELOPE/>"]})

    assert document.counts["sales"] == 1
    assert document.counts["purchase"] == 0
    assert document.counts["masters"] == 0


def test_non_mapping_payload_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        SyncPipeline().run(["salesXml"])  # type: ignore[arg-type]


def test_spreadsheet_policy_is_applied(sales_xml: str) -> None:
    pipeline = SyncPipeline(SyncPipelineConfig(render_policy=RenderPolicy.SPREADSHEET))

    document = pipeline.run({"salesXml": sales_xml})

    assert len(document.rows["sales"]) == 3
    assert document.rows["sales"][0]["Party"] == ""


def test_outstanding_and_master_fields_use_their_normalisers() -> None:
    payload = {
        "mastersXml": "<ENVELOPE><LEDGER><NAME>Cash</NAME><PARENT>Cash-in-Hand</PARENT></LEDGER></ENVELOPE>",
        "outstandingPayableXml": "<ENVELOPE><BILL><PARTYNAME>Supplier</PARTYNAME><CLOSINGBALANCE>40</CLOSINGBALANCE></BILL></ENVELOPE>",
    }

    document = SyncPipeline().run(payload)

    assert document.rows["masters"][1]["Name"] == "Cash"
    assert document.rows["outstandingPayable"][1]["Party"] == "Supplier"
    assert document.counts["outstandingReceivable"] == 0


@pytest.mark.parametrize(
    ("voucher_type", "expected"),
    [
        ("Sales", Category.SALES),
        ("GST Sales", Category.SALES),
        ("Credit Note", Category.CREDIT),
        ("Debit Note", Category.DEBIT),
        ("Payment", Category.PAYMENT),
        ("Stock Journal", Category.JOURNAL),
        ("Memorandum", None),
    ],
)
def test_voucher_type_routing(voucher_type: str, expected: Category | None) -> None:
    assert category_for_voucher_type(voucher_type) is expected


def test_envelope_vouchers_are_routed_by_type() -> None:
    xml = (
        "<ENVELOPE>"
        "<VOUCHER><VOUCHERTYPENAME>Sales</VOUCHERTYPENAME><PARTYNAME>Acme</PARTYNAME></VOUCHER>"
        "<VOUCHER><VOUCHERTYPENAME>Receipt</VOUCHERTYPENAME><PARTYNAME>Acme</PARTYNAME></VOUCHER>"
        "<VOUCHER><VOUCHERTYPENAME>Memorandum</VOUCHERTYPENAME><PARTYNAME>Skip</PARTYNAME></VOUCHER>"
        "<LEDGER><NAME>Acme</NAME></LEDGER>"
        "</ENVELOPE>"
    )

    document = SyncPipeline().run_envelope(xml, source="desktop")

    assert document.source == "desktop"
    assert document.counts["sales"] == 1
    assert document.counts["receipt"] == 1
    assert document.counts["masters"] == 1
    assert sum(document.counts.values()) == 3


def test_envelope_without_marker_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        SyncPipeline().run_envelope("<REPORT/>")


def test_category_event_reports_extracted_blocks(caplog: pytest.LogCaptureFixture) -> None:
    xml = (
        "<ENVELOPE>"
        "<VOUCHER><VOUCHERTYPENAME>Sales</VOUCHERTYPENAME><PARTYNAME>Acme</PARTYNAME></VOUCHER>"
        "<VOUCHER><VOUCHERTYPENAME>Sales</VOUCHERTYPENAME><PARTYNAME>Beta</PARTYNAME></VOUCHER>"
        "<VOUCHER><VOUCHERTYPENAME>Voucher Type</VOUCHERTYPENAME></VOUCHER>"
        "</ENVELOPE>"
    )

    with caplog.at_level(logging.DEBUG, logger="replica.telemetry"):
        SyncPipeline().run({"salesXml": xml}, req_id="req-1")

    events = [
        record.msg
        for record in caplog.records
        if isinstance(record.msg, dict) and record.msg.get("step") == "push.category"
    ]
    [sales] = [event for event in events if event["details"]["category"] == "sales"]
    assert sales["req_id"] == "req-1"
    assert sales["details"]["blocks"] == 3
    assert sales["details"]["records"] == 2


def test_count_blocks_follows_the_outstanding_priority() -> None:
    root = parse_xml(
        "<ENVELOPE><LEDGER><BILL><NAME>a</NAME></BILL><BILL><NAME>b</NAME></BILL></LEDGER></ENVELOPE>"
    )

    assert count_blocks(Category.OUTSTANDING_PAYABLE, root) == 2
    assert count_blocks(Category.MASTERS, root) == 1
    assert count_blocks(Category.SALES, root) == 0
