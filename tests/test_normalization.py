"""Tests for projecting Tally blocks into normalised records."""
from __future__ import annotations

from decimal import Decimal

import pytest

from replica.ingest.extractors import parse_xml
from replica.ingest.normalization import (
    apply_sign_correction,
    is_retained,
    normalize_masters,
    normalize_outstandings,
    normalize_vouchers,
    parse_amount,
)


def _voucher(body: str) -> str:
    return f"<ENVELOPE><VOUCHER>{body}</VOUCHER></ENVELOPE>"


def test_deemed_positive_sales_amount_is_negated(sales_xml: str) -> None:
    vouchers = normalize_vouchers(parse_xml(sales_xml))

    assert len(vouchers) == 1
    row = vouchers[0].to_row()
    assert row["VoucherType"] == "Sales"
    assert row["Date"] == "20240101"
    assert row["Party"] == "Acme"
    assert row["Amount"] == -1000


@pytest.mark.parametrize(
    ("flag", "amount", "expected"),
    [
        ("No", "1000", 1000),
        ("", "1000", 1000),
        ("Yes", "-250.50", -250.5),
        ("yes", "0", 0),
    ],
)
def test_sign_is_kept_unless_deemed_positive_and_positive(flag: str, amount: str, expected: float) -> None:
    flag_xml = f"<ISDEEMEDPOSITIVE>{flag}</ISDEEMEDPOSITIVE>" if flag else ""
    xml = _voucher(f"<PARTYNAME>Acme</PARTYNAME><AMOUNT>{amount}</AMOUNT>{flag_xml}")

    [voucher] = normalize_vouchers(parse_xml(xml))

    assert voucher.to_row()["Amount"] == expected


def test_apply_sign_correction() -> None:
    assert apply_sign_correction(Decimal("5"), " YES ") == Decimal("-5")
    assert apply_sign_correction(Decimal("5"), "No") == Decimal("5")
    assert apply_sign_correction(Decimal("-5"), "Yes") == Decimal("-5")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("1,23,456.78", Decimal("123456.78")),
        ("₹ 1000 Dr", Decimal("1000")),
        ("-42", Decimal("-42")),
        ("", Decimal(0)),
        (None, Decimal(0)),
        ("abc", Decimal(0)),
        ("1.2.3", Decimal(0)),
        ("--", Decimal(0)),
    ],
)
def test_parse_amount(text: object, expected: Decimal) -> None:
    assert parse_amount(text) == expected


def test_retention_filter_drops_empty_and_header_records() -> None:
    assert not is_retained(["", Decimal(0), "  "])
    assert not is_retained(["Voucher Type", "", Decimal(0)])
    assert not is_retained(["Date"])
    assert is_retained(["Acme"])
    assert is_retained(["Date", Decimal(1)])
    assert is_retained(["Date of the last reconciliation"])


def test_template_header_vouchers_are_dropped() -> None:
    xml = (
        "<ENVELOPE>"
        "<VOUCHER><VOUCHERTYPENAME>Voucher Type</VOUCHERTYPENAME></VOUCHER>"
        "<VOUCHER><DATE></DATE><AMOUNT>0</AMOUNT></VOUCHER>"
        "<VOUCHER><VOUCHERTYPENAME>Sales</VOUCHERTYPENAME><AMOUNT>10</AMOUNT></VOUCHER>"
        "</ENVELOPE>"
    )

    vouchers = normalize_vouchers(parse_xml(xml))

    assert [voucher.VoucherType for voucher in vouchers] == ["Sales"]


def test_ledger_entries_use_their_own_deemed_positive_flag() -> None:
    xml = _voucher(
        "<VOUCHERTYPENAME>Receipt</VOUCHERTYPENAME>"
        "<ALLLEDGERENTRIES.LIST><LEDGERNAME>Cash</LEDGERNAME>"
        "<ISDEEMEDPOSITIVE>Yes</ISDEEMEDPOSITIVE><AMOUNT>500</AMOUNT></ALLLEDGERENTRIES.LIST>"
        "<ALLLEDGERENTRIES.LIST><LEDGERNAME>Acme</LEDGERNAME>"
        "<ISDEEMEDPOSITIVE>No</ISDEEMEDPOSITIVE><AMOUNT>500</AMOUNT></ALLLEDGERENTRIES.LIST>"
    )

    [voucher] = normalize_vouchers(parse_xml(xml))

    entries = [entry.to_row() for entry in voucher.LedgerEntries]
    assert entries == [
        {"LedgerName": "Cash", "Amount": -500, "Narration": ""},
        {"LedgerName": "Acme", "Amount": 500, "Narration": ""},
    ]


def test_voucher_amount_uses_the_voucher_level_flag() -> None:
    xml = _voucher(
        "<ISDEEMEDPOSITIVE>Yes</ISDEEMEDPOSITIVE>"
        "<ALLLEDGERENTRIES.LIST><LEDGERNAME>Acme</LEDGERNAME><AMOUNT>100</AMOUNT>"
        "<ISDEEMEDPOSITIVE>No</ISDEEMEDPOSITIVE></ALLLEDGERENTRIES.LIST>"
    )

    [voucher] = normalize_vouchers(parse_xml(xml))

    assert voucher.Amount == Decimal(-100)
    assert voucher.LedgerEntries[0].Amount == Decimal(100)


def test_nested_inventory_entries_become_items() -> None:
    xml = _voucher(
        "<VOUCHERTYPENAME>Sales</VOUCHERTYPENAME>"
        "<ALLINVENTORYENTRIES.LIST><STOCKITEMNAME>Widget</STOCKITEMNAME>"
        "<RATE>25.00/Nos</RATE><BILLEDQTY>4 Nos</BILLEDQTY><AMOUNT>100.00</AMOUNT>"
        "</ALLINVENTORYENTRIES.LIST>"
    )

    [voucher] = normalize_vouchers(parse_xml(xml))

    assert [item.to_row() for item in voucher.Items] == [
        {
            "StockItemName": "Widget",
            "ItemGroup": "",
            "ItemCategory": "",
            "Qty": 4,
            "Rate": 25,
            "Amount": 100,
            "UOM": "Nos",
        }
    ]


def test_positional_items_are_zipped_when_no_inventory_blocks_exist() -> None:
    xml = _voucher(
        "<VOUCHERTYPENAME>Sales</VOUCHERTYPENAME>"
        "<STOCKITEMNAME>Widget</STOCKITEMNAME><RATE>2.5</RATE><BILLEDQTY>4</BILLEDQTY>"
        "<STOCKITEMNAME>Gadget</STOCKITEMNAME><RATE>10</RATE>"
    )

    [voucher] = normalize_vouchers(parse_xml(xml))

    assert [(item.StockItemName, item.Amount) for item in voucher.Items] == [
        ("Widget", Decimal("10.0")),
        ("Gadget", Decimal(0)),
    ]


def test_master_blocks_are_typed_by_tag() -> None:
    xml = (
        "<ENVELOPE>"
        '<LEDGER NAME="Acme"><PARENT>Sundry Debtors</PARENT><OPENINGBALANCE>-1,000</OPENINGBALANCE>'
        "<CLOSINGBALANCE>250</CLOSINGBALANCE><EMAIL>a@acme.test</EMAIL></LEDGER>"
        "<STOCKITEM><NAME>Widget</NAME><PARENT>Hardware</PARENT></STOCKITEM>"
        "</ENVELOPE>"
    )

    masters = [record.to_row() for record in normalize_masters(parse_xml(xml))]

    assert masters == [
        {
            "Type": "Ledger",
            "Name": "Acme",
            "OpeningBalance": -1000,
            "ClosingBalance": 250,
            "Parent": "Sundry Debtors",
            "Email": "a@acme.test",
        },
        {
            "Type": "StockItem",
            "Name": "Widget",
            "OpeningBalance": 0,
            "ClosingBalance": 0,
            "Parent": "Hardware",
            "Email": "",
        },
    ]


def test_masters_fall_back_to_positional_pairs() -> None:
    xml = "<ENVELOPE><NAME>Cash</NAME><AMOUNT>10</AMOUNT><NAME>Bank</NAME><AMOUNT>-5</AMOUNT></ENVELOPE>"

    masters = normalize_masters(parse_xml(xml))

    assert [(m.Type, m.Name, m.ClosingBalance) for m in masters] == [
        ("Ledger", "Cash", Decimal(10)),
        ("Ledger", "Bank", Decimal(-5)),
    ]
    assert normalize_masters(parse_xml(xml), positional_fallback=False) == []


def test_outstanding_blocks_are_preferred() -> None:
    xml = (
        "<ENVELOPE><BILL><PARTYNAME>Acme</PARTYNAME><CLOSINGBALANCE>1200</CLOSINGBALANCE>"
        "<OVERDUEDAYS>12</OVERDUEDAYS><PHONE>555</PHONE></BILL></ENVELOPE>"
    )

    [record] = normalize_outstandings(parse_xml(xml))

    assert record.to_row() == {"Party": "Acme", "ClosingBalance": 1200, "Days": "12", "Contact": "555"}


def test_flat_outstanding_reports_are_grouped() -> None:
    xml = (
        "<ENVELOPE>"
        "<BILLFIXED><BILLDATE>1-Apr-24</BILLDATE><BILLREF>1</BILLREF><BILLPARTY>Acme</BILLPARTY></BILLFIXED>"
        "<BILLCL>-300.00</BILLCL><BILLDUE>1-May-24</BILLDUE><BILLOVERDUE>30</BILLOVERDUE>"
        "<BILLFIXED><BILLDATE>2-Apr-24</BILLDATE><BILLREF>2</BILLREF><BILLPARTY>Beta</BILLPARTY></BILLFIXED>"
        "<BILLCL>75</BILLCL><BILLDUE>2-May-24</BILLDUE><BILLOVERDUE>3</BILLOVERDUE>"
        "</ENVELOPE>"
    )

    records = normalize_outstandings(parse_xml(xml))

    assert [(r.Party, r.ClosingBalance, r.Days) for r in records] == [
        ("Acme", Decimal("-300.00"), "30"),
        ("Beta", Decimal(75), "3"),
    ]


def test_outstanding_positional_fallback() -> None:
    xml = "<ENVELOPE><NAME>Acme</NAME><AMOUNT>99</AMOUNT></ENVELOPE>"

    [record] = normalize_outstandings(parse_xml(xml))

    assert (record.Party, record.ClosingBalance) == ("Acme", Decimal(99))
