"""Normalised record types produced from Tally XML blocks."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Tuple, Union

Number = Union[int, float]


def json_number(value: Decimal) -> Number:
    """Render a decimal as an ``int`` when integral, otherwise as a ``float``."""

    if value == value.to_integral_value():
        return int(value)
    return float(value)


class _RowMixin:
    """Shared row rendering for the record dataclasses."""

    COLUMNS: ClassVar[Tuple[str, ...]]

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for item in fields(self):  # type: ignore[arg-type]
            value = getattr(self, item.name)
            if isinstance(value, Decimal):
                value = json_number(value)
            elif isinstance(value, list):
                value = [child.to_row() for child in value]
            row[item.name] = value
        return row

    def scalar_values(self) -> List[object]:
        return [
            getattr(self, item.name)
            for item in fields(self)  # type: ignore[arg-type]
            if not isinstance(getattr(self, item.name), list)
        ]


@dataclass(slots=True)
class LedgerEntry(_RowMixin):
    LedgerName: str = ""
    Amount: Decimal = Decimal(0)
    Narration: str = ""

    COLUMNS: ClassVar[Tuple[str, ...]] = ("LedgerName", "Amount", "Narration")


@dataclass(slots=True)
class ItemRow(_RowMixin):
    StockItemName: str = ""
    ItemGroup: str = ""
    ItemCategory: str = ""
    Qty: Decimal = Decimal(0)
    Rate: Decimal = Decimal(0)
    Amount: Decimal = Decimal(0)
    UOM: str = ""

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "StockItemName",
        "ItemGroup",
        "ItemCategory",
        "Qty",
        "Rate",
        "Amount",
        "UOM",
    )


@dataclass(slots=True)
class VoucherRecord(_RowMixin):
    """One ``<VOUCHER>`` block with its ledger and inventory lines."""

    VoucherType: str = ""
    VoucherNumber: str = ""
    Date: str = ""
    Party: str = ""
    Salesman: str = ""
    State: str = ""
    Amount: Decimal = Decimal(0)
    Narration: str = ""
    LedgerEntries: List[LedgerEntry] = field(default_factory=list)
    Items: List[ItemRow] = field(default_factory=list)

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "VoucherType",
        "VoucherNumber",
        "Date",
        "Party",
        "Salesman",
        "State",
        "Amount",
        "Narration",
        "LedgerEntries",
        "Items",
    )


@dataclass(slots=True)
class MasterRecord(_RowMixin):
    """A ledger, stock item or other master entity."""

    Type: str = ""
    Name: str = ""
    OpeningBalance: Decimal = Decimal(0)
    ClosingBalance: Decimal = Decimal(0)
    Parent: str = ""
    Email: str = ""

    COLUMNS: ClassVar[Tuple[str, ...]] = (
        "Type",
        "Name",
        "OpeningBalance",
        "ClosingBalance",
        "Parent",
        "Email",
    )


@dataclass(slots=True)
class OutstandingRecord(_RowMixin):
    """A receivable or payable balance for one party."""

    Party: str = ""
    ClosingBalance: Decimal = Decimal(0)
    Days: str = ""
    Contact: str = ""

    COLUMNS: ClassVar[Tuple[str, ...]] = ("Party", "ClosingBalance", "Days", "Contact")


Record = Union[VoucherRecord, MasterRecord, OutstandingRecord]
