"""Projection of Tally XML blocks into normalised records."""
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from replica.errors import ReplicaError

from . import mapping
from .extractors import (
    Element,
    extract_blocks,
    get_all,
    get_any,
    get_field,
    group_flat_records,
    local_name,
)
from .models import (
    ItemRow,
    LedgerEntry,
    MasterRecord,
    OutstandingRecord,
    VoucherRecord,
)

LOGGER = logging.getLogger(__name__)

ZERO = Decimal(0)

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_VOUCHER_TYPE_LABEL_RE = re.compile(r"voucher ?type", re.IGNORECASE)
_DATE_LABEL_RE = re.compile(r"date", re.IGNORECASE)
_QTY_UNIT_RE = re.compile(r"^\s*-?[\d,.]+\s*([A-Za-z][A-Za-z0-9 .]*?)\s*(?:=.*)?$")
_RATE_UNIT_RE = re.compile(r"/\s*([A-Za-z][A-Za-z0-9 .]*?)\s*$")

T = TypeVar("T")


def parse_amount(text: object) -> Decimal:
    """Parse a Tally amount, quantity or rate; anything unparseable is ``0``."""

    if text is None:
        return ZERO
    cleaned = _NON_NUMERIC_RE.sub("", str(text).replace(",", ""))
    if not cleaned:
        return ZERO
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return value if value.is_finite() else ZERO


def is_deemed_positive(flag: str) -> bool:
    return flag.strip().lower() == "yes"


def apply_sign_correction(amount: Decimal, deemed_positive: str) -> Decimal:
    """Render a deemed-positive, strictly positive amount as negative."""

    if is_deemed_positive(deemed_positive) and amount > 0:
        return -amount
    return amount


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not value
    if isinstance(value, (Decimal, int, float)):
        return value == 0
    return False


def looks_like_header_label(value: str) -> bool:
    text = value.strip()
    if len(text) < 30 and _VOUCHER_TYPE_LABEL_RE.search(text):
        return True
    return len(text) < 6 and _DATE_LABEL_RE.search(text) is not None


def is_retained(values: Iterable[object]) -> bool:
    """Decide whether a candidate record carries real data.

    Records whose values are all empty or zero are dropped, and so are
    records whose single populated value is a template header label such as
    ``"Voucher Type"`` or ``"Date"``.
    """

    populated = [value for value in values if not _is_blank(value)]
    if not populated:
        return False
    if len(populated) == 1 and isinstance(populated[0], str):
        return not looks_like_header_label(populated[0])
    return True


def _resolve_amount(block: Element, amount_tags: Sequence[str], *, nearest_flag: bool = True) -> Decimal:
    """Parse the first amount in *block* and correct its sign.

    With *nearest_flag* the deemed-positive flag is read next to the amount
    it qualifies before falling back to the first flag in the block; without
    it the block-level first match decides.
    """

    wanted = {tag.upper() for tag in amount_tags}
    for element in block.iterdescendants():
        if local_name(element) not in wanted or len(element) or not (element.text or "").strip():
            continue
        amount = parse_amount(element.text)
        parent = element.getparent()
        flag = ""
        if nearest_flag and parent is not None:
            flag = get_field(parent, mapping.DEEMED_POSITIVE_TAG)
        if not flag:
            flag = get_field(block, mapping.DEEMED_POSITIVE_TAG)
        return apply_sign_correction(amount, flag)
    return ZERO


def _unit_from(qty_text: str, rate_text: str) -> str:
    match = _QTY_UNIT_RE.match(qty_text)
    if match:
        return match.group(1).strip()
    match = _RATE_UNIT_RE.search(rate_text)
    return match.group(1).strip() if match else ""


def normalize_ledger_entry(block: Element) -> Optional[LedgerEntry]:
    entry = LedgerEntry(
        LedgerName=get_any(block, mapping.LEDGER_ENTRY_FIELDS["LedgerName"]),
        Amount=_resolve_amount(block, mapping.LEDGER_ENTRY_FIELDS["Amount"]),
        Narration=get_any(block, mapping.LEDGER_ENTRY_FIELDS["Narration"]),
    )
    return entry if is_retained(entry.scalar_values()) else None


def normalize_item(block: Element) -> Optional[ItemRow]:
    qty_text = get_any(block, mapping.ITEM_FIELDS["Qty"])
    rate_text = get_any(block, mapping.ITEM_FIELDS["Rate"])
    item = ItemRow(
        StockItemName=get_any(block, mapping.ITEM_FIELDS["StockItemName"]),
        ItemGroup=get_any(block, mapping.ITEM_FIELDS["ItemGroup"]),
        ItemCategory=get_any(block, mapping.ITEM_FIELDS["ItemCategory"]),
        Qty=parse_amount(qty_text),
        Rate=parse_amount(rate_text.split("/", 1)[0]),
        Amount=_resolve_amount(block, mapping.ITEM_FIELDS["Amount"]),
        UOM=get_any(block, mapping.ITEM_FIELDS["UOM"]) or _unit_from(qty_text, rate_text),
    )
    return item if is_retained(item.scalar_values()) else None


def _positional_items(block: Element) -> List[ItemRow]:
    columns = {name: get_all(block, tag) for name, tag in mapping.ITEM_FALLBACK_TAGS.items()}
    names = columns["StockItemName"]
    items: List[ItemRow] = []
    for index, name in enumerate(names):
        qty_text = columns["Qty"][index] if index < len(columns["Qty"]) else ""
        rate_text = columns["Rate"][index] if index < len(columns["Rate"]) else ""
        qty = parse_amount(qty_text)
        rate = parse_amount(rate_text.split("/", 1)[0])
        item = ItemRow(
            StockItemName=name,
            Qty=qty,
            Rate=rate,
            Amount=qty * rate,
            UOM=_unit_from(qty_text, rate_text),
        )
        if is_retained(item.scalar_values()):
            items.append(item)
    return items


def _collect(blocks: Iterable[Element], normalizer: Callable[[Element], Optional[T]]) -> List[T]:
    records: List[T] = []
    for block in blocks:
        try:
            record = normalizer(block)
        except (ReplicaError, ValueError, ArithmeticError) as error:
            LOGGER.warning("Skipping <%s> block that failed to normalise: %s", local_name(block), error)
            continue
        if record is not None:
            records.append(record)
    return records


def normalize_voucher(block: Element) -> Optional[VoucherRecord]:
    """Map one ``<VOUCHER>`` block to a record, or ``None`` when it holds no data."""

    item_blocks = extract_blocks(block, mapping.ITEM_BLOCK_TAGS)
    items = _collect(item_blocks, normalize_item) if item_blocks else _positional_items(block)
    record = VoucherRecord(
        VoucherType=get_any(block, mapping.VOUCHER_FIELDS["VoucherType"]),
        VoucherNumber=get_any(block, mapping.VOUCHER_FIELDS["VoucherNumber"]),
        Date=get_any(block, mapping.VOUCHER_FIELDS["Date"]),
        Party=get_any(block, mapping.VOUCHER_FIELDS["Party"]),
        Salesman=get_any(block, mapping.VOUCHER_FIELDS["Salesman"]),
        State=get_any(block, mapping.VOUCHER_FIELDS["State"]),
        Amount=_resolve_amount(block, mapping.VOUCHER_FIELDS["Amount"], nearest_flag=False),
        Narration=get_any(block, mapping.VOUCHER_FIELDS["Narration"]),
        LedgerEntries=_collect(
            extract_blocks(block, mapping.LEDGER_ENTRY_BLOCK_TAGS), normalize_ledger_entry
        ),
        Items=items,
    )
    values: List[object] = record.scalar_values()
    values.extend([record.LedgerEntries, record.Items])
    return record if is_retained(values) else None


def normalize_master(block: Element, kind: str | None = None) -> Optional[MasterRecord]:
    record = MasterRecord(
        Type=kind or mapping.MASTER_BLOCK_TYPES.get(local_name(block), local_name(block).title()),
        Name=get_any(block, mapping.MASTER_FIELDS["Name"]),
        OpeningBalance=parse_amount(get_any(block, mapping.MASTER_FIELDS["OpeningBalance"])),
        ClosingBalance=parse_amount(get_any(block, mapping.MASTER_FIELDS["ClosingBalance"])),
        Parent=get_any(block, mapping.MASTER_FIELDS["Parent"]),
        Email=get_any(block, mapping.MASTER_FIELDS["Email"]),
    )
    return record if is_retained(record.scalar_values()[1:]) else None


def normalize_outstanding(block: Element) -> Optional[OutstandingRecord]:
    record = OutstandingRecord(
        Party=get_any(block, mapping.OUTSTANDING_FIELDS["Party"]),
        ClosingBalance=parse_amount(get_any(block, mapping.OUTSTANDING_FIELDS["ClosingBalance"])),
        Days=get_any(block, mapping.OUTSTANDING_FIELDS["Days"]),
        Contact=get_any(block, mapping.OUTSTANDING_FIELDS["Contact"]),
    )
    return record if is_retained(record.scalar_values()) else None


def _positional_pairs(root: Element) -> List[tuple[str, Decimal]]:
    names = get_all(root, mapping.POSITIONAL_NAME_TAG)
    amounts = get_all(root, mapping.POSITIONAL_AMOUNT_TAG)
    return [
        (name, parse_amount(amounts[index]) if index < len(amounts) else ZERO)
        for index, name in enumerate(names)
    ]


def normalize_vouchers(root: Element) -> List[VoucherRecord]:
    return _collect(extract_blocks(root, mapping.VOUCHER_BLOCK_TAGS), normalize_voucher)


def normalize_masters(root: Element, *, positional_fallback: bool = True) -> List[MasterRecord]:
    blocks = extract_blocks(root, tuple(mapping.MASTER_BLOCK_TYPES))
    if blocks or not positional_fallback:
        return _collect(blocks, normalize_master)

    records: List[MasterRecord] = []
    for name, amount in _positional_pairs(root):
        record = MasterRecord(Type="Ledger", Name=name, ClosingBalance=amount)
        if is_retained(record.scalar_values()[1:]):
            records.append(record)
    return records


def normalize_outstandings(root: Element) -> List[OutstandingRecord]:
    for tag in mapping.OUTSTANDING_BLOCK_TAGS:
        blocks = extract_blocks(root, tag)
        if blocks:
            return _collect(blocks, normalize_outstanding)

    flat_records = group_flat_records(root, mapping.OUTSTANDING_FLAT_RECORD_TAG)
    if flat_records:
        return _collect(flat_records, normalize_outstanding)

    records: List[OutstandingRecord] = []
    for name, amount in _positional_pairs(root):
        record = OutstandingRecord(Party=name, ClosingBalance=amount)
        if is_retained(record.scalar_values()):
            records.append(record)
    return records


__all__ = [
    "apply_sign_correction",
    "is_retained",
    "looks_like_header_label",
    "normalize_item",
    "normalize_ledger_entry",
    "normalize_master",
    "normalize_masters",
    "normalize_outstanding",
    "normalize_outstandings",
    "normalize_voucher",
    "normalize_vouchers",
    "parse_amount",
]
