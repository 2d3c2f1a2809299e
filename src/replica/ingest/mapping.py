"""Declarative field-mapping tables: logical field -> ordered alternate tags.

Tally exports vary between releases and TDL customisations, so every logical
field lists the tag names it may appear under, most specific first.
"""
from __future__ import annotations

from typing import Dict, Tuple

FieldMap = Dict[str, Tuple[str, ...]]

DEEMED_POSITIVE_TAG = "ISDEEMEDPOSITIVE"

VOUCHER_BLOCK_TAGS: Tuple[str, ...] = ("VOUCHER",)

VOUCHER_FIELDS: FieldMap = {
    "VoucherType": ("VOUCHERTYPENAME", "VCHTYPE", "VOUCHERTYPE"),
    "VoucherNumber": ("VOUCHERNUMBER", "VCHNO", "REFERENCE"),
    "Date": ("DATE", "VOUCHERDATE", "EFFECTIVEDATE"),
    "Party": ("PARTYNAME", "PARTYLEDGERNAME", "LEDGERNAME"),
    "Salesman": ("BASICSALESNAME", "SALESMAN", "SALESMANNAME"),
    "State": ("PLACEOFSUPPLY", "STATENAME"),
    "Amount": ("AMOUNT",),
    "Narration": ("NARRATION",),
}

LEDGER_ENTRY_BLOCK_TAGS: Tuple[str, ...] = ("ALLLEDGERENTRIES.LIST", "LEDGERENTRIES.LIST")

LEDGER_ENTRY_FIELDS: FieldMap = {
    "LedgerName": ("LEDGERNAME", "NAME"),
    "Amount": ("AMOUNT",),
    "Narration": ("NARRATION",),
}

ITEM_BLOCK_TAGS: Tuple[str, ...] = ("ALLINVENTORYENTRIES.LIST", "INVENTORYENTRIES.LIST")

ITEM_FIELDS: FieldMap = {
    "StockItemName": ("STOCKITEMNAME", "ITEMNAME"),
    "ItemGroup": ("STOCKGROUPNAME", "ITEMGROUP", "PARENT"),
    "ItemCategory": ("STOCKCATEGORYNAME", "ITEMCATEGORY", "CATEGORY"),
    "Qty": ("BILLEDQTY", "ACTUALQTY", "QTY"),
    "Rate": ("RATE",),
    "Amount": ("AMOUNT",),
    "UOM": ("UOM", "BASEUNITS", "UNIT"),
}

# Parallel top-level tags zipped by index when a voucher has no nested
# inventory blocks.
ITEM_FALLBACK_TAGS: Dict[str, str] = {
    "StockItemName": "STOCKITEMNAME",
    "Rate": "RATE",
    "Qty": "BILLEDQTY",
}

# Master block tag -> Type label written into the row.
MASTER_BLOCK_TYPES: Dict[str, str] = {
    "LEDGER": "Ledger",
    "STOCKITEM": "StockItem",
    "GROUP": "Group",
    "STOCKGROUP": "StockGroup",
    "COSTCENTRE": "CostCentre",
    "UNIT": "Unit",
    "GODOWN": "Godown",
    "EMPLOYEE": "Employee",
    "COMPANY": "Company",
}

MASTER_FIELDS: FieldMap = {
    "Name": ("NAME", "LEDGERNAME", "STOCKITEMNAME"),
    "OpeningBalance": ("OPENINGBALANCE",),
    "ClosingBalance": ("CLOSINGBALANCE",),
    "Parent": ("PARENT", "GROUPNAME"),
    "Email": ("EMAIL", "LEDGEREMAIL", "EMAILID"),
}

OUTSTANDING_BLOCK_TAGS: Tuple[str, ...] = ("OUTSTANDINGITEMS.LIST", "BILL", "LEDGER")

OUTSTANDING_FIELDS: FieldMap = {
    "Party": ("PARTYNAME", "PARTYLEDGERNAME", "LEDGERNAME", "BILLPARTY", "NAME"),
    "ClosingBalance": ("CLOSINGBALANCE", "BILLCL", "PENDINGAMOUNT", "AMOUNT"),
    "Days": ("DAYS", "AGE", "OVERDUEDAYS", "BILLOVERDUE"),
    "Contact": ("CONTACT", "LEDGERPHONE", "PHONE", "LEDGERMOBILE", "MOBILE", "EMAIL"),
}

# Last resort for masters and outstanding exports without recognised blocks.
POSITIONAL_NAME_TAG = "NAME"
POSITIONAL_AMOUNT_TAG = "AMOUNT"

# Voucher type keywords used to route vouchers of a raw envelope push,
# checked in order against the lower-cased voucher type name.
VOUCHER_TYPE_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("credit note", "credit"),
    ("debit note", "debit"),
    ("sales", "sales"),
    ("purchase", "purchase"),
    ("receipt", "receipt"),
    ("payment", "payment"),
    ("journal", "journal"),
)

# Flat Bills Receivable/Payable reports list BILLFIXED, BILLCL, BILLDUE and
# BILLOVERDUE as siblings; each record starts at this tag.
OUTSTANDING_FLAT_RECORD_TAG = "BILLFIXED"
