"""Tests for spreadsheet import parsing and transaction export."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
import pytest

from conftest import balance_of
from reseller_ledger import core_logic, exchange, transactions
from reseller_ledger.constants import EXPORT_COLUMNS, TransactionType
from reseller_ledger.transactions import ClearanceCommand


def _write_sheet(path: Path, rows) -> Path:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


@pytest.fixture
def import_file(tmp_path: Path) -> Path:
    return _write_sheet(
        tmp_path / "import.xlsx",
        [
            ["Member", "Brand", "Qty", "Paid", "Type", "Date"],
            ["Alice Traders", "Protein Bar", 12, None, None, datetime(2025, 5, 1)],
            [None, None, None, None, None, None],
            ["Bob Stores", "Vitamin C", "two", None, "Sale", None],
            ["Alice Traders", None, None, 20, "clearance", "2025-05-02"],
            [None, "Protein Bar", 1, None, None, None],
        ],
    )


def test_read_import_rows_maps_headers_and_skips_bad_lines(import_file):
    rows = exchange.read_import_rows(import_file)

    assert len(rows) == 2
    sale, clearance = rows
    assert sale.member_name == "Alice Traders"
    assert sale.product_name == "Protein Bar"
    assert sale.quantity == 12
    assert sale.paid == Decimal("0")
    assert sale.date == date(2025, 5, 1)
    assert sale.transaction_type is TransactionType.SALE
    assert clearance.transaction_type is TransactionType.CLEARANCE
    assert clearance.paid == Decimal("20")
    assert clearance.date == date(2025, 5, 2)


def test_read_import_rows_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        exchange.read_import_rows(tmp_path / "nope.xlsx")


def test_read_import_rows_requires_member_column(tmp_path):
    path = _write_sheet(tmp_path / "bad.xlsx", [["Product", "Qty"], ["Protein Bar", 1]])

    with pytest.raises(ValueError):
        exchange.read_import_rows(path)


def test_read_import_rows_empty_sheet(tmp_path):
    path = _write_sheet(tmp_path / "empty.xlsx", [])

    assert exchange.read_import_rows(path) == []


@pytest.mark.parametrize(
    "raw, message",
    [
        (["Alice", "1.5"], "whole number"),
        (["Alice", "x"], "not a number"),
        (["Alice", "NaN"], "not a finite number"),
        (["Alice", "Infinity"], "not a finite number"),
    ],
)
def test_parse_import_row_rejects_bad_quantity(raw, message):
    mapping = {"member_name": 0, "quantity": 1}

    with pytest.raises(ValueError, match=message):
        exchange.parse_import_row(raw, mapping)


@pytest.mark.parametrize("raw_paid", ["NaN", "-Infinity", "sNaN"])
def test_parse_import_row_rejects_non_finite_paid(raw_paid):
    with pytest.raises(ValueError, match="not a finite number"):
        exchange.parse_import_row(["Alice", raw_paid], {"member_name": 0, "paid": 1})


def test_non_finite_amounts_skip_the_row_not_the_import(ledger, tmp_path):
    path = _write_sheet(
        tmp_path / "nan.xlsx",
        [
            ["Member", "Product", "Qty", "Price", "Paid"],
            ["Alice Traders", "Protein Bar", 2, "NaN", None],
            ["Alice Traders", "Protein Bar", 3, None, "Infinity"],
            ["Alice Traders", "Protein Bar", 1, None, None],
        ],
    )

    rows = exchange.read_import_rows(path)
    result = transactions.import_transactions(ledger, rows)

    assert len(rows) == 1
    assert len(result.records) == 1
    assert balance_of(ledger, "R1") == Decimal("10.00")


def test_parse_import_row_rejects_unknown_type():
    with pytest.raises(ValueError):
        exchange.parse_import_row(["Alice", "Refund"], {"member_name": 0, "transaction_type": 1})


def test_imported_file_feeds_the_applier(ledger, make_sale, import_file):
    make_sale(quantity=1)

    result = transactions.import_transactions(ledger, exchange.read_import_rows(import_file))

    assert len(result.records) == 2
    assert balance_of(ledger, "R1") == Decimal("101.00")


def test_export_rows_use_names(ledger, make_sale):
    sale = make_sale(quantity=2, when=date(2025, 3, 1))
    clearance = transactions.record_clearance(
        ledger, ClearanceCommand(reseller_id="R1", paid=Decimal("10"), date=date(2025, 3, 2))
    )

    sale_row, clearance_row = exchange.export_rows(ledger, [sale, clearance])

    assert list(sale_row) == list(EXPORT_COLUMNS)
    assert sale_row["Member"] == "Alice Traders"
    assert sale_row["Product"] == "Vitamin C"
    assert sale_row["Total"] == Decimal("50.00")
    assert sale_row["Payment Status"] == "Pending"
    assert clearance_row["Transaction Type"] == "Clearance"
    assert clearance_row["Product"] == ""
    assert clearance_row["Quantity"] == 0
    assert clearance_row["Paid"] == Decimal("10.00")


def test_export_workbook_writes_bold_header(ledger, make_sale, tmp_path):
    make_sale(quantity=2, when=date(2025, 3, 1))
    records = core_logic.filter_transactions(ledger, year=2025)

    destination = exchange.export_workbook(ledger, records, tmp_path / "out" / "export.xlsx")

    workbook = openpyxl.load_workbook(destination)
    sheet = workbook["Transactions"]
    assert [cell.value for cell in sheet[1]] == list(EXPORT_COLUMNS)
    assert all(cell.font.bold for cell in sheet[1])
    assert sheet.cell(row=2, column=3).value == "Alice Traders"
    assert sheet.cell(row=2, column=7).value == 50
    assert sheet.max_row == 2
