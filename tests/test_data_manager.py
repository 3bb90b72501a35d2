"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from reseller_ledger import constants, data_manager
from reseller_ledger.constants import PaymentStatus


def _sale(transaction_id: str, **overrides) -> data_manager.SaleRow:
    values = dict(
        transaction_id=transaction_id,
        date=date(2025, 4, 1),
        reseller_id="R1",
        product_id="P1",
        quantity=3,
        price=Decimal("10.00"),
        total=Decimal("30.00"),
        paid=Decimal("5.00"),
        outstanding=Decimal("25.00"),
        payment_status=PaymentStatus.PARTIALLY_PAID,
    )
    values.update(overrides)
    return data_manager.SaleRow(**values)


@pytest.fixture
def workbook(master_workbook_path: Path) -> OpenpyxlWorkbook:
    return data_manager.open_workbook(master_workbook_path)


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery walks up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=ledger.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "BusinessName") == "Test Supplies"
    assert parser.getint("Ledger", "UndoDepth") == constants.DEFAULT_UNDO_DEPTH


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True, undo_depth=3)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.undo_depth == 3


def test_parse_settings_defaults_undo_depth(tmp_path):
    """The [Ledger] section is optional."""

    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile=ledger.xlsx\nBusinessName=Shop\nSchemaVersion=1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.undo_depth == constants.DEFAULT_UNDO_DEPTH
    assert settings.data_file == (tmp_path / "ledger.xlsx").resolve()


def test_parse_settings_rejects_zero_undo_depth(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=ledger.xlsx\nBusinessName=Shop\nSchemaVersion=1.0.0\n[Ledger]\nUndoDepth=0\n"
    )

    with pytest.raises(ValueError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    """open_workbook should hand back a loaded Workbook object."""

    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)
    assert set(workbook.sheetnames) == {member.value for member in constants.SheetName}


def test_open_workbook_missing_file_raises(tmp_path):
    """Missing workbook files should yield FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_reseller_round_trip_through_disk(workbook, master_workbook_path):
    """Balances survive a save and reload as Decimals."""

    data_manager.append_reseller(
        workbook, data_manager.ResellerRow("R1", "Alice Traders", "alice@example.com", Decimal("19.99"))
    )
    data_manager.save_workbook(workbook, master_workbook_path)

    reloaded = data_manager.refresh_workbook(master_workbook_path)
    (reseller,) = list(data_manager.iter_resellers(reloaded))

    assert reseller == data_manager.ResellerRow("R1", "Alice Traders", "alice@example.com", Decimal("19.99"))


def test_append_reseller_rejects_duplicate_id(workbook):
    data_manager.append_reseller(workbook, data_manager.ResellerRow("R1", "Alice", None, Decimal("0")))

    with pytest.raises(ValueError):
        data_manager.append_reseller(workbook, data_manager.ResellerRow("R1", "Other", None, Decimal("0")))


def test_product_price_ranges_are_stored_as_json(workbook):
    """PriceRanges is a JSON list ordered by lower bound when read back."""

    product = data_manager.ProductRow(
        "P1",
        "Protein Bar",
        Decimal("12.00"),
        (
            data_manager.PriceRange(1, 9, Decimal("10.00")),
            data_manager.PriceRange(10, None, Decimal("8.00")),
        ),
    )
    data_manager.append_product(workbook, product)

    raw = workbook[data_manager.PRODUCTS_SHEET].cell(row=2, column=4).value
    assert '"max": null' in raw
    assert data_manager.find_product(workbook, "P1") == product


def test_deserialize_price_ranges_rejects_bad_json():
    with pytest.raises(ValueError):
        data_manager.deserialize_price_ranges("not json")


def test_sale_and_clearance_rows_deserialize_to_their_variant(workbook):
    """The TransactionType column selects SaleRow or ClearanceRow."""

    clearance = data_manager.ClearanceRow(
        transaction_id="C1",
        date=date(2025, 4, 2),
        reseller_id="R1",
        paid=Decimal("25.00"),
        payment_status=PaymentStatus.COMPLETE_CLEARANCE,
        allocations=(data_manager.Allocation("S1", Decimal("25.00")),),
    )
    data_manager.append_transactions(workbook, [_sale("S1"), clearance])

    rows = list(data_manager.iter_transactions(workbook))

    assert rows == [_sale("S1"), clearance]
    assert isinstance(rows[1], data_manager.ClearanceRow)
    assert rows[1].total == Decimal("0.00")
    assert rows[1].product_id is None


def test_clearance_fixed_columns_are_zero_in_the_sheet(workbook):
    clearance = data_manager.ClearanceRow("C1", date(2025, 4, 2), "R1", Decimal("5.00"), PaymentStatus.PARTIAL_CLEARANCE)
    data_manager.append_transaction(workbook, clearance)

    row = list(workbook[data_manager.TRANSACTIONS_SHEET].iter_rows(min_row=2, values_only=True))[0]

    assert row[4] is None
    assert row[5] == 0
    assert row[11] is None


def test_deserialize_transaction_accepts_datetime_cells():
    raw = ["S1", datetime(2025, 4, 1, 9, 30), "Sale", "R1", "P1", 3, 10, 30, 5, 25, "Partially Paid"]

    record = data_manager.deserialize_transaction(raw)

    assert record.date == date(2025, 4, 1)
    assert record.outstanding == Decimal("25")


def test_deserialize_transaction_rejects_unknown_type():
    with pytest.raises(ValueError):
        data_manager.deserialize_transaction(["X1", "2025-04-01", "Refund", "R1"])


def test_append_transactions_rejects_duplicates_before_writing(workbook):
    """A duplicate id aborts the batch with nothing written."""

    data_manager.append_transaction(workbook, _sale("S1"))

    with pytest.raises(ValueError):
        data_manager.append_transactions(workbook, [_sale("S2"), _sale("S1")])

    assert [row.transaction_id for row in data_manager.iter_transactions(workbook)] == ["S1"]


def test_update_transaction_changes_selected_columns(workbook):
    data_manager.append_transaction(workbook, _sale("S1"))

    data_manager.update_transaction(
        workbook,
        "S1",
        field_values={"Paid": Decimal("30.00"), "Outstanding": Decimal("0.00"), "PaymentStatus": "Due Cleared"},
    )

    record = data_manager.find_transaction(workbook, "S1")
    assert record.paid == Decimal("30.00")
    assert record.payment_status is PaymentStatus.DUE_CLEARED


def test_update_transaction_unknown_column_raises(workbook):
    data_manager.append_transaction(workbook, _sale("S1"))

    with pytest.raises(KeyError):
        data_manager.update_transaction(workbook, "S1", field_values={"Notes": "x"})


def test_update_reseller_missing_row_raises(workbook):
    with pytest.raises(KeyError):
        data_manager.update_reseller(workbook, "R404", field_values={"DueBalance": Decimal("1")})


def test_transaction_field_values_round_trip_through_update(workbook):
    """Writing every non-key column reproduces the in-memory record."""

    data_manager.append_transaction(workbook, _sale("S1"))
    edited = _sale("S1", quantity=5, total=Decimal("50.00"), outstanding=Decimal("45.00"))

    data_manager.update_transaction(workbook, "S1", field_values=data_manager.transaction_field_values(edited))

    assert data_manager.find_transaction(workbook, "S1") == edited


def test_delete_transactions_removes_every_row(workbook):
    data_manager.append_transactions(workbook, [_sale("S1"), _sale("S2"), _sale("S3")])

    data_manager.delete_transactions(workbook, ["S3", "S1"])

    assert [row.transaction_id for row in data_manager.iter_transactions(workbook)] == ["S2"]


def test_delete_transactions_unknown_id_leaves_sheet_untouched(workbook):
    data_manager.append_transactions(workbook, [_sale("S1"), _sale("S2")])

    with pytest.raises(KeyError):
        data_manager.delete_transactions(workbook, ["S1", "S9"])

    assert len(list(data_manager.iter_transactions(workbook))) == 2


def test_fetch_sales_for_reseller_orders_oldest_first(workbook):
    """Sales come back by date, then id; clearances and other resellers are excluded."""

    data_manager.append_transactions(
        workbook,
        [
            _sale("S3", date=date(2025, 4, 3)),
            _sale("S2", date=date(2025, 4, 1)),
            _sale("S1", date=date(2025, 4, 1), payment_status=PaymentStatus.FULLY_PAID),
            _sale("S4", reseller_id="R2"),
            data_manager.ClearanceRow("C1", date(2025, 3, 1), "R1", Decimal("1"), PaymentStatus.PARTIAL_CLEARANCE),
        ],
    )

    everything = data_manager.fetch_sales_for_reseller(workbook, "R1")
    open_only = data_manager.fetch_sales_for_reseller(workbook, "R1", constants.OPEN_SALE_STATUSES)

    assert [sale.transaction_id for sale in everything] == ["S1", "S2", "S3"]
    assert [sale.transaction_id for sale in open_only] == ["S2", "S3"]


def test_locate_row_unknown_column_raises(workbook):
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, data_manager.RESELLERS_SHEET, "Nope", "R1")


def test_master_workbook_has_bold_headers(master_workbook_path):
    """The bootstrap writes every header in bold."""

    workbook = openpyxl.load_workbook(master_workbook_path)
    for sheet_name, columns in data_manager.SHEET_COLUMNS.items():
        header = workbook[sheet_name][1]
        assert [cell.value for cell in header] == list(columns)
        assert all(cell.font.bold for cell in header)
