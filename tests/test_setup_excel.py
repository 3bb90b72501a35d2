"""Tests for the ledger workbook bootstrap script."""

from __future__ import annotations

import openpyxl
import pytest

from reseller_ledger import data_manager, setup_excel


def test_create_master_workbook_writes_every_sheet(tmp_path):
    destination = setup_excel.create_master_workbook(tmp_path / "nested" / "ledger.xlsx")

    workbook = openpyxl.load_workbook(destination)
    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    transactions_sheet = workbook[data_manager.TRANSACTIONS_SHEET]
    assert transactions_sheet.max_row == 1
    assert transactions_sheet.freeze_panes == "A2"


def test_create_master_workbook_refuses_to_overwrite(master_workbook_path):
    with pytest.raises(FileExistsError):
        setup_excel.create_master_workbook(master_workbook_path)


def test_create_master_workbook_overwrite_discards_rows(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[data_manager.RESELLERS_SHEET].append(["R1", "Alice", None, 10])
    workbook.save(master_workbook_path)

    setup_excel.create_master_workbook(master_workbook_path, overwrite=True)

    assert list(data_manager.iter_resellers(data_manager.open_workbook(master_workbook_path))) == []


def test_run_from_config_resolves_relative_data_file(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text("[System]\nDataFile = data/ledger.xlsx\nBusinessName = Shop\nSchemaVersion = 1.0.0\n")

    output = setup_excel.run_from_config(config_path)

    assert output == (tmp_path / "data" / "ledger.xlsx").resolve()
    assert output.exists()


def test_load_settings_rejects_other_schema(tmp_path):
    config_path = tmp_path / "config.ini"
    config_path.write_text("[System]\nDataFile = ledger.xlsx\nBusinessName = Shop\nSchemaVersion = 0.9.0\n")

    with pytest.raises(RuntimeError):
        setup_excel.load_settings(config_path)


def test_main_reports_existing_workbook(config_file, capsys):
    """The fixture config already has a workbook, so only --force succeeds."""

    assert setup_excel.main(["--config", str(config_file)]) == 1
    assert "--force" in capsys.readouterr().out

    assert setup_excel.main(["--config", str(config_file), "--force"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out


def test_main_missing_config(tmp_path, capsys):
    assert setup_excel.main(["--config", str(tmp_path / "absent.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
