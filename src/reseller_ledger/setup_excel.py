"""Bootstrap an empty reseller ledger workbook.

Run as ``ledger-setup`` (or ``python -m reseller_ledger.setup_excel``) next to
a ``config.ini``; tests call :func:`create_master_workbook` directly. Sheet
names and headers are taken from :data:`data_manager.SHEET_COLUMNS`, so the
file this script writes is exactly what the data layer expects to read.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION

# Header cell padding used to size each column.
_COLUMN_PADDING = 4


def load_settings(config_path: Path) -> data_manager.ConfigSettings:
    """Parse ``config_path`` the same way the ledger itself does.

    Raises:
        FileNotFoundError: If the configuration file is missing.
        KeyError: If ``[System]`` lacks a required option.
        RuntimeError: If ``SchemaVersion`` is not the one this package writes.
    """
    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    if settings.schema_version != EXPECTED_SCHEMA_VERSION:
        raise RuntimeError(
            f"config.ini declares schema {settings.schema_version}; "
            f"this version creates schema {EXPECTED_SCHEMA_VERSION}"
        )
    return settings


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Write a workbook holding one sheet per entry of ``sheet_columns``.

    Each sheet gets a bold, frozen header row sized to its column titles and
    no data rows.

    Args:
        destination (Path): Target ``.xlsx`` path. Parent folders are created.
        sheet_columns (Mapping[str, Sequence[str]]): Sheet name to header
            titles, in order.
        overwrite (bool): Replace an existing file instead of refusing.

    Returns:
        Path: The resolved path written.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """
    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing ledger workbook: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)

    header_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, title in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index, value=title)
            cell.font = header_font
            worksheet.column_dimensions[get_column_letter(column_index)].width = len(title) + _COLUMN_PADDING
        worksheet.freeze_panes = "A2"

    workbook.save(destination)
    log.info("Created ledger workbook '%s' with sheets %s", destination, ", ".join(sheet_columns))
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``[System] DataFile`` in ``config_path``."""

    return create_master_workbook(load_settings(config_path).data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ledger-setup",
        description="Create the empty workbook a reseller ledger config.ini points to.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(data_manager.CONFIG_FILE_NAME),
        help="Path to config.ini (default: ./config.ini).",
    )
    parser.add_argument("--force", action="store_true", help="Replace the workbook if it already exists.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for ``ledger-setup``; returns a process exit code."""

    args = parse_args(argv)
    try:
        output_path = run_from_config(args.config, overwrite=args.force)
    except FileExistsError as exc:
        print(f"[ERROR] {exc}\nPass --force to replace it.")
        return 1
    except (FileNotFoundError, KeyError, ValueError, RuntimeError) as exc:
        print(f"[ERROR] {exc}")
        return 1
    except OSError as exc:
        print(f"[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"[SUCCESS] Ledger workbook ready at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
