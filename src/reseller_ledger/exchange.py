"""Spreadsheet import and export of ledger transactions.

Import reads the first worksheet of an ``.xlsx`` file whose header row names
the columns, and turns each data row into an :class:`ImportRow`. Export
flattens transactions into the column layout of :data:`EXPORT_COLUMNS`, with
reseller and product names in place of identifiers.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from . import core_logic, data_manager, log
from .constants import EXPORT_COLUMNS, TransactionType
from .transactions import ImportRow


HEADER_ALIASES: Dict[str, str] = {
    "date": "date",
    "transaction date": "date",
    "member": "member_name",
    "member name": "member_name",
    "reseller": "member_name",
    "reseller name": "member_name",
    "product": "product_name",
    "product name": "product_name",
    "brand": "product_name",
    "qty": "quantity",
    "quantity": "quantity",
    "price": "price",
    "unit price": "price",
    "paid": "paid",
    "amount paid": "paid",
    "type": "transaction_type",
    "transaction type": "transaction_type",
}

REQUIRED_IMPORT_FIELDS = ("member_name",)


def _map_header(header: Sequence[object]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for index, title in enumerate(header):
        if title is None:
            continue
        key = HEADER_ALIASES.get(str(title).strip().lower())
        if key is not None and key not in mapping:
            mapping[key] = index
    return mapping


def _cell(raw_row: Sequence[object], mapping: Dict[str, int], key: str) -> object:
    index = mapping.get(key)
    if index is None or index >= len(raw_row):
        return None
    value = raw_row[index]
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _parse_date(raw: object) -> Optional[date]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _parse_decimal(raw: object) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def _parse_quantity(raw: object) -> Optional[int]:
    number = _parse_decimal(raw)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise ValueError(f"quantity must be a whole number: {raw!r}")
    return int(number)


def _parse_type(raw: object) -> TransactionType:
    if raw is None:
        return TransactionType.SALE
    text = str(raw).strip().lower()
    for transaction_type in TransactionType:
        if transaction_type.value.lower() == text:
            return transaction_type
    raise ValueError(f"unknown transaction type: {raw!r}")


def parse_import_row(raw_row: Sequence[object], mapping: Dict[str, int]) -> ImportRow:
    """Convert one worksheet row into an :class:`ImportRow`.

    Raises:
        ValueError: If a cell cannot be converted or the member is missing.
    """
    member_name = _cell(raw_row, mapping, "member_name")
    if member_name is None:
        raise ValueError("member name is missing")
    product_name = _cell(raw_row, mapping, "product_name")
    return ImportRow(
        member_name=str(member_name),
        transaction_type=_parse_type(_cell(raw_row, mapping, "transaction_type")),
        date=_parse_date(_cell(raw_row, mapping, "date")),
        product_name=str(product_name) if product_name is not None else None,
        quantity=_parse_quantity(_cell(raw_row, mapping, "quantity")),
        price=_parse_decimal(_cell(raw_row, mapping, "price")),
        paid=_parse_decimal(_cell(raw_row, mapping, "paid")) or core_logic.ZERO,
    )


def read_import_rows(path: Path) -> List[ImportRow]:
    """Read importable rows from the first worksheet of an ``.xlsx`` file.

    Blank rows are ignored. Rows whose cells cannot be parsed are skipped with
    a warning, matching how :func:`transactions.import_transactions` treats
    rows it cannot resolve.

    Args:
        path (Path): Spreadsheet to read.

    Returns:
        list[ImportRow]: Parsed rows in sheet order.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the header row lacks a member column.
    """
    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")

    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        raw_rows = [
            row for row in workbook.worksheets[0].iter_rows(values_only=True)
            if any(cell is not None and str(cell).strip() for cell in row)
        ]
    finally:
        workbook.close()

    if not raw_rows:
        log.warning("Import file '%s' is empty", path)
        return []

    mapping = _map_header(raw_rows[0])
    missing = [key for key in REQUIRED_IMPORT_FIELDS if key not in mapping]
    if missing:
        raise ValueError(f"Import file '{path.name}' has no column for: {', '.join(missing)}")

    rows: List[ImportRow] = []
    for line_number, raw_row in enumerate(raw_rows[1:], start=2):
        try:
            rows.append(parse_import_row(raw_row, mapping))
        except ValueError as exc:
            log.warning("Skipping line %d of '%s': %s", line_number, path.name, exc)
    log.info("Read %d import row(s) from '%s'", len(rows), path)
    return rows


def export_rows(
    context: core_logic.RuntimeContext,
    records: Sequence[data_manager.TransactionRow],
) -> List[Dict[str, object]]:
    """Flatten transactions into dictionaries keyed by :data:`EXPORT_COLUMNS`."""
    reseller_names = core_logic.reseller_display_names(context, {record.reseller_id for record in records})
    product_names = {product.product_id: product.product_name for product in core_logic.list_products(context)}

    rows = []
    for record in records:
        values = (
            record.date,
            record.transaction_type.value,
            reseller_names.get(record.reseller_id, record.reseller_id),
            product_names.get(record.product_id, record.product_id or ""),
            record.quantity,
            record.price,
            record.total,
            record.paid,
            record.outstanding,
            record.payment_status.value,
        )
        rows.append(dict(zip(EXPORT_COLUMNS, values)))
    return rows


def export_workbook(
    context: core_logic.RuntimeContext,
    records: Sequence[data_manager.TransactionRow],
    destination: Path,
) -> Path:
    """Write the export rows to a new ``.xlsx`` file and return its path."""
    destination = Path(destination).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Transactions"

    bold_font = Font(bold=True)
    for col_idx, column_name in enumerate(EXPORT_COLUMNS, 1):
        cell = sheet.cell(row=1, column=col_idx)
        cell.value = column_name
        cell.font = bold_font

    for row in export_rows(context, records):
        sheet.append([row[column] for column in EXPORT_COLUMNS])

    workbook.save(destination)
    log.info("Exported %d transaction(s) to '%s'", len(records), destination)
    return destination
