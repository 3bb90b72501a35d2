"""Data access layer for the reseller ledger.

This module provides low-level helpers that read from and write to the
ledger workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending, updating, or
   deleting individual rows. These functions are the backing-store boundary
   the ledger core talks to; any other store only needs to offer the same
   operations.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, ClassVar, Collection, Iterable, List, Mapping, Optional, Sequence, Union

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_UNDO_DEPTH, PaymentStatus, SheetName, TransactionType


CONFIG_FILE_NAME = "config.ini"
RESELLERS_SHEET = SheetName.RESELLERS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
TRANSACTIONS_SHEET = SheetName.TRANSACTIONS.value

RESELLER_COLUMNS: tuple[str, ...] = ("ResellerID", "ResellerName", "Email", "DueBalance")
PRODUCT_COLUMNS: tuple[str, ...] = ("ProductID", "ProductName", "MRP", "PriceRanges")
TRANSACTION_COLUMNS: tuple[str, ...] = (
    "TransactionID",
    "Date",
    "TransactionType",
    "ResellerID",
    "ProductID",
    "Quantity",
    "Price",
    "Total",
    "Paid",
    "Outstanding",
    "PaymentStatus",
    "Allocations",
)

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    RESELLERS_SHEET: RESELLER_COLUMNS,
    PRODUCTS_SHEET: PRODUCT_COLUMNS,
    TRANSACTIONS_SHEET: TRANSACTION_COLUMNS,
}

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    undo_depth: int = DEFAULT_UNDO_DEPTH


@dataclass(frozen=True)
class ResellerRow:
    """In-memory view of a row from the ``Resellers`` sheet."""

    reseller_id: str
    reseller_name: str
    email: Optional[str]
    due_balance: Decimal


@dataclass(frozen=True)
class PriceRange:
    """One quantity tier of a product's price table."""

    min_quantity: int
    max_quantity: Optional[int]
    price: Decimal

    def matches(self, quantity: int) -> bool:
        # An empty or zero upper bound leaves the tier open-ended.
        if quantity < self.min_quantity:
            return False
        return not self.max_quantity or quantity <= self.max_quantity


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    mrp: Optional[Decimal]
    price_ranges: tuple[PriceRange, ...] = ()


@dataclass(frozen=True)
class Allocation:
    """Portion of a clearance applied to one sale."""

    sale_id: str
    amount: Decimal


@dataclass(frozen=True)
class SaleRow:
    """A ``Sale`` transaction: a product sold to a reseller on account."""

    transaction_id: str
    date: date
    reseller_id: str
    product_id: str
    quantity: int
    price: Decimal
    total: Decimal
    paid: Decimal
    outstanding: Decimal
    payment_status: PaymentStatus

    transaction_type: ClassVar[TransactionType] = TransactionType.SALE


@dataclass(frozen=True)
class ClearanceRow:
    """A ``Clearance`` transaction: a payment against a reseller's dues.

    Clearances carry no product and never hold an outstanding amount of their
    own. Those columns are class-level constants so they cannot be replaced on
    an instance.
    """

    transaction_id: str
    date: date
    reseller_id: str
    paid: Decimal
    payment_status: PaymentStatus
    allocations: tuple[Allocation, ...] = ()

    transaction_type: ClassVar[TransactionType] = TransactionType.CLEARANCE
    product_id: ClassVar[Optional[str]] = None
    quantity: ClassVar[int] = 0
    price: ClassVar[Decimal] = ZERO
    total: ClassVar[Decimal] = ZERO
    outstanding: ClassVar[Decimal] = ZERO


TransactionRow = Union[SaleRow, ClearanceRow]


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. The ``[Ledger]`` section is optional
    and currently only carries ``UndoDepth``. Relative ``DataFile`` paths are
    expanded against ``base_path`` when provided, or against the current
    working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries. Defaults to :func:`Path.cwd` when omitted.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``UndoDepth`` is not a positive integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    undo_depth = parser.getint("Ledger", "UndoDepth", fallback=DEFAULT_UNDO_DEPTH)
    if undo_depth < 1:
        raise ValueError(f"UndoDepth must be at least 1, got {undo_depth}")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        undo_depth=undo_depth,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the ledger workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_resellers(workbook: Workbook) -> Iterable[ResellerRow]:
    """Iterate over reseller records stored on the ``Resellers`` worksheet."""

    for raw in _iter_sheet_rows(workbook, RESELLERS_SHEET):
        yield deserialize_reseller(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet."""

    for raw in _iter_sheet_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_transactions(workbook: Workbook) -> Iterable[TransactionRow]:
    """Stream transaction records from the ``Transactions`` worksheet.

    Each meaningful row is transformed into either a :class:`SaleRow` or a
    :class:`ClearanceRow` depending on its ``TransactionType`` column.

    Args:
        workbook (Workbook): Workbook containing the transactions sheet.

    Yields:
        TransactionRow: Normalized transaction record for each populated row.
    """

    for raw in _iter_sheet_rows(workbook, TRANSACTIONS_SHEET):
        yield deserialize_transaction(raw)


def find_reseller(workbook: Workbook, reseller_id: str) -> Optional[ResellerRow]:
    """Read a single reseller straight from the sheet, bypassing any cache."""

    row_index = locate_row(workbook, RESELLERS_SHEET, "ResellerID", reseller_id)
    if row_index is None:
        return None
    return deserialize_reseller(_read_row(workbook, RESELLERS_SHEET, row_index))


def find_product(workbook: Workbook, product_id: str) -> Optional[ProductRow]:
    """Read a single product straight from the sheet."""

    row_index = locate_row(workbook, PRODUCTS_SHEET, "ProductID", product_id)
    if row_index is None:
        return None
    return deserialize_product(_read_row(workbook, PRODUCTS_SHEET, row_index))


def find_transaction(workbook: Workbook, transaction_id: str) -> Optional[TransactionRow]:
    """Read a single transaction straight from the sheet."""

    row_index = locate_row(workbook, TRANSACTIONS_SHEET, "TransactionID", transaction_id)
    if row_index is None:
        return None
    return deserialize_transaction(_read_row(workbook, TRANSACTIONS_SHEET, row_index))


def fetch_sales_for_reseller(
    workbook: Workbook,
    reseller_id: str,
    statuses: Optional[Collection[PaymentStatus]] = None,
) -> List[SaleRow]:
    """Return a reseller's sales ordered oldest first.

    Args:
        workbook (Workbook): Workbook containing the transactions sheet.
        reseller_id (str): Reseller whose sales should be returned.
        statuses (Collection[PaymentStatus] | None): Optional status filter.
            ``None`` returns sales in any status.

    Returns:
        list[SaleRow]: Matching sales sorted by ``date`` and then by
            transaction id, so same-day sales keep their creation order.
    """

    sales = [
        record
        for record in iter_transactions(workbook)
        if isinstance(record, SaleRow)
        and record.reseller_id == reseller_id
        and (statuses is None or record.payment_status in statuses)
    ]
    sales.sort(key=lambda sale: (sale.date, sale.transaction_id))
    return sales


def append_reseller(workbook: Workbook, record: ResellerRow) -> None:
    """Append a reseller record to the ``Resellers`` worksheet."""

    if locate_row(workbook, RESELLERS_SHEET, "ResellerID", record.reseller_id) is not None:
        raise ValueError(f"Duplicate reseller id: {record.reseller_id}")
    workbook[RESELLERS_SHEET].append(serialize_reseller(record))


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet."""

    if locate_row(workbook, PRODUCTS_SHEET, "ProductID", record.product_id) is not None:
        raise ValueError(f"Duplicate product id: {record.product_id}")
    workbook[PRODUCTS_SHEET].append(serialize_product(record))


def append_transaction(workbook: Workbook, record: TransactionRow) -> None:
    """Append a transaction record to the ``Transactions`` worksheet.

    Args:
        workbook (Workbook): Workbook containing the transactions sheet.
        record (TransactionRow): Sale or clearance to persist.

    Raises:
        ValueError: If a row with the same ``TransactionID`` already exists.
    """

    append_transactions(workbook, [record])


def append_transactions(workbook: Workbook, records: Sequence[TransactionRow]) -> None:
    """Append several transactions as one batch.

    Identifiers are checked up front so a duplicate aborts the batch before
    any row is written.

    Raises:
        ValueError: If any identifier is already present or repeated within
            ``records``.
    """

    existing = {str(row[0]) for row in _iter_sheet_rows(workbook, TRANSACTIONS_SHEET)}
    seen: set[str] = set()
    for record in records:
        if record.transaction_id in existing or record.transaction_id in seen:
            raise ValueError(f"Duplicate transaction id: {record.transaction_id}")
        seen.add(record.transaction_id)

    sheet = workbook[TRANSACTIONS_SHEET]
    for record in records:
        sheet.append(serialize_transaction(record))


def update_reseller(workbook: Workbook, reseller_id: str, *, field_values: Mapping[str, Any]) -> None:
    """Update selected columns for an existing reseller.

    Args:
        workbook (Workbook): Workbook containing the resellers sheet.
        reseller_id (str): Identifier used to locate the target row.
        field_values (Mapping[str, Any]): Mapping of column names to
            replacement values.

    Raises:
        KeyError: If the reseller or any referenced column cannot be found.
    """

    _update_row(workbook, RESELLERS_SHEET, "ResellerID", reseller_id, field_values)


def update_transaction(workbook: Workbook, transaction_id: str, *, field_values: Mapping[str, Any]) -> None:
    """Update selected columns for an existing transaction.

    Raises:
        KeyError: If the transaction or any referenced column cannot be found.
    """

    _update_row(workbook, TRANSACTIONS_SHEET, "TransactionID", transaction_id, field_values)


def delete_transactions(workbook: Workbook, transaction_ids: Sequence[str]) -> None:
    """Delete a batch of transactions by identifier.

    Every identifier is resolved before the first row is removed so an unknown
    id leaves the sheet untouched. Rows are deleted bottom-up to keep the
    remaining indices valid.

    Raises:
        KeyError: If any identifier cannot be found.
    """

    indices = []
    for transaction_id in transaction_ids:
        row_index = locate_row(workbook, TRANSACTIONS_SHEET, "TransactionID", transaction_id)
        if row_index is None:
            raise KeyError(f"Transaction not found: {transaction_id}")
        indices.append(row_index)

    sheet = workbook[TRANSACTIONS_SHEET]
    for row_index in sorted(set(indices), reverse=True):
        sheet.delete_rows(row_index)


def _header_map(workbook: Workbook, sheet_name: str) -> dict[Any, int]:
    sheet = workbook[sheet_name]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def _read_row(workbook: Workbook, sheet_name: str, row_index: int) -> Sequence[object]:
    sheet = workbook[sheet_name]
    width = len(SHEET_COLUMNS[sheet_name])
    return [sheet.cell(row=row_index, column=col).value for col in range(1, width + 1)]


def _update_row(
    workbook: Workbook,
    sheet_name: str,
    key_column: str,
    key_value: str,
    field_values: Mapping[str, Any],
) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    header_map = _header_map(workbook, sheet_name)
    for field in field_values:
        if field not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field}")

    sheet = workbook[sheet_name]
    for field, value in field_values.items():
        sheet.cell(row=row_index, column=header_map[field], value=value)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the column that stores the
            lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    header_map = _header_map(workbook, sheet_name)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]
    sheet = workbook[sheet_name]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def serialize_reseller(record: ResellerRow) -> list[object]:
    """Convert a reseller dataclass into the worksheet column ordering."""

    return [record.reseller_id, record.reseller_name, record.email, record.due_balance]


def serialize_price_ranges(price_ranges: Sequence[PriceRange]) -> Optional[str]:
    """Encode a price table as the JSON text stored in ``PriceRanges``."""

    if not price_ranges:
        return None
    return json.dumps(
        [
            {"min": tier.min_quantity, "max": tier.max_quantity, "price": str(tier.price)}
            for tier in price_ranges
        ]
    )


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering."""

    return [
        record.product_id,
        record.product_name,
        record.mrp,
        serialize_price_ranges(record.price_ranges),
    ]


def serialize_allocations(allocations: Sequence[Allocation]) -> Optional[str]:
    """Encode clearance allocations as the JSON text stored in ``Allocations``."""

    if not allocations:
        return None
    return json.dumps([{"sale_id": item.sale_id, "amount": str(item.amount)} for item in allocations])


def serialize_transaction(record: TransactionRow) -> list[object]:
    """Convert a sale or clearance into the transactions sheet column order.

    Clearance rows still fill every column; their product column is empty and
    the numeric columns hold the fixed zero values of the variant.
    """

    return [
        record.transaction_id,
        record.date.isoformat(),
        record.transaction_type.value,
        record.reseller_id,
        record.product_id,
        record.quantity,
        record.price,
        record.total,
        record.paid,
        record.outstanding,
        record.payment_status.value,
        serialize_allocations(record.allocations) if isinstance(record, ClearanceRow) else None,
    ]


def transaction_field_values(record: TransactionRow) -> dict[str, object]:
    """Return every non-key column of ``record`` keyed by header name.

    Used with :func:`update_transaction` to overwrite a stored row with the
    state of an in-memory record.
    """

    values = dict(zip(TRANSACTION_COLUMNS, serialize_transaction(record)))
    values.pop("TransactionID")
    return values


def _to_decimal(raw: object, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    if raw is None or raw == "":
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value: {raw!r}") from exc


def _to_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw).strip()[:10])


def _optional_text(raw: object) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


def deserialize_reseller(raw_row: Sequence[object]) -> ResellerRow:
    """Convert a raw worksheet row into a strongly typed reseller record."""

    reseller_id, reseller_name, email, balance_raw = raw_row[:4]
    return ResellerRow(
        reseller_id=str(reseller_id),
        reseller_name=str(reseller_name),
        email=_optional_text(email),
        due_balance=_to_decimal(balance_raw),
    )


def deserialize_price_ranges(raw: object) -> tuple[PriceRange, ...]:
    """Decode the JSON price table, ordered by lower bound.

    Raises:
        ValueError: If the cell does not hold a JSON list of tiers.
    """

    if raw is None or str(raw).strip() == "":
        return ()
    try:
        entries = json.loads(str(raw))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid price ranges: {raw!r}") from exc
    if not isinstance(entries, list):
        raise ValueError(f"Price ranges must be a list: {raw!r}")

    tiers = [
        PriceRange(
            min_quantity=int(entry.get("min") or 0),
            max_quantity=int(entry["max"]) if entry.get("max") else None,
            price=_to_decimal(entry.get("price")),
        )
        for entry in entries
    ]
    tiers.sort(key=lambda tier: tier.min_quantity)
    return tuple(tiers)


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record."""

    product_id, product_name, mrp_raw, ranges_raw = raw_row[:4]
    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name),
        mrp=_to_decimal(mrp_raw, default=None),
        price_ranges=deserialize_price_ranges(ranges_raw),
    )


def deserialize_allocations(raw: object) -> tuple[Allocation, ...]:
    """Decode the JSON allocation list stored on clearance rows."""

    if raw is None or str(raw).strip() == "":
        return ()
    try:
        entries = json.loads(str(raw))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid allocations: {raw!r}") from exc
    return tuple(Allocation(sale_id=str(entry["sale_id"]), amount=_to_decimal(entry["amount"])) for entry in entries)


def deserialize_transaction(raw_row: Sequence[object]) -> TransactionRow:
    """Convert a raw worksheet row into a sale or clearance record.

    Decimal-compatible columns are normalized into :class:`~decimal.Decimal`
    instances, dates are normalized to :class:`datetime.date`, and the
    ``TransactionType`` column selects the variant.

    Args:
        raw_row (Sequence[object]): Raw cell values from the transactions row
            in their worksheet order.

    Returns:
        TransactionRow: Dataclass reflecting the row contents.

    Raises:
        ValueError: If the transaction type or payment status is unknown.
    """

    (
        transaction_id,
        date_raw,
        type_raw,
        reseller_id,
        product_id,
        quantity_raw,
        price_raw,
        total_raw,
        paid_raw,
        outstanding_raw,
        status_raw,
        allocations_raw,
    ) = tuple(raw_row[:12]) + (None,) * max(0, 12 - len(raw_row))

    transaction_type = TransactionType(str(type_raw))
    payment_status = PaymentStatus(str(status_raw))

    if transaction_type is TransactionType.CLEARANCE:
        return ClearanceRow(
            transaction_id=str(transaction_id),
            date=_to_date(date_raw),
            reseller_id=str(reseller_id),
            paid=_to_decimal(paid_raw),
            payment_status=payment_status,
            allocations=deserialize_allocations(allocations_raw),
        )

    if product_id is None:
        log.warning("Sale '%s' has no product reference", transaction_id)

    return SaleRow(
        transaction_id=str(transaction_id),
        date=_to_date(date_raw),
        reseller_id=str(reseller_id),
        product_id=str(product_id) if product_id is not None else "",
        quantity=int(quantity_raw or 0),
        price=_to_decimal(price_raw),
        total=_to_decimal(total_raw),
        paid=_to_decimal(paid_raw),
        outstanding=_to_decimal(outstanding_raw),
        payment_status=payment_status,
    )
