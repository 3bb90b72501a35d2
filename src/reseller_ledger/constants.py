"""Enumerations shared across the reseller ledger modules.

Centralises domain constants so that the data access layer (DAL), the
business logic layer (BLL), and the command-line front end rely on a single
source of truth for stored identifiers and status labels.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Number of operations retained on the undo stack unless config overrides it.
DEFAULT_UNDO_DEPTH = 10


class TransactionType(str, Enum):
    """Enumerate the two transaction variants recorded in the ledger."""

    SALE = "Sale"
    CLEARANCE = "Clearance"


class PaymentStatus(str, Enum):
    """Enumerate the payment status labels stored on transactions."""

    FULLY_PAID = "Fully Paid"
    PARTIALLY_PAID = "Partially Paid"
    PENDING = "Pending"
    DUE_CLEARED = "Due Cleared"
    COMPLETE_CLEARANCE = "Complete Clearance"
    PARTIAL_CLEARANCE = "Partial Clearance"


# Sale statuses whose outstanding amount is still open for clearance.
OPEN_SALE_STATUSES: tuple[PaymentStatus, ...] = (
    PaymentStatus.PENDING,
    PaymentStatus.PARTIALLY_PAID,
)


class OperationType(str, Enum):
    """Enumerate the mutation kinds tracked by the undo history."""

    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    IMPORT = "import"
    DUPLICATE = "duplicate"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    RESELLERS = "Resellers"
    PRODUCTS = "Products"
    TRANSACTIONS = "Transactions"


EXPORT_COLUMNS: tuple[str, ...] = (
    "Date",
    "Transaction Type",
    "Member",
    "Product",
    "Quantity",
    "Price",
    "Total",
    "Paid",
    "Outstanding",
    "Payment Status",
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_UNDO_DEPTH",
    "TransactionType",
    "PaymentStatus",
    "OPEN_SALE_STATUSES",
    "OperationType",
    "SheetName",
    "EXPORT_COLUMNS",
]
