"""Business logic layer core for the reseller ledger.

This module holds the runtime context shared by every ledger workflow, the
cached lookups over the workbook, tiered product pricing, the payment-status
calculator, and the balance ledger accessor that is the only sanctioned way to
change a reseller's ``due_balance``. It consumes the Data Access Layer (DAL)
for all I/O.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import (
    EXPECTED_SCHEMA_VERSION,
    OPEN_SALE_STATUSES,
    PaymentStatus,
    TransactionType,
)
from .history import UndoHistory


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_ID_SEQUENCE = itertools.count()


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced reseller, product, or transaction is unknown."""


class ReadOnlyFieldError(BusinessRuleViolation):
    """Raised when an edit targets a field the transaction type does not allow."""


class OverClearanceError(BusinessRuleViolation):
    """Raised when a clearance exceeds the reseller's outstanding dues."""


class EmptyHistoryError(BusinessRuleViolation):
    """Raised when undo or redo is requested with nothing to replay."""


class PersistenceError(Exception):
    """Raised when a store write fails after ledger changes were applied.

    By the time this is raised every registered compensation has been run.
    ``reversal_failures`` holds the errors raised by compensations that could
    not be applied; a non-empty list means the balances and the transaction
    rows may disagree until the data is repaired.
    """

    def __init__(self, message: str, *, reversal_failures: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.reversal_failures = list(reversal_failures)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook, and undo history used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    history: UndoHistory = field(default_factory=UndoHistory, repr=False, compare=False)
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC datetime."""

    return candidate if candidate is not None else datetime.now(UTC)


def resolve_date(candidate: Optional[date]) -> date:
    """Return ``candidate`` or today's date (UTC calendar)."""

    return candidate if candidate is not None else _resolve_timestamp(None).date()


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    The business logic layer maintains in-memory caches keyed by domain area
    (resellers, products, transactions). This helper retrieves or initializes
    the bucket associated with ``name``.

    Args:
        context (RuntimeContext): Runtime state carrying the shared cache
            dictionary.
        name (str): Logical bucket name to fetch or create.

    Returns:
        dict[str, Any]: Mutable mapping used to cache derived collections for a
            specific domain entity set.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Args:
        context (RuntimeContext): Active runtime context whose cache should be
            pruned.
        *names (str): Bucket identifiers to remove. Missing buckets are
            ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_resellers_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the reseller cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` resellers, a ``by_id``
            lookup, and a ``by_name`` lookup used by imports.
    """

    bucket = _get_cache_bucket(context, "resellers")
    if "all" not in bucket:
        all_resellers = list(data_manager.iter_resellers(context.workbook))
        bucket["all"] = all_resellers
        bucket["by_id"] = {reseller.reseller_id: reseller for reseller in all_resellers}
        bucket["by_name"] = {reseller.reseller_name: reseller for reseller in all_resellers}
        log.debug("Populated resellers cache with %d entries", len(all_resellers))
    return bucket


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` products, a ``by_id``
            lookup, and a ``by_name`` lookup used by imports.
    """

    bucket = _get_cache_bucket(context, "products")
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["by_id"] = {product.product_id: product for product in all_products}
        bucket["by_name"] = {product.product_name: product for product in all_products}
        log.debug("Populated products cache with %d entries", len(all_products))
    return bucket


def _ensure_transactions_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the transaction cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` transactions in sheet order
            and a ``by_id`` dictionary for primary key lookups.
    """

    bucket = _get_cache_bucket(context, "transactions")
    if "all" not in bucket:
        all_transactions = list(data_manager.iter_transactions(context.workbook))
        bucket["all"] = all_transactions
        bucket["by_id"] = {transaction.transaction_id: transaction for transaction in all_transactions}
        log.debug("Populated transactions cache with %d entries", len(all_transactions))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    The helper resolves ``config.ini``, parses settings, opens the ledger
    workbook, and creates an empty undo history sized by ``UndoDepth``.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for ledger operations.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, history=UndoHistory(settings.undo_depth))


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_resellers(context: RuntimeContext) -> List[data_manager.ResellerRow]:
    """Return every reseller in sheet order."""
    return list(_ensure_resellers_cache(context)["all"])


def list_products(context: RuntimeContext) -> List[data_manager.ProductRow]:
    """Return every product in sheet order."""
    return list(_ensure_products_cache(context)["all"])


def list_transactions(context: RuntimeContext) -> List[data_manager.TransactionRow]:
    """Fetch the transaction list from cache.

    The returned list is a shallow copy of the cached sequence so callers can
    freely sort or filter without mutating the shared cache.
    """
    return list(_ensure_transactions_cache(context)["all"])


def get_reseller(context: RuntimeContext, reseller_id: str) -> data_manager.ResellerRow:
    """Resolve a reseller record by its identifier.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        reseller_id (str): Identifier populated in the ``Resellers`` sheet.

    Returns:
        data_manager.ResellerRow: Matching reseller dataclass sourced from cache.

    Raises:
        MissingReferenceError: If ``reseller_id`` is absent from the workbook.
    """
    cache = _ensure_resellers_cache(context)
    try:
        return cache["by_id"][reseller_id]
    except KeyError as exc:
        log.warning("Reseller lookup failed for id '%s'", reseller_id)
        raise MissingReferenceError(f"Unknown reseller id: {reseller_id}") from exc


def find_reseller_by_name(context: RuntimeContext, name: str) -> Optional[data_manager.ResellerRow]:
    """Exact, case-sensitive reseller lookup by display name."""
    return _ensure_resellers_cache(context)["by_name"].get(name)


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is absent from the workbook.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def find_product_by_name(context: RuntimeContext, name: str) -> Optional[data_manager.ProductRow]:
    """Exact, case-sensitive product lookup by display name."""
    return _ensure_products_cache(context)["by_name"].get(name)


def get_transaction(context: RuntimeContext, transaction_id: str) -> data_manager.TransactionRow:
    """Retrieve a transaction row by its primary identifier.

    Raises:
        MissingReferenceError: If the sheet lacks the supplied identifier.
    """
    cache = _ensure_transactions_cache(context)
    try:
        return cache["by_id"][transaction_id]
    except KeyError as exc:
        log.warning("Transaction lookup failed for id '%s'", transaction_id)
        raise MissingReferenceError(f"Unknown transaction id: {transaction_id}") from exc


def add_reseller(
    context: RuntimeContext,
    *,
    reseller_id: str,
    reseller_name: str,
    email: Optional[str] = None,
    due_balance: Decimal = ZERO,
) -> data_manager.ResellerRow:
    """Register a reseller with an opening due balance.

    Raises:
        BusinessRuleViolation: If the identifier or display name is already
            taken. Names must be unique because imports resolve by name.
    """
    cache = _ensure_resellers_cache(context)
    if reseller_id in cache["by_id"]:
        raise BusinessRuleViolation(f"Reseller '{reseller_id}' already exists")
    if reseller_name in cache["by_name"]:
        raise BusinessRuleViolation(f"Reseller name '{reseller_name}' is already in use")

    record = data_manager.ResellerRow(
        reseller_id=reseller_id,
        reseller_name=reseller_name,
        email=email,
        due_balance=to_money(due_balance),
    )
    data_manager.append_reseller(context.workbook, record)
    _invalidate_cache(context, "resellers")
    log.info("Added reseller '%s' (%s)", reseller_id, reseller_name)
    return record


def add_product(
    context: RuntimeContext,
    *,
    product_id: str,
    product_name: str,
    mrp: Optional[Decimal] = None,
    price_ranges: Sequence[data_manager.PriceRange] = (),
) -> data_manager.ProductRow:
    """Register a product with its MRP and quantity price tiers.

    Raises:
        BusinessRuleViolation: If the identifier or name is taken, or if the
            product would have no way to be priced.
        ValueError: When a price is negative.
    """
    cache = _ensure_products_cache(context)
    if product_id in cache["by_id"]:
        raise BusinessRuleViolation(f"Product '{product_id}' already exists")
    if product_name in cache["by_name"]:
        raise BusinessRuleViolation(f"Product name '{product_name}' is already in use")
    if mrp is None and not price_ranges:
        raise BusinessRuleViolation(f"Product '{product_id}' needs an MRP or at least one price range")
    if mrp is not None:
        require_nonnegative_money(mrp)
    for tier in price_ranges:
        require_nonnegative_money(tier.price)

    record = data_manager.ProductRow(
        product_id=product_id,
        product_name=product_name,
        mrp=to_money(mrp) if mrp is not None else None,
        price_ranges=tuple(sorted(price_ranges, key=lambda tier: tier.min_quantity)),
    )
    data_manager.append_product(context.workbook, record)
    _invalidate_cache(context, "products")
    log.info("Added product '%s' (%s)", product_id, product_name)
    return record


def price_for_quantity(product: data_manager.ProductRow, quantity: int) -> Decimal:
    """Derive the unit price of ``product`` for a given quantity.

    The first price tier (ordered by lower bound) whose range contains
    ``quantity`` wins. When no tier matches, the product's MRP applies.

    Args:
        product (data_manager.ProductRow): Product carrying the price table.
        quantity (int): Number of units sold.

    Returns:
        Decimal: Unit price rounded to cents.

    Raises:
        BusinessRuleViolation: If no tier matches and the product has no MRP.
    """
    for tier in product.price_ranges:
        if tier.matches(quantity):
            return to_money(tier.price)
    if product.mrp is None:
        log.error("Product '%s' has no price for quantity %s", product.product_id, quantity)
        raise BusinessRuleViolation(
            f"Product '{product.product_id}' has no price for quantity {quantity}; supply a price"
        )
    return to_money(product.mrp)


def calculate_status(
    transaction_type: TransactionType,
    total: Decimal,
    paid: Decimal,
    reseller_balance: Decimal,
) -> PaymentStatus:
    """Derive the display status of a transaction.

    Sales are judged on their own figures: fully paid when ``paid`` covers
    ``total``, partially paid for any smaller positive payment, pending
    otherwise. Clearances are judged against the reseller balance at the time
    of calculation: a payment that leaves nothing owing is a complete
    clearance.

    Args:
        transaction_type (TransactionType): Variant being evaluated.
        total (Decimal): Transaction total. Ignored for clearances.
        paid (Decimal): Amount paid.
        reseller_balance (Decimal): Reseller balance before the clearance
            is deducted. Ignored for sales.

    Returns:
        PaymentStatus: The status the transaction should carry.
    """
    if transaction_type is TransactionType.CLEARANCE:
        remaining = reseller_balance - paid
        if remaining <= 0:
            return PaymentStatus.COMPLETE_CLEARANCE
        return PaymentStatus.PARTIAL_CLEARANCE

    if paid >= total:
        return PaymentStatus.FULLY_PAID
    if paid > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


def settlement_status(paid: Decimal, outstanding: Decimal) -> PaymentStatus:
    """Status of a sale after a clearance was applied to or released from it."""
    if outstanding <= 0:
        return PaymentStatus.DUE_CLEARED
    if paid > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PENDING


def adjust_balance(context: RuntimeContext, reseller_id: str, delta: Decimal) -> Decimal:
    """Add ``delta`` to a reseller's due balance and return the prior value.

    The balance is read from the store, not from the cache, then written back
    as ``old + delta``. The read and the write are separate calls; nothing
    locks the row in between, so the returned value is a snapshot rather than
    a guarantee against writers in other sessions.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        reseller_id (str): Reseller whose balance changes.
        delta (Decimal): Signed amount to add.

    Returns:
        Decimal: The balance before the adjustment.

    Raises:
        MissingReferenceError: If the reseller does not exist.
    """
    reseller = data_manager.find_reseller(context.workbook, reseller_id)
    if reseller is None:
        log.warning("Balance adjustment for unknown reseller '%s'", reseller_id)
        raise MissingReferenceError(f"Unknown reseller id: {reseller_id}")

    old_balance = reseller.due_balance
    new_balance = to_money(old_balance + delta)
    data_manager.update_reseller(context.workbook, reseller_id, field_values={"DueBalance": new_balance})
    _invalidate_cache(context, "resellers")
    log.info(
        "Adjusted balance of reseller '%s' by %s (%s -> %s)",
        reseller_id,
        delta,
        old_balance,
        new_balance,
    )
    return old_balance


def set_balance(context: RuntimeContext, reseller_id: str, value: Decimal) -> None:
    """Overwrite a reseller's due balance; used when restoring undo snapshots.

    Raises:
        MissingReferenceError: If the reseller does not exist.
    """
    if data_manager.find_reseller(context.workbook, reseller_id) is None:
        log.warning("Balance restore for unknown reseller '%s'", reseller_id)
        raise MissingReferenceError(f"Unknown reseller id: {reseller_id}")

    data_manager.update_reseller(context.workbook, reseller_id, field_values={"DueBalance": to_money(value)})
    _invalidate_cache(context, "resellers")
    log.info("Set balance of reseller '%s' to %s", reseller_id, value)


def current_balance(context: RuntimeContext, reseller_id: str) -> Decimal:
    """Read a reseller's due balance straight from the store."""
    reseller = data_manager.find_reseller(context.workbook, reseller_id)
    if reseller is None:
        raise MissingReferenceError(f"Unknown reseller id: {reseller_id}")
    return reseller.due_balance


def fetch_open_sales(context: RuntimeContext, reseller_id: str) -> List[data_manager.SaleRow]:
    """Return the reseller's Pending/Partially Paid sales, oldest first."""
    return data_manager.fetch_sales_for_reseller(context.workbook, reseller_id, OPEN_SALE_STATUSES)


def outstanding_due(context: RuntimeContext, reseller_id: str) -> Decimal:
    """Sum the outstanding amounts a clearance may be applied against."""
    return sum(
        (sale.outstanding for sale in fetch_open_sales(context, reseller_id) if sale.outstanding > 0),
        ZERO,
    )


def insert_transactions(context: RuntimeContext, records: Sequence[data_manager.TransactionRow]) -> None:
    """Persist new transaction rows as one batch."""
    data_manager.append_transactions(context.workbook, records)
    _invalidate_cache(context, "transactions")
    log.info("Inserted %d transaction(s): %s", len(records), ", ".join(r.transaction_id for r in records))


def store_transaction(context: RuntimeContext, record: data_manager.TransactionRow) -> None:
    """Overwrite the stored row of ``record`` with its in-memory state."""
    data_manager.update_transaction(
        context.workbook,
        record.transaction_id,
        field_values=data_manager.transaction_field_values(record),
    )
    _invalidate_cache(context, "transactions")
    log.info("Updated transaction '%s'", record.transaction_id)


def update_transaction_fields(context: RuntimeContext, transaction_id: str, field_values: Dict[str, Any]) -> None:
    """Write selected columns of a stored transaction."""
    data_manager.update_transaction(context.workbook, transaction_id, field_values=field_values)
    _invalidate_cache(context, "transactions")
    log.debug("Updated fields %s of transaction '%s'", sorted(field_values), transaction_id)


def remove_transactions(context: RuntimeContext, transaction_ids: Sequence[str]) -> None:
    """Delete stored transactions as one batch."""
    data_manager.delete_transactions(context.workbook, transaction_ids)
    _invalidate_cache(context, "transactions")
    log.info("Deleted %d transaction(s): %s", len(transaction_ids), ", ".join(transaction_ids))


def filter_transactions(
    context: RuntimeContext,
    *,
    year: Optional[int] = None,
    month: Optional[int] = None,
    reseller_id: Optional[str] = None,
    transaction_type: Optional[TransactionType] = None,
    payment_status: Optional[PaymentStatus] = None,
) -> List[data_manager.TransactionRow]:
    """Return transactions matching every supplied criterion, newest first.

    ``month`` is only honoured together with ``year`` so that a month always
    denotes one calendar period.

    Raises:
        ValueError: If ``month`` is outside 1..12 or given without ``year``.
    """
    if month is not None:
        if year is None:
            raise ValueError("A month filter requires a year")
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")

    def _matches(record: data_manager.TransactionRow) -> bool:
        if year is not None and record.date.year != year:
            return False
        if month is not None and record.date.month != month:
            return False
        if reseller_id is not None and record.reseller_id != reseller_id:
            return False
        if transaction_type is not None and record.transaction_type is not transaction_type:
            return False
        if payment_status is not None and record.payment_status is not payment_status:
            return False
        return True

    matches = [record for record in list_transactions(context) if _matches(record)]
    matches.sort(key=lambda record: (record.date, record.transaction_id), reverse=True)
    return matches


def calculate_outstanding_dues(context: RuntimeContext) -> Dict[str, Decimal]:
    """Sum sale outstanding amounts per reseller.

    Every registered reseller appears in the result, including those without
    sales, so the mapping can be compared against stored balances.
    """
    dues: Dict[str, Decimal] = {reseller.reseller_id: ZERO for reseller in list_resellers(context)}
    for record in list_transactions(context):
        if isinstance(record, data_manager.SaleRow):
            dues[record.reseller_id] = dues.get(record.reseller_id, ZERO) + record.outstanding
    log.debug("Calculated outstanding dues for %d resellers", len(dues))
    return dues


def find_balance_discrepancies(context: RuntimeContext) -> Dict[str, tuple[Decimal, Decimal]]:
    """Report resellers whose stored balance differs from their sales.

    Returns:
        dict[str, tuple[Decimal, Decimal]]: ``reseller_id`` mapped to
            ``(due_balance, sum_of_outstanding)`` for every mismatch.
    """
    dues = calculate_outstanding_dues(context)
    mismatches: Dict[str, tuple[Decimal, Decimal]] = {}
    for reseller in list_resellers(context):
        expected = dues.get(reseller.reseller_id, ZERO)
        if reseller.due_balance != expected:
            mismatches[reseller.reseller_id] = (reseller.due_balance, expected)
    if mismatches:
        log.warning("Balance drift detected for resellers: %s", ", ".join(sorted(mismatches)))
    return mismatches


def generate_transaction_id(*, prefix: str = "T", when: Optional[datetime] = None) -> str:
    """Generate a sortable transaction identifier.

    Returns:
        str: ``{prefix}{YYYYMMDDHHMMSSffffff}{seq}`` where ``seq`` is a
            three-digit process-wide counter, so identifiers generated within
            the same microsecond (batch imports, duplicates) stay unique.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}{next(_ID_SEQUENCE) % 1000:03d}"


def to_money(amount: Decimal) -> Decimal:
    """Round a monetary value to cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is a strictly positive whole number.

    Raises:
        ValueError: If ``quantity`` is zero, negative, or fractional.
    """
    if int(quantity) != quantity or quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be a whole number greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to disk.

    The function supplies :attr:`RuntimeContext.settings.data_file` directly to
    the data layer to ensure saves always target the configured workbook path.
    """
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    The returned context has an empty cache and an empty undo history: the
    recorded operations describe writes that were just thrown away.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(
        settings=context.settings,
        workbook=workbook,
        history=UndoHistory(context.settings.undo_depth),
    )


def reseller_display_names(context: RuntimeContext, reseller_ids: Iterable[str]) -> Dict[str, str]:
    """Map reseller ids to display names, falling back to the id when unknown."""
    by_id = _ensure_resellers_cache(context)["by_id"]
    return {rid: by_id[rid].reseller_name if rid in by_id else rid for rid in reseller_ids}
