"""Transaction applier: every ledger command that creates, edits, or removes rows.

Each command validates its input before touching the store, then applies its
balance and sale changes step by step on a :class:`~reseller_ledger.compensation.Saga`.
If the final write fails the saga unwinds and a
:class:`~reseller_ledger.core_logic.PersistenceError` is raised; nothing is
recorded in the undo history. A command that completes pushes exactly one
undo operation describing everything it changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Union

from . import core_logic, data_manager, log
from .allocation import allocate_clearance, release_allocations
from .compensation import Saga
from .constants import TransactionType
from .core_logic import (
    ZERO,
    BusinessRuleViolation,
    MissingReferenceError,
    OverClearanceError,
    ReadOnlyFieldError,
    RuntimeContext,
)
from .history import (
    AddOperation,
    BalanceDelta,
    DeleteOperation,
    DuplicateOperation,
    EditOperation,
    ImportOperation,
    SaleDelta,
)


SALE_EDITABLE_FIELDS = frozenset({"date", "reseller_id", "product_id", "quantity", "price", "paid"})
CLEARANCE_EDITABLE_FIELDS = frozenset({"date", "reseller_id", "paid"})
DERIVED_FIELDS = frozenset(
    {"transaction_id", "transaction_type", "total", "outstanding", "payment_status", "allocations"}
)
KNOWN_FIELDS = SALE_EDITABLE_FIELDS | DERIVED_FIELDS

# Sale fields whose change alters total, outstanding, and status.
_AMOUNT_FIELDS = frozenset({"product_id", "quantity", "price", "paid"})


@dataclass(frozen=True)
class SaleCommand:
    """User intent for recording a ``Sale``."""

    reseller_id: str
    product_id: str
    quantity: int
    paid: Decimal = ZERO
    price: Optional[Decimal] = None
    date: Optional[date] = None


@dataclass(frozen=True)
class ClearanceCommand:
    """User intent for recording a ``Clearance`` payment."""

    reseller_id: str
    paid: Decimal
    date: Optional[date] = None


@dataclass(frozen=True)
class ImportRow:
    """One externally parsed row of a bulk import.

    Names are resolved against the stored resellers and products by exact,
    case-sensitive match. ``price`` overrides the tiered price when present.
    """

    member_name: str
    transaction_type: TransactionType = TransactionType.SALE
    date: Optional[date] = None
    product_name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    paid: Decimal = ZERO


@dataclass(frozen=True)
class ImportResult:
    """Rows inserted by an import and the reasons other rows were skipped."""

    records: tuple[data_manager.TransactionRow, ...]
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateResult:
    """Clones created by a duplicate request and the ids that were refused."""

    records: tuple[data_manager.SaleRow, ...]
    rejected: tuple[str, ...] = ()


@dataclass
class _Changes:
    """Balance and sale deltas collected while a command runs."""

    saga: Saga
    balances: List[BalanceDelta] = field(default_factory=list)
    sales: List[SaleDelta] = field(default_factory=list)


def _apply_balance(context: RuntimeContext, changes: _Changes, reseller_id: str, delta: Decimal) -> BalanceDelta:
    old_balance = core_logic.adjust_balance(context, reseller_id, delta)
    changes.saga.add(
        f"revert balance of {reseller_id} by {delta}",
        partial(core_logic.adjust_balance, context, reseller_id, -delta),
    )
    balance_delta = BalanceDelta(
        reseller_id=reseller_id,
        old_balance=old_balance,
        new_balance=core_logic.to_money(old_balance + delta),
    )
    changes.balances.append(balance_delta)
    return balance_delta


def build_sale_transaction(
    product: data_manager.ProductRow,
    *,
    transaction_id: str,
    when: date,
    reseller_id: str,
    quantity: int,
    paid: Decimal,
    price: Optional[Decimal] = None,
) -> data_manager.SaleRow:
    """Derive price, total, outstanding, and status for a new sale.

    Args:
        product (data_manager.ProductRow): Product being sold, used for the
            tiered price when ``price`` is omitted.
        transaction_id (str): Identifier allocated for the sale.
        when (date): Sale date.
        reseller_id (str): Reseller taking the goods on account.
        quantity (int): Units sold.
        paid (Decimal): Amount paid up front.
        price (Decimal | None): Manual unit price override.

    Returns:
        data_manager.SaleRow: Row ready for persistence.
    """
    unit_price = core_logic.to_money(price) if price is not None else core_logic.price_for_quantity(product, quantity)
    total = core_logic.to_money(unit_price * quantity)
    paid = core_logic.to_money(paid)
    return data_manager.SaleRow(
        transaction_id=transaction_id,
        date=when,
        reseller_id=reseller_id,
        product_id=product.product_id,
        quantity=quantity,
        price=unit_price,
        total=total,
        paid=paid,
        outstanding=total - paid,
        payment_status=core_logic.calculate_status(TransactionType.SALE, total, paid, ZERO),
    )


def _validate_sale_inputs(quantity: int, paid: Decimal, price: Optional[Decimal]) -> None:
    core_logic.require_positive_quantity(quantity)
    core_logic.require_nonnegative_money(paid)
    if price is not None:
        core_logic.require_nonnegative_money(price)


def _validate_clearance_amount(context: RuntimeContext, reseller_id: str, paid: Decimal) -> None:
    if paid <= 0:
        log.error("Clearance amount must be positive, got %s", paid)
        raise BusinessRuleViolation("Clearance amount must be greater than zero")
    due = core_logic.outstanding_due(context, reseller_id)
    if due <= 0:
        log.warning("Clearance rejected: reseller '%s' has no outstanding dues", reseller_id)
        raise BusinessRuleViolation(f"Reseller '{reseller_id}' has no outstanding dues to clear")
    if paid > due:
        log.warning("Clearance of %s exceeds outstanding %s for reseller '%s'", paid, due, reseller_id)
        raise OverClearanceError(f"Clearance of {paid} exceeds outstanding dues of {due} for reseller '{reseller_id}'")


def _apply_clearance(
    context: RuntimeContext,
    changes: _Changes,
    *,
    transaction_id: str,
    when: date,
    reseller_id: str,
    paid: Decimal,
) -> data_manager.ClearanceRow:
    deltas = allocate_clearance(context, reseller_id, paid, saga=changes.saga)
    changes.sales.extend(deltas)
    balance_delta = _apply_balance(context, changes, reseller_id, -paid)
    return data_manager.ClearanceRow(
        transaction_id=transaction_id,
        date=when,
        reseller_id=reseller_id,
        paid=paid,
        payment_status=core_logic.calculate_status(TransactionType.CLEARANCE, ZERO, paid, balance_delta.old_balance),
        allocations=tuple(data_manager.Allocation(d.sale_id, d.payment_applied) for d in deltas),
    )


def record_sale(context: RuntimeContext, command: SaleCommand) -> data_manager.SaleRow:
    """Validate and record a ``Sale`` on the reseller's account.

    The reseller's balance grows by the sale's outstanding amount before the
    row is written. A failed write reverses that adjustment.

    Args:
        context (RuntimeContext): Runtime context providing workbook access,
            caches, and undo history.
        command (SaleCommand): Structured intent describing the sale.

    Returns:
        data_manager.SaleRow: The stored sale.

    Raises:
        MissingReferenceError: If the reseller or product is unknown.
        BusinessRuleViolation: If the product cannot be priced for the
            quantity and no manual price was given.
        ValueError: When quantity or monetary validations fail.
        PersistenceError: If the store rejected the write.
    """
    core_logic.get_reseller(context, command.reseller_id)
    product = core_logic.get_product(context, command.product_id)
    _validate_sale_inputs(command.quantity, command.paid, command.price)

    timestamp = core_logic._resolve_timestamp(None)
    record = build_sale_transaction(
        product,
        transaction_id=core_logic.generate_transaction_id(prefix="S", when=timestamp),
        when=core_logic.resolve_date(command.date),
        reseller_id=command.reseller_id,
        quantity=command.quantity,
        paid=command.paid,
        price=command.price,
    )

    changes = _Changes(Saga("record sale"))
    try:
        _apply_balance(context, changes, record.reseller_id, record.outstanding)
        core_logic.insert_transactions(context, [record])
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    context.history.push(
        AddOperation(timestamp=timestamp, balance_deltas=tuple(changes.balances), sale_deltas=(), records=(record,))
    )
    log.info(
        "Recorded Sale '%s' for reseller '%s' (quantity=%s, total=%s, paid=%s)",
        record.transaction_id,
        record.reseller_id,
        record.quantity,
        record.total,
        record.paid,
    )
    return record


def record_clearance(context: RuntimeContext, command: ClearanceCommand) -> data_manager.ClearanceRow:
    """Record a payment against a reseller's outstanding dues.

    The amount is allocated to the reseller's open sales oldest first, then
    deducted from the balance. The stored clearance keeps the allocation so it
    can be released exactly if the clearance is later deleted.

    Raises:
        MissingReferenceError: If the reseller is unknown.
        BusinessRuleViolation: If the amount is not positive or the reseller
            owes nothing.
        OverClearanceError: If the amount exceeds the outstanding dues.
        PersistenceError: If a write failed; sales and balance were restored.
    """
    core_logic.get_reseller(context, command.reseller_id)
    paid = core_logic.to_money(command.paid)
    _validate_clearance_amount(context, command.reseller_id, paid)

    timestamp = core_logic._resolve_timestamp(None)
    changes = _Changes(Saga("record clearance"))
    try:
        record = _apply_clearance(
            context,
            changes,
            transaction_id=core_logic.generate_transaction_id(prefix="C", when=timestamp),
            when=core_logic.resolve_date(command.date),
            reseller_id=command.reseller_id,
            paid=paid,
        )
        core_logic.insert_transactions(context, [record])
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    context.history.push(
        AddOperation(
            timestamp=timestamp,
            balance_deltas=tuple(changes.balances),
            sale_deltas=tuple(changes.sales),
            records=(record,),
        )
    )
    log.info(
        "Recorded Clearance '%s' of %s for reseller '%s' across %d sale(s)",
        record.transaction_id,
        record.paid,
        record.reseller_id,
        len(record.allocations),
    )
    return record


def _coerce_field(field_name: str, value: Any) -> Any:
    """Convert user input into the type stored for ``field_name``.

    Raises:
        ValueError: If the value cannot be converted or fails validation.
    """
    if field_name == "date":
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value).strip())
    if field_name in ("reseller_id", "product_id"):
        text = str(value).strip()
        if not text:
            raise ValueError(f"{field_name} cannot be empty")
        return text
    try:
        number = value if isinstance(value, (int, Decimal)) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid number for {field_name}: {value!r}") from exc
    if field_name == "quantity":
        core_logic.require_positive_quantity(number)
        return int(number)
    amount = Decimal(number)
    core_logic.require_nonnegative_money(amount)
    return core_logic.to_money(amount)


def _edit_sale(
    context: RuntimeContext,
    before: data_manager.SaleRow,
    field_name: str,
    value: Any,
) -> tuple[data_manager.SaleRow, Dict[str, Decimal]]:
    updates: Dict[str, Any] = {field_name: value}
    if field_name == "reseller_id":
        core_logic.get_reseller(context, value)

    if field_name in _AMOUNT_FIELDS:
        product_id = value if field_name == "product_id" else before.product_id
        quantity = value if field_name == "quantity" else before.quantity
        price = value if field_name == "price" else before.price
        paid = value if field_name == "paid" else before.paid
        if field_name in ("quantity", "product_id"):
            price = core_logic.price_for_quantity(core_logic.get_product(context, product_id), quantity)
        total = core_logic.to_money(price * quantity)
        updates.update(
            price=price,
            total=total,
            outstanding=total - paid,
            payment_status=core_logic.calculate_status(TransactionType.SALE, total, paid, ZERO),
        )

    after = replace(before, **updates)
    balance_changes: Dict[str, Decimal] = {}
    if after.reseller_id != before.reseller_id:
        balance_changes[before.reseller_id] = -before.outstanding
        balance_changes[after.reseller_id] = after.outstanding
    elif after.outstanding != before.outstanding:
        balance_changes[after.reseller_id] = after.outstanding - before.outstanding
    return after, balance_changes


def _edit_clearance(
    context: RuntimeContext,
    before: data_manager.ClearanceRow,
    field_name: str,
    value: Any,
) -> tuple[data_manager.ClearanceRow, Dict[str, Decimal]]:
    if field_name == "reseller_id":
        core_logic.get_reseller(context, value)
        return replace(before, reseller_id=value), {}
    if field_name == "date":
        return replace(before, date=value), {}

    if value <= 0:
        raise BusinessRuleViolation("Clearance amount must be greater than zero")
    difference = value - before.paid
    balance = core_logic.current_balance(context, before.reseller_id)
    if balance - difference < 0:
        log.warning(
            "Clearance edit rejected: balance of reseller '%s' would become %s",
            before.reseller_id,
            balance - difference,
        )
        raise BusinessRuleViolation(
            f"Clearance of {value} would leave reseller '{before.reseller_id}' with a negative balance"
        )
    status = core_logic.calculate_status(TransactionType.CLEARANCE, ZERO, value, balance + before.paid)
    after = replace(before, paid=value, payment_status=status)
    return after, ({before.reseller_id: -difference} if difference else {})


def edit_transaction(
    context: RuntimeContext,
    transaction_id: str,
    field_name: str,
    value: Any,
) -> data_manager.TransactionRow:
    """Change one field of a stored transaction and rebalance the ledger.

    Sales accept ``date``, ``reseller_id``, ``product_id``, ``quantity``,
    ``price`` and ``paid``. A new quantity or product re-derives the unit price
    from the price table; any amount change recomputes total, outstanding and
    status, and the difference in outstanding is applied to the balance.
    Moving a sale to another reseller moves its outstanding with it.

    Clearances accept ``date``, ``reseller_id`` and ``paid``. A new amount
    adjusts the balance by the negated difference and is refused when that
    would leave the balance negative. Changing the reseller relabels the row
    only; the sales it settled stay settled.

    Returns:
        data_manager.TransactionRow: The stored post-edit record.

    Raises:
        MissingReferenceError: If the transaction or a referenced id is unknown.
        ReadOnlyFieldError: If the field cannot be edited on this transaction.
        BusinessRuleViolation: For unknown fields and rejected amounts.
        ValueError: When the value cannot be converted.
        PersistenceError: If the write failed; balances were restored.
    """
    if field_name not in KNOWN_FIELDS:
        log.error("Edit requested for unknown field '%s'", field_name)
        raise BusinessRuleViolation(f"Unknown transaction field: {field_name}")

    before = core_logic.get_transaction(context, transaction_id)
    editable = SALE_EDITABLE_FIELDS if isinstance(before, data_manager.SaleRow) else CLEARANCE_EDITABLE_FIELDS
    if field_name not in editable:
        log.warning(
            "Rejected edit of read-only field '%s' on %s '%s'",
            field_name,
            before.transaction_type.value,
            transaction_id,
        )
        raise ReadOnlyFieldError(f"Field '{field_name}' cannot be edited on a {before.transaction_type.value}")

    value = _coerce_field(field_name, value)
    if isinstance(before, data_manager.SaleRow):
        after, balance_changes = _edit_sale(context, before, field_name, value)
    else:
        after, balance_changes = _edit_clearance(context, before, field_name, value)

    if after == before:
        log.info("Edit of '%s' on transaction '%s' changed nothing", field_name, transaction_id)
        return before

    timestamp = core_logic._resolve_timestamp(None)
    changes = _Changes(Saga("edit transaction"))
    try:
        for reseller_id, delta in balance_changes.items():
            if delta:
                _apply_balance(context, changes, reseller_id, delta)
        core_logic.store_transaction(context, after)
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    context.history.push(
        EditOperation(
            timestamp=timestamp,
            balance_deltas=tuple(changes.balances),
            sale_deltas=(),
            before=before,
            after=after,
        )
    )
    log.info("Edited '%s' of transaction '%s'", field_name, transaction_id)
    return after


def _credit_released_payments(
    context: RuntimeContext,
    changes: _Changes,
    clearance: data_manager.ClearanceRow,
    released: Sequence[SaleDelta],
) -> None:
    """Add released clearance money back to the balances that now owe it.

    Each released amount goes to the reseller currently owning the sale, which
    may differ from the clearance's reseller after a relabel. Any part of
    ``paid`` not covered by stored allocations stays with the clearance's
    reseller. Allocations to sales deleted since are not credited: their debt
    left the balance together with the sale.
    """
    credits: Dict[str, Decimal] = {}
    for delta in released:
        sale = data_manager.find_transaction(context.workbook, delta.sale_id)
        credits[sale.reseller_id] = credits.get(sale.reseller_id, ZERO) - delta.payment_applied

    allocated = sum((allocation.amount for allocation in clearance.allocations), ZERO)
    remainder = clearance.paid - allocated
    if remainder:
        credits[clearance.reseller_id] = credits.get(clearance.reseller_id, ZERO) + remainder

    for reseller_id, amount in credits.items():
        if amount:
            _apply_balance(context, changes, reseller_id, amount)


def delete_transactions(context: RuntimeContext, transaction_ids: Sequence[str]) -> List[data_manager.TransactionRow]:
    """Delete a batch of transactions and take their effect off the ledger.

    Clearances are processed first: their payments are released from the
    sales they settled and the amount is credited to whoever owns those
    sales now. Sales are processed next, each removing its current outstanding
    (read after the releases above) from the balance. The rows are then deleted in one call.
    The whole batch is one undo operation.

    Raises:
        BusinessRuleViolation: If ``transaction_ids`` is empty.
        MissingReferenceError: If an identifier is unknown.
        PersistenceError: If a write failed. Compensation errors during this
            rollback are logged only.
    """
    unique_ids = list(dict.fromkeys(transaction_ids))
    if not unique_ids:
        raise BusinessRuleViolation("No transactions selected for deletion")
    records = [core_logic.get_transaction(context, transaction_id) for transaction_id in unique_ids]

    timestamp = core_logic._resolve_timestamp(None)
    changes = _Changes(Saga("delete transactions"))
    try:
        for record in records:
            if isinstance(record, data_manager.ClearanceRow):
                released = release_allocations(context, record, saga=changes.saga)
                changes.sales.extend(released)
                _credit_released_payments(context, changes, record, released)
        for record in records:
            if isinstance(record, data_manager.SaleRow):
                current = data_manager.find_transaction(context.workbook, record.transaction_id)
                outstanding = current.outstanding if current is not None else record.outstanding
                _apply_balance(context, changes, record.reseller_id, -outstanding)
        core_logic.remove_transactions(context, unique_ids)
    except Exception as exc:
        raise changes.saga.abort(exc, surface_reversal_failures=False) from exc

    context.history.push(
        DeleteOperation(
            timestamp=timestamp,
            balance_deltas=tuple(changes.balances),
            sale_deltas=tuple(changes.sales),
            records=tuple(records),
        )
    )
    log.info("Deleted %d transaction(s)", len(records))
    return records


@dataclass(frozen=True)
class _PreparedRow:
    row: ImportRow
    reseller: data_manager.ResellerRow
    product: Optional[data_manager.ProductRow]


def _prepare_import_row(context: RuntimeContext, row: ImportRow) -> _PreparedRow:
    reseller = core_logic.find_reseller_by_name(context, row.member_name)
    if reseller is None:
        raise MissingReferenceError(f"unknown member '{row.member_name}'")

    if row.transaction_type is TransactionType.CLEARANCE:
        _validate_clearance_amount(context, reseller.reseller_id, core_logic.to_money(row.paid))
        return _PreparedRow(row, reseller, None)

    product = core_logic.find_product_by_name(context, row.product_name or "")
    if product is None:
        raise MissingReferenceError(f"unknown product '{row.product_name}'")
    if row.quantity is None:
        raise ValueError("quantity is required for a sale")
    _validate_sale_inputs(row.quantity, row.paid, row.price)
    if row.price is None:
        core_logic.price_for_quantity(product, row.quantity)
    return _PreparedRow(row, reseller, product)


def import_transactions(context: RuntimeContext, rows: Sequence[ImportRow]) -> ImportResult:
    """Insert a batch of externally parsed rows as one undoable unit.

    Rows are resolved and validated one at a time; a row that cannot be used
    is skipped with a warning. Sales follow the same derivation as
    :func:`record_sale`. Clearances are allocated against sales already in the
    store, including those settled by earlier clearances of this batch. All
    balance and sale changes are applied before the single batch insert; if
    the insert fails every change is reversed.

    Raises:
        BusinessRuleViolation: If no row could be imported.
        PersistenceError: If a write failed; the import was rolled back.
    """
    timestamp = core_logic._resolve_timestamp(None)
    changes = _Changes(Saga("import transactions"))
    records: List[data_manager.TransactionRow] = []
    skipped: List[str] = []

    try:
        for line_number, row in enumerate(rows, start=1):
            try:
                prepared = _prepare_import_row(context, row)
            except (BusinessRuleViolation, ValueError) as exc:
                log.warning("Skipping import row %d: %s", line_number, exc)
                skipped.append(f"row {line_number}: {exc}")
                continue

            when = core_logic.resolve_date(row.date)
            if prepared.product is None:
                records.append(
                    _apply_clearance(
                        context,
                        changes,
                        transaction_id=core_logic.generate_transaction_id(prefix="C", when=timestamp),
                        when=when,
                        reseller_id=prepared.reseller.reseller_id,
                        paid=core_logic.to_money(row.paid),
                    )
                )
                continue

            sale = build_sale_transaction(
                prepared.product,
                transaction_id=core_logic.generate_transaction_id(prefix="S", when=timestamp),
                when=when,
                reseller_id=prepared.reseller.reseller_id,
                quantity=row.quantity,
                paid=row.paid,
                price=row.price,
            )
            _apply_balance(context, changes, sale.reseller_id, sale.outstanding)
            records.append(sale)
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    if not records:
        log.warning("Import rejected: none of %d row(s) could be imported", len(rows))
        raise BusinessRuleViolation("No importable rows were found")

    try:
        core_logic.insert_transactions(context, records)
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    context.history.push(
        ImportOperation(
            timestamp=timestamp,
            balance_deltas=tuple(changes.balances),
            sale_deltas=tuple(changes.sales),
            records=tuple(records),
        )
    )
    log.info("Imported %d transaction(s); skipped %d row(s)", len(records), len(skipped))
    return ImportResult(records=tuple(records), skipped=tuple(skipped))


def duplicate_sales(
    context: RuntimeContext,
    transaction_ids: Sequence[str],
    *,
    when: Optional[date] = None,
) -> DuplicateResult:
    """Clone sales as new unpaid sales dated today.

    Clearances cannot be duplicated; they are reported back in
    :attr:`DuplicateResult.rejected` while the sales in the selection are
    still cloned.

    Raises:
        MissingReferenceError: If an identifier is unknown.
        BusinessRuleViolation: If the selection holds no sale.
        PersistenceError: If a write failed; balances were restored.
    """
    sources: List[data_manager.SaleRow] = []
    rejected: List[str] = []
    for transaction_id in dict.fromkeys(transaction_ids):
        record = core_logic.get_transaction(context, transaction_id)
        if isinstance(record, data_manager.ClearanceRow):
            log.warning("Clearance '%s' cannot be duplicated; only sales can", transaction_id)
            rejected.append(transaction_id)
            continue
        sources.append(record)
    if not sources:
        raise BusinessRuleViolation("Only sales can be duplicated; no sale was selected")

    timestamp = core_logic._resolve_timestamp(None)
    clone_date = core_logic.resolve_date(when)
    clones = [
        replace(
            source,
            transaction_id=core_logic.generate_transaction_id(prefix="S", when=timestamp),
            date=clone_date,
            paid=ZERO,
            outstanding=source.total,
            payment_status=core_logic.calculate_status(TransactionType.SALE, source.total, ZERO, ZERO),
        )
        for source in sources
    ]

    changes = _Changes(Saga("duplicate sales"))
    try:
        for clone in clones:
            _apply_balance(context, changes, clone.reseller_id, clone.outstanding)
        core_logic.insert_transactions(context, clones)
    except Exception as exc:
        raise changes.saga.abort(exc) from exc

    context.history.push(
        DuplicateOperation(
            timestamp=timestamp,
            balance_deltas=tuple(changes.balances),
            sale_deltas=(),
            records=tuple(clones),
        )
    )
    log.info("Duplicated %d sale(s)", len(clones))
    return DuplicateResult(records=tuple(clones), rejected=tuple(rejected))


TransactionCommand = Union[SaleCommand, ClearanceCommand]


def record_transaction(context: RuntimeContext, command: TransactionCommand) -> data_manager.TransactionRow:
    """Dispatch a command to :func:`record_sale` or :func:`record_clearance`."""
    if isinstance(command, SaleCommand):
        return record_sale(context, command)
    if isinstance(command, ClearanceCommand):
        return record_clearance(context, command)
    raise BusinessRuleViolation(f"Unsupported command: {type(command).__name__}")
