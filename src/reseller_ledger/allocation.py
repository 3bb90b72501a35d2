"""Clearance allocation against a reseller's open sales.

A clearance pays down the oldest debt first: sales are visited in date order
and each receives as much of the remaining amount as its outstanding allows.
Every settled sale is written before the next one is touched.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from functools import partial
from typing import List, Optional

from . import core_logic, data_manager, log
from .compensation import Saga
from .history import SaleDelta


def allocate_clearance(
    context: core_logic.RuntimeContext,
    reseller_id: str,
    amount: Decimal,
    *,
    saga: Optional[Saga] = None,
) -> List[SaleDelta]:
    """Apply ``amount`` to the reseller's open sales, oldest first.

    Args:
        context (core_logic.RuntimeContext): Active runtime context.
        reseller_id (str): Reseller whose sales are settled.
        amount (Decimal): Amount to distribute. Callers bound it by
            :func:`core_logic.outstanding_due` beforehand.
        saga (Saga | None): When given, each sale write registers its
            restoration so a later failure can unwind it.

    Returns:
        list[SaleDelta]: One delta per sale that received a payment, in the
            order the payments were applied.
    """

    remaining = amount
    deltas: List[SaleDelta] = []
    for sale in core_logic.fetch_open_sales(context, reseller_id):
        if remaining <= 0:
            break
        if sale.outstanding <= 0:
            continue

        applied = min(remaining, sale.outstanding)
        new_paid = sale.paid + applied
        new_outstanding = sale.outstanding - applied
        settled = replace(
            sale,
            paid=new_paid,
            outstanding=new_outstanding,
            payment_status=core_logic.settlement_status(new_paid, new_outstanding),
        )
        core_logic.store_transaction(context, settled)

        delta = SaleDelta(
            sale_id=sale.transaction_id,
            old_paid=sale.paid,
            new_paid=settled.paid,
            old_outstanding=sale.outstanding,
            new_outstanding=settled.outstanding,
            old_status=sale.payment_status,
            new_status=settled.payment_status,
            payment_applied=applied,
        )
        deltas.append(delta)
        if saga is not None:
            saga.add(
                f"restore sale {sale.transaction_id}",
                partial(apply_sale_delta, context, delta, forward=False),
            )
        log.info("Applied %s of clearance to sale '%s'", applied, sale.transaction_id)
        remaining -= applied

    if remaining > 0:
        log.warning(
            "Clearance for reseller '%s' left %s unallocated; no open sales remain",
            reseller_id,
            remaining,
        )
    return deltas


def release_allocations(
    context: core_logic.RuntimeContext,
    clearance: data_manager.ClearanceRow,
    *,
    saga: Optional[Saga] = None,
) -> List[SaleDelta]:
    """Take back the payments a clearance made to its sales.

    Sales are read fresh from the store. A sale that no longer exists is
    skipped with a warning: its debt already left the reseller's balance when
    it was deleted.
    """

    deltas: List[SaleDelta] = []
    for allocation in clearance.allocations:
        sale = data_manager.find_transaction(context.workbook, allocation.sale_id)
        if not isinstance(sale, data_manager.SaleRow):
            log.warning(
                "Clearance '%s' references missing sale '%s'; skipping release",
                clearance.transaction_id,
                allocation.sale_id,
            )
            continue

        new_paid = sale.paid - allocation.amount
        new_outstanding = sale.outstanding + allocation.amount
        released = replace(
            sale,
            paid=new_paid,
            outstanding=new_outstanding,
            payment_status=core_logic.settlement_status(new_paid, new_outstanding),
        )
        core_logic.store_transaction(context, released)

        delta = SaleDelta(
            sale_id=sale.transaction_id,
            old_paid=sale.paid,
            new_paid=released.paid,
            old_outstanding=sale.outstanding,
            new_outstanding=released.outstanding,
            old_status=sale.payment_status,
            new_status=released.payment_status,
            payment_applied=-allocation.amount,
        )
        deltas.append(delta)
        if saga is not None:
            saga.add(
                f"reapply clearance to sale {sale.transaction_id}",
                partial(apply_sale_delta, context, delta, forward=False),
            )
        log.info(
            "Released %s of clearance '%s' from sale '%s'",
            allocation.amount,
            clearance.transaction_id,
            sale.transaction_id,
        )
    return deltas


def apply_sale_delta(context: core_logic.RuntimeContext, delta: SaleDelta, *, forward: bool) -> None:
    """Write the new (``forward``) or old values of a sale delta to the store."""

    if data_manager.find_transaction(context.workbook, delta.sale_id) is None:
        log.warning("Sale '%s' no longer exists; settlement change not applied", delta.sale_id)
        return

    if forward:
        paid, outstanding, status = delta.new_paid, delta.new_outstanding, delta.new_status
    else:
        paid, outstanding, status = delta.old_paid, delta.old_outstanding, delta.old_status
    core_logic.update_transaction_fields(
        context,
        delta.sale_id,
        {"Paid": paid, "Outstanding": outstanding, "PaymentStatus": status.value},
    )
