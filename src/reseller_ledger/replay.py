"""Undo and redo of recorded ledger operations.

:func:`reverse` and :func:`reapply` are dispatched on the operation record
type; each implementation uses only the data its record carries. The stack is
popped only after the replay completed, so a failed undo or redo can be
retried.
"""

from __future__ import annotations

from functools import singledispatch

from . import core_logic, log
from .allocation import apply_sale_delta
from .core_logic import EmptyHistoryError, PersistenceError, RuntimeContext
from .history import (
    AddOperation,
    DeleteOperation,
    DuplicateOperation,
    EditOperation,
    ImportOperation,
    LedgerOperation,
    UndoOperation,
)


def _restore_balances(context: RuntimeContext, operation: LedgerOperation) -> None:
    # newest first, so a reseller touched twice ends on its earliest value
    for delta in reversed(operation.balance_deltas):
        core_logic.set_balance(context, delta.reseller_id, delta.old_balance)


def _replay_balances(context: RuntimeContext, operation: LedgerOperation) -> None:
    for delta in operation.balance_deltas:
        core_logic.set_balance(context, delta.reseller_id, delta.new_balance)


def _restore_sales(context: RuntimeContext, operation: LedgerOperation) -> None:
    for delta in reversed(operation.sale_deltas):
        apply_sale_delta(context, delta, forward=False)


def _replay_sales(context: RuntimeContext, operation: LedgerOperation) -> None:
    for delta in operation.sale_deltas:
        apply_sale_delta(context, delta, forward=True)


@singledispatch
def reverse(operation: LedgerOperation, context: RuntimeContext) -> None:
    """Undo the effect of ``operation`` on the store."""
    raise TypeError(f"Cannot reverse {type(operation).__name__}")


@reverse.register(AddOperation)
@reverse.register(ImportOperation)
@reverse.register(DuplicateOperation)
def _reverse_insert(operation, context: RuntimeContext) -> None:
    core_logic.remove_transactions(context, [record.transaction_id for record in operation.records])
    _restore_sales(context, operation)
    _restore_balances(context, operation)


@reverse.register(EditOperation)
def _reverse_edit(operation, context: RuntimeContext) -> None:
    core_logic.store_transaction(context, operation.before)
    _restore_balances(context, operation)


@reverse.register(DeleteOperation)
def _reverse_delete(operation, context: RuntimeContext) -> None:
    core_logic.insert_transactions(context, list(operation.records))
    _restore_sales(context, operation)
    _restore_balances(context, operation)


@singledispatch
def reapply(operation: LedgerOperation, context: RuntimeContext) -> None:
    """Perform ``operation`` again after it was undone."""
    raise TypeError(f"Cannot reapply {type(operation).__name__}")


@reapply.register(AddOperation)
@reapply.register(ImportOperation)
@reapply.register(DuplicateOperation)
def _reapply_insert(operation, context: RuntimeContext) -> None:
    _replay_balances(context, operation)
    _replay_sales(context, operation)
    core_logic.insert_transactions(context, list(operation.records))


@reapply.register(EditOperation)
def _reapply_edit(operation, context: RuntimeContext) -> None:
    _replay_balances(context, operation)
    core_logic.store_transaction(context, operation.after)


@reapply.register(DeleteOperation)
def _reapply_delete(operation, context: RuntimeContext) -> None:
    _replay_sales(context, operation)
    _replay_balances(context, operation)
    core_logic.remove_transactions(context, [record.transaction_id for record in operation.records])


def undo_last(context: RuntimeContext) -> UndoOperation:
    """Reverse the most recent operation and move it to the redo stack.

    Returns:
        UndoOperation: The operation that was undone.

    Raises:
        EmptyHistoryError: If there is nothing to undo.
        PersistenceError: If the reversal failed part way. Both stacks are
            left as they were; the store may hold a partial reversal.
    """
    history = context.history
    operation = history.peek_undo()
    if operation is None:
        raise EmptyHistoryError("Nothing to undo")

    with history.replaying():
        try:
            reverse(operation, context)
        except Exception as exc:
            log.exception("Undo of %s operation failed", operation.kind.value)
            raise PersistenceError(f"Undo of {operation.kind.value} failed: {exc}") from exc

    history.commit_undo()
    log.info("Undid %s operation recorded at %s", operation.kind.value, operation.timestamp.isoformat())
    return operation


def redo_last(context: RuntimeContext) -> UndoOperation:
    """Reapply the most recently undone operation and move it back to undo.

    Raises:
        EmptyHistoryError: If there is nothing to redo.
        PersistenceError: If the replay failed part way; stacks are unchanged.
    """
    history = context.history
    operation = history.peek_redo()
    if operation is None:
        raise EmptyHistoryError("Nothing to redo")

    with history.replaying():
        try:
            reapply(operation, context)
        except Exception as exc:
            log.exception("Redo of %s operation failed", operation.kind.value)
            raise PersistenceError(f"Redo of {operation.kind.value} failed: {exc}") from exc

    history.commit_redo()
    log.info("Redid %s operation recorded at %s", operation.kind.value, operation.timestamp.isoformat())
    return operation
