"""Undo records and the bounded undo/redo stack.

Every successful ledger mutation is described by one operation record that
carries exactly what is needed to reverse or replay it: the affected
transaction rows, the reseller balance deltas, and the per-sale settlement
deltas produced by clearance allocation. Executing a reversal or replay is the
job of :mod:`reseller_ledger.replay`; this module only holds state.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Iterator, List, Optional, Union

from . import log
from .constants import DEFAULT_UNDO_DEPTH, OperationType, PaymentStatus
from .data_manager import TransactionRow


@dataclass(frozen=True)
class BalanceDelta:
    """A reseller balance change as ``old_balance -> new_balance``."""

    reseller_id: str
    old_balance: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class SaleDelta:
    """Settlement change applied to one sale by a clearance or its release."""

    sale_id: str
    old_paid: Decimal
    new_paid: Decimal
    old_outstanding: Decimal
    new_outstanding: Decimal
    old_status: PaymentStatus
    new_status: PaymentStatus
    payment_applied: Decimal


@dataclass(frozen=True)
class LedgerOperation:
    """Common payload of every undoable operation."""

    timestamp: datetime
    balance_deltas: tuple[BalanceDelta, ...]
    sale_deltas: tuple[SaleDelta, ...]

    kind: ClassVar[OperationType]


@dataclass(frozen=True)
class AddOperation(LedgerOperation):
    """A single sale or clearance was created."""

    records: tuple[TransactionRow, ...]

    kind: ClassVar[OperationType] = OperationType.ADD


@dataclass(frozen=True)
class ImportOperation(LedgerOperation):
    """A batch of imported rows was inserted as one unit."""

    records: tuple[TransactionRow, ...]

    kind: ClassVar[OperationType] = OperationType.IMPORT


@dataclass(frozen=True)
class DuplicateOperation(LedgerOperation):
    """Sales were cloned as new unpaid sales."""

    records: tuple[TransactionRow, ...]

    kind: ClassVar[OperationType] = OperationType.DUPLICATE


@dataclass(frozen=True)
class EditOperation(LedgerOperation):
    """One field of one transaction was changed."""

    before: TransactionRow
    after: TransactionRow

    kind: ClassVar[OperationType] = OperationType.EDIT


@dataclass(frozen=True)
class DeleteOperation(LedgerOperation):
    """A batch of transactions was deleted."""

    records: tuple[TransactionRow, ...]

    kind: ClassVar[OperationType] = OperationType.DELETE


UndoOperation = Union[AddOperation, ImportOperation, DuplicateOperation, EditOperation, DeleteOperation]

# Operations whose effect is the insertion of ``records``.
INSERT_OPERATIONS = (AddOperation, ImportOperation, DuplicateOperation)


class UndoHistory:
    """Linear undo/redo history with a bounded undo stack.

    ``push`` follows editor semantics: any new operation invalidates the redo
    stack. While :meth:`replaying` is active, pushes are ignored so that the
    writes performed by an undo or redo never record themselves.
    """

    def __init__(self, max_depth: int = DEFAULT_UNDO_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth
        self._undo: List[UndoOperation] = []
        self._redo: List[UndoOperation] = []
        self._replaying = False

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def is_replaying(self) -> bool:
        return self._replaying

    def undo_stack(self) -> List[UndoOperation]:
        """Return a copy of the undo stack, oldest first."""

        return list(self._undo)

    def redo_stack(self) -> List[UndoOperation]:
        """Return a copy of the redo stack, oldest first."""

        return list(self._redo)

    def push(self, operation: UndoOperation) -> None:
        if self._replaying:
            log.debug("Ignoring %s operation pushed during replay", operation.kind.value)
            return
        self._undo.append(operation)
        self._trim()
        self._redo.clear()
        log.debug("Recorded %s operation (undo depth %d)", operation.kind.value, len(self._undo))

    def peek_undo(self) -> Optional[UndoOperation]:
        return self._undo[-1] if self._undo else None

    def peek_redo(self) -> Optional[UndoOperation]:
        return self._redo[-1] if self._redo else None

    def commit_undo(self) -> UndoOperation:
        """Move the top undo entry to the redo stack after a successful reversal."""

        operation = self._undo.pop()
        self._redo.append(operation)
        return operation

    def commit_redo(self) -> UndoOperation:
        """Move the top redo entry back to the undo stack after a successful replay."""

        operation = self._redo.pop()
        self._undo.append(operation)
        self._trim()
        return operation

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    @contextmanager
    def replaying(self) -> Iterator[None]:
        """Suppress :meth:`push` for the duration of an undo or redo."""

        if self._replaying:
            raise RuntimeError("An undo or redo is already in progress")
        self._replaying = True
        try:
            yield
        finally:
            self._replaying = False

    def _trim(self) -> None:
        overflow = len(self._undo) - self.max_depth
        if overflow > 0:
            # oldest entries go first
            del self._undo[:overflow]
