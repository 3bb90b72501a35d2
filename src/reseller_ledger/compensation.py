"""Compensation log for multi-step ledger writes.

Ledger commands mutate balances and sales before the final transaction write.
Each step that succeeded registers its inverse on a :class:`Saga`; if a later
step fails, :meth:`Saga.abort` runs the inverses newest-first and converts the
failure into a :class:`~reseller_ledger.core_logic.PersistenceError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List

from . import log
from .core_logic import PersistenceError


@dataclass
class _Step:
    description: str
    compensate: Callable[[], object]


@dataclass
class Saga:
    """Ordered record of applied steps and how to undo each of them."""

    name: str
    steps: List[_Step] = field(default_factory=list)

    def add(self, description: str, compensate: Callable[[], object]) -> None:
        """Register the inverse of a step that has just been applied."""

        self.steps.append(_Step(description, compensate))
        log.debug("[%s] registered compensation: %s", self.name, description)

    def unwind(self) -> List[Exception]:
        """Run every registered compensation in reverse order.

        A failing compensation does not stop the remaining ones. The returned
        list holds the errors raised, in the order they occurred.
        """

        failures: List[Exception] = []
        while self.steps:
            step = self.steps.pop()
            try:
                step.compensate()
            except Exception as exc:  # noqa: BLE001 - keep unwinding
                log.exception("[%s] compensation failed: %s", self.name, step.description)
                failures.append(exc)
            else:
                log.info("[%s] compensated: %s", self.name, step.description)
        return failures

    def abort(self, error: BaseException, *, surface_reversal_failures: bool = True) -> PersistenceError:
        """Unwind and build the error the caller should raise.

        Args:
            error (BaseException): The failure that stopped the command.
            surface_reversal_failures (bool): When ``False`` the compensation
                errors are only logged and the returned error reports none.

        Returns:
            PersistenceError: Error chained by the caller with ``from error``.
        """

        log.error("[%s] failed, rolling back: %s", self.name, error)
        failures = self.unwind()
        if failures:
            log.error(
                "[%s] %d compensation(s) failed; balances may disagree with stored transactions",
                self.name,
                len(failures),
            )
        return PersistenceError(
            f"{self.name} failed: {error}",
            reversal_failures=failures if surface_reversal_failures else (),
        )
