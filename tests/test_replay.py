"""Tests for undo and redo of ledger operations against a real workbook."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from conftest import balance_of, stored
from reseller_ledger import core_logic, replay, transactions
from reseller_ledger.transactions import ClearanceCommand, ImportRow


@pytest.fixture
def three_sales(ledger, make_sale):
    return [
        make_sale(price=Decimal("100"), when=date(2025, 1, 1)),
        make_sale(price=Decimal("50"), when=date(2025, 1, 2)),
        make_sale(price=Decimal("30"), when=date(2025, 1, 3)),
    ]


def test_undo_and_redo_of_sale(ledger, make_sale):
    """Undo then redo returns the ledger to the post-sale state."""

    sale = make_sale(quantity=2)

    undone = replay.undo_last(ledger)

    assert undone.records == (sale,)
    assert stored(ledger, sale.transaction_id) is None
    assert balance_of(ledger, "R1") == Decimal("0.00")
    assert ledger.history.can_redo
    assert not ledger.history.can_undo

    replay.redo_last(ledger)

    assert stored(ledger, sale.transaction_id) == sale
    assert balance_of(ledger, "R1") == Decimal("50.00")
    assert ledger.history.can_undo
    assert not ledger.history.can_redo


def test_undo_of_clearance_restores_sales(ledger, three_sales):
    transactions.record_clearance(ledger, ClearanceCommand(reseller_id="R1", paid=Decimal("120")))

    replay.undo_last(ledger)

    assert balance_of(ledger, "R1") == Decimal("180.00")
    assert [stored(ledger, sale.transaction_id) for sale in three_sales] == three_sales
    assert len(core_logic.list_transactions(ledger)) == 3

    replay.redo_last(ledger)

    assert balance_of(ledger, "R1") == Decimal("60.00")
    assert stored(ledger, three_sales[1].transaction_id).outstanding == Decimal("30.00")
    assert stored(ledger, three_sales[2].transaction_id) == three_sales[2]


def test_undo_of_clearance_delete_restores_allocations(ledger, three_sales):
    """Deleting a clearance and undoing restores the clearance and every sale exactly."""

    clearance = transactions.record_clearance(ledger, ClearanceCommand(reseller_id="R1", paid=Decimal("120")))
    settled = [stored(ledger, sale.transaction_id) for sale in three_sales]

    transactions.delete_transactions(ledger, [clearance.transaction_id])
    assert balance_of(ledger, "R1") == Decimal("180.00")

    replay.undo_last(ledger)

    assert stored(ledger, clearance.transaction_id) == clearance
    assert [stored(ledger, sale.transaction_id) for sale in three_sales] == settled
    assert balance_of(ledger, "R1") == Decimal("60.00")

    replay.redo_last(ledger)

    assert stored(ledger, clearance.transaction_id) is None
    assert [stored(ledger, sale.transaction_id) for sale in three_sales] == three_sales
    assert balance_of(ledger, "R1") == Decimal("180.00")


def test_undo_of_edit_restores_before_image(ledger, make_sale):
    sale = make_sale(product_id="P1", quantity=5)
    edited = transactions.edit_transaction(ledger, sale.transaction_id, "quantity", "20")

    replay.undo_last(ledger)

    assert stored(ledger, sale.transaction_id) == sale
    assert balance_of(ledger, "R1") == Decimal("50.00")

    replay.redo_last(ledger)

    assert stored(ledger, sale.transaction_id) == edited
    assert balance_of(ledger, "R1") == Decimal("160.00")


def test_undo_of_reseller_move_restores_both_balances(ledger, make_sale):
    sale = make_sale(quantity=2)
    transactions.edit_transaction(ledger, sale.transaction_id, "reseller_id", "R2")

    replay.undo_last(ledger)

    assert balance_of(ledger, "R1") == Decimal("50.00")
    assert balance_of(ledger, "R2") == Decimal("0.00")


def test_undo_of_import_is_one_unit(ledger):
    rows = [
        ImportRow(member_name="Alice Traders", product_name="Protein Bar", quantity=10),
        ImportRow(member_name="Bob Stores", product_name="Vitamin C", quantity=1),
    ]
    transactions.import_transactions(ledger, rows)

    replay.undo_last(ledger)

    assert core_logic.list_transactions(ledger) == []
    assert balance_of(ledger, "R1") == Decimal("0.00")
    assert balance_of(ledger, "R2") == Decimal("0.00")
    assert not ledger.history.can_undo


def test_undo_of_duplicate_removes_clones(ledger, make_sale):
    sale = make_sale()
    transactions.duplicate_sales(ledger, [sale.transaction_id])

    replay.undo_last(ledger)

    assert core_logic.list_transactions(ledger) == [sale]
    assert balance_of(ledger, "R1") == Decimal("25.00")


def test_undo_of_sale_delete(ledger, make_sale):
    sale = make_sale(quantity=2)
    transactions.delete_transactions(ledger, [sale.transaction_id])

    replay.undo_last(ledger)

    assert stored(ledger, sale.transaction_id) == sale
    assert balance_of(ledger, "R1") == Decimal("50.00")


def test_empty_history_raises(ledger):
    with pytest.raises(core_logic.EmptyHistoryError):
        replay.undo_last(ledger)
    with pytest.raises(core_logic.EmptyHistoryError):
        replay.redo_last(ledger)


def test_new_operation_discards_redo(ledger, make_sale):
    make_sale()
    replay.undo_last(ledger)

    make_sale(quantity=2)

    with pytest.raises(core_logic.EmptyHistoryError):
        replay.redo_last(ledger)


def test_replay_does_not_record_itself(ledger, make_sale):
    make_sale()
    make_sale()

    replay.undo_last(ledger)

    assert len(ledger.history.undo_stack()) == 1
    assert len(ledger.history.redo_stack()) == 1


def test_failed_undo_leaves_stacks_untouched(monkeypatch, ledger, make_sale):
    sale = make_sale()
    monkeypatch.setattr(core_logic, "remove_transactions", Mock(side_effect=OSError("locked")))

    with pytest.raises(core_logic.PersistenceError):
        replay.undo_last(ledger)

    assert ledger.history.peek_undo().records == (sale,)
    assert not ledger.history.can_redo
    assert not ledger.history.is_replaying
