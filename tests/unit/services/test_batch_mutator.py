from __future__ import annotations

import pytest

from app.core.enums import BULK_UPDATE_NOTE, Priority
from app.core.exceptions import BulkUpdateFailed, DatabaseError, InvalidPatch, InvalidStage, OrderNotFound
from app.models import HistoryEntry
from app.services.assignment_store import AssignmentStore
from app.services.batch_mutator import BatchMutator

ORDER_IDS = [71, 72, 73, 74, 75]


@pytest.fixture
def five_orders(household, place_order):
    for order_id in ORDER_IDS:
        place_order(household.id, order_id)
    return ORDER_IDS


def _priorities(db, household) -> dict[int, int]:
    return {item.order_id: item.priority for item in AssignmentStore(db=db).get_board(household.id).assignments}


def test_bulk_stage_move_writes_one_history_row_per_order(db, household, five_orders):
    stages = household.stage_ids(db)
    result = BatchMutator(db=db).bulk_update(
        household.id, five_orders, {"stage_id": stages["Making"]}, changed_by=household.admin_id
    )

    assert result.updated == 5
    moves = db.query(HistoryEntry).filter(HistoryEntry.to_stage_id == stages["Making"]).all()
    assert sorted(entry.order_id for entry in moves) == five_orders
    assert {entry.notes for entry in moves} == {BULK_UPDATE_NOTE}


def test_bulk_priority_and_assignee(db, household, five_orders):
    BatchMutator(db=db).bulk_update(
        household.id,
        five_orders[:2],
        {"priority": 2, "assigned_to": household.member_id},
        changed_by=household.admin_id,
    )
    board = {item.order_id: item for item in AssignmentStore(db=db).get_board(household.id).assignments}
    assert board[71].priority == Priority.RUSH and board[71].assigned_to == household.member_id
    assert board[73].priority == Priority.NORMAL and board[73].assigned_to is None


def test_bulk_failure_after_three_leaves_partial_effect(db, household, five_orders, monkeypatch):
    mutator = BatchMutator(db=db)
    real_update = mutator.store.update_assignment
    calls = {"n": 0}

    def _flaky_update(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 4:
            raise DatabaseError("connection dropped")
        return real_update(*args, **kwargs)

    monkeypatch.setattr(mutator.store, "update_assignment", _flaky_update)

    with pytest.raises(BulkUpdateFailed):
        mutator.bulk_update(household.id, five_orders, {"priority": 2}, changed_by=household.admin_id)

    priorities = _priorities(db, household)
    assert sum(1 for value in priorities.values() if value == Priority.RUSH) == 3
    assert [priorities[order_id] for order_id in five_orders] == [2, 2, 2, 0, 0]


def test_bulk_validation_fails_before_any_write(db, household, other_household, five_orders, place_order):
    place_order(other_household.id, 90)
    mutator = BatchMutator(db=db)
    with pytest.raises(OrderNotFound):
        mutator.bulk_update(household.id, [*five_orders, 90], {"priority": 1}, changed_by=None)
    with pytest.raises(InvalidStage):
        mutator.bulk_update(household.id, five_orders, {"stage_id": 99999}, changed_by=None)
    with pytest.raises(InvalidPatch):
        mutator.bulk_update(household.id, five_orders, {"priority": 9}, changed_by=None)
    with pytest.raises(InvalidPatch):
        mutator.bulk_update(household.id, five_orders, {"notes": "nope"}, changed_by=None)
    with pytest.raises(InvalidPatch):
        mutator.bulk_update(household.id, [], {"priority": 1}, changed_by=None)
    with pytest.raises(InvalidPatch):
        mutator.bulk_update(household.id, five_orders, {}, changed_by=None)

    assert set(_priorities(db, household).values()) == {0}


def test_bulk_move_skips_history_for_orders_already_there(db, household, five_orders):
    stages = household.stage_ids(db)
    mutator = BatchMutator(db=db)
    mutator.bulk_update(household.id, five_orders[:2], {"stage_id": stages["Packed"]}, changed_by=None)
    mutator.bulk_update(household.id, five_orders, {"stage_id": stages["Packed"]}, changed_by=None)
    into_packed = db.query(HistoryEntry).filter(HistoryEntry.to_stage_id == stages["Packed"]).count()
    assert into_packed == 5
