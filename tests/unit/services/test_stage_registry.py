from __future__ import annotations

import pytest

from app.core.enums import DEFAULT_STAGES
from app.core.exceptions import InvalidPosition, InvalidStage, StageInUse
from app.models import HistoryEntry, Stage
from app.services.board_composer import AssignmentRecord, StageRecord, board_stats, compose_board
from app.services.assignment_store import AssignmentStore
from app.services.stage_registry import StageRegistry


def _positions(stages) -> list[int]:
    return [stage.position for stage in stages]


def _names(stages) -> list[str]:
    return [stage.name for stage in stages]


def test_default_stages_are_seeded_in_order(db, household):
    stages = StageRegistry(db=db).list_stages(household.id)
    assert _names(stages) == [name for name, _, _ in DEFAULT_STAGES]
    assert _positions(stages) == list(range(len(DEFAULT_STAGES)))


def test_ensure_default_stages_is_idempotent(db, household):
    registry = StageRegistry(db=db)
    registry.ensure_default_stages(household.id)
    assert db.query(Stage).filter(Stage.family_id == household.id).count() == len(DEFAULT_STAGES)


def test_move_stage_from_two_to_zero_shifts_others_right(db, household):
    registry = StageRegistry(db=db)
    before = registry.list_stages(household.id)
    moved = before[2]

    after = registry.move_stage(household.id, moved.id, 0)

    assert _names(after)[:3] == [moved.name, before[0].name, before[1].name]
    assert _positions(after) == list(range(len(before)))


def test_reorder_rejects_duplicate_positions_and_leaves_order_untouched(db, household):
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)
    positions = {stage.id: index for index, stage in enumerate(stages)}
    positions[stages[1].id] = 0

    with pytest.raises(InvalidPosition):
        registry.reorder_stages(household.id, positions)

    assert _names(registry.list_stages(household.id)) == _names(stages)


def test_reorder_rejects_gaps_missing_and_foreign_ids(db, household, other_household):
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)
    full = {stage.id: index for index, stage in enumerate(stages)}

    with pytest.raises(InvalidPosition):
        registry.reorder_stages(household.id, {**full, stages[-1].id: len(stages) + 3})
    with pytest.raises(InvalidPosition):
        registry.reorder_stages(household.id, {stage.id: index for index, stage in enumerate(stages[:-1])})

    foreign = registry.list_stages(other_household.id)[0]
    with pytest.raises(InvalidStage):
        registry.reorder_stages(household.id, {**full, foreign.id: len(stages)})


def test_reorder_full_reversal(db, household):
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)
    reversed_positions = {stage.id: len(stages) - 1 - index for index, stage in enumerate(stages)}

    after = registry.reorder_stages(household.id, reversed_positions)

    assert _names(after) == list(reversed(_names(stages)))
    assert _positions(after) == list(range(len(stages)))


def test_create_stage_appends_after_last(db, household):
    registry = StageRegistry(db=db)
    stage = registry.create_stage(household.id, "Gift Wrap", external_status="on-hold")
    assert stage.position == len(DEFAULT_STAGES)
    assert stage.color
    assert registry.list_stages(household.id)[-1].id == stage.id


def test_move_stage_rejects_out_of_range_position(db, household):
    registry = StageRegistry(db=db)
    stage = registry.list_stages(household.id)[0]
    with pytest.raises(InvalidPosition):
        registry.move_stage(household.id, stage.id, len(DEFAULT_STAGES))


def test_set_hidden_does_not_touch_assignments_or_stats(db, household, place_order):
    for order_id in (101, 102, 103):
        place_order(household.id, order_id)
    registry = StageRegistry(db=db)
    store = AssignmentStore(db=db)
    first = registry.list_stages(household.id)[0]

    def _stats():
        board = store.get_board(household.id)
        view = compose_board(
            [StageRecord.from_model(stage) for stage in board.stages],
            [AssignmentRecord.from_model(item) for item in board.assignments],
        )
        return board_stats(view)

    before = _stats()
    registry.set_hidden(household.id, first.id, True)
    after = _stats()

    assert registry.get_stage(household.id, first.id).is_hidden is True
    assert after == before
    assert after["total_orders"] == 3
    assert {item.stage_id for item in store.active_assignments(household.id)} == {first.id}


def test_delete_stage_with_orders_is_blocked(db, household, place_order):
    place_order(household.id, 201)
    registry = StageRegistry(db=db)
    first = registry.list_stages(household.id)[0]

    with pytest.raises(StageInUse):
        registry.delete_stage(household.id, first.id)

    assert first.id in {stage.id for stage in registry.list_stages(household.id)}


def test_delete_empty_stage_compacts_positions(db, household):
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)

    after = registry.delete_stage(household.id, stages[2].id)

    assert stages[2].id not in {stage.id for stage in after}
    assert _positions(after) == list(range(len(stages) - 1))


def test_delete_stage_with_reassignment_moves_orders_and_keeps_history(db, household, place_order):
    place_order(household.id, 301)
    place_order(household.id, 302)
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)
    doomed, target = stages[0], stages[5]

    registry.delete_stage(household.id, doomed.id, reassign_to=target.id, changed_by=household.admin_id)

    store = AssignmentStore(db=db)
    assert {item.stage_id for item in store.active_assignments(household.id)} == {target.id}
    moves = db.query(HistoryEntry).filter(HistoryEntry.to_stage_id == target.id).all()
    assert len(moves) == 2
    assert all(entry.from_stage_name == doomed.name for entry in moves)
    assert all("removed" in entry.notes for entry in moves)


def test_delete_stage_cannot_reassign_to_itself(db, household, place_order):
    place_order(household.id, 401)
    registry = StageRegistry(db=db)
    first = registry.list_stages(household.id)[0]
    with pytest.raises(InvalidStage):
        registry.delete_stage(household.id, first.id, reassign_to=first.id)
    assert len(registry.list_stages(household.id)) == len(DEFAULT_STAGES)


def test_replace_stages_renames_reorders_and_creates(db, household):
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)
    payload = [
        {"id": stages[1].id, "name": "In Progress", "color": "#000000"},
        {"id": stages[0].id, "name": stages[0].name},
        {"name": "Quality Check", "external_status": "on-hold"},
    ]

    after = registry.replace_stages(household.id, payload)

    assert _names(after) == ["In Progress", stages[0].name, "Quality Check"]
    assert _positions(after) == [0, 1, 2]
    assert after[0].color == "#000000"
    assert after[2].external_status == "on-hold"


def test_replace_stages_blocks_dropping_a_stage_in_use(db, household, place_order):
    place_order(household.id, 501)
    registry = StageRegistry(db=db)
    stages = registry.list_stages(household.id)

    with pytest.raises(StageInUse):
        registry.replace_stages(household.id, [{"id": stage.id, "name": stage.name} for stage in stages[1:]])

    assert len(registry.list_stages(household.id)) == len(stages)


def test_replace_stages_rejects_duplicates_and_empty(db, household):
    registry = StageRegistry(db=db)
    stage = registry.list_stages(household.id)[0]
    with pytest.raises(InvalidPosition):
        registry.replace_stages(household.id, [])
    with pytest.raises(InvalidPosition):
        registry.replace_stages(
            household.id,
            [{"id": stage.id, "name": "A"}, {"id": stage.id, "name": "B"}],
        )
